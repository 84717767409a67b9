"""
Launch script: `python -m mclauncher [VERSION] [--config launcher_config.json]`.

Reads `launcher_config.json` (and the optional `config.json` beside it for the
offline account and window size), prepares the instance and runs the game
until it exits.
"""

import argparse
import asyncio
import logging
import pathlib
import sys
from typing import List, Optional

from .config import (
    LaunchConfig,
    LauncherConfig,
    account_from_user_config,
    load_launcher_config,
    load_user_config,
    window_from_user_config,
)
from .errors import LauncherError
from .launcher import Launcher
from .process import ProcessState
from .session import close_session

log = logging.getLogger(__name__)

CONFIG_FILENAME = 'launcher_config.json'
USER_CONFIG_FILENAME = 'config.json'


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog='mclauncher', description="Download and launch a Minecraft version.")
    parser.add_argument('version', nargs='?', help="version id to launch (default: latest release)")
    parser.add_argument('--config', type=pathlib.Path, default=pathlib.Path.cwd() / CONFIG_FILENAME,
                        help=f"path to {CONFIG_FILENAME}")
    parser.add_argument('--instance', help="instance name (default: instance-<version>)")
    parser.add_argument('--skip-assets', action='store_true', help="do not download asset objects")
    return parser.parse_args(argv)


def load_config(path: pathlib.Path) -> LauncherConfig:
    if path.exists():
        return load_launcher_config(path)
    log.warning(f"{path.name} not found at {path.parent}. Using defaults.")
    return LauncherConfig()


async def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')

    launcher = None
    try:
        config = load_config(args.config)
        if config.debug:
            logging.getLogger().setLevel(logging.DEBUG)

        cfg = load_user_config(args.config.parent / USER_CONFIG_FILENAME)
        account = account_from_user_config(cfg)
        window = window_from_user_config(cfg)

        launcher = Launcher(config, show_progress=True)
        version = args.version
        if not version:
            version = await launcher.latest_release()
            log.info(f"No version given, using latest release {version}")

        launch_config = LaunchConfig.for_version(version, account)
        launch_config.window = window
        launch_config.download_assets = not args.skip_assets
        if args.instance:
            launch_config.instance_name = args.instance

        log.info(f"Preparing Minecraft {version}...")
        handle = await launcher.launch(launch_config)

        log.info(f"Minecraft process started (PID: {handle.pid}). Waiting for exit...")
        status = await handle.wait()
        log.info(f"Minecraft process finished: {status}")
        if status.state != ProcessState.EXITED or status.code != 0:
            report = await handle.latest_crash_report()
            if report:
                log.error(f"Latest crash report:\n{report}")
        return status.code if status.state == ProcessState.EXITED else 1
    except LauncherError as e:
        log.error(f"Launch failed: {e}")
        return 1
    except Exception:
        log.exception("--- An error occurred during setup or launch ---")
        return 1
    finally:
        # Ensure the shared aiohttp session is closed on exit or error
        if launcher is not None:
            await launcher.close()
        else:
            await close_session()


def run() -> None:
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        log.info("Launch cancelled by user.")
        sys.exit(130)


if __name__ == "__main__":
    run()
