"""
High level entry points used by a command layer or the launch script.

A Launcher wires the catalog, planner, fetcher, natives extraction, Java
lookup, argument assembly and process supervision together, and keeps the
processes it started in a ProcessRegistry.
"""

import json
import logging
import pathlib
from typing import List, Optional, Sequence

import aiofiles
import aiohttp
from tqdm.asyncio import tqdm

from . import planner
from .assembler import LaunchAssembler, redact_arguments
from .catalog import VersionCatalog
from .config import LaunchConfig, LauncherConfig, WindowConfig
from .errors import FilesystemError, ParseError
from .fetcher import Fetcher
from .java import DEFAULT_JAVA_VERSION, JavaRuntimeProvider
from .layout import InstanceLayout
from .models import Account, FetchTask, VersionDescriptor
from .natives import extract_natives
from .platform_info import Platform
from .process import LineCallback, ProcessHandle, ProcessRegistry, ProcessStatus
from .session import close_session, get_session

log = logging.getLogger(__name__)


class Launcher:

    def __init__(
        self,
        config: Optional[LauncherConfig] = None,
        platform: Optional[Platform] = None,
        session: Optional[aiohttp.ClientSession] = None,
        java_provider: Optional[JavaRuntimeProvider] = None,
        show_progress: bool = False,
    ):
        self.config = config or LauncherConfig()
        self.platform = platform or Platform.current()
        self._session = session
        self.catalog = VersionCatalog(self.config.manifest_url, session=session)
        self.fetcher = Fetcher(session=session)
        self.java = java_provider or JavaRuntimeProvider(self.config, session=session)
        self.registry = ProcessRegistry()
        self.show_progress = show_progress

    def instance_layout(self, instance_name: str) -> InstanceLayout:
        return InstanceLayout(self.config.instances_dir / instance_name)

    async def _ensure_session(self) -> None:
        if self._session is None:
            # Shared session picks up the configured limits on first use.
            await get_session(self.config.download_timeout, self.config.concurrent_downloads)

    async def resolve_version(self, version_id: str) -> VersionDescriptor:
        await self._ensure_session()
        return await self.catalog.resolve_version(version_id)

    async def latest_release(self) -> str:
        await self._ensure_session()
        return (await self.catalog.latest_release()).id

    def plan(self, descriptor: VersionDescriptor, layout: InstanceLayout,
             platform: Optional[Platform] = None) -> List[FetchTask]:
        return planner.plan(descriptor, platform or self.platform, layout)

    async def fetch_all(self, tasks: Sequence[FetchTask], concurrency: Optional[int] = None,
                        desc: str = "Downloading") -> int:
        await self._ensure_session()
        concurrency = concurrency or self.config.concurrent_downloads
        if not self.show_progress:
            return await self.fetcher.fetch_all(tasks, concurrency)
        with tqdm(total=len(tasks), unit="file", desc=desc) as pbar:
            return await self.fetcher.fetch_all(tasks, concurrency, pbar=pbar)

    async def extract_natives(self, descriptor: VersionDescriptor, layout: InstanceLayout) -> int:
        return await extract_natives(descriptor, layout, self.platform)

    def assemble_launch(
        self,
        descriptor: VersionDescriptor,
        layout: InstanceLayout,
        account: Account,
        window: Optional[WindowConfig] = None,
        extra_jvm_args: Sequence[str] = (),
        extra_game_args: Sequence[str] = (),
    ) -> List[str]:
        assembler = LaunchAssembler(self.config, self.platform)
        return assembler.assemble(descriptor, layout, account, window, extra_jvm_args, extra_game_args)

    async def spawn(self, executable: pathlib.Path, args: Sequence[str], working_dir: pathlib.Path,
                    account: Account, on_line: Optional[LineCallback] = None) -> ProcessHandle:
        log.debug(f"Launch command: {executable} {' '.join(redact_arguments(args, [account.access_token]))}")
        return await ProcessHandle.spawn(executable, args, working_dir, account,
                                         env=self.config.env_vars, on_line=on_line)

    async def _load_asset_index(self, descriptor: VersionDescriptor, layout: InstanceLayout) -> dict:
        index_path = layout.asset_index_path(descriptor.asset_index.id)
        try:
            async with aiofiles.open(index_path, 'r', encoding='utf-8') as f:
                return json.loads(await f.read())
        except json.JSONDecodeError as e:
            raise ParseError(f"Failed to parse asset index {index_path.name}: {e}") from e
        except OSError as e:
            raise FilesystemError(f"Failed to read asset index {index_path}: {e}") from e

    async def download_assets(self, descriptor: VersionDescriptor, layout: InstanceLayout) -> int:
        """Fetches every asset object listed by the (already downloaded) asset index."""
        index = await self._load_asset_index(descriptor, layout)
        tasks = planner.plan_assets(index, layout, self.config.asset_base_url)
        log.info(f"Checking {len(tasks)} assets")
        return await self.fetch_all(tasks, desc="Assets")

    async def launch(self, launch_config: LaunchConfig, on_line: Optional[LineCallback] = None) -> ProcessHandle:
        """
        Prepares an instance for `launch_config.version` and starts the game.

        The returned handle is registered, its id is `handle.handle_id`.
        """
        layout = self.instance_layout(launch_config.instance_name)
        descriptor = await self.resolve_version(launch_config.version)
        await layout.create(descriptor.id)

        tasks = self.plan(descriptor, layout)
        if not launch_config.download_libraries:
            # The client jar and asset index are always needed.
            keep = {layout.client_jar(descriptor.id), layout.asset_index_path(descriptor.asset_index.id)}
            tasks = [task for task in tasks if task.destination in keep]
        await self.fetch_all(tasks, desc="Libraries")

        if launch_config.download_assets:
            await self.download_assets(descriptor, layout)

        await self.extract_natives(descriptor, layout)

        java = await self.java.find_java(descriptor.java_major_version or DEFAULT_JAVA_VERSION)
        args = self.assemble_launch(
            descriptor, layout, launch_config.account, launch_config.window,
            launch_config.additional_jvm_args, launch_config.additional_game_args,
        )
        handle = await self.spawn(java, args, layout.root, launch_config.account, on_line=on_line)
        await self.registry.add(handle)
        log.info(f"Launched {descriptor.id} as process {handle.handle_id}")
        return handle

    async def kill(self, handle_id: str) -> ProcessStatus:
        return await self.registry.kill(handle_id)

    async def kill_all(self) -> int:
        return await self.registry.kill_all()

    async def active_processes(self) -> List[ProcessHandle]:
        return await self.registry.active()

    async def close(self) -> None:
        """Releases the shared HTTP session. Running games are left alone."""
        if self._session is None:
            await close_session()
