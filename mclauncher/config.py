"""
Launcher configuration.

Settings live in `launcher_config.json`; string values may use the
`:thisdir:` marker, replaced by the directory holding the config file. The
optional `config.json` next to it carries the offline account and window size
used by the launch script.
"""

import json
import logging
import pathlib
from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Optional

from .errors import ConfigurationError
from .models import Account
from .replacer import patch_mapping

log = logging.getLogger(__name__)

DEFAULT_MANIFEST_URL = 'https://piston-meta.mojang.com/mc/game/version_manifest_v2.json'
DEFAULT_ASSET_BASE_URL = 'https://resources.download.minecraft.net'

DEFAULT_JVM_ARGS = [
    '-XX:+UnlockExperimentalVMOptions',
    '-XX:+UseG1GC',
    '-XX:G1NewSizePercent=20',
    '-XX:G1ReservePercent=20',
    '-XX:MaxGCPauseMillis=50',
    '-XX:G1HeapRegionSize=32M',
]


@dataclass
class WindowConfig:
    width: int = 1280
    height: int = 720
    fullscreen: bool = False


@dataclass
class LauncherConfig:
    minecraft_dir: pathlib.Path = field(default_factory=lambda: pathlib.Path.home() / '.minecraft')
    java_path: Optional[pathlib.Path] = None
    jvm_args: List[str] = field(default_factory=lambda: list(DEFAULT_JVM_ARGS))
    game_args: List[str] = field(default_factory=list)
    memory_min: int = 4096
    memory_max: int = 8192
    download_timeout: int = 300  # seconds
    concurrent_downloads: int = 8
    env_vars: Dict[str, str] = field(default_factory=dict)
    debug: bool = False
    download_java: bool = True
    manifest_url: str = DEFAULT_MANIFEST_URL
    asset_base_url: str = DEFAULT_ASSET_BASE_URL

    @property
    def instances_dir(self) -> pathlib.Path:
        return self.minecraft_dir / 'instances'

    @property
    def runtime_dir(self) -> pathlib.Path:
        return self.minecraft_dir / 'runtime'

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LauncherConfig':
        config = cls()
        known = {f.name for f in fields(cls)}
        for key, value in data.items():
            if key not in known:
                log.warning(f"Ignoring unknown launcher config key: {key}")
                continue
            if key in ('minecraft_dir', 'java_path') and value is not None:
                value = pathlib.Path(value)
            setattr(config, key, value)
        if config.memory_min <= 0 or config.memory_max < config.memory_min:
            raise ConfigurationError(
                f"Invalid memory settings: min={config.memory_min}MB max={config.memory_max}MB")
        if config.concurrent_downloads < 1:
            raise ConfigurationError("concurrent_downloads must be at least 1")
        return config


@dataclass
class LaunchConfig:
    version: str
    instance_name: str
    account: Account
    window: WindowConfig = field(default_factory=WindowConfig)
    download_assets: bool = True
    download_libraries: bool = True
    additional_jvm_args: List[str] = field(default_factory=list)
    additional_game_args: List[str] = field(default_factory=list)

    @classmethod
    def for_version(cls, version: str, account: Account) -> 'LaunchConfig':
        return cls(version=version, instance_name=f"instance-{version}", account=account)


def read_json_file(path: pathlib.Path) -> Dict[str, Any]:
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except FileNotFoundError:
        raise ConfigurationError(f"Config file not found: {path}")
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Error parsing {path.name}: {e}")
    if not isinstance(data, dict):
        raise ConfigurationError(f"{path.name} must contain a JSON object")
    return data


def load_launcher_config(path: pathlib.Path) -> LauncherConfig:
    """Loads launcher_config.json, expanding `:thisdir:` to the file's directory."""
    raw = read_json_file(path)
    patched = patch_mapping(raw, {':thisdir:': str(path.parent.resolve())})
    log.debug(f"Launcher config: {json.dumps(patched, indent=2)}")
    return LauncherConfig.from_dict(patched)


def load_user_config(path: pathlib.Path) -> Dict[str, Any]:
    """Loads the optional config.json. A missing or broken file yields defaults."""
    if not path.exists():
        return {}
    try:
        return read_json_file(path)
    except ConfigurationError as e:
        log.warning(f"Could not read {path.name}: {e}. Using defaults.")
        return {}


def account_from_user_config(cfg: Dict[str, Any]) -> Account:
    return Account(
        name=cfg.get('auth_player_name') or '',
        uuid=cfg.get('auth_uuid') or '',
        access_token=cfg.get('auth_access_token') or '',
        account_type=cfg.get('user_type') or 'msa',
    )


def window_from_user_config(cfg: Dict[str, Any]) -> WindowConfig:
    try:
        return WindowConfig(
            width=int(cfg.get('resolution_width', 1280)),
            height=int(cfg.get('resolution_height', 720)),
            fullscreen=bool(cfg.get('fullscreen', False)),
        )
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid resolution in config.json: {e}")
