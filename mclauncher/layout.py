import asyncio
import logging
import pathlib
from dataclasses import dataclass
from typing import List

import aiofiles.os

from .errors import FilesystemError

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class InstanceLayout:
    """Directory tree of one instance, every path derives from `root`."""

    root: pathlib.Path

    @property
    def libraries_dir(self) -> pathlib.Path:
        return self.root / 'libraries'

    @property
    def assets_dir(self) -> pathlib.Path:
        return self.root / 'assets'

    @property
    def asset_indexes_dir(self) -> pathlib.Path:
        return self.assets_dir / 'indexes'

    @property
    def asset_objects_dir(self) -> pathlib.Path:
        return self.assets_dir / 'objects'

    @property
    def versions_dir(self) -> pathlib.Path:
        return self.root / 'versions'

    @property
    def logs_dir(self) -> pathlib.Path:
        return self.root / 'logs'

    @property
    def crash_reports_dir(self) -> pathlib.Path:
        return self.root / 'crash-reports'

    def version_dir(self, version_id: str) -> pathlib.Path:
        return self.versions_dir / version_id

    def natives_dir(self, version_id: str) -> pathlib.Path:
        return self.version_dir(version_id) / 'natives'

    def client_jar(self, version_id: str) -> pathlib.Path:
        return self.version_dir(version_id) / f"{version_id}.jar"

    def asset_index_path(self, asset_index_id: str) -> pathlib.Path:
        return self.asset_indexes_dir / f"{asset_index_id}.json"

    def directories(self, version_id: str) -> List[pathlib.Path]:
        return [
            self.root,
            self.libraries_dir,
            self.assets_dir,
            self.asset_indexes_dir,
            self.asset_objects_dir,
            self.versions_dir,
            self.version_dir(version_id),
            self.natives_dir(version_id),
            self.root / 'mods',
            self.root / 'resourcepacks',
            self.root / 'shaderpacks',
            self.root / 'saves',
            self.logs_dir,
            self.crash_reports_dir,
        ]

    async def create(self, version_id: str) -> None:
        """Creates the whole tree for `version_id`, before any download starts."""
        log.info(f"Ensuring instance directories exist under: {self.root}")
        try:
            await asyncio.gather(*(
                aiofiles.os.makedirs(directory, exist_ok=True)
                for directory in self.directories(version_id)
            ))
        except OSError as e:
            raise FilesystemError(f"Failed to create instance directories under {self.root}: {e}") from e
