import asyncio
import json
import logging
from typing import Any, Optional

import aiohttp

from .config import DEFAULT_MANIFEST_URL
from .errors import NetworkError, ParseError, VersionNotFoundError
from .models import VersionDescriptor, VersionEntry, VersionManifest
from .session import get_session

log = logging.getLogger(__name__)


class VersionCatalog:
    """
    Reads the remote version manifest and per-version descriptors.

    Nothing is cached: every call goes to the network, callers keep the
    returned objects for as long as they need them.
    """

    def __init__(self, manifest_url: str = DEFAULT_MANIFEST_URL, session: Optional[aiohttp.ClientSession] = None):
        self.manifest_url = manifest_url
        self._session = session

    async def _get_json(self, url: str, what: str) -> Any:
        session = self._session or await get_session()
        log.debug(f"Fetching {what} from {url}")
        try:
            async with session.get(url) as response:
                if response.status >= 400:
                    raise NetworkError(f"HTTP error {response.status} when fetching {what} from {url}",
                                       url=url, status=response.status)
                body = await response.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise NetworkError(f"Failed to fetch {what} from {url}: {e}", url=url) from e
        try:
            return json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ParseError(f"Failed to parse {what}: {e}") from e

    async def fetch_manifest(self) -> VersionManifest:
        data = await self._get_json(self.manifest_url, "version manifest")
        manifest = VersionManifest.from_dict(data)
        log.debug(f"Version manifest lists {len(manifest.versions)} versions")
        return manifest

    async def resolve(self, version_id: str) -> VersionEntry:
        manifest = await self.fetch_manifest()
        entry = manifest.find(version_id)
        if entry is None:
            raise VersionNotFoundError(version_id)
        return entry

    async def fetch_descriptor(self, entry: VersionEntry) -> VersionDescriptor:
        data = await self._get_json(entry.url, f"version descriptor {entry.id}")
        return VersionDescriptor.from_dict(data)

    async def resolve_version(self, version_id: str) -> VersionDescriptor:
        entry = await self.resolve(version_id)
        log.info(f"Resolved version {version_id} ({entry.type})")
        return await self.fetch_descriptor(entry)

    async def latest_release(self) -> VersionEntry:
        manifest = await self.fetch_manifest()
        return self._latest(manifest, manifest.latest_release)

    async def latest_snapshot(self) -> VersionEntry:
        manifest = await self.fetch_manifest()
        return self._latest(manifest, manifest.latest_snapshot)

    @staticmethod
    def _latest(manifest: VersionManifest, version_id: str) -> VersionEntry:
        entry = manifest.find(version_id)
        if entry is None:
            raise VersionNotFoundError(version_id)
        return entry
