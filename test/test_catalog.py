import asyncio

import aiohttp
import pytest

from conftest import FileServer
from mclauncher.catalog import VersionCatalog
from mclauncher.errors import NetworkError, ParseError, VersionNotFoundError


def manifest(server):
    return {
        "latest": {"release": "1.20.1", "snapshot": "23w31a"},
        "versions": [
            {"id": "23w31a", "type": "snapshot", "url": server.url("/v1/23w31a.json")},
            {"id": "1.20.1", "type": "release", "url": server.url("/v1/1.20.1.json")},
        ],
    }


def test_resolve_version(descriptor_data):

    async def scenario():
        async with FileServer() as server:
            server.files["/mc/game/version_manifest_v2.json"] = manifest(server)
            server.files["/v1/1.20.1.json"] = descriptor_data
            async with aiohttp.ClientSession() as session:
                catalog = VersionCatalog(server.url("/mc/game/version_manifest_v2.json"), session)
                descriptor = await catalog.resolve_version("1.20.1")
                latest = await catalog.latest_release()
                snapshot = await catalog.latest_snapshot()

                with pytest.raises(VersionNotFoundError) as info:
                    await catalog.resolve("0.0.1")
                assert info.value.version_id == "0.0.1"
                return descriptor, latest, snapshot

    descriptor, latest, snapshot = asyncio.run(scenario())

    assert descriptor.id == "1.20.1"
    assert descriptor.main_class == "net.minecraft.client.main.Main"
    assert latest.id == "1.20.1"
    assert snapshot.type == "snapshot"


def test_catalog_errors():

    async def scenario():
        async with FileServer({"/broken.json": b"{not json", "/down.json": 503}) as server:
            async with aiohttp.ClientSession() as session:
                with pytest.raises(ParseError):
                    await VersionCatalog(server.url("/broken.json"), session).fetch_manifest()
                with pytest.raises(NetworkError) as info:
                    await VersionCatalog(server.url("/down.json"), session).fetch_manifest()
                assert info.value.status == 503
                with pytest.raises(ParseError):
                    # Valid JSON, wrong shape.
                    server.files["/shape.json"] = {"latest": {}}
                    await VersionCatalog(server.url("/shape.json"), session).fetch_manifest()

    asyncio.run(scenario())
