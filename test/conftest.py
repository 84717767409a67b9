import asyncio
import copy
import hashlib
from collections import Counter

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer


def sha1(data: bytes) -> str:
    return hashlib.sha1(data).hexdigest()


class FileServer:
    """Local HTTP server answering from a path -> body mapping, counting requests per path.

    A body may be bytes, a JSON-serializable dict, or an int used as the
    response status. With a `delay`, each response is held back that many
    seconds and the peak number of requests served at once is recorded.
    """

    def __init__(self, files=None, delay=0.0):
        self.files = dict(files or {})
        self.requests = Counter()
        self.delay = delay
        self.in_flight = 0
        self.max_in_flight = 0
        app = web.Application()
        app.router.add_route("*", "/{tail:.*}", self._handle)
        self._server = TestServer(app)

    async def _handle(self, request):
        self.requests[request.path] += 1
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            return self._respond(request)
        finally:
            self.in_flight -= 1

    def _respond(self, request):
        body = self.files.get(request.path)
        if body is None:
            return web.Response(status=404)
        if isinstance(body, int):
            return web.Response(status=body)
        if isinstance(body, dict):
            return web.json_response(body)
        return web.Response(body=body)

    @property
    def total_requests(self) -> int:
        return sum(self.requests.values())

    def url(self, path: str) -> str:
        return str(self._server.make_url(path))

    async def __aenter__(self):
        await self._server.start_server()
        return self

    async def __aexit__(self, *exc):
        await self._server.close()


CLIENT_JAR = b"client jar bytes"
ASSET_INDEX = b'{"objects": {}}'

DESCRIPTOR = {
    "id": "1.20.1",
    "type": "release",
    "mainClass": "net.minecraft.client.main.Main",
    "assets": "5",
    "assetIndex": {
        "id": "5",
        "sha1": sha1(ASSET_INDEX),
        "size": len(ASSET_INDEX),
        "totalSize": 1000,
        "url": "https://piston-meta.mojang.com/v1/packages/5.json",
    },
    "downloads": {
        "client": {
            "url": "https://piston-data.mojang.com/v1/objects/client.jar",
            "sha1": sha1(CLIENT_JAR),
            "size": len(CLIENT_JAR),
        },
    },
    "javaVersion": {"component": "java-runtime-gamma", "majorVersion": 17},
    "libraries": [
        {
            "name": "com.mojang:brigadier:1.1.8",
            "downloads": {
                "artifact": {
                    "path": "com/mojang/brigadier/1.1.8/brigadier-1.1.8.jar",
                    "url": "https://libraries.minecraft.net/com/mojang/brigadier/1.1.8/brigadier-1.1.8.jar",
                    "sha1": "5244ce82c3337bba4a196a3ce858bfaecc74404a",
                    "size": 77392,
                },
            },
        },
        {
            "name": "org.lwjgl:lwjgl:3.3.1:natives-linux",
            "downloads": {
                "artifact": {
                    "url": "https://libraries.minecraft.net/org/lwjgl/lwjgl/3.3.1/lwjgl-3.3.1-natives-linux.jar",
                    "sha1": "1de885aba434f934201b99f2f1afb142036ac189",
                    "size": 110704,
                },
            },
            "rules": [{"action": "allow", "os": {"name": "linux"}}],
        },
        {
            "name": "ca.weblite:java-objc-bridge:1.1",
            "downloads": {
                "artifact": {
                    "url": "https://libraries.minecraft.net/ca/weblite/java-objc-bridge/1.1/java-objc-bridge-1.1.jar",
                    "sha1": "1227f9e0666314f9de41477e3ec277e542ed7f7b",
                    "size": 1330045,
                },
            },
            "rules": [{"action": "allow", "os": {"name": "osx"}}],
        },
        {
            "name": "org.lwjgl.lwjgl:lwjgl-platform:2.9.4-nightly-20150209",
            "downloads": {
                "classifiers": {
                    "natives-linux": {
                        "url": "https://libraries.minecraft.net/lwjgl-platform-natives-linux.jar",
                        "sha1": "931074f46c795d2f7b30ed6395df5715cfd7675b",
                        "size": 578680,
                    },
                    "natives-osx": {
                        "url": "https://libraries.minecraft.net/lwjgl-platform-natives-osx.jar",
                        "sha1": "bcab850f8f487c3f4c4dbabde778bb82bd1a40ed",
                        "size": 426822,
                    },
                    "natives-windows-64": {
                        "url": "https://libraries.minecraft.net/lwjgl-platform-natives-windows-64.jar",
                        "sha1": "b84d5102b9dbfabfeb5e43c7e2828d98a7fc80e0",
                        "size": 613748,
                    },
                },
            },
            "extract": {"exclude": ["META-INF/"]},
            "natives": {
                "linux": "natives-linux",
                "osx": "natives-osx",
                "windows": "natives-windows-${arch}",
            },
        },
    ],
    "arguments": {
        "game": [
            "--username", "${auth_player_name}",
            "--version", "${version_name}",
            "--gameDir", "${game_directory}",
            "--assetsDir", "${assets_root}",
            "--assetIndex", "${assets_index_name}",
            "--uuid", "${auth_uuid}",
            "--accessToken", "${auth_access_token}",
            "--userType", "${user_type}",
            "--versionType", "${version_type}",
            {
                "rules": [{"action": "allow", "features": {"is_demo_user": True}}],
                "value": "--demo",
            },
            {
                "rules": [{"action": "allow", "features": {"has_custom_resolution": True}}],
                "value": ["--width", "${resolution_width}", "--height", "${resolution_height}"],
            },
        ],
        "jvm": [
            "-Djava.library.path=${natives_directory}",
            "-cp",
            "${classpath}",
        ],
    },
}


@pytest.fixture
def descriptor_data():
    """A fresh, mutable copy of a modern version descriptor document."""
    return copy.deepcopy(DESCRIPTOR)


@pytest.fixture
def descriptor(descriptor_data):
    from mclauncher.models import VersionDescriptor
    return VersionDescriptor.from_dict(descriptor_data)


@pytest.fixture
def layout(tmp_path):
    from mclauncher.layout import InstanceLayout
    return InstanceLayout(tmp_path / "instance")


@pytest.fixture
def linux():
    from mclauncher.platform_info import Platform
    return Platform("linux", "x64", "6.1.0")
