import asyncio
import io
import json
import sys
import zipfile

import aiohttp
import pytest

from conftest import FileServer, sha1
from mclauncher.config import LaunchConfig, LauncherConfig
from mclauncher.errors import FetchAggregateError
from mclauncher.launcher import Launcher
from mclauncher.models import Account
from mclauncher.platform_info import Platform
from mclauncher.process import ProcessState


def native_jar() -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as jar:
        jar.writestr("META-INF/MANIFEST.MF", "Manifest-Version: 1.0")
        jar.writestr("liblwjgl.so", b"\x7fELF")
    return buffer.getvalue()


CLIENT = b"client"
LIBRARY = b"library"
NATIVES = native_jar()
ASSET_A = b"asset a"
ASSET_B = b"asset b"
ASSET_INDEX = json.dumps({"objects": {
    "minecraft/lang/en_us.json": {"hash": sha1(ASSET_A), "size": len(ASSET_A)},
    "icons/icon_16x16.png": {"hash": sha1(ASSET_B), "size": len(ASSET_B)},
}}).encode()


class FakeJava:
    """Hands out the running interpreter: with `-c` as JVM args it exits right away."""

    def __init__(self):
        self.requested = []

    async def find_java(self, major):
        self.requested.append(major)
        return sys.executable


def serve(server):
    descriptor = {
        "id": "1.20.1",
        "mainClass": "net.minecraft.client.main.Main",
        "assetIndex": {"id": "5", "sha1": sha1(ASSET_INDEX), "size": len(ASSET_INDEX), "url": server.url("/index/5.json")},
        "downloads": {"client": {"url": server.url("/client.jar"), "sha1": sha1(CLIENT), "size": len(CLIENT)}},
        "javaVersion": {"majorVersion": 17},
        "libraries": [
            {"name": "com.mojang:brigadier:1.1.8",
             "downloads": {"artifact": {"url": server.url("/brigadier.jar"), "sha1": sha1(LIBRARY)}}},
            {"name": "org.lwjgl:lwjgl:3.3.1",
             "downloads": {"classifiers": {
                 "natives-linux": {"url": server.url("/natives-linux.jar"), "sha1": sha1(NATIVES)},
                 "natives-windows": {"url": server.url("/natives-windows.jar"), "sha1": sha1(NATIVES)},
             }}},
        ],
        "arguments": {"game": ["--username", "${auth_player_name}", "--uuid", "${auth_uuid}"]},
    }
    server.files.update({
        "/manifest.json": {
            "latest": {"release": "1.20.1", "snapshot": "1.20.1"},
            "versions": [{"id": "1.20.1", "type": "release", "url": server.url("/1.20.1.json")}],
        },
        "/1.20.1.json": descriptor,
        "/client.jar": CLIENT,
        "/brigadier.jar": LIBRARY,
        "/natives-linux.jar": NATIVES,
        "/index/5.json": ASSET_INDEX,
        f"/assets/{sha1(ASSET_A)[:2]}/{sha1(ASSET_A)}": ASSET_A,
        f"/assets/{sha1(ASSET_B)[:2]}/{sha1(ASSET_B)}": ASSET_B,
    })


def make_config(tmp_path, server):
    return LauncherConfig(
        minecraft_dir=tmp_path,
        jvm_args=["-c", "import sys; sys.exit(0)"],
        manifest_url=server.url("/manifest.json"),
        asset_base_url=server.url("/assets"),
        download_java=False,
    )


def test_launch_pipeline(tmp_path):

    java = FakeJava()

    async def scenario():
        async with FileServer() as server:
            serve(server)
            async with aiohttp.ClientSession() as session:
                launcher = Launcher(make_config(tmp_path, server), Platform("linux"), session, java)
                launch_config = LaunchConfig.for_version("1.20.1", Account("Alice", "abc-123", "tok"))

                handle = await launcher.launch(launch_config)
                assert await launcher.registry.get(handle.handle_id) is handle
                status = await handle.wait()
                assert await launcher.active_processes() == []

                first_requests = dict(server.requests)
                # A second launch finds every file in place.
                await (await launcher.launch(launch_config)).wait()
                await launcher.close()
                return status, first_requests, dict(server.requests)

    status, first, second = asyncio.run(scenario())

    assert status.state == ProcessState.EXITED
    assert status.code == 0
    assert java.requested == [17, 17]

    instance = tmp_path / "instances" / "instance-1.20.1"
    assert (instance / "versions" / "1.20.1" / "1.20.1.jar").read_bytes() == CLIENT
    assert (instance / "libraries" / "com/mojang/brigadier/1.1.8/brigadier-1.1.8.jar").read_bytes() == LIBRARY
    assert (instance / "versions" / "1.20.1" / "natives" / "liblwjgl.so").is_file()
    assert not (instance / "versions" / "1.20.1" / "natives" / "META-INF").exists()
    assert (instance / "assets" / "objects" / sha1(ASSET_A)[:2] / sha1(ASSET_A)).read_bytes() == ASSET_A
    for name in ("mods", "resourcepacks", "saves", "logs", "crash-reports"):
        assert (instance / name).is_dir()

    assert "/natives-windows.jar" not in first
    for path in ("/client.jar", "/brigadier.jar", "/natives-linux.jar", "/index/5.json"):
        assert first[path] == 1
        assert second[path] == 1
    assert second["/manifest.json"] == 2


def test_launch_aborts_on_failed_download(tmp_path):

    async def scenario():
        async with FileServer() as server:
            serve(server)
            server.files["/brigadier.jar"] = b"tampered"
            async with aiohttp.ClientSession() as session:
                launcher = Launcher(make_config(tmp_path, server), Platform("linux"), session, FakeJava())
                with pytest.raises(FetchAggregateError) as info:
                    await launcher.launch(LaunchConfig.for_version("1.20.1", Account("Alice")))
                assert await launcher.active_processes() == []
                return info.value, server.requests["/client.jar"]

    error, client_requests = asyncio.run(scenario())

    assert error.count == 1
    # The other downloads of the batch still completed.
    assert client_requests == 1
