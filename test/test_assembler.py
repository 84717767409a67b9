from mclauncher import LAUNCHER_NAME, __version__
from mclauncher.assembler import PLACEHOLDER_PLAYER_NAME, PLACEHOLDER_UUID, LaunchAssembler, redact_arguments
from mclauncher.config import LauncherConfig, WindowConfig
from mclauncher.models import Account, VersionDescriptor
from mclauncher.platform_info import Platform


ALICE = Account(name="Alice", uuid="abc-123", access_token="secret-token", account_type="msa")


def make_assembler(tmp_path, platform=None, **config):
    config.setdefault("jvm_args", ["-XX:+UseG1GC"])
    return LaunchAssembler(LauncherConfig(minecraft_dir=tmp_path, **config), platform or Platform("linux"))


def test_argument_order(tmp_path, descriptor, layout):

    assembler = make_assembler(tmp_path, memory_min=1024, memory_max=2048, game_args=["--quickPlay"])
    layout.natives_dir(descriptor.id).mkdir(parents=True)

    args = assembler.assemble(descriptor, layout, ALICE, WindowConfig(800, 600),
                              extra_jvm_args=["-Dextra=1"], extra_game_args=["--server", "${raw}"])

    assert args[:4] == ["-XX:+UseG1GC", "-Dextra=1", "-Xms1024m", "-Xmx2048m"]
    natives = str(layout.natives_dir(descriptor.id))
    assert args[4] == f"-Djava.library.path={natives}"
    cp_index = args.index("-cp")
    assert cp_index == 8
    assert args[cp_index + 2] == "net.minecraft.client.main.Main"
    # Configured game args come before launch extras, which are left unsubstituted.
    assert args[-3:] == ["--quickPlay", "--server", "${raw}"]


def test_natives_properties_require_directory(tmp_path, descriptor, layout):
    args = make_assembler(tmp_path).assemble(descriptor, layout, ALICE)
    assert not any(arg.startswith("-Djava.library.path") for arg in args)


def test_classpath(tmp_path, descriptor, layout):

    linux_cp = make_assembler(tmp_path).classpath(descriptor, layout).split(":")

    assert linux_cp[0] == str(layout.libraries_dir / "com/mojang/brigadier/1.1.8/brigadier-1.1.8.jar")
    assert linux_cp[-1] == str(layout.client_jar("1.20.1"))
    assert len(linux_cp) == 5

    windows_cp = make_assembler(tmp_path, Platform("windows")).classpath(descriptor, layout)
    assert ";" in windows_cp


def test_substitution(tmp_path, descriptor, layout):

    assembler = make_assembler(tmp_path)
    args = assembler.assemble(descriptor, layout, ALICE, WindowConfig(854, 480))
    game = args[args.index("net.minecraft.client.main.Main") + 1:]

    assert game[game.index("--username") + 1] == "Alice"
    assert game[game.index("--uuid") + 1] == "abc-123"
    assert game[game.index("--accessToken") + 1] == "secret-token"
    assert game[game.index("--version") + 1] == "1.20.1"
    assert game[game.index("--gameDir") + 1] == str(layout.root)
    assert game[game.index("--assetsDir") + 1] == str(layout.assets_dir)
    assert game[game.index("--assetIndex") + 1] == "5"
    assert game[game.index("--versionType") + 1] == "release"
    assert game[game.index("--width") + 1] == "854"
    assert game[game.index("--height") + 1] == "480"
    assert "--demo" not in game
    assert not any("${" in arg for arg in game)
    assert assembler.warnings == []


def test_legacy_arguments(tmp_path, descriptor_data, layout):

    del descriptor_data["arguments"]
    descriptor_data["minecraftArguments"] = \
        "--username ${auth_player_name}  --uuid ${auth_uuid} --session ${auth_session} --launcher ${launcher_name}"
    descriptor = VersionDescriptor.from_dict(descriptor_data)

    args = make_assembler(tmp_path).assemble(descriptor, layout, Account("Alice", "abc-123", "tok"))
    game = args[args.index("net.minecraft.client.main.Main") + 1:]

    assert game == ["--username", "Alice", "--uuid", "abc-123",
                    "--session", "token:tok:abc-123", "--launcher", LAUNCHER_NAME]
    assert __version__


def test_empty_account_uses_placeholders(tmp_path, descriptor, layout):

    assembler = make_assembler(tmp_path)
    args = assembler.assemble(descriptor, layout, Account())

    assert args[args.index("--username") + 1] == PLACEHOLDER_PLAYER_NAME
    assert args[args.index("--uuid") + 1] == PLACEHOLDER_UUID
    assert len(assembler.warnings) == 3
    assert not any("${" in arg for arg in args)


def test_redact_arguments():

    args = ["--username", "Alice", "--accessToken", "secret-token", "--session", "token:secret-token:abc"]

    assert redact_arguments(args, ["secret-token"]) == \
        ["--username", "Alice", "--accessToken", "***REDACTED***", "--session", "token:***REDACTED***:abc"]


def test_fullscreen(tmp_path, descriptor, layout):

    assembler = make_assembler(tmp_path, game_args=["--configured"])
    windowed = assembler.assemble(descriptor, layout, ALICE, WindowConfig(800, 600))
    fullscreen = assembler.assemble(descriptor, layout, ALICE, WindowConfig(800, 600, fullscreen=True))

    assert "--fullscreen" not in windowed
    assert fullscreen[-2:] == ["--fullscreen", "--configured"]
