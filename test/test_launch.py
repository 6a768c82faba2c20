from pathlib import Path
import os
import pytest

from cubicmc.launch import LaunchAssembler, LaunchOptions, LaunchBuilder, LaunchSpec, \
    ClasspathEmptyError, MainClassNotFoundError, JvmNotFoundError, LibraryMissingEvent, \
    interpret_args, filter_classpath_args, split_legacy_args, get_java_home, \
    fabric_jvm_args, forge_jvm_args, OFFLINE_API_HOST
from cubicmc.version import VersionResolver, LOADER_FORGE, LOADER_FABRIC
from cubicmc.standard import assemble_launch
from cubicmc.watcher import SimpleWatcher

from helpers import make_zip, write_file, write_version


BASE = {
    "id": "1.20.1",
    "mainClass": "net.minecraft.client.main.Main",
    "assets": "5",
    "minecraftArguments": "--username ${auth_player_name} --gameDir ${game_directory}",
    "libraries": [
        {"name": "com.mojang:brigadier:1.0.18"},
        {"name": "org.ow2.asm:asm:9.3"},
        {"name": "com.mojang:windows-only:1.0", "rules": [
            {"action": "allow"},
            {"action": "disallow", "os": {"name": "windows"}},
        ]},
    ],
}


def install_base(context) -> None:
    write_version(context, "1.20.1", BASE)
    write_file(context.version_jar("1.20.1"), b"client")
    for path in ("com/mojang/brigadier/1.0.18/brigadier-1.0.18.jar",
                 "org/ow2/asm/asm/9.3/asm-9.3.jar",
                 "com/mojang/windows-only/1.0/windows-only-1.0.jar"):
        write_file(context.libraries_dir / path, b"jar")


def lib_file(context, path: str) -> str:
    return str((context.libraries_dir / path).absolute())


def test_legacy_inherited_arguments(context):

    install_base(context)
    write_version(context, "custom", {"id": "custom", "inheritsFrom": "1.20.1"})

    spec = assemble_launch("custom", context, options=LaunchOptions(resolution=None, username="Alex"), os_name="linux")

    assert spec.main_class == "net.minecraft.client.main.Main"
    assert spec.game_args == ("--username", "Alex", "--gameDir", str(context.game_dir.absolute()))
    assert spec.work_dir == context.game_dir.absolute()


def test_library_rules_per_os(context):

    install_base(context)
    merged = VersionResolver(context.versions_dir).resolve("1.20.1")
    windows_only = lib_file(context, "com/mojang/windows-only/1.0/windows-only-1.0.jar")

    linux_spec = LaunchAssembler(context, "linux").assemble(merged)
    assert windows_only in linux_spec.classpath

    windows_spec = LaunchAssembler(context, "windows").assemble(merged)
    assert windows_only not in windows_spec.classpath


def test_classpath_order_and_jvm_args(context):

    install_base(context)
    merged = VersionResolver(context.versions_dir).resolve("1.20.1")
    spec = LaunchAssembler(context, "linux").assemble(merged, options=LaunchOptions(
        min_memory="512M", max_memory="2G", jvm_args=["-Dfoo=bar"]))

    client_jar = str(context.version_jar("1.20.1").absolute())
    assert spec.classpath == (
        lib_file(context, "com/mojang/brigadier/1.0.18/brigadier-1.0.18.jar"),
        lib_file(context, "org/ow2/asm/asm/9.3/asm-9.3.jar"),
        lib_file(context, "com/mojang/windows-only/1.0/windows-only-1.0.jar"),
        client_jar,
    )

    natives_dir = str(context.natives_dir_for("1.20.1").absolute())
    assert spec.jvm_args == (
        f"-Djava.library.path={natives_dir}",
        "-Dminecraft.launcher.brand=cubicmc",
        "-Dminecraft.launcher.version=1.0.0",
        "-Xms512M",
        "-Xmx2G",
        "-Dfoo=bar",
        "-cp",
        os.pathsep.join(spec.classpath),
    )

    # Default resolution is given as flags when missing from the arguments.
    assert spec.game_args[-4:] == ("--width", "854", "--height", "480")

    command = spec.command()
    assert command[1:len(spec.jvm_args) + 1] == list(spec.jvm_args)
    assert command[len(spec.jvm_args) + 1] == spec.main_class


def test_classpath_tokens_dropped_from_game_args(context):

    install_base(context)
    write_version(context, "cp", {
        "id": "cp",
        "inheritsFrom": "1.20.1",
        "arguments": {
            "game": ["--username", "${auth_player_name}", "-cp", "${classpath}", "--demo"],
            "jvm": ["-cp", "${classpath}"],
        },
    })

    spec = assemble_launch("cp", context, options=LaunchOptions(resolution=None, username="Alex"), os_name="linux")

    assert spec.game_args == ("--username", "Alex", "--demo")
    assert spec.jvm_args.count("-cp") == 1


def test_placeholders(context):

    write_version(context, "1.20.1", {
        "id": "1.20.1",
        "mainClass": "net.minecraft.client.main.Main",
        "assetIndex": {"id": "5", "url": "https://example.com/5.json"},
        "type": "snapshot",
        "arguments": {
            "jvm": ["-Djava.library.path=${natives_directory}", "-cp", "${classpath}", "-Dlibs=${library_directory}"],
            "game": [
                "--username", "${auth_player_name}",
                "--version", "${version_name}",
                "--assetsDir", "${assets_root}",
                "--assetIndex", "${assets_index_name}",
                "--uuid", "${auth_uuid}",
                "--accessToken", "${auth_access_token}",
                "--userType", "${user_type}",
                "--userProperties", "${user_properties}",
                "--versionType", "${version_type}",
                "--unknown", "${unknown_var}",
                {"rules": [{"action": "allow", "features": {"is_demo_user": True}}], "value": "--demo"},
                {"rules": [{"action": "allow", "features": {"has_custom_resolution": True}}],
                 "value": ["--width", "${resolution_width}", "--height", "${resolution_height}"]},
                {"rules": [{"action": "allow", "os": {"name": "linux"}}], "value": ["--linux", "yes"]},
            ],
        },
    })
    write_file(context.version_jar("1.20.1"), b"client")

    spec = assemble_launch("1.20.1", context, options=LaunchOptions(username="Steve", resolution=(1280, 720)), os_name="linux")
    args = dict(zip(spec.game_args[::2], spec.game_args[1::2]))

    assert args["--username"] == "Steve"
    assert args["--version"] == "1.20.1"
    assert args["--assetsDir"] == str(context.assets_dir.absolute())
    assert args["--assetIndex"] == "5"
    assert len(args["--uuid"]) == 32
    assert args["--accessToken"] == "0"
    assert args["--userType"] == "mojang"
    assert args["--userProperties"] == "{}"
    assert args["--versionType"] == "snapshot"
    assert args["--unknown"] == "${unknown_var}"
    assert args["--width"] == "1280"
    assert args["--height"] == "720"
    assert "--demo" not in spec.game_args
    assert args["--linux"] == "yes"

    assert f"-Dlibs={context.libraries_dir.absolute()}" in spec.jvm_args
    assert "${classpath}" not in spec.jvm_args
    assert spec.jvm_args.count("-cp") == 1


def test_fabric_launch(context):

    install_base(context)
    write_version(context, "fabric-loader-0.14.21-1.20.1", {
        "id": "fabric-loader-0.14.21-1.20.1",
        "inheritsFrom": "1.20.1",
        "mainClass": "net.fabricmc.loader.impl.launch.knot.KnotClient",
        "libraries": [
            {"name": "org.ow2.asm:asm:9.5", "url": "https://maven.fabricmc.net/"},
            {"name": "net.fabricmc:fabric-loader:0.14.21", "url": "https://maven.fabricmc.net/"},
        ],
    })
    write_file(context.libraries_dir / "org/ow2/asm/asm/9.5/asm-9.5.jar", b"jar")
    write_file(context.libraries_dir / "net/fabricmc/fabric-loader/0.14.21/fabric-loader-0.14.21.jar", b"jar")

    spec = assemble_launch("1.20.1", context, loader=LOADER_FABRIC, loader_version="0.14.21",
                           options=LaunchOptions(resolution=None, username="Alex", offline_api=True), os_name="linux")

    assert spec.main_class == "net.fabricmc.loader.impl.launch.knot.KnotClient"

    # The base copy of the conflicting group is excluded, the loader's one is kept.
    assert lib_file(context, "org/ow2/asm/asm/9.5/asm-9.5.jar") in spec.classpath
    assert lib_file(context, "org/ow2/asm/asm/9.3/asm-9.3.jar") not in spec.classpath
    assert spec.classpath[0] == lib_file(context, "org/ow2/asm/asm/9.5/asm-9.5.jar")
    assert spec.classpath[-1] == str(context.version_jar("1.20.1").absolute())

    for arg in fabric_jvm_args:
        assert arg in spec.jvm_args
    assert f"-Dminecraft.api.session.host={OFFLINE_API_HOST}" in spec.jvm_args

    assert spec.game_args[:4] == ("--username", "Alex", "--gameDir", str(context.game_dir.absolute()))
    assert spec.game_args[4:] == ("--assetIndex", "5", "--assetsDir", str(context.assets_dir.absolute()))

    assert (context.game_dir / "mods").is_dir()
    assert (context.game_dir / "config").is_dir()


def test_forge_launch(context):

    install_base(context)
    write_version(context, "1.20.1-forge-47.1.0", {
        "id": "1.20.1-forge-47.1.0",
        "inheritsFrom": "1.20.1",
        "mainClass": "cpw.mods.bootstraplauncher.BootstrapLauncher",
        "arguments": {
            "game": ["--launchTarget", "forgeclient", "--fml.forgeVersion", "${forge_version}", "--fml.mcVersion", "${mc_version}"],
        },
    })

    spec = assemble_launch("1.20.1", context, loader=LOADER_FORGE, loader_version="47.1.0",
                           options=LaunchOptions(resolution=None), os_name="linux")

    assert spec.game_args == ("--launchTarget", "forgeclient", "--fml.forgeVersion", "47.1.0", "--fml.mcVersion", "1.20.1")
    for arg in forge_jvm_args:
        assert arg in spec.jvm_args


def test_duplicate_classpath_entries(context):

    install_base(context)
    write_version(context, "dup", {
        "id": "dup",
        "inheritsFrom": "1.20.1",
        "libraries": [
            {"name": "com.mojang:brigadier:1.0.18"},
            {"name": "com.mojang:brigadier-alias:1.0.18", "downloads": {"artifact": {
                "url": "https://example.com/brigadier.jar",
                "path": "com/mojang/brigadier/1.0.18/brigadier-1.0.18.jar"}}},
        ],
    })

    spec = assemble_launch("dup", context, os_name="linux")
    brigadier = lib_file(context, "com/mojang/brigadier/1.0.18/brigadier-1.0.18.jar")
    assert spec.classpath.count(brigadier) == 1
    assert spec.classpath.index(brigadier) == 0


def test_missing_library_reported(context):

    install_base(context)
    (context.libraries_dir / "com/mojang/brigadier/1.0.18/brigadier-1.0.18.jar").unlink()

    events = []
    watcher = SimpleWatcher({LibraryMissingEvent: events.append})
    spec = assemble_launch("1.20.1", context, os_name="linux", watcher=watcher)

    assert len(events) == 1
    assert events[0].name == "com.mojang:brigadier:1.0.18"
    assert len(spec.classpath) == 3


def test_classpath_natives_extracted(context):

    install_base(context)
    write_version(context, "natives", {
        "id": "natives",
        "inheritsFrom": "1.20.1",
        "libraries": [
            {"name": "org.lwjgl:lwjgl:3.3.1", "downloads": {"classifiers": {
                "natives-linux": {"url": "https://example.com/natives.jar", "path": "org/lwjgl/lwjgl/3.3.1/lwjgl-3.3.1-natives-linux.jar"}}}},
        ],
    })
    write_file(context.libraries_dir / "org/lwjgl/lwjgl/3.3.1/lwjgl-3.3.1.jar", b"jar")
    make_zip(context.libraries_dir / "org/lwjgl/lwjgl/3.3.1/lwjgl-3.3.1-natives-linux.jar", [
        ("linux/x64/org/lwjgl/liblwjgl.so", b"so"),
        ("META-INF/MANIFEST.MF", b"manifest"),
    ])

    assemble_launch("natives", context, os_name="linux")
    assert (context.natives_dir_for("natives") / "linux" / "x64" / "org" / "lwjgl" / "liblwjgl.so").is_file()


def test_missing_client_jar(context):

    install_base(context)
    context.version_jar("1.20.1").unlink()

    with pytest.raises(ClasspathEmptyError):
        assemble_launch("1.20.1", context, os_name="linux")


def test_missing_main_class(context):

    write_version(context, "nomain", {"id": "nomain"})
    write_file(context.version_jar("nomain"), b"client")

    with pytest.raises(MainClassNotFoundError) as exc_info:
        assemble_launch("nomain", context, os_name="linux")
    assert exc_info.value.version == "nomain"


def test_jvm_not_found(context, tmp_path):

    install_base(context)
    with pytest.raises(JvmNotFoundError):
        assemble_launch("1.20.1", context, options=LaunchOptions(jvm_path=tmp_path / "absent" / "java"), os_name="linux")


def test_java_home(context, tmp_path):

    install_base(context)
    jvm = write_file(tmp_path / "jdk" / "bin" / "java", b"")

    spec = assemble_launch("1.20.1", context, options=LaunchOptions(jvm_path=jvm), os_name="linux")
    assert spec.jvm_path == jvm.absolute()
    assert spec.environment["JAVA_HOME"] == str((tmp_path / "jdk").absolute())

    with pytest.raises(TypeError):
        spec.environment["JAVA_HOME"] = "other"

    assert get_java_home(tmp_path / "java") is None


def test_builder():

    builder = LaunchBuilder(Path("java"), Path("game"))
    assert builder.add_classpath("a.jar")
    assert builder.add_classpath("b.jar")
    assert not builder.add_classpath("a.jar")

    builder.game_args.extend(("--width", "10"))
    builder.add_game_flag("--width", "20")
    builder.add_game_flag("--height", "30")
    assert builder.game_args == ["--width", "10", "--height", "30"]

    with pytest.raises(ValueError):
        builder.build()

    builder.main_class = "Main"
    spec = builder.build()
    assert isinstance(spec, LaunchSpec)
    assert spec.classpath == ("a.jar", "b.jar")


def test_args_helpers():

    args = interpret_args([
        "-a",
        {"rules": [{"action": "allow", "os": {"name": "osx"}}], "value": ["-b", "-c"]},
        {"value": "-d"},
    ], "osx", "args")
    assert args == ["-a", "-b", "-c", "-d"]

    with pytest.raises(ValueError):
        interpret_args([{"value": 42}], "linux", "args")
    with pytest.raises(ValueError):
        interpret_args([42], "linux", "args")

    assert list(filter_classpath_args(["-Dfoo", "-cp", "${classpath}", "-classpath", "-Dbar"])) == ["-Dfoo", "-Dbar"]
    assert split_legacy_args("  --foo  bar\t--baz ") == ["--foo", "bar", "--baz"]

