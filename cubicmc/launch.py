"""Assembly of the launch specification of a merged version: class path, JVM and game
arguments, main class and environment overrides.
"""

from types import MappingProxyType
from pathlib import Path
import shutil
import re
import os

from .natives import TREE_POLICY, extract_natives
from .version import MergedVersion, Argument, LOADER_VANILLA, LOADER_FORGE, LOADER_FABRIC
from .rules import parse_rules, interpret_rules, minecraft_os
from .auth import OfflineAuthSession
from .util import jvm_bin_filename
from .watcher import Watcher
from . import LAUNCHER_NAME, LAUNCHER_VERSION

from typing import TYPE_CHECKING, Dict, List, Mapping, Optional, Sequence, Tuple, Union, Iterator
if TYPE_CHECKING:
    from .standard import Context


DEFAULT_RESOLUTION = (854, 480)

# Hosts of Mojang's APIs are redirected to an invalid host in offline API mode.
OFFLINE_API_HOST = "https://invalid.invalid"

# Group of the bytecode manipulation library bundled by overlay loaders, the copy of
# the base version is excluded from the class path.
CONFLICTING_GROUP = "org.ow2.asm"

_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")


class LaunchOptions:
    """Options of a launch, these are independent of the version being launched.
    """

    def __init__(self, *,
        username: Optional[str] = None,
        uuid: Optional[str] = None,
        resolution: Optional[Tuple[int, int]] = DEFAULT_RESOLUTION,
        min_memory: Optional[str] = None,
        max_memory: Optional[str] = None,
        jvm_path: Optional[Path] = None,
        jvm_args: Sequence[str] = (),
        offline_api: bool = False
    ) -> None:
        self.username = username
        self.uuid = uuid
        self.resolution = resolution
        self.min_memory = min_memory
        self.max_memory = max_memory
        self.jvm_path = jvm_path
        self.jvm_args = list(jvm_args)
        self.offline_api = offline_api


class LaunchSpec:
    """The immutable result of the assembly, ready to be given to a process runner.
    """

    __slots__ = "jvm_path", "classpath", "jvm_args", "main_class", "game_args", "environment", "work_dir"

    def __init__(self,
        jvm_path: Path,
        classpath: Sequence[str],
        jvm_args: Sequence[str],
        main_class: str,
        game_args: Sequence[str],
        environment: Mapping[str, str],
        work_dir: Path
    ) -> None:
        self.jvm_path = jvm_path
        self.classpath = tuple(classpath)
        self.jvm_args = tuple(jvm_args)
        self.main_class = main_class
        self.game_args = tuple(game_args)
        self.environment = MappingProxyType(dict(environment))
        self.work_dir = work_dir

    def command(self) -> List[str]:
        """Return the full command line of the game.
        """
        return [str(self.jvm_path), *self.jvm_args, self.main_class, *self.game_args]

    def __repr__(self) -> str:
        return f"<LaunchSpec {self.main_class}>"


class LaunchBuilder:
    """Ordered builder of a launch specification, the class path is an ordered set where
    the first occurrence of a path keeps its position.
    """

    def __init__(self, jvm_path: Path, work_dir: Path) -> None:
        self.jvm_path = jvm_path
        self.work_dir = work_dir
        self.main_class: Optional[str] = None
        self.classpath: Dict[str, None] = {}
        self.jvm_args: List[str] = []
        self.game_args: List[str] = []
        self.environment: Dict[str, str] = {}

    def add_classpath(self, path: str) -> bool:
        """Add a path to the class path, returning false if it was already present.
        """
        if path in self.classpath:
            return False
        self.classpath[path] = None
        return True

    def add_game_flag(self, flag: str, value: str) -> None:
        """Add a game flag with its value only if the flag is not already present.
        """
        if flag not in self.game_args:
            self.game_args.extend((flag, value))

    def build(self) -> LaunchSpec:
        if self.main_class is None:
            raise ValueError("main class is not set")
        return LaunchSpec(self.jvm_path, list(self.classpath), self.jvm_args, self.main_class,
                          self.game_args, self.environment, self.work_dir)


class LaunchAssembler:
    """Assemble launch specifications of merged versions installed in a context.
    """

    def __init__(self, context: "Context", os_name: Optional[str] = minecraft_os, watcher: Optional[Watcher] = None) -> None:
        self.context = context
        self.os_name = os_name
        self.watcher = Watcher() if watcher is None else watcher

    def build_classpath(self, version: MergedVersion, builder: LaunchBuilder) -> None:
        """Fill the class path of the builder with the allowed libraries of the child,
        then of the base, and finally the client jar. Native bundles found along the way
        are extracted in the version's natives directory.

        :raises ClasspathEmptyError: If the client jar is missing.
        """

        context = self.context
        natives_dir = context.natives_dir_for(version.id)

        sources = [(version.child.libraries, True)]
        if version.base is not None:
            sources.append((version.base.libraries, False))

        for libraries, primary in sources:
            for library in libraries:

                if not library.is_allowed(self.os_name):
                    continue

                # The overlay bundles its own copy, which must win.
                if not primary and library.spec.group == CONFLICTING_GROUP:
                    continue

                jar_path = library.jar_path()
                if jar_path is not None:
                    jar_file = (context.libraries_dir / jar_path).absolute()
                    if jar_file.is_file():
                        builder.add_classpath(str(jar_file))
                    else:
                        self.watcher.handle(LibraryMissingEvent(library.name, jar_file))

                if self.os_name is not None and library.native_classifier(self.os_name) is not None:
                    native_path, _ = library.native_artifact(self.os_name)
                    native_file = context.libraries_dir / native_path
                    if native_file.is_file():
                        extract_natives(native_file, natives_dir, TREE_POLICY, watcher=self.watcher)
                    else:
                        self.watcher.handle(LibraryMissingEvent(library.name, native_file))

        client_jar = context.version_jar(version.client_version_id).absolute()
        if not client_jar.is_file():
            raise ClasspathEmptyError(client_jar)

        builder.add_classpath(str(client_jar))

    def assemble(self, version: MergedVersion, loader: str = LOADER_VANILLA, options: Optional[LaunchOptions] = None, *,
        loader_version: Optional[str] = None,
        game_version: Optional[str] = None
    ) -> LaunchSpec:
        """Assemble the launch specification of a merged version.

        :param version: The merged version to launch.
        :param loader: The loader kind of the version.
        :param options: Launch options, defaults are used if not given.
        :param loader_version: The loader's version, for loader placeholders.
        :param game_version: The game version the loader applies to, defaults to the
        client version id.
        :raises MainClassNotFoundError: If no main class is defined by both descriptors.
        :raises ClasspathEmptyError: If the client jar is missing.
        :raises JvmNotFoundError: If the JVM path of the options doesn't exist.
        """

        options = LaunchOptions() if options is None else options
        context = self.context

        main_class = version.main_class
        if main_class is None:
            raise MainClassNotFoundError(version.id)

        jvm_path = resolve_jvm(options.jvm_path)
        game_dir = context.game_dir.absolute()

        builder = LaunchBuilder(jvm_path, game_dir)
        builder.main_class = main_class
        self.build_classpath(version, builder)

        session = OfflineAuthSession(options.username, options.uuid)
        assets_dir = str(context.assets_dir.absolute())
        assets_index_id = version.assets_index_id
        mods_dir = str(game_dir / "mods")

        replacements = {
            # JVM
            "natives_directory": str(context.natives_dir_for(version.id).absolute()),
            "launcher_name": LAUNCHER_NAME,
            "launcher_version": LAUNCHER_VERSION,
            "classpath_separator": os.pathsep,
            "library_directory": str(context.libraries_dir.absolute()),
            # Game
            "auth_player_name": session.username,
            "version_name": version.id,
            "game_directory": str(game_dir),
            "assets_root": assets_dir,
            "assets_index_name": assets_index_id,
            "auth_uuid": session.uuid,
            "auth_access_token": session.access_token,
            "user_type": session.user_type,
            "user_properties": "{}",
            "version_type": version.version_type,
        }

        if options.resolution is not None:
            replacements["resolution_width"] = str(options.resolution[0])
            replacements["resolution_height"] = str(options.resolution[1])

        game_version = version.client_version_id if game_version is None else game_version

        if loader != LOADER_VANILLA:
            for dir_name in ("mods", "config"):
                (game_dir / dir_name).mkdir(parents=True, exist_ok=True)

        if loader == LOADER_FORGE:
            replacements["forge_version"] = loader_version or ""
            replacements["mc_version"] = game_version
            replacements["forge_mods_dir"] = mods_dir
        elif loader == LOADER_FABRIC:
            replacements["fabric_version"] = loader_version or ""
            replacements["mc_version"] = game_version
            replacements["fabric_mods_dir"] = mods_dir

        # JVM arguments, the class path is injected once after all arguments.
        jvm_template = version.jvm_arguments
        if jvm_template is None:
            jvm_template = legacy_jvm_args
        jvm_args = interpret_args(jvm_template, self.os_name, "metadata: /arguments/jvm")
        builder.jvm_args.extend(replace_list_vars(filter_classpath_args(jvm_args), replacements))

        if loader == LOADER_FORGE:
            builder.jvm_args.extend(forge_jvm_args)
        elif loader == LOADER_FABRIC:
            builder.jvm_args.extend(fabric_jvm_args)

        if options.offline_api:
            builder.jvm_args.append("-Dminecraft.api.env=custom")
            for api in ("auth", "account", "session", "services"):
                builder.jvm_args.append(f"-Dminecraft.api.{api}.host={OFFLINE_API_HOST}")

        if options.min_memory is not None:
            builder.jvm_args.append(f"-Xms{options.min_memory}")
        if options.max_memory is not None:
            builder.jvm_args.append(f"-Xmx{options.max_memory}")

        builder.jvm_args.extend(options.jvm_args)
        builder.jvm_args.extend(("-cp", os.pathsep.join(builder.classpath)))

        # Game arguments.
        game_template = version.game_arguments
        if isinstance(game_template, str):
            game_args = split_legacy_args(game_template)
        elif game_template is not None:
            game_args = list(filter_classpath_args(
                interpret_args(game_template, self.os_name, "metadata: /arguments/game")))
        else:
            game_args = []
        builder.game_args.extend(replace_list_vars(game_args, replacements))

        if loader == LOADER_FABRIC:
            builder.add_game_flag("--assetIndex", assets_index_id)
            builder.add_game_flag("--assetsDir", assets_dir)

        if options.resolution is not None:
            builder.add_game_flag("--width", str(options.resolution[0]))
            builder.add_game_flag("--height", str(options.resolution[1]))

        java_home = get_java_home(jvm_path)
        if java_home is not None:
            builder.environment["JAVA_HOME"] = str(java_home)

        return builder.build()


def resolve_jvm(jvm_path: Optional[Path]) -> Path:
    """Resolve the JVM executable, an explicit path must exist, else the JVM is searched
    in the PATH and the bare executable name is used if not found.

    :raises JvmNotFoundError: If the explicit path doesn't exist.
    """
    if jvm_path is not None:
        if not jvm_path.is_file():
            raise JvmNotFoundError(jvm_path)
        return jvm_path.absolute()
    found = shutil.which(jvm_bin_filename) or shutil.which("java")
    return Path(jvm_bin_filename) if found is None else Path(found)


def get_java_home(jvm_path: Path) -> Optional[Path]:
    """Return the Java home of a JVM executable, that is the parent of its 'bin'
    directory, none if the JVM is not located in a 'bin' directory.
    """
    if jvm_path.is_absolute() and jvm_path.parent.name == "bin":
        return jvm_path.parent.parent
    return None


def interpret_args(args: Sequence[Argument], os_name: Optional[str], path: str) -> List[str]:
    """Interpret a structured list of arguments, whose may be conditional under some
    rules. No feature is enabled, so arguments conditioned on features are dropped.
    """

    dst = []
    for i, arg in enumerate(args):

        if isinstance(arg, str):
            dst.append(arg)
        elif isinstance(arg, dict):

            rules = arg.get("rules")
            if rules is not None:
                if not interpret_rules(parse_rules(rules, f"{path}/{i}/rules"), os_name, {}):
                    continue

            arg_value = arg.get("value")
            if isinstance(arg_value, list) and all(isinstance(v, str) for v in arg_value):
                dst.extend(arg_value)
            elif isinstance(arg_value, str):
                dst.append(arg_value)
            else:
                raise ValueError(f"{path}/{i}/value must be a list or a string")

        else:
            raise ValueError(f"{path}/{i} must be an object or a string")

    return dst


def filter_classpath_args(args: Sequence[str]) -> Iterator[str]:
    """Drop the class path related tokens of arguments.
    """
    return (arg for arg in args if arg not in ("-cp", "-classpath") and "${classpath}" not in arg)


def split_legacy_args(text: str) -> List[str]:
    """Split a legacy argument string on whitespaces, no escaping is supported.
    """
    return text.split()


def replace_vars(text: str, replacements: Mapping[str, str]) -> str:
    """Replace all variables of the form `${foo}` in a string, unknown variables are
    kept unchanged.
    """
    return _VAR_PATTERN.sub(lambda m: replacements.get(m.group(1), m.group(0)), text)


def replace_list_vars(text_list: Union[Sequence[str], Iterator[str]], replacements: Mapping[str, str]) -> Iterator[str]:
    """Call `replace_vars` on multiple texts in a list with the same replacements.
    """
    return (replace_vars(elt, replacements) for elt in text_list)


class LibraryMissingEvent:
    """Event triggered when a library file is missing while building the class path,
    the library is then skipped.
    """
    __slots__ = "name", "path"
    def __init__(self, name: str, path: Path) -> None:
        self.name = name
        self.path = path


class ClasspathEmptyError(Exception):
    """Raised when the client jar is missing, the game can't be launched.
    """
    def __init__(self, jar_path: Path) -> None:
        self.jar_path = jar_path
    def __str__(self) -> str:
        return f"client jar not found: {self.jar_path}"


class MainClassNotFoundError(Exception):
    """Raised when no main class is defined by a version and its base.
    """
    def __init__(self, version: str) -> None:
        self.version = version
    def __str__(self) -> str:
        return f"no main class for version {self.version}"


class JvmNotFoundError(Exception):
    """Raised when the given JVM executable doesn't exist.
    """
    def __init__(self, path: Path) -> None:
        self.path = path
    def __str__(self) -> str:
        return f"jvm not found: {self.path}"


forge_jvm_args = [
    "-Dforge.logging.console.level=info",
    "-Dfml.ignoreInvalidMinecraftCertificates=true",
    "-Dfml.ignorePatchDiscrepancies=true",
]

fabric_jvm_args = [
    "-Dfabric.development=false",
    "-Dfabric.debug.disableClassPathIsolation=false",
    "-Dfabric.classPathGroups=",
]

legacy_jvm_args: List[Argument] = [
    {
        "rules": [{"action": "allow", "os": {"name": "osx"}}],
        "value": ["-XstartOnFirstThread"]
    },
    {
        "rules": [{"action": "allow", "os": {"name": "windows"}}],
        "value": "-XX:HeapDumpPath=MojangTricksIntelDriversForPerformance_javaw.exe_minecraft.exe.heapdump"
    },
    "-Djava.library.path=${natives_directory}",
    "-Dminecraft.launcher.brand=${launcher_name}",
    "-Dminecraft.launcher.version=${launcher_version}",
    "-cp",
    "${classpath}"
]
