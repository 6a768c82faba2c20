from argparse import ArgumentParser, HelpFormatter, ArgumentTypeError
from pathlib import Path

from ..standard import Context
from ..manifest import VersionManifest
from ..version import LOADERS, LOADER_VANILLA

from .output import Output
from .lang import get as _

from typing import Optional, Type, Tuple, List


# The following classes are only used for type checking and represent a typed namespace
# as produced by the arguments registered to the argument parser.

class RootNs:
    game_dir: Optional[Path]
    timeout: float
    out_kind: str
    verbose: int
    # Initialized by main function after argument parsing.
    out: Output
    context: Context
    version_manifest: VersionManifest

class SearchNs(RootNs):
    local: bool
    input: Optional[str]

class InstallNs(RootNs):
    version: str
    loader: str
    loader_version: Optional[str]
    threads: int

class StartNs(InstallNs):
    dry: bool
    resolution: Optional[Tuple[int, int]]
    jvm: Optional[str]
    jvm_args: Optional[str]
    min_memory: Optional[str]
    max_memory: Optional[str]
    offline_api: bool
    username: Optional[str]
    uuid: Optional[str]


def register_arguments() -> ArgumentParser:
    parser = ArgumentParser(allow_abbrev=False, prog="cubicmc", description=_("args"))
    parser.add_argument("--game-dir", help=_("args.game_dir"), type=Path)
    parser.add_argument("--timeout", help=_("args.timeout"), type=float)
    parser.add_argument("--output", help=_("args.output"), dest="out_kind", choices=get_outputs(), default="human-color")
    parser.add_argument("-v", dest="verbose", help=_("args.verbose"), action="count", default=0)
    register_subcommands(parser.add_subparsers(title="subcommands", dest="subcommand"))
    return parser


def register_subcommands(subparsers):
    register_search_arguments(subparsers.add_parser("search", help=_("args.search")))
    register_install_arguments(subparsers.add_parser("install", help=_("args.install")))
    register_start_arguments(subparsers.add_parser("start", help=_("args.start")))


def register_search_arguments(parser: ArgumentParser):
    parser.add_argument("-l", "--local", help=_("args.search.local"), action="store_true")
    parser.add_argument("input", nargs="?")


def register_install_arguments(parser: ArgumentParser):
    parser.formatter_class = new_help_formatter_class(40)
    parser.add_argument("-j", "--threads", help=_("args.install.threads"), type=int, default=8, metavar="COUNT")
    parser.add_argument("--loader", help=_("args.install.loader"), choices=LOADERS, default=LOADER_VANILLA)
    parser.add_argument("--loader-version", help=_("args.install.loader_version"), metavar="VERSION")
    parser.add_argument("version", nargs="?", default="release", help=_("args.install.version"))


def register_start_arguments(parser: ArgumentParser):
    register_install_arguments(parser)
    parser.add_argument("--dry", help=_("args.start.dry"), action="store_true")
    parser.add_argument("--resolution", help=_("args.start.resolution"), type=resolution_from_str)
    parser.add_argument("--jvm", help=_("args.start.jvm"))
    parser.add_argument("--jvm-args", help=_("args.start.jvm_args"), metavar="ARGS")
    parser.add_argument("--min-memory", help=_("args.start.min_memory"), metavar="SIZE")
    parser.add_argument("--max-memory", help=_("args.start.max_memory"), metavar="SIZE")
    parser.add_argument("--offline-api", help=_("args.start.offline_api"), action="store_true")
    parser.add_argument("-u", "--username", help=_("args.start.username"), metavar="NAME")
    parser.add_argument("-i", "--uuid", help=_("args.start.uuid"))


def new_help_formatter_class(max_help_position: int) -> Type[HelpFormatter]:

    class CustomHelpFormatter(HelpFormatter):
        def __init__(self, prog):
            super().__init__(prog, max_help_position=max_help_position)

    return CustomHelpFormatter


def get_outputs() -> List[str]:
    return ["human-color", "human", "machine"]


def resolution_from_str(s: str) -> Tuple[int, int]:
    parts = s.split("x")
    if len(parts) == 2:
        try:
            return (int(parts[0]), int(parts[1]))
        except ValueError:
            pass
    raise ArgumentTypeError(_("args.start.resolution.invalid", given=s))
