"""Main entry point of the command line launcher.
"""

from subprocess import Popen
from pathlib import Path
import socket
import sys

from .parse import register_arguments, RootNs, SearchNs, InstallNs, StartNs
from .util import format_locale_date, format_number
from .output import Output, HumanOutput, MachineOutput, OutputTable
from .lang import get as _

from ..standard import Context, StandardRunner, acquire_version, acquire_assets, \
    acquire_client, acquire_libraries_and_natives, assemble_launch, \
    VersionFetchedEvent, AssetsResolveEvent, DownloadStartEvent, DownloadProgressEvent, \
    DownloadErrorEvent, DownloadCompleteEvent
from ..download import DownloadFailedError, DownloadReport
from ..version import VersionNotFoundError, VersionMalformedError, VersionLoadedEvent, \
    LOADER_VANILLA
from ..launch import LaunchOptions, ClasspathEmptyError, MainClassNotFoundError, \
    JvmNotFoundError, LibraryMissingEvent
from ..natives import NativesExtractedEvent, NativeArchiveErrorEvent, NativeEntryErrorEvent
from ..manifest import VersionManifest
from ..watcher import SimpleWatcher
from ..http import HttpError

from typing import cast, Optional, List, Union, Dict, Callable, Any


EXIT_OK = 0
EXIT_FAILURE = 1

MANIFEST_CACHE_FILE_NAME = "version_manifest.json"

CommandHandler = Callable[[Any], Any]
CommandTree = Dict[str, Union[CommandHandler, "CommandTree"]]


def main(args: Optional[List[str]] = None):
    """Main entry point of the CLI. This function parses the input arguments and try to
    find a command handler to dispatch to. These command handlers are specified by the
    `get_command_handlers` function.
    """

    parser = register_arguments()
    ns: RootNs = cast(RootNs, parser.parse_args(args or sys.argv[1:]))

    # Setup common objects in the namespace.
    ns.out = get_output(ns.out_kind)
    ns.context = Context(ns.game_dir)
    ns.version_manifest = VersionManifest(ns.context.shared_dir / MANIFEST_CACHE_FILE_NAME)
    socket.setdefaulttimeout(ns.timeout)

    # Find the command handler and run it.
    command_handlers = get_command_handlers()
    command_attr = "subcommand"
    while True:
        command = getattr(ns, command_attr)
        handler = command_handlers.get(command)
        if handler is None:
            parser.print_help()
            sys.exit(EXIT_FAILURE)
        elif callable(handler):
            cmd(handler, ns)
        elif isinstance(handler, dict):
            command_attr = f"{command}_{command_attr}"
            command_handlers = handler
            continue
        sys.exit(EXIT_OK)


def get_output(kind: str) -> Output:
    """Internal function that construct the output depending on its kind.
    The kind is constrained by choices set to the arguments parser.
    """

    if kind == "human-color":
        return HumanOutput(True)
    elif kind == "human":
        return HumanOutput(False)
    elif kind == "machine":
        return MachineOutput()
    else:
        raise ValueError()


def get_command_handlers() -> CommandTree:
    """Internal function returns the tree of command handlers for each subcommand
    of the CLI argument parser.
    """

    return {
        "search": cmd_search,
        "install": cmd_install,
        "start": cmd_start,
    }


def cmd(handler: CommandHandler, ns: RootNs):
    """Generic command handler that launch the given handler with the given namespace,
    it handles error in order to pretty print them.
    """

    try:
        handler(ns)
        sys.exit(EXIT_OK)

    except VersionNotFoundError as error:
        ns.out.task("FAILED", "install.version.not_found", version=error.version)
        ns.out.finish()

    except VersionMalformedError as error:
        ns.out.task("FAILED", "install.version.malformed", version=error.version, reason=error.reason)
        ns.out.finish()

    except DownloadFailedError as error:
        ns.out.task("FAILED", "download.failed", error=str(error))
        ns.out.finish()

    except HttpError as error:
        ns.out.task("FAILED", "error.http", error=str(error))
        ns.out.finish()

    except ValueError as error:
        ns.out.task("FAILED", None)
        ns.out.finish()
        for arg in error.args:
            ns.out.task(None, "echo", echo=arg)
            ns.out.finish()

    except KeyboardInterrupt:
        ns.out.finish()
        ns.out.task("HALT", "keyboard_interrupt")
        ns.out.finish()

    except OSError as error:

        key = "error.os"
        if isinstance(error, (socket.gaierror, socket.timeout)):
            key = "error.socket"

        ns.out.task("FAILED", None)
        ns.out.finish()
        ns.out.task(None, key)
        ns.out.finish()
        ns.out.task(None, "echo", echo=str(error))
        ns.out.finish()

    sys.exit(EXIT_FAILURE)


def cmd_search(ns: SearchNs):
    table = ns.out.table()
    if ns.local:
        cmd_search_local(ns, table)
    else:
        cmd_search_manifest(ns, table)
    table.print()
    sys.exit(EXIT_OK)


def cmd_search_manifest(ns: SearchNs, table: OutputTable):

    table.add(
        _("search.type"),
        _("search.name"),
        _("search.release_date"),
        _("search.flags"))
    table.separator()

    search = ns.input
    if search is not None:
        search, alias = ns.version_manifest.filter_latest(search)
    else:
        alias = False

    for version_data in ns.version_manifest.all_versions():
        version_id = version_data["id"]
        if search is None or (alias and search == version_id) or (not alias and search in version_id):
            table.add(
                version_data["type"],
                version_id,
                format_locale_date(version_data["releaseTime"]),
                _("search.flags.local") if ns.context.version_file(version_id).is_file() else "")


def cmd_search_local(ns: SearchNs, table: OutputTable):

    table.add(
        _("search.name"),
        _("search.last_modified"))
    table.separator()

    search = ns.input
    for version_id in sorted(ns.context.list_versions()):
        if search is None or search in version_id:
            table.add(version_id, format_locale_date(ns.context.version_file(version_id).stat().st_mtime))


def cmd_install(ns: InstallNs):
    cmd_install_handler(ns)
    sys.exit(EXIT_OK)


def cmd_install_handler(ns: InstallNs) -> str:
    """Internal function that acquires all the files of the version given in the
    namespace. The process is exited if any file is missing at the end.

    :return: The game version id, with aliases resolved.
    """

    if ns.loader != LOADER_VANILLA and ns.loader_version is None:
        ns.out.task("FAILED", "install.loader_version.required", loader=ns.loader)
        ns.out.finish()
        sys.exit(EXIT_FAILURE)

    watcher = CliWatcher(ns)

    # Loader descriptors must be installed, their base version is fetched if needed.
    ns.out.task("..", "install.version.fetching", version=ns.version)
    version = acquire_version(ns.version, ns.context, manifest=ns.version_manifest, watcher=watcher)

    kwargs = {
        "loader": ns.loader,
        "loader_version": ns.loader_version,
        "watcher": watcher,
    }

    threads_count = max(1, ns.threads)
    reports = []

    ns.out.task("..", "install.assets")
    reports.append(("assets", acquire_assets(version, threads_count, ns.context, **kwargs)))
    ns.out.task("..", "install.client")
    reports.append(("client", acquire_client(version, threads_count, ns.context, **kwargs)))
    ns.out.task("..", "install.libraries")
    reports.append(("libraries", acquire_libraries_and_natives(version, threads_count, ns.context, **kwargs)))

    total = DownloadReport()
    for phase, report in reports:
        total.merge(report)
        if ns.verbose >= 1:
            ns.out.task("INFO", "install.report", phase=phase, success=report.success,
                        failed=report.failed, skipped=report.skipped)
            ns.out.finish()

    if total.extracted:
        ns.out.task("OK", "install.natives", count=total.extracted)
        ns.out.finish()

    if total.failed:
        ns.out.task("FAILED", "install.failed")
        ns.out.finish()
        for error in total.errors:
            ns.out.task(None, "download.error", name=error.entry.name, message=_(f"download.error.{error.code}"))
            ns.out.finish()
        sys.exit(EXIT_FAILURE)

    return version


def cmd_start(ns: StartNs):

    version = cmd_install_handler(ns)

    options = LaunchOptions(
        username=ns.username,
        uuid=ns.uuid,
        min_memory=ns.min_memory,
        max_memory=ns.max_memory,
        jvm_path=None if ns.jvm is None else Path(ns.jvm),
        jvm_args=[] if ns.jvm_args is None else ns.jvm_args.split(),
        offline_api=ns.offline_api)

    if ns.resolution is not None:
        options.resolution = ns.resolution

    try:
        spec = assemble_launch(version, ns.context,
            loader=ns.loader,
            loader_version=ns.loader_version,
            options=options,
            watcher=CliWatcher(ns))
    except ClasspathEmptyError as error:
        ns.out.task("FAILED", "start.classpath_empty", path=str(error.jar_path))
        ns.out.finish()
        sys.exit(EXIT_FAILURE)
    except MainClassNotFoundError as error:
        ns.out.task("FAILED", "start.main_class_not_found", version=error.version)
        ns.out.finish()
        sys.exit(EXIT_FAILURE)
    except JvmNotFoundError as error:
        ns.out.task("FAILED", "start.jvm.not_found", path=str(error.path))
        ns.out.finish()
        sys.exit(EXIT_FAILURE)

    if ns.dry:
        ns.out.task("INFO", "start.dry")
        ns.out.finish()
        ns.out.print(" ".join(spec.command()) + "\n")
        sys.exit(EXIT_OK)

    code = CliRunner(ns).run(spec)
    ns.out.task("INFO", "start.exited", code=code)
    ns.out.finish()
    sys.exit(EXIT_OK if code == 0 else EXIT_FAILURE)


class CliWatcher(SimpleWatcher):

    def __init__(self, ns: RootNs) -> None:

        def finish_task(key: str, **kwargs) -> None:
            ns.out.task("OK", key, **kwargs)
            ns.out.finish()

        def warn_task(key: str, **kwargs) -> None:
            ns.out.task("WARN", key, **kwargs)
            ns.out.finish()

        def version_fetched(e: VersionFetchedEvent) -> None:
            finish_task("install.version.fetched" if e.fetched else "install.version.kept", version=e.version)

        def version_loaded(e: VersionLoadedEvent) -> None:
            if ns.verbose >= 1:
                if e.base is None:
                    ns.out.task("INFO", "install.version.loaded", version=e.version)
                else:
                    ns.out.task("INFO", "install.version.loaded.base", version=e.version, base=e.base)
                ns.out.finish()

        def natives_extracted(e: NativesExtractedEvent) -> None:
            if ns.verbose >= 2:
                ns.out.task("INFO", "install.natives.extracted", count=e.count, archive=e.archive.name)
                ns.out.finish()

        super().__init__({
            VersionFetchedEvent: version_fetched,
            VersionLoadedEvent: version_loaded,
            AssetsResolveEvent: lambda e: finish_task("install.assets.resolved", index_version=e.index_version, count=e.count),
            LibraryMissingEvent: lambda e: warn_task("install.library_missing", name=e.name, path=str(e.path)),
            NativesExtractedEvent: natives_extracted,
            NativeArchiveErrorEvent: lambda e: warn_task("install.natives.archive_error", archive=str(e.archive), error=str(e.error)),
            NativeEntryErrorEvent: lambda e: warn_task("install.natives.entry_error", entry=e.entry_path, archive=str(e.archive), error=str(e.error)),
            DownloadStartEvent: self.download_start,
            DownloadProgressEvent: self.download_progress,
            DownloadErrorEvent: self.download_error,
            DownloadCompleteEvent: self.download_complete,
        })

        self.ns = ns
        self.entries_count = 0
        self.size = 0

    def download_start(self, e: DownloadStartEvent):

        if self.ns.verbose:
            self.ns.out.task("INFO", "download.threads_count", count=e.threads_count)
            self.ns.out.finish()

        self.entries_count = e.entries_count
        self.size = 0
        self.ns.out.task("..", "download.start")

    def download_progress(self, e: DownloadProgressEvent) -> None:

        self.size += e.size
        total_count = str(self.entries_count)
        count = f"{e.count:{len(total_count)}}"

        self.ns.out.task("..", "download.progress",
            count=count,
            total_count=total_count,
            size=f"{format_number(self.size)}o")

    def download_error(self, e: DownloadErrorEvent) -> None:
        if self.ns.verbose >= 1:
            self.ns.out.task("WARN", "download.error", name=e.error.entry.name,
                             message=_(f"download.error.{e.error.code}"))
            self.ns.out.finish()

    def download_complete(self, e: DownloadCompleteEvent) -> None:
        self.ns.out.task("OK", None)
        self.ns.out.finish()


class CliRunner(StandardRunner):

    def __init__(self, ns: RootNs) -> None:
        super().__init__()
        self.ns = ns

    def process_create(self, args: List[str], work_dir: Path, env: dict) -> Popen:

        self.ns.out.print("\n")
        if self.ns.verbose >= 1:
            self.ns.out.print(" ".join(args) + "\n")

        return super().process_create(args, work_dir, env)
