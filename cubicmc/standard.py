"""Engine operations acquiring a version's files in a game directory, and assembling and
running its launch.

All acquisition operations download their files in one batch on a pool of threads and
report aggregated counts. Per-file failures are counted, they never abort the batch.
"""

from subprocess import Popen
from pathlib import Path
import platform
import shutil
import time
import os

from .download import DownloadList, DownloadEntry, DownloadReport, DownloadResultError, \
    DRAIN_TIMEOUT, fetch
from .version import VersionResolver, MergedVersion, VersionNotFoundError, LOADER_VANILLA
from .launch import LaunchAssembler, LaunchOptions, LaunchSpec
from .natives import FLAT_POLICY, extract_natives
from .store import AssetIndex, ContentStore, RESOURCES_URL
from .manifest import VersionManifest
from .rules import minecraft_os
from .http import HttpError
from .util import calc_file_sha1, sha1_equals
from .watcher import Watcher

from typing import Iterator, List, Optional, Set


class Context:
    """Layout of a game directory. Versions, assets, libraries and natives are stored in
    a shared directory, the game itself runs from the game directory.
    """

    def __init__(self, game_dir: Optional[Path] = None) -> None:
        """Construct a context for the given game directory, a default one depending on
        the OS is used if not specified. Paths may be relative, they are made absolute
        when needed.
        """
        self.game_dir = get_game_dir() if game_dir is None else game_dir
        self.shared_dir = self.game_dir / "shared"
        self.versions_dir = self.shared_dir / "versions"
        self.assets_dir = self.shared_dir / "assets"
        self.libraries_dir = self.shared_dir / "libraries"
        self.natives_dir = self.shared_dir / "natives"

    def version_file(self, version_id: str) -> Path:
        return self.versions_dir / version_id / f"{version_id}.json"

    def version_jar(self, version_id: str) -> Path:
        return self.versions_dir / version_id / f"{version_id}.jar"

    def natives_dir_for(self, version_id: str) -> Path:
        return self.natives_dir / version_id

    def list_versions(self) -> Iterator[str]:
        """List ids of installed versions, those with a descriptor file.
        """
        if self.versions_dir.is_dir():
            for version_dir in self.versions_dir.iterdir():
                if version_dir.is_dir() and self.version_file(version_dir.name).is_file():
                    yield version_dir.name

    def __repr__(self) -> str:
        return f"<Context {self.game_dir}>"


def acquire_version(version: str, context: Context, *,
    manifest: Optional[VersionManifest] = None,
    watcher: Optional[Watcher] = None
) -> str:
    """Fetch the descriptor of a version listed in the manifest, if not already present
    with the expected SHA-1. Aliases 'release' and 'snapshot' are supported.

    :return: The version id, with aliases resolved.
    :raises VersionNotFoundError: If the version is neither in the manifest nor installed.
    :raises DownloadFailedError: If the descriptor could not be downloaded.
    """

    watcher = Watcher() if watcher is None else watcher
    manifest = VersionManifest(context.shared_dir / "version_manifest.json") if manifest is None else manifest

    try:
        version_id, _alias = manifest.filter_latest(version)
        version_entry = manifest.get_version(version_id)
    except HttpError:
        # The manifest is not required to use installed versions while offline.
        if context.version_file(version).is_file():
            watcher.handle(VersionFetchedEvent(version, False))
            return version
        raise

    version_file = context.version_file(version_id)

    if version_entry is None:
        if version_file.is_file():
            watcher.handle(VersionFetchedEvent(version_id, False))
            return version_id
        raise VersionNotFoundError(version_id)

    url = version_entry.get("url")
    if not isinstance(url, str):
        raise ValueError(f"manifest: /versions/{version_id}/url must be a string")

    entry = DownloadEntry(url, version_file, sha1=version_entry.get("sha1"), name=f"{version_id}.json")

    fetched = not _is_verified(entry)
    if fetched:
        fetch(entry)

    watcher.handle(VersionFetchedEvent(version_id, fetched))
    return version_id


def acquire_assets(version: str, threads_count: int, context: Context, *,
    loader: str = LOADER_VANILLA,
    loader_version: Optional[str] = None,
    resources_url: str = RESOURCES_URL,
    timeout: float = DRAIN_TIMEOUT,
    watcher: Optional[Watcher] = None
) -> DownloadReport:
    """Download the asset index of a version if absent, and all of its objects that are
    missing from the content-addressed store. Objects are fetched from the given
    resources URL, a mirror may be used.
    """

    watcher = Watcher() if watcher is None else watcher
    merged = _resolve(context, version, loader, loader_version, watcher)
    report = DownloadReport()

    index_id = merged.assets_index_id
    index_file = context.assets_dir / "indexes" / f"{index_id}.json"

    if not index_file.is_file():
        index_download = merged.asset_index
        if index_download is None:
            # Custom versions may not have any asset.
            return report
        fetch(DownloadEntry(index_download.url, index_file, size=index_download.size,
                            sha1=index_download.sha1, name=index_file.name))

    asset_index = AssetIndex.from_file(index_id, index_file)
    watcher.handle(AssetsResolveEvent(index_id, len(asset_index)))

    store = ContentStore(context.assets_dir / "objects", resources_url)
    dl = DownloadList()
    seen_hashes: Set[str] = set()

    for asset_id, asset_obj in asset_index.objects.items():
        # Names sharing an object share its file.
        if asset_obj.hash in seen_hashes:
            continue
        seen_hashes.add(asset_obj.hash)
        if not store.add(dl, asset_obj, asset_id):
            report.success += 1

    _download(dl, threads_count, report, timeout, watcher)

    if asset_index.virtual or asset_index.map_to_resources:
        if asset_index.virtual:
            copy_dir = context.assets_dir / "virtual" / index_id
        else:
            copy_dir = context.game_dir / "resources"
        for asset_id, asset_obj in asset_index.objects.items():
            src_file = store.object_path(asset_obj.hash)
            if src_file.is_file():
                dst_file = copy_dir / asset_id
                dst_file.parent.mkdir(parents=True, exist_ok=True)
                shutil.copyfile(str(src_file), str(dst_file))

    return report


def acquire_client(version: str, threads_count: int, context: Context, *,
    loader: str = LOADER_VANILLA,
    loader_version: Optional[str] = None,
    timeout: float = DRAIN_TIMEOUT,
    watcher: Optional[Watcher] = None
) -> DownloadReport:
    """Download the client jar of a version, the base version's one if inheriting. An
    existing jar is kept if both its size and SHA-1 match.
    """

    watcher = Watcher() if watcher is None else watcher
    merged = _resolve(context, version, loader, loader_version, watcher)
    report = DownloadReport()

    client_id = merged.client_version_id
    client_download = merged.client_download
    if client_download is None:
        report.skipped += 1
        return report

    dl = DownloadList()
    entry = DownloadEntry(client_download.url, context.version_jar(client_id),
                          size=client_download.size, sha1=client_download.sha1, name=f"{client_id}.jar")

    if not dl.add(entry, verify=True, verify_sha1=True):
        report.success += 1

    _download(dl, threads_count, report, timeout, watcher)
    return report


def acquire_libraries_and_natives(version: str, threads_count: int, context: Context, *,
    loader: str = LOADER_VANILLA,
    loader_version: Optional[str] = None,
    os_name: Optional[str] = minecraft_os,
    timeout: float = DRAIN_TIMEOUT,
    watcher: Optional[Watcher] = None
) -> DownloadReport:
    """Download all libraries allowed on the OS, including native bundles, in a single
    batch. After the batch, native bundles are flattened in the version's natives
    directory and the number of processed bundles is given in `extracted`.

    Libraries excluded by their rules and libraries without any download source are
    counted as skipped, already present ones (size and SHA-1) as success.
    """

    watcher = Watcher() if watcher is None else watcher
    merged = _resolve(context, version, loader, loader_version, watcher)
    report = DownloadReport()

    dl = DownloadList()
    seen_files: Set[Path] = set()
    native_files: List[Path] = []

    def add_entry(entry: DownloadEntry) -> None:
        if entry.dst in seen_files:
            return
        seen_files.add(entry.dst)
        if not dl.add(entry, verify=True, verify_sha1=True):
            report.success += 1

    for library in merged.libraries:

        if not library.is_allowed(os_name):
            report.skipped += 1
            continue

        if os_name is not None and library.is_native(os_name):
            native_path, native_artifact = library.native_artifact(os_name) or (None, None)
            if native_path is None or native_artifact is None or not len(native_artifact.url):
                report.skipped += 1
            else:
                native_file = context.libraries_dir / native_path
                if native_file not in native_files:
                    native_files.append(native_file)
                add_entry(DownloadEntry(native_artifact.url, native_file, size=native_artifact.size,
                                        sha1=native_artifact.sha1, name=library.name))
            if library.is_direct_native(os_name):
                continue

        jar_path = library.jar_path()
        if jar_path is None:
            if not library.is_native(os_name or ""):
                report.skipped += 1
            continue

        jar_url = library.jar_url()
        if jar_url is None:
            report.skipped += 1
            continue

        artifact = library.artifact
        add_entry(DownloadEntry(jar_url, context.libraries_dir / jar_path,
                                size=None if artifact is None else artifact.size,
                                sha1=None if artifact is None else artifact.sha1,
                                name=library.name))

    _download(dl, threads_count, report, timeout, watcher)

    natives_dir = context.natives_dir_for(merged.id)
    for native_file in native_files:
        if native_file.is_file():
            natives_dir.mkdir(parents=True, exist_ok=True)
            extract_natives(native_file, natives_dir, FLAT_POLICY, watcher=watcher)
            report.extracted += 1

    return report


def assemble_launch(version: str, context: Context, *,
    loader: str = LOADER_VANILLA,
    loader_version: Optional[str] = None,
    options: Optional[LaunchOptions] = None,
    os_name: Optional[str] = minecraft_os,
    watcher: Optional[Watcher] = None
) -> LaunchSpec:
    """Resolve an installed version and assemble its launch specification, see
    `LaunchAssembler.assemble` for raised errors.
    """
    watcher = Watcher() if watcher is None else watcher
    merged = _resolve(context, version, loader, loader_version, watcher)
    assembler = LaunchAssembler(context, os_name, watcher)
    return assembler.assemble(merged, loader, options, loader_version=loader_version, game_version=version)


def _resolve(context: Context, version: str, loader: str, loader_version: Optional[str], watcher: Watcher) -> MergedVersion:
    return VersionResolver(context.versions_dir, watcher).resolve(version, loader, loader_version)


def _download(dl: DownloadList, threads_count: int, report: DownloadReport, timeout: float, watcher: Watcher) -> None:
    """Internal function to run a download list, accumulating its results in the report.
    The list is fully drained when this function returns.
    """

    if not dl.count:
        return

    watcher.handle(DownloadStartEvent(threads_count, dl.count, dl.size))

    for count, result in dl.download(threads_count, timeout=timeout):
        report.add_result(result)
        if isinstance(result, DownloadResultError):
            watcher.handle(DownloadErrorEvent(count, result))
        else:
            watcher.handle(DownloadProgressEvent(result.thread_id, count, result.entry, result.size))

    watcher.handle(DownloadCompleteEvent(report))
    dl.clear()


def _is_verified(entry: DownloadEntry) -> bool:
    try:
        return entry.dst.is_file() and (entry.sha1 is None or sha1_equals(calc_file_sha1(entry.dst), entry.sha1))
    except OSError:
        return False


class StandardRunner:
    """Runner of launch specifications, it creates a process with inherited standard
    streams in the game directory and waits for it. This runner supports
    KeyboardInterrupt handling.
    """

    def run(self, spec: LaunchSpec) -> int:
        """Run the game and return its exit code.
        """
        env = dict(os.environ)
        env.update(spec.environment)
        spec.work_dir.mkdir(parents=True, exist_ok=True)
        process = self.process_create(spec.command(), spec.work_dir, env)
        return self.process_wait(process)

    def process_create(self, args: List[str], work_dir: Path, env: dict) -> Popen:
        """This function is called when process needs to be created with the given
        arguments in the given working directory.
        """
        return Popen(args, cwd=work_dir, env=env)

    def process_wait(self, process: Popen) -> int:
        """This function is called with the running process for waiting its end.
        """
        try:
            while process.poll() is None:
                time.sleep(1)
        except KeyboardInterrupt:
            process.kill()
            raise
        finally:
            process.wait()
        return process.returncode


def get_game_dir() -> Path:
    """Internal function to get the default game directory.
    """
    home = Path.home()
    return {
        "Windows": home.joinpath("AppData", "Roaming", ".cubicmc"),
        "Darwin": home.joinpath("Library", "Application Support", "cubicmc"),
    }.get(platform.system(), home / ".cubicmc")


class VersionFetchedEvent:
    """Event triggered when a version descriptor has been acquired, fetched is false if
    the installed descriptor was kept.
    """
    __slots__ = "version", "fetched"
    def __init__(self, version: str, fetched: bool) -> None:
        self.version = version
        self.fetched = fetched

class AssetsResolveEvent:
    __slots__ = "index_version", "count"
    def __init__(self, index_version: str, count: int) -> None:
        self.index_version = index_version
        self.count = count

class DownloadStartEvent:
    __slots__ = "threads_count", "entries_count", "size"
    def __init__(self, threads_count: int, entries_count: int, size: int) -> None:
        self.threads_count = threads_count
        self.entries_count = entries_count
        self.size = size

class DownloadProgressEvent:
    __slots__ = "thread_id", "count", "entry", "size"
    def __init__(self, thread_id: int, count: int, entry: DownloadEntry, size: int) -> None:
        self.thread_id = thread_id
        self.count = count
        self.entry = entry
        self.size = size

class DownloadErrorEvent:
    """Event triggered when an entry failed after all its tries.
    """
    __slots__ = "count", "error"
    def __init__(self, count: int, error: DownloadResultError) -> None:
        self.count = count
        self.error = error

class DownloadCompleteEvent:
    __slots__ = "report",
    def __init__(self, report: DownloadReport) -> None:
        self.report = report
