"""CLI languages management.
"""

from cubicmc.download import DownloadResultError
from cubicmc.version import LOADERS
from cubicmc.util import jvm_bin_filename

from typing import Optional


def get_raw(key: str, kwargs: Optional[dict], default: Optional[str] = None) -> str:
    """Get a message translated using the given keyword formatting arguments.

    :param key: The key of the message to translate.
    :param kwargs: The keyword formatting dictionary.
    :return: Translated message, or the default value if not found. By default, the
    default value if the key itself.
    """
    try:
        return lang[key].format_map(kwargs or {})
    except KeyError:
        return key if default is None else default


def get(key: str, **kwargs) -> str:
    """Get a message translated using the given keyword formatting arguments.

    :param key: The key of the message to translate.
    :return: Translated message, or the key itself if not found.
    """
    return get_raw(key, kwargs)


lang = {
    # Args root
    "args": "CubicMC is a command line launcher resolving, downloading and launching "
        "game versions, with optional Forge or Fabric loaders.",
    "args.game_dir": "Set the game directory, versions, assets, libraries and natives are "
        "stored in its 'shared' subdirectory.",
    "args.timeout": "Set a global timeout (in decimal seconds) for network requests.",
    "args.output": "Set the output format of the launcher, defaults to human-color.",
    "args.verbose": "Enable verbose output.",
    # Args search
    "args.search": "Search for versions.",
    "args.search.local": "Search installed versions instead of the manifest.",
    # Args install
    "args.install": "Install a version: descriptor, assets, client and libraries.",
    "args.install.version": "Version identifier (default to release): release|snapshot|<version>.",
    "args.install.loader": f"Loader of the version, one of {', '.join(LOADERS)}. "
        "The loader's descriptor must already be installed.",
    "args.install.loader_version": "Version of the loader, required for forge and fabric.",
    "args.install.threads": "Number of download threads.",
    # Args start
    "args.start": "Install and start a version.",
    "args.start.dry": "Simulate game starting, the command line is printed.",
    "args.start.resolution": "Set a custom start resolution (<width>x<height>).",
    "args.start.resolution.invalid": "invalid format '{given}', expected <width>x<height>",
    "args.start.jvm": f"Set a custom JVM '{jvm_bin_filename}' executable path. If this argument is "
        "omitted the JVM is searched in the PATH.",
    "args.start.jvm_args": "Additional JVM arguments.",
    "args.start.min_memory": "Initial heap size of the JVM (e.g. 512M).",
    "args.start.max_memory": "Maximum heap size of the JVM (e.g. 2G).",
    "args.start.offline_api": "Redirect the online API hosts to an invalid host.",
    "args.start.username": "Set a custom user name to play.",
    "args.start.uuid": "Set a custom user UUID to play.",
    # Common
    "echo": "{echo}",
    "keyboard_interrupt": "Keyboard interrupted.",
    # Common errors
    "error.os": "An unexpected OS error happened:",
    "error.socket": "This operation requires an operational network, but a socket error happened:",
    "error.http": "Request failed: {error}",
    # Command search
    "search.type": "Type",
    "search.name": "Identifier",
    "search.release_date": "Release date",
    "search.last_modified": "Last modified",
    "search.flags": "Flags",
    "search.flags.local": "local",
    # Command install
    "install.version.fetching": "Fetching version {version}...",
    "install.version.fetched": "Fetched version {version}",
    "install.version.kept": "Checked version {version}",
    "install.version.loaded": "Loaded version {version}",
    "install.version.loaded.base": "Loaded version {version} (inherits {base})",
    "install.version.not_found": "Version {version} not found",
    "install.version.malformed": "Version {version} is malformed: {reason}",
    "install.assets": "Checking assets...",
    "install.assets.resolved": "Checked {count} assets version {index_version}",
    "install.client": "Checking client...",
    "install.libraries": "Checking libraries and natives...",
    "install.report": "{phase}: {success} ok, {failed} failed, {skipped} skipped",
    "install.natives": "Extracted natives of {count} archives",
    "install.loader_version.required": "A loader version is required for {loader}.",
    "install.failed": "Some files failed to download, the installation is incomplete.",
    "install.library_missing": "Library {name} not found at {path}",
    "install.natives.extracted": "Extracted {count} natives from {archive}",
    "install.natives.archive_error": "Unreadable native archive {archive}: {error}",
    "install.natives.entry_error": "Failed to extract {entry} from {archive}: {error}",
    # Command start
    "start.dry": "Command line:",
    "start.classpath_empty": "Client jar not found: {path}",
    "start.main_class_not_found": "No main class defined for version {version}",
    "start.jvm.not_found": "JVM executable not found: {path}",
    "start.exited": "Game exited with code {code}",
    # Pretty download
    "download.threads_count": "Download threads count: {count}",
    "download.start": "Download starting...",
    "download.progress": "Download: {count}/{total_count} {size:>8}",
    "download.error": "{name}: {message}",
    "download.failed": "Download failed: {error}",
    f"download.error.{DownloadResultError.CONNECTION}": "Connection error",
    f"download.error.{DownloadResultError.HTTP_STATUS}": "Unexpected HTTP status",
    f"download.error.{DownloadResultError.INVALID_SIZE}": "Invalid size",
    f"download.error.{DownloadResultError.INVALID_SHA1}": "Invalid SHA1",
    f"download.error.{DownloadResultError.CANCELLED}": "Cancelled",
}
