"""Extraction of native shared objects from library archives.

Two policies are used by the engine: the flat one, used after bulk download, copies
every binary-looking entry by its base name and always overwrites, and the tree one,
used while building the class path, only copies recognized native extensions, keeps
the relative path and skips up-to-date files.
"""

from zipfile import ZipFile, BadZipFile, ZipInfo
from pathlib import Path
import shutil
import time

from .watcher import Watcher

from typing import Callable, Optional


NATIVE_EXTENSIONS = (".dll", ".so", ".dylib", ".jnilib")
IGNORED_EXTENSIONS = (".class", ".txt", ".git", ".java", ".md", ".html", ".properties")


def select_binary(entry_path: str) -> bool:
    """Select any entry that is not under META-INF and not a known text/code file.
    Unknown extensions are selected.
    """
    if "META-INF" in entry_path:
        return False
    return not entry_path.lower().endswith(IGNORED_EXTENSIONS)


def select_native(entry_path: str) -> bool:
    """Select only entries with a recognized native extension, outside of META-INF/.
    """
    if entry_path.startswith("META-INF/"):
        return False
    return entry_path.endswith(NATIVE_EXTENSIONS)


class ExtractPolicy:
    """Describe how entries of a native archive are extracted.

    :param flatten: True to only keep the base file name of entries, entries with the
    same name overwrite each other. False to keep the relative path.
    :param freshness: True to skip entries whose destination file is at least as recent
    as the entry, false to always overwrite.
    :param selector: Function deciding from the entry path if it's extracted.
    """

    __slots__ = "flatten", "freshness", "selector"

    def __init__(self, flatten: bool, freshness: bool, selector: Callable[[str], bool]) -> None:
        self.flatten = flatten
        self.freshness = freshness
        self.selector = selector


FLAT_POLICY = ExtractPolicy(True, False, select_binary)
TREE_POLICY = ExtractPolicy(False, True, select_native)


def extract_natives(archive: Path, dst_dir: Path, policy: ExtractPolicy = FLAT_POLICY, *,
    watcher: Optional[Watcher] = None
) -> int:
    """Extract the native entries of the given archive into the destination directory.

    Problems are reported to the watcher and never raised: an unreadable archive gives
    no entry and a failing entry is skipped.

    :return: The number of entries actually copied, zero is a valid result.
    """

    watcher = Watcher() if watcher is None else watcher
    count = 0

    try:
        native_zip = ZipFile(archive, "r")
    except (OSError, BadZipFile) as e:
        watcher.handle(NativeArchiveErrorEvent(archive, e))
        return 0

    dst_root = dst_dir.resolve()

    with native_zip:
        for entry in native_zip.infolist():

            if entry.is_dir() or not policy.selector(entry.filename):
                continue

            if policy.flatten:
                dst_file = dst_root / entry.filename.rsplit("/", 1)[-1]
            else:
                dst_file = (dst_root / entry.filename).resolve()
                if dst_root not in dst_file.parents:
                    watcher.handle(NativeEntryErrorEvent(archive, entry.filename, ValueError("entry path escapes destination")))
                    continue

            try:

                if policy.freshness and _is_fresh(entry, dst_file):
                    continue

                dst_file.parent.mkdir(parents=True, exist_ok=True)
                with native_zip.open(entry, "r") as src_fp:
                    with dst_file.open("wb") as dst_fp:
                        shutil.copyfileobj(src_fp, dst_fp)

            except (OSError, BadZipFile) as e:
                watcher.handle(NativeEntryErrorEvent(archive, entry.filename, e))
                continue

            count += 1

    watcher.handle(NativesExtractedEvent(archive, count))
    return count


def _is_fresh(entry: ZipInfo, dst_file: Path) -> bool:
    """Return true if the destination exists and is not older than the entry.
    """
    try:
        dst_mtime = dst_file.stat().st_mtime
    except FileNotFoundError:
        return False
    return time.mktime(entry.date_time + (0, 0, -1)) <= dst_mtime


class NativesExtractedEvent:
    """Event triggered when an archive has been processed, with the number of copied
    entries.
    """
    __slots__ = "archive", "count"
    def __init__(self, archive: Path, count: int) -> None:
        self.archive = archive
        self.count = count

class NativeArchiveErrorEvent:
    """Event triggered when an archive cannot be opened.
    """
    __slots__ = "archive", "error"
    def __init__(self, archive: Path, error: Exception) -> None:
        self.archive = archive
        self.error = error

class NativeEntryErrorEvent:
    """Event triggered when a single entry failed to be copied.
    """
    __slots__ = "archive", "entry_path", "error"
    def __init__(self, archive: Path, entry_path: str, error: Exception) -> None:
        self.archive = archive
        self.entry_path = entry_path
        self.error = error
