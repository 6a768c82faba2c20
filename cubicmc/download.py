"""Definition of the concurrent, retrying and verified download pipeline.

Every entry is fetched by one of a fixed number of worker threads, with up to three
attempts per entry. A non-2xx status, a connection fault or a digest mismatch are
transient failures, the entry only fails once its attempts are exhausted. Results are
sent back to the calling thread which is the only one accumulating counters.
"""

from http.client import HTTPConnection, HTTPSConnection, HTTPException
from threading import Thread, Event
from queue import Queue, Empty
from pathlib import Path
import urllib.parse
import hashlib
import time

from .http import ssl_context, user_agent
from .util import calc_file_sha1, sha1_equals

from typing import Optional, Dict, List, Tuple, Union, Iterator


# Maximum tries count for a single entry.
MAX_TRY_COUNT = 3
# Fixed delay (seconds) between two tries after a transport failure.
RETRY_DELAY = 2.0
# Deadlock guard (seconds) on the time taken to drain a whole download list.
DRAIN_TIMEOUT = 3600.0
# Maximum number of redirections followed within a single try.
MAX_REDIRECTS = 5


class DownloadEntry:
    """A download entry for the download pipeline.
    """

    __slots__ = "url", "size", "sha1", "dst", "name"

    def __init__(self,
        url: str,
        dst: Path, *,
        size: Optional[int] = None,
        sha1: Optional[str] = None,
        name: Optional[str] = None
    ) -> None:
        self.url = url
        self.dst = dst
        self.size = size
        self.sha1 = sha1
        self.name = url if name is None else name

    def __repr__(self) -> str:
        return f"<DownloadEntry {self.name}>"

    def __hash__(self) -> int:
        # Size and sha1 are part of the hash, this means that once added to a
        # dictionary, these attributes should not be modified.
        return hash((self.url, self.dst, self.size, self.sha1))

    def __eq__(self, other):
        return isinstance(other, DownloadEntry) and \
            (self.url, self.dst, self.size, self.sha1) == \
            (other.url, other.dst, other.size, other.sha1)


class DownloadResult:
    """Base class for download result yielded by `DownloadList.download` function.
    """
    __slots__ = "thread_id", "entry"
    def __init__(self, thread_id: int, entry: DownloadEntry) -> None:
        self.thread_id = thread_id
        self.entry = entry


class DownloadResultProgress(DownloadResult):
    """Subclass of result when a file's download has been successful.
    """
    __slots__ = "size",
    def __init__(self, thread_id: int, entry: DownloadEntry, size: int) -> None:
        super().__init__(thread_id, entry)
        self.size = size


class DownloadResultError(DownloadResult):
    """Subclass of result when a file's download has failed, the error code is indicated
    and the optional original error is given (for connection errors), as well as the
    last HTTP status if relevant.
    """

    CONNECTION = "connection"
    HTTP_STATUS = "http_status"
    INVALID_SIZE = "invalid_size"
    INVALID_SHA1 = "invalid_sha1"
    CANCELLED = "cancelled"

    __slots__ = "code", "origin", "status"

    def __init__(self,
        thread_id: int,
        entry: DownloadEntry,
        code: str,
        origin: Optional[Exception],
        status: Optional[int] = None
    ) -> None:
        super().__init__(thread_id, entry)
        self.code = code
        self.origin = origin
        self.status = status

    def __repr__(self) -> str:
        return f"<DownloadResultError {self.entry.name}: {self.code}>"


class DownloadFailedError(Exception):
    """Raised by `fetch` when an entry could not be downloaded after all its tries, the
    error code is one of the `DownloadResultError` codes.
    """

    def __init__(self,
        entry: DownloadEntry,
        code: str,
        origin: Optional[Exception],
        status: Optional[int] = None
    ) -> None:
        self.entry = entry
        self.code = code
        self.origin = origin
        self.status = status

    def __str__(self) -> str:
        reason = self.code
        if self.status is not None:
            reason += f" (status {self.status})"
        elif self.origin is not None:
            reason += f" ({self.origin})"
        return f"{self.entry.name}: {reason}"


class DownloadReport:
    """Accumulator for the outcome of a download phase. A report is owned by the caller
    of a phase and only updated from the thread consuming the results.
    """

    __slots__ = "success", "failed", "skipped", "extracted", "errors"

    def __init__(self) -> None:
        self.success = 0
        self.failed = 0
        self.skipped = 0
        self.extracted = 0
        self.errors: List[DownloadResultError] = []

    @property
    def total(self) -> int:
        return self.success + self.failed + self.skipped

    def add_result(self, result: DownloadResult) -> None:
        """Account a result coming out of a download list.
        """
        if isinstance(result, DownloadResultError):
            self.failed += 1
            self.errors.append(result)
        else:
            self.success += 1

    def merge(self, other: "DownloadReport") -> None:
        """Add the counters of another report to this one.
        """
        self.success += other.success
        self.failed += other.failed
        self.skipped += other.skipped
        self.extracted += other.extracted
        self.errors.extend(other.errors)

    def __repr__(self) -> str:
        return f"<DownloadReport success: {self.success}, failed: {self.failed}, skipped: {self.skipped}>"


class DownloadList:
    """A download list, composed of entries that can be downloaded all at once in batch
    with multithreading.
    """

    __slots__ = "entries", "count", "size"

    def __init__(self):
        self.entries: List[DownloadEntry] = []
        self.count = 0
        self.size = 0

    def clear(self) -> None:
        """Clear the download entry, removing all entries and computed count/size.
        """
        self.entries.clear()
        self.count = 0
        self.size = 0

    def add(self, entry: DownloadEntry, *, verify: bool = False, verify_sha1: bool = False) -> bool:
        """Add a download entry to this list.

        :param entry: The entry to add.
        :param verify: Set to true in order to check if the file exists and has the same
        size has the given entry, in such case the entry is not added.
        :param verify_sha1: When verifying, also compare the digest of the existing file
        to the entry's sha1, if any.
        :return: True if the entry has been added, false if it is already satisfied.
        """

        _parse_url(entry.url)

        if verify and _is_satisfied(entry, verify_sha1):
            return False

        self.entries.append(entry)
        self.count += 1
        if entry.size is not None:
            self.size += entry.size

        return True

    def download(self, threads_count: int, *,
        timeout: float = DRAIN_TIMEOUT,
        retry_delay: float = RETRY_DELAY,
        max_try_count: int = MAX_TRY_COUNT
    ) -> Iterator[Tuple[int, DownloadResult]]:
        """Execute the download.

        The returned iterator is exhausted once every entry has a result, this is how
        the list is drained. If the timeout elapses before, outstanding entries are
        cancelled and yielded as `DownloadResultError.CANCELLED` results.

        :param threads_count: The number of threads to run the download on. At least
        one thread is required.
        :param timeout: Upper bound in seconds on the whole download.
        :param retry_delay: Delay in seconds between tries after a transport failure.
        :param max_try_count: Maximum tries count for a single entry.
        :return: This function returns an iterator that yields a tuple that contain the
        total number of results and the new result that came in.
        """

        if threads_count < 1:
            raise ValueError("threads count must be at least 1")

        # Sort our entries in order to download big files first, this is allows better
        # parallelization at start and avoid too much blocking at the end of the download.
        # Note that entries without size are considered 1 Mio, to download early.
        self.entries.sort(key=lambda e: e.size or 1048576, reverse=True)

        entries_count = len(self.entries)
        if not entries_count:
            return

        # Do not create more thread than available entries.
        threads_count = min(threads_count, entries_count)

        cancel = Event()
        entries_queue = Queue()
        result_queue = Queue()

        for th_id in range(threads_count):
            th = Thread(target=_download_thread_wrapper,
                        args=(th_id, entries_queue, result_queue, cancel, max_try_count, retry_delay),
                        daemon=True,
                        name=f"Download Thread {th_id}")
            th.start()

        pending: Dict[int, DownloadEntry] = {}
        for entry in self.entries:
            pending[id(entry)] = entry
            entries_queue.put(entry)

        deadline = time.monotonic() + timeout
        result_count = 0
        crash = None

        try:

            while result_count < entries_count:

                try:
                    result = result_queue.get(timeout=max(0.0, deadline - time.monotonic()))
                except Empty:
                    break

                if isinstance(result, _DownloadThreadCrash):
                    crash = result
                    break

                pending.pop(id(result.entry), None)
                result_count += 1
                yield result_count, result

            if crash is None and len(pending):
                # The deadline has elapsed, abandon all outstanding entries.
                cancel.set()
                for entry in list(pending.values()):
                    result_count += 1
                    yield result_count, DownloadResultError(-1, entry, DownloadResultError.CANCELLED,
                                                            TimeoutError(f"download not drained after {timeout} seconds"))
                pending.clear()

        finally:

            cancel.set()

            # Drop entries that no thread has picked, then send 'threads_count'
            # sentinels. We intentionally don't join threads because these are daemon
            # ones and any in-flight transfer is abandoned.
            try:
                while True:
                    entries_queue.get_nowait()
            except Empty:
                pass

            for _ in range(threads_count):
                entries_queue.put(None)

        if crash is not None:
            raise ValueError(f"unexpected crash from thread {crash.thread_id}", crash.origin)


class Fetcher:
    """A fetcher downloads entries one at a time, retrying them on transient failures.
    Each download thread has its own fetcher, which keeps connections alive per host.
    """

    def __init__(self, *,
        max_try_count: int = MAX_TRY_COUNT,
        retry_delay: float = RETRY_DELAY,
        cancel: Optional[Event] = None
    ) -> None:
        self.max_try_count = max(1, max_try_count)
        self.retry_delay = retry_delay
        self.cancel = cancel
        self.conn_cache: Dict[Tuple[bool, str], Union[HTTPConnection, HTTPSConnection]] = {}
        self.buffer = memoryview(bytearray(65536))
        self.ctx = None

    def close(self) -> None:
        """Close all cached connections.
        """
        for conn in self.conn_cache.values():
            conn.close()
        self.conn_cache.clear()

    def fetch(self, entry: DownloadEntry) -> int:
        """Download the given entry to its destination, verifying its size and sha1 if
        they are specified.

        :return: The size of the downloaded file.
        :raises DownloadFailedError: When all tries have failed, the error of the last
        try is given.
        """

        failure: Optional[_TryFailure] = None

        for try_num in range(1, self.max_try_count + 1):

            if self.cancel is not None and self.cancel.is_set():
                failure = _TryFailure(DownloadResultError.CANCELLED)
                break

            try:
                return self._fetch_try(entry)
            except _TryFailure as error:
                failure = error

            if failure.code == DownloadResultError.CANCELLED:
                self.close()
                break

            # Digest mismatches are retried immediately, transport failures wait.
            if try_num < self.max_try_count and failure.code in (DownloadResultError.CONNECTION, DownloadResultError.HTTP_STATUS):
                if self.cancel is not None:
                    self.cancel.wait(self.retry_delay)
                else:
                    time.sleep(self.retry_delay)

        assert failure is not None
        raise DownloadFailedError(entry, failure.code, failure.origin, failure.status)

    def _fetch_try(self, entry: DownloadEntry) -> int:
        """Internal function for a single try, following redirections.
        """

        url = entry.url
        redirect_count = 0

        while True:

            https, host, port, target = _parse_url(url)
            conn_key = (https, host)

            # Get connection from cache or create it.
            conn = self.conn_cache.get(conn_key)
            if conn is None:
                if https:
                    if self.ctx is None:
                        self.ctx = ssl_context()
                    conn = HTTPSConnection(host, port, context=self.ctx)
                else:
                    conn = HTTPConnection(host, port)
                self.conn_cache[conn_key] = conn

            try:

                conn.request("GET", target, headers={"User-Agent": user_agent})
                res = conn.getresponse()

                if res.status in (301, 302, 303, 307, 308) and redirect_count < MAX_REDIRECTS:
                    location = res.headers.get("location")
                    self._skip_body(res)
                    if location is not None:
                        url = urllib.parse.urljoin(url, location)
                        redirect_count += 1
                        continue

                if not 200 <= res.status < 300:
                    # Skip all bytes in the stream to allow further requests.
                    self._skip_body(res)
                    raise _TryFailure(DownloadResultError.HTTP_STATUS, status=res.status)

                return self._write_body(entry, res)

            except (ConnectionError, OSError, HTTPException) as e:
                # On errors, we just throw away the old connection and create a new one.
                conn.close()
                self.conn_cache.pop(conn_key, None)
                raise _TryFailure(DownloadResultError.CONNECTION, e)

    def _skip_body(self, res) -> None:
        while res.readinto(self.buffer):
            pass

    def _write_body(self, entry: DownloadEntry, res) -> int:
        """Stream the response body to the entry's destination, overwriting any previous
        content, and check the result.
        """

        buffer = self.buffer
        sha1 = None if entry.sha1 is None else hashlib.sha1()
        size = 0

        entry.dst.parent.mkdir(parents=True, exist_ok=True)

        try:

            with entry.dst.open("wb") as dst_fp:
                while True:

                    if self.cancel is not None and self.cancel.is_set():
                        raise _TryFailure(DownloadResultError.CANCELLED)

                    read_len = res.readinto(buffer)
                    if not read_len:
                        break

                    size += read_len
                    buffer_view = buffer[:read_len]
                    if sha1 is not None:
                        sha1.update(buffer_view)
                    dst_fp.write(buffer_view)

            if entry.size is not None and size != entry.size:
                raise _TryFailure(DownloadResultError.INVALID_SIZE)
            if sha1 is not None and not sha1_equals(sha1.hexdigest(), entry.sha1):
                raise _TryFailure(DownloadResultError.INVALID_SHA1)

            return size

        except _TryFailure as error:
            # Partial files of cancelled downloads are left in place, untrusted.
            if error.code != DownloadResultError.CANCELLED:
                _unlink(entry.dst)
            raise
        except (ConnectionError, OSError, HTTPException):
            _unlink(entry.dst)
            raise


def fetch(entry: DownloadEntry, *,
    max_try_count: int = MAX_TRY_COUNT,
    retry_delay: float = RETRY_DELAY
) -> int:
    """Download a single entry on the calling thread, see `Fetcher.fetch`.
    """
    fetcher = Fetcher(max_try_count=max_try_count, retry_delay=retry_delay)
    try:
        return fetcher.fetch(entry)
    finally:
        fetcher.close()


class _TryFailure(Exception):
    """Internal failure of a single try.
    """
    def __init__(self, code: str, origin: Optional[Exception] = None, status: Optional[int] = None) -> None:
        self.code = code
        self.origin = origin
        self.status = status


class _DownloadThreadCrash:
    """Unexpected exception happening in a thread, this is the result of a bad logic
    from programmer.
    """
    __slots__ = "thread_id", "origin",
    def __init__(self, thread_id: int, origin: Optional[Exception]) -> None:
        self.thread_id = thread_id
        self.origin = origin


def _download_thread_wrapper(
    thread_id: int,
    entries_queue: Queue,
    result_queue: Queue,
    cancel: Event,
    max_try_count: int,
    retry_delay: float
) -> None:
    """Wrapper for the download thread that basically ensures that any unexpected error
    sends a signal (DownloadThreadCrash) to the master to signal the crash.
    """
    try:
        _download_thread(thread_id, entries_queue, result_queue, cancel, max_try_count, retry_delay)
    except Exception as e:
        result_queue.put(_DownloadThreadCrash(thread_id, e))


def _download_thread(
    thread_id: int,
    entries_queue: Queue,
    result_queue: Queue,
    cancel: Event,
    max_try_count: int,
    retry_delay: float
) -> None:
    """This function is internally used for multi-threaded download.

    :param entries_queue: Where entries to download are received.
    :param result_queue: Where threads send results.
    """

    fetcher = Fetcher(max_try_count=max_try_count, retry_delay=retry_delay, cancel=cancel)

    try:
        while True:

            entry: Optional[DownloadEntry] = entries_queue.get()

            # None is a sentinel to stop the thread, it should be consumed ONCE.
            if entry is None:
                break

            try:
                size = fetcher.fetch(entry)
            except DownloadFailedError as error:
                result_queue.put(DownloadResultError(thread_id, entry, error.code, error.origin, error.status))
            else:
                result_queue.put(DownloadResultProgress(thread_id, entry, size))

    finally:
        fetcher.close()


def _parse_url(url: str) -> Tuple[bool, str, Optional[int], str]:
    """Internal function to split an URL for the connection cache, only HTTP/HTTPS are
    supported.

    :return: A tuple (https, host, port, target) where target is the path and query.
    """

    url_parsed = urllib.parse.urlparse(url)
    if url_parsed.scheme not in ("http", "https"):
        raise ValueError(f"unsupported scheme '{url_parsed.scheme}://' from url {url}")

    target = url_parsed.path or "/"
    if url_parsed.query:
        target += f"?{url_parsed.query}"

    return url_parsed.scheme == "https", url_parsed.hostname or "", url_parsed.port, target


def _is_satisfied(entry: DownloadEntry, verify_sha1: bool) -> bool:
    """Return true if the destination of the entry is already present with the expected
    size (and sha1 if requested).
    """

    try:
        if not entry.dst.is_file():
            return False
        if entry.size is not None and entry.size != entry.dst.stat().st_size:
            return False
        if verify_sha1 and entry.sha1 is not None:
            return sha1_equals(calc_file_sha1(entry.dst), entry.sha1)
    except OSError:
        return False

    return True


def _unlink(file: Path) -> None:
    try:
        file.unlink()
    except FileNotFoundError:
        pass  # Not a problem if the file isn't present.
