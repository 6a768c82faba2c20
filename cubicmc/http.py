"""Transport of small JSON documents, such as the version manifest. Artifacts are
transferred by the download module, which shares the SSL context and user agent.
"""

from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen
import json
import ssl

import certifi

from . import LAUNCHER_NAME, LAUNCHER_VERSION

from typing import Any, Dict, Optional


user_agent = f"{LAUNCHER_NAME}/{LAUNCHER_VERSION}"


def ssl_context() -> ssl.SSLContext:
    return ssl.create_default_context(cafile=certifi.where())


class JsonResponse:
    """A successful response, its body is decoded on demand.
    """

    __slots__ = "status", "headers", "body"

    def __init__(self, status: int, headers: Dict[str, str], body: bytes) -> None:
        self.status = status
        self.headers = headers
        self.body = body

    def json(self) -> Any:
        return json.loads(self.body)


class HttpError(Exception):
    """Raised when a JSON document can't be retrieved. The status is 0 when no response
    has been received at all, for example when offline.
    """

    def __init__(self, url: str, status: int, reason: Any) -> None:
        self.url = url
        self.status = status
        self.reason = reason

    def __str__(self) -> str:
        return f"GET {self.url}: {self.status} ({self.reason})"


def get_json(url: str, *,
    headers: Optional[Dict[str, str]] = None,
    timeout: Optional[float] = None
) -> JsonResponse:
    """Request a JSON document.

    :raises HttpError: If the status is not 2xx or if the server can't be reached.
    """

    req_headers = {"Accept": "application/json", "User-Agent": user_agent}
    if headers is not None:
        req_headers.update(headers)

    kwargs = {}
    if url.startswith("https:"):
        kwargs["context"] = ssl_context()
    if timeout is not None:
        kwargs["timeout"] = timeout

    try:
        with urlopen(Request(url, headers=req_headers), **kwargs) as res:
            return JsonResponse(res.status, dict(res.getheaders()), res.read())
    except HTTPError as error:
        raise HttpError(url, error.code, error.reason)
    except URLError as error:
        raise HttpError(url, 0, error.reason)
