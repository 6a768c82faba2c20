from http.server import ThreadingHTTPServer, BaseHTTPRequestHandler
from collections import defaultdict
from threading import Thread
import time

import pytest

from typing import Dict, List, Optional


def pytest_addoption(parser):
    parser.addoption("--runslow", action="store_true", default=False, help="run slow tests")

def pytest_configure(config):
    config.addinivalue_line("markers", "slow: mark test as slow to run")

def pytest_collection_modifyitems(config, items):

    if config.getoption("--runslow"):
        return

    skip_slow = pytest.mark.skip(reason="need --runslow option to run")
    for item in items:
        if "slow" in item.keywords:
            item.add_marker(skip_slow)


class Response:
    """A canned response of the local file server.
    """

    __slots__ = "status", "body", "headers", "delay"

    def __init__(self, status: int = 200, body: bytes = b"", headers: Optional[Dict[str, str]] = None, delay: float = 0.0) -> None:
        self.status = status
        self.body = body
        self.headers = headers or {}
        self.delay = delay


class FileServer:
    """A local HTTP server serving sequences of canned responses per path, the last
    response of a sequence is repeated. Every request is counted in `hits`.
    """

    def __init__(self) -> None:
        self.routes: Dict[str, List[Response]] = {}
        self.hits: Dict[str, int] = defaultdict(int)
        self.server = ThreadingHTTPServer(("127.0.0.1", 0), _make_handler(self))
        self.thread = Thread(target=self.server.serve_forever, daemon=True)

    def route(self, path: str, *responses: Response) -> str:
        self.routes[path] = list(responses)
        return self.url(path)

    def url(self, path: str) -> str:
        host, port = self.server.server_address[:2]
        return f"http://{host}:{port}{path}"

    def next_response(self, path: str) -> Response:
        self.hits[path] += 1
        responses = self.routes.get(path)
        if not responses:
            return Response(404)
        return responses.pop(0) if len(responses) > 1 else responses[0]

    def start(self) -> None:
        self.thread.start()

    def stop(self) -> None:
        self.server.shutdown()
        self.server.server_close()


def _make_handler(file_server: FileServer):

    class Handler(BaseHTTPRequestHandler):

        def do_GET(self):

            res = file_server.next_response(self.path)
            if res.delay:
                time.sleep(res.delay)

            self.send_response(res.status)
            for name, value in res.headers.items():
                self.send_header(name, value)
            self.send_header("Content-Length", str(len(res.body)))
            self.end_headers()
            if res.body:
                self.wfile.write(res.body)

        def log_message(self, format, *args):
            pass

    return Handler


@pytest.fixture
def file_server():
    """This fixture runs a local file server for the duration of a test.
    """
    server = FileServer()
    server.start()
    yield server
    server.stop()


@pytest.fixture
def context(tmp_path):
    """This fixture is used to create a game's install context in a temporary directory.
    """
    from cubicmc.standard import Context
    return Context(tmp_path / "game")
