"""
pytest configuration and fixtures.
"""

import logging
import socket
import threading
import time
from typing import Callable, Generator, List

import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from cgiserver import HTTPServer, ServerConfig
from cgiserver.handlers import (
    DirectoryLister,
    PathGuard,
    ScriptExecutor,
    StaticFileHandler,
)
from cgiserver.http.router import RequestRouter


# =============================================================================
# SCRIPTS
# =============================================================================

SCRIPTS = {
    # Echoes what the server put in its environment
    "echo": (
        "#!/bin/sh\n"
        "printf 'Content-Type: text/plain\\n'\n"
        "printf '\\n'\n"
        "printf 'method=%s\\n' \"$Method\"\n"
        "printf 'path=%s\\n' \"$Path\"\n"
        "printf 'a=%s\\n' \"$Query_a\"\n"
        "printf 'b=%s\\n' \"$Query_b\"\n"
        "printf 'token=%s\\n' \"$Token\"\n"
    ),
    # Fails with a message on stderr
    "fail": (
        "#!/bin/sh\n"
        "echo oops >&2\n"
        "exit 1\n"
    ),
    # Declares its own status line and headers
    "created": (
        "#!/bin/sh\n"
        "printf 'Status: 201 Made\\n'\n"
        "printf 'Content-Type: text/plain\\n'\n"
        "printf 'Content-Length: 999\\n'\n"
        "printf '\\n'\n"
        "printf 'created'\n"
    ),
    # Copies the request body back, no header block
    "cat": (
        "#!/bin/sh\n"
        "cat\n"
    ),
    # Outlives any sensible script timeout
    "slow": (
        "#!/bin/sh\n"
        "exec sleep 5\n"
    ),
}


# =============================================================================
# FILESYSTEM
# =============================================================================

@pytest.fixture
def web_root(tmp_path: Path) -> Path:
    """
    Root folder with a bit of everything:

        www/
        ├── index.html          "hi"
        ├── style.css
        ├── data.bin
        ├── notes.txt
        ├── docs/ (a.txt, b.txt, sub/)
        ├── forbidden/x
        ├── secret/key.txt
        ├── forbidden.html
        ├── .hidden
        └── scripts/ (echo, fail, created, cat, slow)
    """
    root = tmp_path / "www"
    root.mkdir()

    (root / "index.html").write_text("hi")
    (root / "style.css").write_text("body { color: red; }")
    (root / "data.bin").write_bytes(b"\x00\x01\x02")
    (root / "notes.txt").write_text("notes")

    docs = root / "docs"
    docs.mkdir()
    (docs / "b.txt").write_text("B")
    (docs / "a.txt").write_text("A")
    (docs / "sub").mkdir()

    (root / "forbidden").mkdir()
    (root / "forbidden" / "x").write_text("nope")
    (root / "secret").mkdir()
    (root / "secret" / "key.txt").write_text("hunter2")
    (root / "forbidden.html").write_text("<p>no</p>")
    (root / ".hidden").write_text("h")

    scripts = root / "scripts"
    scripts.mkdir()
    for name, body in SCRIPTS.items():
        script = scripts / name
        script.write_text(body)
        script.chmod(0o755)

    return root


@pytest.fixture
def guard(web_root: Path) -> PathGuard:
    return PathGuard(web_root)


@pytest.fixture
def router(guard: PathGuard) -> RequestRouter:
    """Router over web_root with a short script timeout."""
    return RequestRouter(
        guard,
        DirectoryLister(guard.root_dir),
        StaticFileHandler(),
        ScriptExecutor(timeout=0.5),
    )


# =============================================================================
# LIVE SERVER
# =============================================================================

@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(('127.0.0.1', 0))
        return s.getsockname()[1]


class TestServer:
    """Test server helper that runs in a background thread."""

    __test__ = False  # Not a test class

    def __init__(self, server: HTTPServer):
        self.server = server
        self._thread: threading.Thread = None

    @property
    def port(self) -> int:
        return self.server.address[1]

    def start(self):
        """Start server in background thread."""
        self._thread = threading.Thread(target=self.server.run, daemon=True)
        self._thread.start()

        if not self.server.wait_until_ready(timeout=5.0):
            raise RuntimeError("Server failed to start")

    def stop(self):
        """Stop the server."""
        self.server.shutdown()

        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=10.0)

    def request(self, data: bytes, half_close: bool = False, timeout: float = 10.0) -> bytes:
        """
        Send raw bytes and read until the server closes the connection.

        half_close shuts down our write side after sending, the way a client
        that has nothing more to say would.
        """
        with socket.create_connection(("127.0.0.1", self.port), timeout=timeout) as s:
            s.sendall(data)
            if half_close:
                s.shutdown(socket.SHUT_WR)

            chunks = []
            while True:
                chunk = s.recv(65536)
                if not chunk:
                    break
                chunks.append(chunk)
            return b"".join(chunks)


@pytest.fixture
def start_server(web_root: Path, free_port: int) -> Generator[Callable[..., TestServer], None, None]:
    """Factory: start a server over web_root with config overrides."""
    started: List[TestServer] = []

    def start(**overrides) -> TestServer:
        settings = dict(
            host="127.0.0.1",
            port=free_port,
            root_dir=str(web_root),
            min_workers=2,
            max_workers=4,
            timeout=5.0,
            script_timeout=2.0,
            log_level="WARNING",
        )
        settings.update(overrides)
        test_srv = TestServer(HTTPServer(ServerConfig(**settings)))
        test_srv.start()
        started.append(test_srv)
        return test_srv

    yield start

    for test_srv in started:
        test_srv.stop()


@pytest.fixture
def test_server(start_server) -> TestServer:
    """A running server over web_root with test defaults."""
    return start_server()


# =============================================================================
# ACCESS LOG
# =============================================================================

class RecordingHandler(logging.Handler):
    """Keeps formatted log messages in memory."""

    def __init__(self):
        super().__init__(level=logging.DEBUG)
        self.messages: List[str] = []
        self._lock_messages = threading.Lock()

    def emit(self, record: logging.LogRecord):
        with self._lock_messages:
            self.messages.append(record.getMessage())

    def wait_for(self, count: int, timeout: float = 5.0) -> List[str]:
        deadline = time.time() + timeout
        while time.time() < deadline:
            with self._lock_messages:
                if len(self.messages) >= count:
                    return list(self.messages)
            time.sleep(0.01)
        return list(self.messages)


@pytest.fixture
def access_log() -> Generator[RecordingHandler, None, None]:
    """Records everything written to the cgiserver.access logger."""
    access = logging.getLogger("cgiserver.access")
    handler = RecordingHandler()
    previous_level = access.level
    access.addHandler(handler)
    access.setLevel(logging.INFO)

    yield handler

    access.removeHandler(handler)
    access.setLevel(previous_level)


@pytest.fixture(autouse=True)
def restore_loggers() -> Generator[None, None, None]:
    """Undo the logging setup HTTPServer.run() does, after every test."""
    access = logging.getLogger("cgiserver.access")
    package = logging.getLogger("cgiserver")
    saved = (list(access.handlers), access.level, access.propagate, package.level)

    yield

    handlers, access_level, propagate, package_level = saved
    access.handlers[:] = handlers
    access.setLevel(access_level)
    access.propagate = propagate
    package.setLevel(package_level)
