"""
=============================================================================
SCRIPT EXECUTOR
=============================================================================

Runs files under <root>/scripts as external programs, CGI-style, and
turns what they print into the HTTP response.

=============================================================================
THE SCRIPT INTERFACE
=============================================================================

    POST /scripts/echo.sh?lang=en HTTP/1.0
    User-Agent: curl/8.0
    Content-Length: 7

    a=1&b=2

becomes one child process with:

    ┌─────────────────────────────────────────────────────────────────────┐
    │  ENVIRONMENT (on top of the server's own environment)               │
    │                                                                     │
    │    User-Agent=curl/8.0          ← each request header, verbatim     │
    │    Content-Length=7                                                 │
    │    Method=POST                                                      │
    │    Path=/scripts/echo.sh                                            │
    │    Query_lang=en                ← query string pairs                │
    │    Query_a=1                    ← form body pairs (win on clashes)  │
    │    Query_b=2                                                        │
    │                                                                     │
    │  STDIN                                                              │
    │    a=1&b=2                      ← raw body, then EOF                │
    └─────────────────────────────────────────────────────────────────────┘

and its output is read back as:

    Content-Type: text/plain        ← optional header block
    Status: 201 Created             ← sets the response status
                                    ← first blank line ends the headers
    created!                        ← body

Without a blank line the whole of stdout is the body.

=============================================================================
EXIT STATUS
=============================================================================

    exit 0        → 200 OK (or the declared Status), script headers
                    merged after Connection: close
    exit != 0     → 500, body = the script's stderr
    cannot spawn  → ScriptExecutionError → 500
    too slow      → child killed, ScriptExecutionError → 500

=============================================================================
"""

import logging
import os
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional, Tuple

from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, ResponseBuilder, internal_error
from ..http.status_codes import HTTPStatus, parse_status


logger = logging.getLogger(__name__)


# Headers the server owns; a script cannot override them
_SERVER_HEADERS = frozenset({"connection", "content-length"})


class ScriptExecutionError(Exception):
    """The script could not be run to completion (spawn failure, timeout)."""


@dataclass(frozen=True)
class ScriptInvocation:
    """
    Everything needed to run one script, built once per request.

    Attributes:
        script: Canonical path of the executable
        env:    Complete child environment
        stdin:  Bytes written to the child's standard input
    """

    script: Path
    env: Dict[str, str]
    stdin: bytes = b""


@dataclass
class ScriptResult:
    """
    Outcome of a finished script.

    Attributes:
        exit_status: Process return code (negative if killed by a signal)
        headers:     Header block from stdout, in order of appearance
        body:        stdout after the header block
        stderr:      Everything the script wrote to stderr
    """

    exit_status: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    stderr: bytes = b""

    @property
    def success(self) -> bool:
        return self.exit_status == 0


def _valid_env_name(name: str) -> bool:
    return bool(name) and "=" not in name and "\0" not in name


def build_invocation(
    script: Path,
    request: HTTPRequest,
    base_env: Optional[Dict[str, str]] = None,
) -> ScriptInvocation:
    """
    Build the environment for a script request.

    Layers, later ones overriding earlier ones:

        1. base_env (the server's environment, so PATH etc. resolve)
        2. every request header, name as received
        3. Method, Path
        4. Query_<name> for each query string / form body pair

    Names the OS cannot carry (containing "=" or NUL) are skipped.
    """
    env = dict(os.environ if base_env is None else base_env)

    entries = list(request.headers.items())
    entries.append(("Method", request.method))
    entries.append(("Path", request.path))
    entries.extend((f"Query_{key}", value) for key, value in request.form_params.items())

    for name, value in entries:
        if not _valid_env_name(name) or "\0" in value:
            logger.debug("Skipping environment entry %r for %s", name, script)
            continue
        env[name] = value

    return ScriptInvocation(script=script, env=env, stdin=request.body)


def parse_script_output(stdout: bytes) -> Tuple[Dict[str, str], bytes]:
    """
    Split script stdout into (headers, body).

    The first empty line ("\\n" or "\\r\\n") ends the header block. If
    there is none, there are no headers and all of stdout is the body.
    Header lines without ":" are ignored; later duplicates win.

    Examples:
        >>> parse_script_output(b"Content-Type: text/plain\\n\\nhello")
        ({'Content-Type': 'text/plain'}, b'hello')
        >>> parse_script_output(b"just text")
        ({}, b'just text')
    """
    offset = 0
    header_lines = []

    while True:
        newline = stdout.find(b"\n", offset)
        if newline == -1:
            # No blank line anywhere: it is all body
            return {}, stdout

        line = stdout[offset:newline].rstrip(b"\r")
        offset = newline + 1
        if not line:
            break
        header_lines.append(line)

    headers: Dict[str, str] = {}
    for raw in header_lines:
        name, colon, value = raw.decode("utf-8", errors="replace").partition(":")
        name = name.strip()
        if not colon or not name:
            continue
        headers[name] = value.strip()

    return headers, stdout[offset:]


class ScriptExecutor:
    """
    Runs ScriptInvocations as child processes.

    Each call blocks the calling worker thread until the child exits, so
    scripts run concurrently only across connections.

    Example:
        executor = ScriptExecutor(timeout=10.0)
        result = executor.execute(build_invocation(path, request))
    """

    def __init__(self, timeout: Optional[float] = 30.0):
        """
        Args:
            timeout: Seconds before a running script is killed (None: wait
                     forever).
        """
        self.timeout = timeout

    def execute(self, invocation: ScriptInvocation) -> ScriptResult:
        """
        Run a script and capture its output.

        Raises:
            ScriptExecutionError: If the process cannot be spawned or does
                                  not finish within the timeout.
        """
        logger.debug("Executing %s", invocation.script)

        try:
            completed = subprocess.run(
                [str(invocation.script)],
                input=invocation.stdin,
                capture_output=True,
                env=invocation.env,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise ScriptExecutionError(
                f"Script {invocation.script} timed out after {e.timeout}s"
            ) from e
        except (OSError, ValueError) as e:
            raise ScriptExecutionError(
                f"Failed to start script {invocation.script}: {e}"
            ) from e

        headers, body = parse_script_output(completed.stdout)

        if completed.returncode != 0:
            logger.warning(
                "Script %s exited with status %d", invocation.script, completed.returncode
            )

        return ScriptResult(
            exit_status=completed.returncode,
            headers=headers,
            body=body,
            stderr=completed.stderr,
        )


def script_response(result: ScriptResult, version: str = "HTTP/1.0") -> HTTPResponse:
    """
    Turn a ScriptResult into the HTTP response.

        failure → 500 with stderr as the body
        success → Connection: close, then the script's headers, then body

    A "Status:" header sets the status line and is not sent on. Script
    Connection and Content-Length headers are dropped.
    """
    if not result.success:
        return internal_error(version, result.stderr)

    status: int = HTTPStatus.OK
    reason: Optional[str] = None

    builder = ResponseBuilder(version).close_connection()

    for name, value in result.headers.items():
        lowered = name.lower()
        if lowered == "status":
            parsed = parse_status(value)
            if parsed is None:
                logger.warning("Ignoring invalid Status header from script: %r", value)
            else:
                status, reason = parsed
            continue
        if lowered in _SERVER_HEADERS:
            continue
        builder.header(name, value)

    return builder.status(status, reason).body(result.body).build()
