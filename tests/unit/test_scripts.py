"""
Unit tests for CGI-style script execution.
"""

import os
from pathlib import Path

import pytest

from cgiserver.handlers.scripts import (
    ScriptExecutionError,
    ScriptExecutor,
    ScriptResult,
    build_invocation,
    parse_script_output,
    script_response,
)
from cgiserver.http.request import parse_request

requires_sh = pytest.mark.skipif(not os.path.exists("/bin/sh"), reason="needs /bin/sh")


def post(target: str, body: bytes, headers: bytes = b"") -> bytes:
    return (
        f"POST {target} HTTP/1.0\r\n".encode()
        + headers
        + f"Content-Length: {len(body)}\r\n\r\n".encode()
        + body
    )


class TestBuildInvocation:
    """Tests for the script environment."""

    def test_request_variables(self):
        request = parse_request(b"GET /scripts/echo?a=1&b=two HTTP/1.0\r\n\r\n")
        invocation = build_invocation(Path("/srv/scripts/echo"), request, base_env={})

        assert invocation.env == {
            "Method": "GET",
            "Path": "/scripts/echo",
            "Query_a": "1",
            "Query_b": "two",
        }
        assert invocation.stdin == b""
        assert invocation.script == Path("/srv/scripts/echo")

    def test_headers_passed_verbatim(self):
        request = parse_request(b"GET /s HTTP/1.0\r\nX-Token: abc\r\nUser-Agent: t\r\n\r\n")
        env = build_invocation(Path("/s"), request, base_env={}).env

        assert env["X-Token"] == "abc"
        assert env["User-Agent"] == "t"

    def test_post_body_on_stdin_and_in_query_vars(self):
        request = parse_request(post("/s?a=query", b"a=body&c=3"))
        invocation = build_invocation(Path("/s"), request, base_env={})

        assert invocation.stdin == b"a=body&c=3"
        assert invocation.env["Query_a"] == "body"
        assert invocation.env["Query_c"] == "3"
        assert invocation.env["Method"] == "POST"

    def test_inherits_base_environment(self):
        request = parse_request(b"GET /s HTTP/1.0\r\n\r\n")
        env = build_invocation(Path("/s"), request, base_env={"PATH": "/bin"}).env

        assert env["PATH"] == "/bin"

    def test_request_values_override_base(self):
        request = parse_request(b"GET /s HTTP/1.0\r\n\r\n")
        env = build_invocation(Path("/s"), request, base_env={"Method": "stale"}).env

        assert env["Method"] == "GET"

    def test_defaults_to_process_environment(self, monkeypatch):
        monkeypatch.setenv("CGISERVER_TEST_MARKER", "1")
        request = parse_request(b"GET /s HTTP/1.0\r\n\r\n")

        assert build_invocation(Path("/s"), request).env["CGISERVER_TEST_MARKER"] == "1"

    def test_unrepresentable_entries_skipped(self):
        request = parse_request(b"GET /s?a%3Db=1&ok=2&nul=x%00y HTTP/1.0\r\n\r\n")
        env = build_invocation(Path("/s"), request, base_env={}).env

        assert "Query_a=b" not in env
        assert "Query_nul" not in env
        assert env["Query_ok"] == "2"


class TestParseScriptOutput:
    """Tests for splitting stdout into headers and body."""

    def test_headers_and_body(self):
        headers, body = parse_script_output(b"Content-Type: text/plain\nX-A: 1\n\nhello\n")

        assert headers == {"Content-Type": "text/plain", "X-A": "1"}
        assert body == b"hello\n"

    def test_crlf(self):
        headers, body = parse_script_output(b"Content-Type: text/plain\r\n\r\nhello")

        assert headers == {"Content-Type": "text/plain"}
        assert body == b"hello"

    def test_no_blank_line_means_no_headers(self):
        assert parse_script_output(b"just text\nmore text") == ({}, b"just text\nmore text")

    def test_leading_blank_line(self):
        assert parse_script_output(b"\nbody") == ({}, b"body")

    def test_empty_output(self):
        assert parse_script_output(b"") == ({}, b"")

    def test_body_keeps_later_blank_lines(self):
        _, body = parse_script_output(b"A: 1\n\nline\n\nline\n")
        assert body == b"line\n\nline\n"

    def test_malformed_header_lines_ignored(self):
        headers, _ = parse_script_output(b"garbage\nA: 1\n\nbody")
        assert headers == {"A": "1"}


class TestScriptResponse:
    """Tests for turning a ScriptResult into a response."""

    def test_success(self):
        result = ScriptResult(0, {"Content-Type": "text/plain"}, b"hello")
        data = script_response(result).to_bytes()

        assert data == (
            b"HTTP/1.0 200 OK\r\n"
            b"Connection: close\r\n"
            b"Content-Type: text/plain\r\n"
            b"Content-Length: 5\r\n"
            b"\r\n"
            b"hello"
        )

    def test_status_header(self):
        result = ScriptResult(0, {"Status": "201 Made", "X-A": "1"}, b"")
        response = script_response(result, "HTTP/1.1")

        assert response.status_line == "HTTP/1.1 201 Made"
        assert "Status" not in response.headers
        assert response.headers["X-A"] == "1"

    def test_status_code_only(self):
        response = script_response(ScriptResult(0, {"Status": "404"}))
        assert response.status_line == "HTTP/1.0 404 Not Found"

    def test_invalid_status_ignored(self):
        response = script_response(ScriptResult(0, {"Status": "nope"}))
        assert response.status == 200

    def test_server_headers_not_overridable(self):
        result = ScriptResult(0, {"Connection": "keep-alive", "Content-Length": "999"}, b"abc")
        data = script_response(result).to_bytes()

        assert b"Connection: close\r\n" in data
        assert b"keep-alive" not in data
        assert b"Content-Length: 3\r\n" in data
        assert b"999" not in data

    def test_failure_returns_stderr(self):
        result = ScriptResult(1, {"Content-Type": "text/plain"}, b"partial", b"oops\n")
        response = script_response(result)

        assert response.status == 500
        assert response.body == b"oops\n"
        assert "Content-Type" not in response.headers

    def test_success_property(self):
        assert ScriptResult(0).success
        assert not ScriptResult(2).success
        assert not ScriptResult(-9).success


@requires_sh
class TestScriptExecutor:
    """Tests that run real scripts from the web_root fixture."""

    def test_environment_reaches_script(self, web_root: Path):
        request = parse_request(
            b"GET /scripts/echo?a=1&b=2 HTTP/1.0\r\nToken: abc\r\n\r\n"
        )
        invocation = build_invocation(web_root / "scripts" / "echo", request)
        result = ScriptExecutor(timeout=5.0).execute(invocation)

        assert result.success
        assert result.headers == {"Content-Type": "text/plain"}
        assert result.body == (
            b"method=GET\n"
            b"path=/scripts/echo\n"
            b"a=1\n"
            b"b=2\n"
            b"token=abc\n"
        )

    def test_stdin_is_request_body(self, web_root: Path):
        request = parse_request(post("/scripts/cat", b"hello world"))
        invocation = build_invocation(web_root / "scripts" / "cat", request)
        result = ScriptExecutor(timeout=5.0).execute(invocation)

        assert result.success
        assert result.headers == {}
        assert result.body == b"hello world"

    def test_non_zero_exit(self, web_root: Path):
        request = parse_request(b"GET /scripts/fail HTTP/1.0\r\n\r\n")
        invocation = build_invocation(web_root / "scripts" / "fail", request)
        result = ScriptExecutor(timeout=5.0).execute(invocation)

        assert result.exit_status == 1
        assert result.stderr == b"oops\n"

    def test_timeout(self, web_root: Path):
        request = parse_request(b"GET /scripts/slow HTTP/1.0\r\n\r\n")
        invocation = build_invocation(web_root / "scripts" / "slow", request)

        with pytest.raises(ScriptExecutionError):
            ScriptExecutor(timeout=0.2).execute(invocation)

    def test_not_executable(self, web_root: Path):
        script = web_root / "scripts" / "plain"
        script.write_text("#!/bin/sh\necho hi\n")
        script.chmod(0o644)
        request = parse_request(b"GET /scripts/plain HTTP/1.0\r\n\r\n")

        with pytest.raises(ScriptExecutionError):
            ScriptExecutor().execute(build_invocation(script, request))
