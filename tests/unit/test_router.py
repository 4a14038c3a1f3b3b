"""
Unit tests for request routing.
"""

import os
from pathlib import Path

import pytest

from cgiserver.http.request import HTTPRequest, parse_request
from cgiserver.http.router import RequestRouter

requires_sh = pytest.mark.skipif(not os.path.exists("/bin/sh"), reason="needs /bin/sh")


def make_request(method: str, target: str, version: str = "HTTP/1.0", body: bytes = b"") -> HTTPRequest:
    """Helper to create a request for testing."""
    raw = f"{method} {target} {version}\r\n".encode()
    if body:
        raw += f"Content-Length: {len(body)}\r\n".encode()
    return parse_request(raw + b"\r\n" + body, ("127.0.0.1", 40000))


class TestMethods:
    """Only GET and POST are served."""

    @pytest.mark.parametrize("method", ["DELETE", "PUT", "HEAD", "OPTIONS", "get"])
    def test_other_methods(self, router: RequestRouter, method: str):
        data = router(make_request(method, "/index.html", "HTTP/1.1")).to_bytes()
        assert data == b"HTTP/1.1 405 Method Not Allowed\r\nConnection: close\r\n\r\n"

    def test_method_checked_before_path(self, router: RequestRouter):
        """Even a forbidden path gets 405 for a bad method."""
        assert router(make_request("PUT", "/secret/key.txt")).status == 405


class TestStaticFiles:
    """Static files and forbidden paths."""

    def test_static_file(self, router: RequestRouter):
        data = router(make_request("GET", "/index.html")).to_bytes()

        assert data == (
            b"HTTP/1.0 200 OK\r\n"
            b"Content-Type: text/html; charset=utf-8\r\n"
            b"Content-Length: 2\r\n"
            b"Connection: close\r\n"
            b"\r\n"
            b"hi"
        )

    def test_post_to_static_file(self, router: RequestRouter):
        response = router(make_request("POST", "/notes.txt", body=b"x=1"))

        assert response.status == 200
        assert response.body == b"notes"

    def test_binary_file(self, router: RequestRouter):
        response = router(make_request("GET", "/data.bin"))

        assert response.headers["Content-Type"] == "application/octet-stream"
        assert response.body == b"\x00\x01\x02"

    def test_forbidden(self, router: RequestRouter):
        data = router(make_request("GET", "/forbidden/x")).to_bytes()
        assert data == b"HTTP/1.0 403 Forbidden\r\nConnection: close\r\n\r\n"

    def test_traversal(self, router: RequestRouter):
        assert router(make_request("GET", "/../../etc/passwd")).status == 403
        assert router(make_request("GET", "/%2e%2e/%2e%2e/etc/passwd")).status == 403

    def test_missing(self, router: RequestRouter):
        data = router(make_request("GET", "/missing.txt")).to_bytes()
        assert data == b"HTTP/1.0 404 Not Found\r\nConnection: close\r\n\r\n"

    def test_unreadable_file_is_404(self, router: RequestRouter, monkeypatch):
        def refuse(path, version="HTTP/1.0"):
            raise PermissionError(13, "Permission denied", str(path))

        monkeypatch.setattr(router.static, "serve", refuse)
        assert router(make_request("GET", "/index.html")).status == 404


class TestDirectories:
    """Directory listings."""

    def test_listing(self, router: RequestRouter):
        response = router(make_request("GET", "/docs/"))

        assert response.status == 200
        assert response.headers["Content-Type"] == "text/html; charset=utf-8"
        assert response.headers["Connection"] == "close"
        assert b'href="/docs/a.txt"' in response.body

    def test_listing_without_trailing_slash(self, router: RequestRouter):
        assert router(make_request("GET", "/docs")).status == 200

    def test_root_listing(self, router: RequestRouter):
        response = router(make_request("GET", "/"))

        assert response.status == 200
        assert b'href="/index.html"' in response.body

    def test_listing_failure_is_500(self, router: RequestRouter, monkeypatch):
        def vanish(directory):
            raise FileNotFoundError(str(directory))

        monkeypatch.setattr(router.lister, "render", vanish)
        data = router(make_request("GET", "/docs/")).to_bytes()

        assert data == b"HTTP/1.0 500 Internal Server Error\r\nConnection: close\r\n\r\n"


@requires_sh
class TestScripts:
    """Files under scripts/ are executed, never served."""

    def test_script_runs(self, router: RequestRouter):
        response = router(make_request("GET", "/scripts/echo?a=1"))

        assert response.status == 200
        assert response.headers["Content-Type"] == "text/plain"
        assert b"method=GET\n" in response.body
        assert b"a=1\n" in response.body
        assert b"#!/bin/sh" not in response.body

    def test_script_post(self, router: RequestRouter):
        response = router(make_request("POST", "/scripts/echo", body=b"a=1&b=2"))

        assert b"method=POST\n" in response.body
        assert b"a=1\nb=2\n" in response.body

    def test_script_status(self, router: RequestRouter):
        response = router(make_request("GET", "/scripts/created", "HTTP/1.1"))
        data = response.to_bytes()

        assert data == (
            b"HTTP/1.1 201 Made\r\n"
            b"Connection: close\r\n"
            b"Content-Type: text/plain\r\n"
            b"Content-Length: 7\r\n"
            b"\r\n"
            b"created"
        )

    def test_script_failure(self, router: RequestRouter):
        response = router(make_request("GET", "/scripts/fail"))

        assert response.status == 500
        assert response.body == b"oops\n"

    def test_script_timeout(self, router: RequestRouter):
        data = router(make_request("GET", "/scripts/slow")).to_bytes()
        assert data == b"HTTP/1.0 500 Internal Server Error\r\nConnection: close\r\n\r\n"

    def test_scripts_directory_is_listed(self, router: RequestRouter):
        response = router(make_request("GET", "/scripts/"))

        assert response.status == 200
        assert b'href="/scripts/echo"' in response.body


class TestUnexpectedErrors:
    def test_unexpected_exception_propagates(self, router: RequestRouter, monkeypatch):
        """Only expected failures are turned into responses here."""
        def explode(requested):
            raise RuntimeError("boom")

        monkeypatch.setattr(router.guard, "resolve", explode)

        with pytest.raises(RuntimeError):
            router(make_request("GET", "/index.html"))


def test_router_uses_guard_root(router: RequestRouter, web_root: Path):
    assert router.guard.root_dir == web_root.resolve()
