"""
Unit tests for configuration and the command line.
"""

import socket
from pathlib import Path

import pytest

from cgiserver.__main__ import build_config, build_parser, main
from cgiserver.config import ServerConfig

ENV_VARS = (
    "CGISERVER_HOST",
    "CGISERVER_PORT",
    "CGISERVER_ROOT",
    "CGISERVER_WORKERS",
    "CGISERVER_TIMEOUT",
    "CGISERVER_SCRIPT_TIMEOUT",
    "CGISERVER_LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestServerConfig:
    """Tests for ServerConfig defaults and validation."""

    def test_defaults(self):
        config = ServerConfig()

        assert config.host == "0.0.0.0"
        assert config.port == 8080
        assert config.min_workers == 4
        assert config.max_workers == 16
        assert config.queue_size == 100
        assert config.scripts_dir == "scripts"
        assert config.forbidden_dirs == ("forbidden", "secret")
        assert config.forbidden_files == ("forbidden.html",)
        config.validate()

    @pytest.mark.parametrize("overrides", [
        {"port": 0},
        {"port": 65536},
        {"min_workers": 0},
        {"min_workers": 8, "max_workers": 4},
        {"queue_size": 0},
        {"buffer_size": 512},
        {"max_request_size": 1024, "buffer_size": 4096},
        {"timeout": 0},
        {"script_timeout": -1},
        {"log_level": "LOUD"},
    ])
    def test_invalid(self, overrides):
        with pytest.raises(ValueError):
            ServerConfig(**overrides).validate()

    def test_no_timeouts(self):
        ServerConfig(timeout=None, script_timeout=None).validate()

    def test_from_env(self, monkeypatch, tmp_path: Path):
        monkeypatch.setenv("CGISERVER_HOST", "127.0.0.1")
        monkeypatch.setenv("CGISERVER_PORT", "9000")
        monkeypatch.setenv("CGISERVER_ROOT", str(tmp_path))
        monkeypatch.setenv("CGISERVER_WORKERS", "32")
        monkeypatch.setenv("CGISERVER_SCRIPT_TIMEOUT", "5")
        monkeypatch.setenv("CGISERVER_LOG_LEVEL", "debug")

        config = ServerConfig.from_env()

        assert config.host == "127.0.0.1"
        assert config.port == 9000
        assert config.root_dir == str(tmp_path)
        assert config.max_workers == 32
        assert config.script_timeout == 5.0
        assert config.log_level == "DEBUG"

    def test_from_env_bad_number(self, monkeypatch):
        monkeypatch.setenv("CGISERVER_PORT", "eighty")
        with pytest.raises(ValueError):
            ServerConfig.from_env()

    def test_resolved_root(self, web_root: Path):
        config = ServerConfig(root_dir=str(web_root / "docs" / ".."))
        assert config.resolved_root() == web_root.resolve()

    def test_resolved_root_missing(self, tmp_path: Path):
        with pytest.raises(ValueError):
            ServerConfig(root_dir=str(tmp_path / "nope")).resolved_root()

    def test_resolved_root_not_a_directory(self, web_root: Path):
        with pytest.raises(ValueError):
            ServerConfig(root_dir=str(web_root / "index.html")).resolved_root()


class TestCommandLine:
    """Tests for python -m cgiserver."""

    def test_positional_arguments(self, tmp_path: Path):
        args = build_parser().parse_args(["8000", str(tmp_path)])
        config = build_config(args)

        assert config.port == 8000
        assert config.root_dir == str(tmp_path)
        assert config.host == "0.0.0.0"

    def test_flags(self, tmp_path: Path):
        args = build_parser().parse_args([
            "8000", str(tmp_path),
            "--host", "127.0.0.1",
            "--workers", "2",
            "--queue-size", "7",
            "--timeout", "1.5",
            "--script-timeout", "3",
            "--max-request-size", "65536",
            "--log-level", "debug",
        ])
        config = build_config(args)

        assert config.host == "127.0.0.1"
        assert config.max_workers == 2
        assert config.min_workers == 2
        assert config.queue_size == 7
        assert config.timeout == 1.5
        assert config.script_timeout == 3.0
        assert config.max_request_size == 65536
        assert config.log_level == "DEBUG"
        config.validate()

    def test_flags_override_environment(self, monkeypatch, tmp_path: Path):
        monkeypatch.setenv("CGISERVER_HOST", "10.0.0.1")
        args = build_parser().parse_args(["8000", str(tmp_path), "--host", "127.0.0.1"])

        assert build_config(args).host == "127.0.0.1"

    def test_missing_arguments(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main([])

        assert exc_info.value.code != 0

    def test_non_numeric_port(self, tmp_path: Path):
        with pytest.raises(SystemExit) as exc_info:
            main(["http", str(tmp_path)])

        assert exc_info.value.code != 0

    def test_port_out_of_range(self, tmp_path: Path, capsys):
        assert main(["70000", str(tmp_path)]) == 1
        assert "Invalid port" in capsys.readouterr().err

    def test_missing_root(self, tmp_path: Path, capsys):
        assert main(["8000", str(tmp_path / "nope")]) == 1
        assert "Root folder does not exist" in capsys.readouterr().err

    def test_port_in_use(self, web_root: Path, capsys):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as taken:
            taken.bind(("127.0.0.1", 0))
            taken.listen(1)
            port = taken.getsockname()[1]

            code = main([str(port), str(web_root), "--host", "127.0.0.1", "--log-level", "critical"])

        assert code == 1
        captured = capsys.readouterr()
        assert f"Root folder: {web_root.resolve()}" in captured.out
        assert "Error: failed to bind" in captured.err
