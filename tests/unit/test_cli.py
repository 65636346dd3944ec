"""
Unit tests for the command-line entry point.
"""

import errno
import json
import socket
from pathlib import Path

import pytest

from covidquery import __version__
from covidquery.__main__ import build_parser, config_from_args, main
from covidquery.core import SocketServer


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "COVIDQUERY_HOST", "COVIDQUERY_PORT", "COVIDQUERY_DATA_FILE",
        "COVIDQUERY_WORKERS", "COVIDQUERY_TIMEOUT", "COVIDQUERY_SEQUENTIAL",
        "COVIDQUERY_LOG_LEVEL", "COVIDQUERY_LOG_FORMAT",
    ):
        monkeypatch.delenv(name, raising=False)


class TestParser:
    """Tests for argument parsing."""

    def test_no_command_means_serve(self):
        args = build_parser().parse_args([])

        assert args.command is None

    def test_serve_flags(self):
        args = build_parser().parse_args([
            "serve", "-H", "127.0.0.1", "-p", "5050", "-d", "data.csv",
            "-w", "8", "--sequential", "--timeout", "30", "-l", "DEBUG",
            "--log-format", "json",
        ])

        config = config_from_args(args)

        assert config.host == "127.0.0.1"
        assert config.port == 5050
        assert config.data_file == "data.csv"
        assert config.max_workers == 8
        assert config.concurrent is False
        assert config.timeout == 30.0
        assert config.log_level == "DEBUG"
        assert config.log_format == "json"

    def test_flags_override_environment(self, monkeypatch):
        monkeypatch.setenv("COVIDQUERY_PORT", "6000")
        monkeypatch.setenv("COVIDQUERY_HOST", "10.0.0.1")

        config = config_from_args(build_parser().parse_args(["serve", "--port", "7000"]))

        assert config.port == 7000
        assert config.host == "10.0.0.1"

    def test_port_zero_flag_is_kept(self):
        config = config_from_args(build_parser().parse_args(["serve", "--port", "0"]))

        assert config.port == 0

    def test_small_worker_count(self):
        config = config_from_args(build_parser().parse_args(["serve", "--workers", "2"]))

        assert config.max_workers == 2
        assert config.min_workers == 2
        config.validate()

    def test_unknown_log_level_rejected(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["serve", "--log-level", "LOUD"])

    def test_version(self, capsys):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--version"])

        assert __version__ in capsys.readouterr().out

    def test_query_defaults(self):
        args = build_parser().parse_args(["query", "--region", "Punjab"])

        assert args.host == "127.0.0.1"
        assert args.port == 4040
        assert args.region == "Punjab"
        assert args.date == ""


class TestExitStatus:
    """Tests for main() return codes."""

    def test_missing_dataset_exits_1(self, tmp_path: Path):
        assert main(["serve", "--port", "0", "--data", str(tmp_path / "missing.csv")]) == 1

    def test_malformed_dataset_exits_1(self, tmp_path: Path):
        path = tmp_path / "bad.csv"
        path.write_text("a,b,c\n", encoding="utf-8")

        assert main(["serve", "--port", "0", "--data", str(path)]) == 1

    def test_port_in_use_exits_1(self, sample_csv: Path):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as blocker:
            blocker.bind(("127.0.0.1", 0))
            blocker.listen(1)
            port = blocker.getsockname()[1]

            status = main([
                "serve", "-H", "127.0.0.1", "--port", str(port), "--data", str(sample_csv),
            ])

        assert status == 1

    def test_accept_failure_exits_1(self, sample_csv: Path, monkeypatch):
        class FailingAcceptSocket(socket.socket):
            def accept(self):
                raise OSError(errno.EMFILE, "Too many open files")

        def create_socket(server):
            sock = FailingAcceptSocket(socket.AF_INET, socket.SOCK_STREAM)
            sock.settimeout(1.0)
            return sock

        monkeypatch.setattr(SocketServer, "_create_socket", create_socket)

        status = main([
            "serve", "-H", "127.0.0.1", "--port", "0", "--data", str(sample_csv),
        ])

        assert status == 1

    def test_invalid_config_exits_2(self, capsys):
        assert main(["serve", "--port", "70000"]) == 2
        assert "invalid configuration" in capsys.readouterr().err

    def test_query_unreachable_server_exits_1(self, free_port: int, capsys):
        assert main(["query", "--port", str(free_port), "--region", "X"]) == 1
        assert "query failed" in capsys.readouterr().err


class TestQueryCommand:
    def test_prints_rows(self, running_server, capsys):
        _, port = running_server.address
        capsys.readouterr()  # drop the startup banner

        status = main(["query", "--port", str(port), "--region", "KP"])

        assert status == 0
        rows = json.loads(capsys.readouterr().out)
        assert [r["region"] for r in rows] == ["KP"]
