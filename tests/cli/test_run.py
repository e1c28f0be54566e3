"""Tests for run CLI command and global options."""

import logging
import os
from unittest.mock import AsyncMock, patch

import pytest
from typer.testing import CliRunner

from rclone_scheduler import __version__
from rclone_scheduler import config as config_module
from rclone_scheduler import main as main_module
from rclone_scheduler.cli.exit_codes import ExitCode
from rclone_scheduler.cli.run import _setup_logging
from rclone_scheduler.config import DEFAULT_ENV_PREFIX, AppConfig, LoggingConfig
from rclone_scheduler.main import app


runner = CliRunner()


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    for key in list(os.environ):
        if key.startswith(DEFAULT_ENV_PREFIX):
            monkeypatch.delenv(key)
    monkeypatch.setattr(config_module, "DEFAULT_CONFIG_DIR", tmp_path / "default")
    monkeypatch.setattr(main_module, "_global_state", dict(main_module._global_state))


class TestSetupLogging:
    """Tests for _setup_logging function."""

    def test_level_from_config(self) -> None:
        _setup_logging(AppConfig(logging=LoggingConfig(level="WARNING")))

        assert logging.getLogger().level == logging.WARNING

    def test_cli_flag_overrides_config(self, monkeypatch) -> None:
        monkeypatch.setitem(main_module._global_state, "debug", True)

        _setup_logging(AppConfig(logging=LoggingConfig(level="WARNING")))

        assert logging.getLogger().level == logging.DEBUG

    def test_log_file_from_config(self, tmp_path) -> None:
        log_file = tmp_path / "logs" / "scheduler.log"

        _setup_logging(AppConfig(logging=LoggingConfig(file=log_file)))

        assert log_file.parent.exists()
        assert logging.getLogger().level == logging.DEBUG

    def test_unknown_level_falls_back_to_info(self) -> None:
        _setup_logging(AppConfig(logging=LoggingConfig(level="LOUD")))

        assert logging.getLogger().level == logging.INFO


class TestRunCommand:
    """Tests for the run command."""

    def test_run_help(self) -> None:
        result = runner.invoke(app, ["run", "--help"])

        assert result.exit_code == 0
        assert "--config" in result.output
        assert "--port" in result.output

    def test_run_starts_service(self, tmp_path) -> None:
        path = tmp_path / "options.json"
        path.write_text('{"jobs": [{"name": "Nightly", "run": "echo hi"}]}')

        with patch("rclone_scheduler.daemon.service.run_service", new_callable=AsyncMock) as mock_run:
            result = runner.invoke(
                app, ["run", "--config", str(path), "--host", "127.0.0.1", "--port", "9001"]
            )

        assert result.exit_code == 0
        mock_run.assert_awaited_once()
        config = mock_run.call_args.args[0]
        assert config.api.host == "127.0.0.1"
        assert config.api.port == 9001
        assert config.jobs == [{"name": "Nightly", "run": "echo hi"}]

    def test_run_invalid_schedule_exits_before_serving(self, tmp_path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text(
            "jobs:\n"
            "  - name: Typo\n"
            "    schedule: 'every night'\n"
            "    command: sync /a remote:a\n"
        )

        with patch("rclone_scheduler.daemon.service.uvicorn.Server") as mock_server:
            result = runner.invoke(app, ["run", "--config", str(path)])

        assert result.exit_code == ExitCode.CONFIGURATION_ERROR
        assert "Typo" in result.output
        mock_server.assert_not_called()

    def test_run_unknown_config_key(self, tmp_path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text("api:\n  listen: 8098\n")

        result = runner.invoke(app, ["run", "--config", str(path)])

        assert result.exit_code == ExitCode.CONFIGURATION_ERROR


class TestGlobalOptions:
    """Tests for options on the main callback."""

    def test_version(self) -> None:
        result = runner.invoke(app, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.output

    def test_quiet_conflicts_with_verbose(self) -> None:
        result = runner.invoke(app, ["--quiet", "--verbose", "jobs", "list"])

        assert result.exit_code == ExitCode.INVALID_ARGUMENT

    def test_no_args_shows_help(self) -> None:
        result = runner.invoke(app, [])

        assert "run" in result.output
        assert "jobs" in result.output
