"""Tests for exit codes module."""

import pytest

from rclone_scheduler.cli.exit_codes import ExitCode


class TestExitCode:
    """Test exit code constants."""

    @pytest.mark.parametrize(
        "name,value",
        [
            ("SUCCESS", 0),
            ("GENERAL_ERROR", 1),
            ("CONFIGURATION_ERROR", 2),
            ("JOB_FAILED", 3),
            ("INVALID_ARGUMENT", 7),
            ("NOT_FOUND", 8),
            ("CANCELLED", 130),
        ],
    )
    def test_code_values(self, name: str, value: int) -> None:
        assert getattr(ExitCode, name) == value

    def test_codes_are_unique(self) -> None:
        codes = [
            ExitCode.SUCCESS,
            ExitCode.GENERAL_ERROR,
            ExitCode.CONFIGURATION_ERROR,
            ExitCode.JOB_FAILED,
            ExitCode.INVALID_ARGUMENT,
            ExitCode.NOT_FOUND,
            ExitCode.CANCELLED,
        ]
        assert len(codes) == len(set(codes))


class TestExitCodeGetName:
    """Test get_name method."""

    def test_get_name_known(self) -> None:
        assert ExitCode.get_name(ExitCode.JOB_FAILED) == "JOB_FAILED"
        assert ExitCode.get_name(130) == "CANCELLED"

    def test_get_name_unknown(self) -> None:
        assert ExitCode.get_name(99) == "UNKNOWN(99)"


class TestExitCodeGetDescription:
    """Test get_description method."""

    def test_get_description_known(self) -> None:
        assert "not found" in ExitCode.get_description(ExitCode.NOT_FOUND)

    def test_get_description_unknown(self) -> None:
        assert ExitCode.get_description(99) == "Unknown exit code: 99"
