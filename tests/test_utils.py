"""Tests for vmrunner.utils module."""

from __future__ import annotations

import subprocess
import uuid
from unittest.mock import patch

import pytest

from vmrunner.exceptions import ManagerError
from vmrunner.utils import (
    ensure_directory,
    generate_uuid,
    get_env,
    log,
    parse_bool,
    parse_int,
    run,
    validate_size,
    validate_uuid,
)


class TestLog:
    def test_info_level(self, capsys):
        log("INFO", "test message")
        captured = capsys.readouterr()
        assert "[INFO]" in captured.out
        assert "test message" in captured.out

    def test_debug_suppressed_by_default(self, capsys):
        with patch("vmrunner.utils._LOG_VERBOSE", False):
            log("DEBUG", "should not appear")
        captured = capsys.readouterr()
        assert captured.out == ""

    def test_debug_when_verbose(self, capsys):
        with patch("vmrunner.utils._LOG_VERBOSE", True):
            log("DEBUG", "visible")
        assert "[DEBUG]" in capsys.readouterr().out

    def test_unknown_level_uncoloured(self, capsys):
        log("TRACE", "plain")
        assert capsys.readouterr().out == "[TRACE] plain\n"


class TestGetEnv:
    def test_returns_value(self, monkeypatch):
        monkeypatch.setenv("TEST_VAR", "hello")
        assert get_env("TEST_VAR") == "hello"

    def test_returns_default(self, monkeypatch):
        monkeypatch.delenv("TEST_VAR", raising=False)
        assert get_env("TEST_VAR", "fallback") == "fallback"


class TestParseBool:
    def test_bool_passthrough(self):
        assert parse_bool("acpi", False) is False

    def test_int(self):
        assert parse_bool("acpi", 1) is True
        assert parse_bool("acpi", 0) is False

    @pytest.mark.parametrize("raw,expected", [("yes", True), (" On ", True), ("0", False), ("no", False)])
    def test_strings(self, raw, expected):
        assert parse_bool("acpi", raw) is expected

    def test_rejects_other_types(self):
        with pytest.raises(ManagerError, match="acpi must be a boolean"):
            parse_bool("acpi", [True])


class TestParseInt:
    def test_valid(self):
        assert parse_int("vcpus", "4") == 4

    def test_not_a_number(self):
        with pytest.raises(ManagerError, match="vcpus must be an integer"):
            parse_int("vcpus", "four")

    def test_rejects_bool(self):
        with pytest.raises(ManagerError, match="must be an integer"):
            parse_int("vcpus", True)

    def test_below_min(self):
        with pytest.raises(ManagerError, match="must be >= 1"):
            parse_int("vcpus", 0)

    def test_above_max(self):
        with pytest.raises(ManagerError, match="must be <= 16"):
            parse_int("vcpus", 32, max_val=16)


class TestValidateSize:
    @pytest.mark.parametrize("raw", ["256M", "1G", "10g", "4096"])
    def test_valid(self, raw):
        assert validate_size("RAM", raw) == raw

    @pytest.mark.parametrize("raw", ["", "1.5G", "G", "10GB", "-1G"])
    def test_invalid(self, raw):
        with pytest.raises(ManagerError, match="Invalid RAM"):
            validate_size("RAM", raw)


class TestUuid:
    def test_generated_uuid_is_valid(self):
        value = generate_uuid()
        assert str(uuid.UUID(value)) == value
        assert validate_uuid(value) == value

    def test_invalid(self):
        with pytest.raises(ManagerError, match="Invalid UUID 'nope'"):
            validate_uuid("nope")


class TestEnsureDirectory:
    def test_creates_nested(self, tmp_path):
        target = tmp_path / "a" / "b"
        ensure_directory(target)
        ensure_directory(target)
        assert target.is_dir()


class TestRun:
    def test_passes_text_and_check(self):
        with patch("vmrunner.utils.subprocess.run") as mock_run:
            run(["zfs", "list"], capture_output=True)
        mock_run.assert_called_once_with(["zfs", "list"], check=True, text=True, capture_output=True)

    def test_propagates_failure(self):
        error = subprocess.CalledProcessError(1, ["zfs"])
        with patch("vmrunner.utils.subprocess.run", side_effect=error):
            with pytest.raises(subprocess.CalledProcessError):
                run(["zfs"])
