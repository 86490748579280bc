"""Tests for the configuration management subsystem."""

import logging
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from deploy_sync.config import Config, parse_size, parse_time
from deploy_sync.constants import COMMIT_MESSAGE


def test_config_defaults() -> None:
    """Verifies that the configuration initializes with sensible defaults."""
    conf = Config()
    assert conf.sync.interval == 15
    assert conf.sync.commit_message == COMMIT_MESSAGE
    assert conf.svn.binary == "svn"
    assert conf.svn.default_client == "xml"
    assert conf.svn.trust_server_cert is False
    assert conf.limits.max_log_size == 5 * 1024 * 1024


def test_config_load_from_global_file(tmp_path: Path, mocker: MagicMock) -> None:
    """Verifies that the global config file is merged over the defaults.

    Args:
        tmp_path (Path): Pytest fixture for a temporary directory.
        mocker (MagicMock): Pytest fixture for mocking.
    """
    global_config_path = tmp_path / "config.toml"
    global_config_path.write_text(
        '[sync]\ninterval = "1m"\ncommit_message = "Auto commit"\n'
        '[svn]\nbinary = "/opt/svn/bin/svn"\ntrust_server_cert = true\n'
        '[limits]\nmax_log_size = "10MB"\n'
    )
    mocker.patch("deploy_sync.config.CONFIG_FILE", global_config_path)

    conf = Config.load()

    assert conf.sync.interval == 60
    assert conf.sync.commit_message == "Auto commit"
    assert conf.svn.binary == "/opt/svn/bin/svn"
    assert conf.svn.trust_server_cert is True
    assert conf.limits.max_log_size == 10 * 1024 * 1024


def test_config_load_explicit_path_wins(tmp_path: Path, mocker: MagicMock) -> None:
    global_config_path = tmp_path / "global.toml"
    global_config_path.write_text("[sync]\ninterval = 99\n")
    explicit = tmp_path / "explicit.toml"
    explicit.write_text('[svn]\ndefault_client = "cmdline"\n')
    mocker.patch("deploy_sync.config.CONFIG_FILE", global_config_path)

    conf = Config.load(explicit)

    assert conf.sync.interval == 15
    assert conf.svn.default_client == "cmdline"


def test_config_load_missing_explicit_file(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    caplog.set_level(logging.WARNING)

    conf = Config.load(tmp_path / "nope.toml")

    assert conf == Config()
    assert "not found" in caplog.text


def test_config_syntax_error_keeps_defaults(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    broken = tmp_path / "broken.toml"
    broken.write_text("[sync\ninterval = ")

    conf = Config.load(broken)

    assert conf.sync.interval == 15
    assert "Config syntax error" in caplog.text


def test_parse_size() -> None:
    """Verifies that human-readable sizes are correctly converted to bytes."""
    assert parse_size(100) == 100
    assert parse_size("100kb") == 102400
    assert parse_size("10 MB") == 10485760
    assert parse_size("1.5gb") == int(1.5 * 1024**3)

    with pytest.raises(ValueError, match=r"Invalid size format '100 bits'"):
        parse_size("100 bits")


def test_parse_time() -> None:
    """Verifies that human-readable times are correctly converted to seconds."""
    assert parse_time(50) == 50
    assert parse_time("45") == 45
    assert parse_time("30s") == 30
    assert parse_time("10 min") == 600
    assert parse_time("2 hrs") == 7200
    assert parse_time("1.5h") == 5400

    with pytest.raises(ValueError, match=r"Invalid time format '10 lightyears'"):
        parse_time("10 lightyears")


def test_config_invalid_keys_and_values(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    """Verifies that unknown keys are ignored and invalid values fallback to defaults.

    Args:
        tmp_path (Path): Pytest fixture for a temporary directory.
        caplog (pytest.LogCaptureFixture): Pytest fixture for capturing logs.
    """
    caplog.set_level(logging.WARNING)

    local_toml = tmp_path / "sync.toml"
    local_toml.write_text(
        "[sync]\n"
        'interval = "fast"\n'
        'fake_setting = "ignored"\n'
        "[limits]\n"
        'max_log_size = "10 gallons"\n'
    )

    conf = Config.load(local_toml)

    assert conf.sync.interval == 15
    assert conf.limits.max_log_size == 5242880

    assert "Unknown config keys in [sync]: fake_setting" in caplog.text
    assert "Config error in [sync].interval" in caplog.text
    assert "Config error in [limits].max_log_size" in caplog.text
