"""
Tests for rootsplit.core.config module.
"""

import tempfile
from datetime import datetime
from pathlib import Path

import pytest
from pydantic import ValidationError

from rootsplit.core.config import (
    LayoutConfig,
    LoggingConfig,
    MigrationConfig,
    RootSplitConfig,
    SafetyConfig,
    ToolsConfig,
)

GIB = 1024**3


class TestLoggingConfig:
    """Tests for LoggingConfig."""

    def test_default_values(self) -> None:
        config = LoggingConfig()
        assert config.level == "INFO"
        assert config.file_enabled is True
        assert config.console_enabled is True
        assert config.json_format is False

    def test_custom_values(self) -> None:
        config = LoggingConfig(level="DEBUG", json_format=True)
        assert config.level == "DEBUG"
        assert config.json_format is True

    def test_invalid_level(self) -> None:
        with pytest.raises(ValidationError):
            LoggingConfig(level="LOUD")

    def test_path_expansion(self) -> None:
        config = LoggingConfig(log_directory="~/logs")
        assert "~" not in str(config.log_directory)


class TestLayoutConfig:
    """Tests for LayoutConfig."""

    def test_default_values(self) -> None:
        config = LayoutConfig()
        assert config.sector_size == 512
        assert config.alignment_sectors == 2048
        assert config.min_root_bytes == 8 * GIB
        assert config.max_root_bytes == 64 * GIB
        assert config.root_partition_number == 2

    def test_min_above_max_rejected(self) -> None:
        with pytest.raises(ValidationError):
            LayoutConfig(min_root_bytes=32 * GIB, max_root_bytes=16 * GIB)

    def test_alignment_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            LayoutConfig(alignment_sectors=0)


class TestToolsConfig:
    """Tests for ToolsConfig."""

    def test_default_values(self) -> None:
        config = ToolsConfig()
        assert config.device_wait_timeout_seconds == 10.0
        assert config.resize_block_size == 4096

    def test_timeout_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            ToolsConfig(device_wait_timeout_seconds=0)


class TestMigrationConfig:
    """Tests for MigrationConfig."""

    def test_default_values(self) -> None:
        config = MigrationConfig()
        assert config.mount_root == Path("/mnt/rootsplit")
        assert config.fstab_marker == "# added by rootsplit"
        assert config.swap_mount_options == "sw"
        assert config.home_mount_options == "defaults"
        assert config.atomic_fstab_write is True

    def test_marker_made_comment(self) -> None:
        config = MigrationConfig(fstab_marker="split by ops")
        assert config.fstab_marker == "# split by ops"


class TestSafetyConfig:
    """Tests for SafetyConfig."""

    def test_default_values(self) -> None:
        config = SafetyConfig()
        assert config.require_confirmation is True
        assert config.preflight_checks_enabled is True


class TestRootSplitConfig:
    """Tests for RootSplitConfig."""

    def test_default_config(self) -> None:
        config = RootSplitConfig()
        assert isinstance(config.logging, LoggingConfig)
        assert isinstance(config.layout, LayoutConfig)
        assert isinstance(config.tools, ToolsConfig)
        assert isinstance(config.migration, MigrationConfig)
        assert isinstance(config.safety, SafetyConfig)

    def test_save_and_load(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            config_path = Path(tmpdir) / "config.json"

            original = RootSplitConfig(
                layout=LayoutConfig(max_root_bytes=32 * GIB),
                migration=MigrationConfig(var_mount_options="noatime"),
            )
            original.save(config_path)

            loaded = RootSplitConfig.load(config_path)

            assert loaded.layout.max_root_bytes == 32 * GIB
            assert loaded.migration.var_mount_options == "noatime"

    def test_load_nonexistent(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            config = RootSplitConfig.load(Path(tmpdir) / "nonexistent.json")
            assert config.layout.min_root_bytes == 8 * GIB

    def test_ensure_directories(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            config = RootSplitConfig(
                logging=LoggingConfig(log_directory=Path(tmpdir) / "logs"),
                session_directory=Path(tmpdir) / "sessions",
            )
            config.ensure_directories()

            assert config.logging.log_directory.exists()
            assert config.session_directory.exists()

    def test_get_session_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            config = RootSplitConfig(session_directory=Path(tmpdir))
            session_file = config.get_session_file("abc123")
            assert session_file.parent == Path(tmpdir).resolve()
            assert session_file.name.startswith("journal_")
            assert session_file.name.endswith("_abc123.json")

    def test_session_files_differ_within_one_second(self, mocker) -> None:
        frozen = datetime(2026, 1, 2, 3, 4, 5)
        mocker.patch("rootsplit.core.config.datetime").now.return_value = frozen
        config = RootSplitConfig(session_directory=Path("/tmp/sessions"))

        first = config.get_session_file("session-a")
        second = config.get_session_file("session-b")

        assert first != second
        assert first.name == "journal_20260102_030405_session-a.json"
