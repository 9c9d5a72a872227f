"""
rootsplit configuration management.

Provides centralized configuration with validation using Pydantic.
"""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

GIB = 1024**3


class LoggingConfig(BaseModel):
    """Configuration for structured logging."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    file_enabled: bool = True
    console_enabled: bool = True
    json_format: bool = False
    log_directory: Path = Field(default_factory=lambda: Path.home() / ".rootsplit" / "logs")

    @field_validator("log_directory", mode="before")
    @classmethod
    def expand_path(cls, v: str | Path) -> Path:
        return Path(v).expanduser().resolve()


class LayoutConfig(BaseModel):
    """Geometry constants and the root size policy."""

    sector_size: int = Field(default=512, gt=0)
    alignment_sectors: int = Field(default=2048, gt=0)
    min_root_bytes: int = Field(default=8 * GIB, gt=0)
    max_root_bytes: int = Field(default=64 * GIB, gt=0)
    root_partition_number: int = Field(default=2, ge=1)

    @model_validator(mode="after")
    def check_root_bounds(self) -> LayoutConfig:
        if self.min_root_bytes > self.max_root_bytes:
            raise ValueError("min_root_bytes must not exceed max_root_bytes")
        return self


class ToolsConfig(BaseModel):
    """Configuration for external tool invocation."""

    device_wait_timeout_seconds: float = Field(default=10.0, gt=0)
    device_poll_interval_seconds: float = Field(default=0.2, gt=0)
    command_timeout_seconds: int = Field(default=3600, ge=1)
    resize_block_size: int = Field(default=4096, gt=0)


class MigrationConfig(BaseModel):
    """Configuration for the mount, copy and fstab phases."""

    mount_root: Path = Path("/mnt/rootsplit")
    fstab_marker: str = "# added by rootsplit"
    swap_mount_options: str = "sw"
    var_mount_options: str = "defaults"
    home_mount_options: str = "defaults"
    atomic_fstab_write: bool = True

    @field_validator("fstab_marker")
    @classmethod
    def marker_is_comment(cls, v: str) -> str:
        v = v.strip()
        if not v.startswith("#"):
            v = f"# {v}"
        return v


class SafetyConfig(BaseModel):
    """Configuration for safety features."""

    require_confirmation: bool = True
    preflight_checks_enabled: bool = True


class RootSplitConfig(BaseModel):
    """Main rootsplit configuration."""

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    layout: LayoutConfig = Field(default_factory=LayoutConfig)
    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    migration: MigrationConfig = Field(default_factory=MigrationConfig)
    safety: SafetyConfig = Field(default_factory=SafetyConfig)
    session_directory: Path = Field(default_factory=lambda: Path.home() / ".rootsplit" / "sessions")

    @field_validator("session_directory", mode="before")
    @classmethod
    def expand_session_path(cls, v: str | Path) -> Path:
        return Path(v).expanduser().resolve()

    @classmethod
    def load(cls, config_path: Path | None = None) -> RootSplitConfig:
        """Load configuration from file or create default."""
        if config_path is None:
            config_path = Path.home() / ".rootsplit" / "config.json"

        if config_path.exists():
            with open(config_path) as f:
                data = json.load(f)
            return cls.model_validate(data)

        return cls()

    def save(self, config_path: Path | None = None) -> None:
        """Save configuration to file."""
        if config_path is None:
            config_path = Path.home() / ".rootsplit" / "config.json"

        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w") as f:
            json.dump(self.model_dump(mode="json"), f, indent=2, default=str)

    def ensure_directories(self) -> None:
        """Create all required directories."""
        self.logging.log_directory.mkdir(parents=True, exist_ok=True)
        self.session_directory.mkdir(parents=True, exist_ok=True)

    def get_session_file(self, session_id: str) -> Path:
        """Get path for a new step journal file, unique to ``session_id``."""
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        return self.session_directory / f"journal_{timestamp}_{session_id}.json"


def load_config(config_path: Path | None = None) -> RootSplitConfig:
    """Load or create configuration."""
    config = RootSplitConfig.load(config_path)
    config.ensure_directories()
    return config
