"""
rootsplit Platform Backend Base.

Defines the abstract interface to the external disk tools. The migration
pipeline only talks to this interface, so tests can substitute a fake.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from rootsplit.core.models import FileSystem


class CommandResult:
    """Result of a command execution."""

    def __init__(
        self,
        returncode: int,
        stdout: str,
        stderr: str,
        command: str | list[str],
        duration_seconds: float = 0.0,
    ) -> None:
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        self.command = command
        self.duration_seconds = duration_seconds

    @property
    def success(self) -> bool:
        return self.returncode == 0

    @property
    def command_line(self) -> str:
        return self.command if isinstance(self.command, str) else " ".join(self.command)

    def __repr__(self) -> str:
        return f"CommandResult(rc={self.returncode}, cmd='{self.command_line[:50]}...')"


class PlatformBackend(ABC):
    """Abstract base class for disk tool operations."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Platform name (e.g., 'linux')."""

    @abstractmethod
    def is_admin(self) -> bool:
        """Check if running with admin privileges."""

    @abstractmethod
    def required_tools(self) -> list[str]:
        """External tools the migration invokes."""

    @abstractmethod
    def missing_tools(self) -> list[str]:
        """Return the required external tools that are not installed."""

    # ==================== Geometry ====================

    @abstractmethod
    def read_disk_size(self, device: str) -> int:
        """Total device size in bytes from the partition table report."""

    @abstractmethod
    def read_partition_start(self, device: str, number: int) -> int:
        """Start sector of partition ``number``."""

    @abstractmethod
    def next_partition_number(self, device: str) -> int:
        """Number the next created partition will get."""

    @abstractmethod
    def read_mounts(self) -> dict[str, str]:
        """Live mount table as {mountpoint: source}."""

    # ==================== Filesystem Operations ====================

    @abstractmethod
    def check_filesystem(self, partition_path: str) -> CommandResult:
        """Run a forced consistency check. Non-zero results are returned, not raised."""

    @abstractmethod
    def shrink_filesystem(self, partition_path: str, size_bytes: int, block_size: int) -> None:
        """Shrink the filesystem to ``size_bytes``, in whole blocks."""

    @abstractmethod
    def format_partition(self, partition_path: str, filesystem: FileSystem) -> None:
        """Create a filesystem, forcing over any existing signature."""

    @abstractmethod
    def lookup_uuid(self, partition_path: str) -> str:
        """Stable filesystem UUID of a partition."""

    # ==================== Partition Table Operations ====================

    @abstractmethod
    def recreate_partition(self, device: str, number: int, start: int, end: int) -> None:
        """Delete and recreate a partition table entry; data is untouched."""

    @abstractmethod
    def create_partition(
        self, device: str, filesystem: FileSystem, start: int, end: int
    ) -> None:
        """Create a new primary partition spanning sectors [start, end]."""

    @abstractmethod
    def rescan(self, device: str) -> None:
        """Ask the kernel to re-read the partition table."""

    @abstractmethod
    def wait_for_device(self, device_path: str, timeout: float, interval: float) -> bool:
        """Poll until ``device_path`` exists. Returns False on timeout."""

    # ==================== Mount and Copy Operations ====================

    @abstractmethod
    def mount(self, device_path: str, mount_point: Path) -> None:
        """Mount a partition."""

    @abstractmethod
    def unmount(self, mount_point: Path) -> CommandResult:
        """Unmount a mount point. Failures are returned, not raised."""

    @abstractmethod
    def sync_tree(self, source: Path, destination: Path) -> None:
        """Copy a tree preserving permissions, without crossing filesystems."""

    @abstractmethod
    def remove_tree_contents(self, path: Path) -> None:
        """Delete everything under ``path``, keeping the directory itself."""
