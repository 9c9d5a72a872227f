"""
rootsplit data models.

Defines the disk geometry snapshot, the planned partition layout and the
record of partitions created while the migration runs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any

SECTOR_SIZE = 512
ALIGNMENT_SECTORS = 2048


class FileSystem(Enum):
    """File system types written by rootsplit."""

    EXT4 = "ext4"
    BTRFS = "btrfs"
    SWAP = "swap"

    @property
    def parted_type(self) -> str:
        """Filesystem type hint understood by parted's mkpart."""
        if self is FileSystem.SWAP:
            return "linux-swap"
        return self.value


class PartitionRole(Enum):
    """Role of a partition in the target layout."""

    ROOT = "root"
    SWAP = "swap"
    VAR = "var"
    HOME = "home"

    @property
    def filesystem(self) -> FileSystem:
        return _ROLE_FILESYSTEMS[self]

    @property
    def mountpoint(self) -> str | None:
        """Mount point inside the target system (None for swap)."""
        return _ROLE_MOUNTPOINTS[self]


_ROLE_FILESYSTEMS = {
    PartitionRole.ROOT: FileSystem.EXT4,
    PartitionRole.SWAP: FileSystem.SWAP,
    PartitionRole.VAR: FileSystem.BTRFS,
    PartitionRole.HOME: FileSystem.EXT4,
}

_ROLE_MOUNTPOINTS = {
    PartitionRole.ROOT: "/",
    PartitionRole.SWAP: None,
    PartitionRole.VAR: "/var",
    PartitionRole.HOME: "/home",
}


class MigrationStage(Enum):
    """States of the migration pipeline, in execution order."""

    INIT = auto()
    FSCK_CHECKED = auto()
    ROOT_SHRUNK = auto()
    ROOT_RESIZED = auto()
    SWAP_CREATED = auto()
    VAR_CREATED = auto()
    HOME_CREATED = auto()
    MOUNT_POINTS_READY = auto()
    MOUNTED = auto()
    VAR_MIGRATED = auto()
    HOME_MIGRATED = auto()
    FSTAB_UPDATED = auto()
    UNMOUNTED = auto()
    DONE = auto()


@dataclass(frozen=True)
class DiskGeometry:
    """Snapshot of the target disk, captured once before planning."""

    device: str
    size_bytes: int
    is_sd_card: bool
    root_partition: str
    root_start_sector: int
    sector_size: int = SECTOR_SIZE

    @property
    def size_sectors(self) -> int:
        return self.size_bytes // self.sector_size

    @property
    def last_sector(self) -> int:
        return self.size_sectors - 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "device": self.device,
            "size_bytes": self.size_bytes,
            "size_sectors": self.size_sectors,
            "sector_size": self.sector_size,
            "is_sd_card": self.is_sd_card,
            "root_partition": self.root_partition,
            "root_start_sector": self.root_start_sector,
        }


@dataclass(frozen=True)
class PartitionRange:
    """Inclusive sector range [start, end] of one planned partition."""

    role: PartitionRole
    start: int
    end: int
    size_bytes: int

    @property
    def sectors(self) -> int:
        return self.end - self.start + 1

    def overlaps(self, other: PartitionRange) -> bool:
        return self.start <= other.end and other.start <= self.end

    def to_dict(self) -> dict[str, Any]:
        return {
            "role": self.role.value,
            "start": self.start,
            "end": self.end,
            "sectors": self.sectors,
            "size_bytes": self.size_bytes,
        }


@dataclass(frozen=True)
class PartitionLayout:
    """Planned layout: root, optional swap, optional var, and home."""

    root: PartitionRange
    home: PartitionRange
    swap: PartitionRange | None = None
    var: PartitionRange | None = None
    sector_size: int = SECTOR_SIZE
    alignment: int = ALIGNMENT_SECTORS

    def ranges(self) -> list[PartitionRange]:
        """Present ranges in on-disk order."""
        return [r for r in (self.root, self.swap, self.var, self.home) if r is not None]

    def to_dict(self) -> dict[str, Any]:
        return {
            "sector_size": self.sector_size,
            "alignment": self.alignment,
            "partitions": [r.to_dict() for r in self.ranges()],
        }


@dataclass
class CreatedPartitions:
    """
    Device paths of partitions confirmed to exist and be formatted.

    Only the root path is known up front. The others are filled in, in
    creation order, after the partition was created, its device node
    appeared and formatting succeeded.
    """

    root: str
    swap: str | None = None
    var: str | None = None
    home: str | None = None
    order: list[PartitionRole] = field(default_factory=list)

    def record(self, role: PartitionRole, device_path: str) -> None:
        if role is PartitionRole.ROOT:
            raise ValueError("Root partition is known in advance")
        if getattr(self, role.value) is not None:
            raise ValueError(f"{role.value} partition already recorded")
        setattr(self, role.value, device_path)
        self.order.append(role)

    def get(self, role: PartitionRole) -> str | None:
        return getattr(self, role.value)

    def created(self) -> list[tuple[PartitionRole, str]]:
        """Newly created partitions in creation order."""
        return [(role, getattr(self, role.value)) for role in self.order]

    def to_dict(self) -> dict[str, Any]:
        return {
            "root": self.root,
            "swap": self.swap,
            "var": self.var,
            "home": self.home,
        }
