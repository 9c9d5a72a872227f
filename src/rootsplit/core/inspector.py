"""
Disk inspection.

Resolves the target device, classifies it, and captures the geometry the
layout planner works from.
"""

from __future__ import annotations

import os
import re

from rootsplit.core.errors import NotFoundError, UnsafeTargetError
from rootsplit.core.logging import get_logger
from rootsplit.core.models import SECTOR_SIZE, DiskGeometry
from rootsplit.platform.base import PlatformBackend

logger = get_logger(__name__)

SD_CARD_MARKER = "mmcblk"
ROOT_PARTITION_NUMBER = 2


def normalize_device(token: str) -> str:
    """Turn ``mmcblk0`` or ``/dev/mmcblk0`` into an existing absolute device path."""
    token = token.strip()
    device = token if token.startswith("/dev/") else f"/dev/{token}"
    if not os.path.exists(device):
        raise NotFoundError(f"Device {device} does not exist")
    return device


def is_sd_card(device: str) -> bool:
    """Naming-convention guess that the device is an SD card."""
    return SD_CARD_MARKER in device


def partition_device_path(device: str, number: int) -> str:
    """Device node of partition ``number`` (``p`` separator after a trailing digit)."""
    if SD_CARD_MARKER in device or "nvme" in device or "loop" in device:
        return f"{device}p{number}"
    return f"{device}{number}"


def root_partition_path(device: str, sd_card: bool, number: int = ROOT_PARTITION_NUMBER) -> str:
    """Path of the existing root partition; it must exist."""
    path = f"{device}p{number}" if sd_card else f"{device}{number}"
    if not os.path.exists(path):
        raise NotFoundError(f"Root partition {path} does not exist")
    return path


def _device_from_dev_number(st_dev: int) -> str | None:
    """Map a st_dev number to /dev/<name> through sysfs."""
    link = f"/sys/dev/block/{os.major(st_dev)}:{os.minor(st_dev)}"
    if not os.path.exists(link):
        return None
    return f"/dev/{os.path.basename(os.path.realpath(link))}"


def resolve_root_source(mounts: dict[str, str]) -> str | None:
    """Block device backing the live ``/`` mount, resolved through symlinks."""
    source = mounts.get("/")
    if not source or not source.startswith("/dev/"):
        return None
    if os.path.exists(source):
        return os.path.realpath(source)
    if source == "/dev/root":
        # Kernel alias without a device node
        return _device_from_dev_number(os.stat("/").st_dev) or source
    return source


def device_contains(device: str, source: str) -> bool:
    """True if ``source`` is ``device`` itself or one of its partitions."""
    if source == device:
        return True
    return re.fullmatch(re.escape(device) + r"p?\d+", source) is not None


def ensure_not_live_root(
    device: str,
    mounts: dict[str, str],
    allow_live_root: bool = False,
) -> None:
    """
    Refuse to operate on the disk holding the running system's root.

    ``allow_live_root`` is an explicit operator acknowledgment and is
    logged as such.
    """
    source = resolve_root_source(mounts)
    target = os.path.realpath(device)
    if source is None or not device_contains(target, source):
        return

    if allow_live_root:
        logger.warning(
            "Live root protection overridden by operator",
            device=device,
            root_source=source,
        )
        return

    raise UnsafeTargetError(
        f"{device} holds the live root filesystem ({source}); "
        "boot from another medium or pass --allow-live-root"
    )


class DiskInspector:
    """Captures a DiskGeometry snapshot through the platform backend."""

    def __init__(
        self,
        backend: PlatformBackend,
        root_partition_number: int = ROOT_PARTITION_NUMBER,
        sector_size: int = SECTOR_SIZE,
    ) -> None:
        self.backend = backend
        self.root_partition_number = root_partition_number
        self.sector_size = sector_size

    def describe(self, device: str) -> DiskGeometry:
        """Read size and root start sector of an already normalized device."""
        sd_card = is_sd_card(device)
        size_bytes = self.backend.read_disk_size(device)
        root_partition = root_partition_path(device, sd_card, self.root_partition_number)
        root_start = self.backend.read_partition_start(device, self.root_partition_number)

        geometry = DiskGeometry(
            device=device,
            size_bytes=size_bytes,
            is_sd_card=sd_card,
            root_partition=root_partition,
            root_start_sector=root_start,
            sector_size=self.sector_size,
        )
        logger.info("Disk inspected", **geometry.to_dict())
        return geometry
