"""
Linux output parsers.

Parsers for parted, blkid and the kernel mount table.
"""

from __future__ import annotations

import re

from rootsplit.core.errors import ToolOutputError

_DISK_SIZE_RE = re.compile(r"Disk /[^:]+:\s*(\d+)B")
_PARTITION_NUMBER_RE = re.compile(r"^\s*(\d+)\s+")


def parse_parted_disk_size(output: str) -> int:
    """
    Parse the disk size from ``parted DEV unit B print``.

    Example line:
    Disk /dev/mmcblk0: 31914983424B
    """
    match = _DISK_SIZE_RE.search(output)
    if not match:
        raise ToolOutputError("Could not determine disk size from parted output")
    return int(match.group(1))


def parse_parted_partition_start(output: str, number: int) -> int:
    """
    Parse a partition's start sector from ``parted DEV unit s print``.

    Example line:
     2      532480s    62333951s  61801472s  primary  ext4
    """
    pattern = re.compile(rf"^\s*{number}\s+(\d+)s")
    for line in output.splitlines():
        match = pattern.match(line)
        if match:
            return int(match.group(1))
    raise ToolOutputError(f"Could not find partition {number} start sector")


def parse_parted_partition_numbers(output: str) -> list[int]:
    """Partition numbers listed in a ``parted DEV print`` table."""
    numbers = []
    for line in output.splitlines():
        match = _PARTITION_NUMBER_RE.match(line)
        if match:
            numbers.append(int(match.group(1)))
    return numbers


def parse_blkid_value(output: str) -> str:
    """Parse ``blkid -s TAG -o value DEV`` output."""
    value = output.strip().splitlines()[0].strip() if output.strip() else ""
    if not value:
        raise ToolOutputError("blkid returned no value")
    return value


def decode_mount_field(value: str) -> str:
    """Undo the octal escaping used in /proc/mounts (e.g. ``\\040`` for space)."""
    return re.sub(r"\\([0-7]{3})", lambda m: chr(int(m.group(1), 8)), value)


def parse_proc_mounts(content: str) -> dict[str, str]:
    """
    Parse /proc/mounts content into {mountpoint: source}.

    Later entries win, matching how stacked mounts shadow earlier ones.
    """
    result: dict[str, str] = {}
    for line in content.splitlines():
        parts = line.split()
        if len(parts) >= 2:
            result[decode_mount_field(parts[1])] = decode_mount_field(parts[0])
    return result
