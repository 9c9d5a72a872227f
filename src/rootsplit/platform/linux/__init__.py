"""
rootsplit Linux Platform Backend.

Implements disk operations using standard Linux tools:
- parted, partprobe for the partition table
- e2fsck, resize2fs for the root filesystem
- mkfs.ext4, mkfs.btrfs, mkswap for new partitions
- mount, umount, rsync, blkid for the migration
"""

from rootsplit.platform.linux.backend import LinuxBackend
from rootsplit.platform.linux.parsers import (
    parse_blkid_value,
    parse_parted_disk_size,
    parse_parted_partition_start,
    parse_proc_mounts,
)

__all__ = [
    "LinuxBackend",
    "parse_blkid_value",
    "parse_parted_disk_size",
    "parse_parted_partition_start",
    "parse_proc_mounts",
]
