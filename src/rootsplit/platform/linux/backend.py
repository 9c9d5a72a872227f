"""
Linux Platform Backend Implementation.

Implements disk operations using standard Linux tools.
"""

from __future__ import annotations

import os
import shutil
import subprocess
import time
from pathlib import Path

from rootsplit.core.errors import ToolExecutionError
from rootsplit.core.logging import get_logger
from rootsplit.core.models import FileSystem
from rootsplit.platform.base import CommandResult, PlatformBackend
from rootsplit.platform.linux.parsers import (
    parse_blkid_value,
    parse_parted_disk_size,
    parse_parted_partition_numbers,
    parse_parted_partition_start,
    parse_proc_mounts,
)

logger = get_logger(__name__)


class LinuxBackend(PlatformBackend):
    """Linux implementation of disk operations."""

    # Tool paths (can be overridden for testing)
    PARTED = "parted"
    PARTPROBE = "partprobe"
    BLKID = "blkid"
    MOUNT = "mount"
    UMOUNT = "umount"
    RSYNC = "rsync"

    # Filesystem tools
    E2FSCK = "e2fsck"
    RESIZE2FS = "resize2fs"
    MKFS_EXT4 = "mkfs.ext4"
    MKFS_BTRFS = "mkfs.btrfs"
    MKSWAP = "mkswap"

    PROC_MOUNTS = Path("/proc/mounts")

    def __init__(self, command_timeout: int = 3600) -> None:
        self.command_timeout = command_timeout

    @property
    def name(self) -> str:
        return "linux"

    def is_admin(self) -> bool:
        return os.geteuid() == 0

    def _check_tool(self, tool: str) -> bool:
        """Check if a tool is available."""
        return shutil.which(tool) is not None

    def required_tools(self) -> list[str]:
        """Get list of required tools."""
        return [
            self.PARTED,
            self.PARTPROBE,
            self.BLKID,
            self.MOUNT,
            self.UMOUNT,
            self.RSYNC,
            self.E2FSCK,
            self.RESIZE2FS,
            self.MKFS_EXT4,
            self.MKFS_BTRFS,
            self.MKSWAP,
        ]

    def missing_tools(self) -> list[str]:
        return [tool for tool in self.required_tools() if not self._check_tool(tool)]

    def run_command(
        self,
        command: list[str],
        timeout: int | None = None,
        check: bool = True,
        capture_output: bool = True,
    ) -> CommandResult:
        """Run a system command."""
        timeout = timeout or self.command_timeout
        logger.debug("Running command", command=command)
        start_time = time.time()

        try:
            result = subprocess.run(
                command,
                capture_output=capture_output,
                text=True,
                timeout=timeout,
            )
            duration = time.time() - start_time

            cmd_result = CommandResult(
                returncode=result.returncode,
                stdout=result.stdout if capture_output else "",
                stderr=result.stderr if capture_output else "",
                command=command,
                duration_seconds=duration,
            )

            if check and result.returncode != 0:
                logger.warning(
                    "Command failed",
                    command=command,
                    returncode=result.returncode,
                    stderr=result.stderr[:500] if result.stderr else "",
                )

            return cmd_result

        except subprocess.TimeoutExpired:
            return CommandResult(
                returncode=-1,
                stdout="",
                stderr=f"Command timed out after {timeout}s",
                command=command,
                duration_seconds=timeout,
            )
        except OSError as e:
            return CommandResult(
                returncode=-1,
                stdout="",
                stderr=str(e),
                command=command,
                duration_seconds=time.time() - start_time,
            )

    def _run_or_raise(self, command: list[str], description: str) -> CommandResult:
        result = self.run_command(command)
        if not result.success:
            raise ToolExecutionError(f"{description} failed", result)
        return result

    # ==================== Geometry ====================

    def read_disk_size(self, device: str) -> int:
        result = self.run_command([self.PARTED, "-s", device, "unit", "B", "print"], check=False)
        return parse_parted_disk_size(result.stdout)

    def read_partition_start(self, device: str, number: int) -> int:
        result = self.run_command([self.PARTED, "-s", device, "unit", "s", "print"], check=False)
        return parse_parted_partition_start(result.stdout, number)

    def next_partition_number(self, device: str) -> int:
        result = self.run_command([self.PARTED, "-s", device, "print"], check=False)
        numbers = parse_parted_partition_numbers(result.stdout)
        return max(numbers, default=0) + 1

    def read_mounts(self) -> dict[str, str]:
        return parse_proc_mounts(self.PROC_MOUNTS.read_text(encoding="utf-8"))

    # ==================== Filesystem Operations ====================

    def check_filesystem(self, partition_path: str) -> CommandResult:
        # e2fsck exits 1 after fixing errors, so a non-zero code is informational
        return self.run_command([self.E2FSCK, "-f", "-y", partition_path], check=False)

    def shrink_filesystem(self, partition_path: str, size_bytes: int, block_size: int) -> None:
        blocks = size_bytes // block_size
        size_arg = f"{blocks * block_size // 1024}K"
        self._run_or_raise([self.RESIZE2FS, partition_path, size_arg], "resize2fs")

    def format_partition(self, partition_path: str, filesystem: FileSystem) -> None:
        mkfs_map = {
            FileSystem.EXT4: (self.MKFS_EXT4, ["-F"]),
            FileSystem.BTRFS: (self.MKFS_BTRFS, ["-f"]),
            FileSystem.SWAP: (self.MKSWAP, ["-f"]),
        }
        mkfs_tool, default_args = mkfs_map[filesystem]
        self._run_or_raise([mkfs_tool, *default_args, partition_path], mkfs_tool)

    def lookup_uuid(self, partition_path: str) -> str:
        result = self.run_command(
            [self.BLKID, "-s", "UUID", "-o", "value", partition_path], check=False
        )
        return parse_blkid_value(result.stdout)

    # ==================== Partition Table Operations ====================

    def recreate_partition(self, device: str, number: int, start: int, end: int) -> None:
        self._run_or_raise(
            [self.PARTED, "-s", device, "rm", str(number)],
            f"Removing partition {number}",
        )
        self._run_or_raise(
            [self.PARTED, "-s", device, "mkpart", "primary", "ext4", f"{start}s", f"{end}s"],
            f"Recreating partition {number}",
        )

    def create_partition(
        self, device: str, filesystem: FileSystem, start: int, end: int
    ) -> None:
        self._run_or_raise(
            [
                self.PARTED,
                "-s",
                device,
                "mkpart",
                "primary",
                filesystem.parted_type,
                f"{start}s",
                f"{end}s",
            ],
            f"Creating {filesystem.value} partition",
        )

    def rescan(self, device: str) -> None:
        result = self.run_command([self.PARTPROBE, device], check=False)
        if not result.success:
            logger.warning("partprobe failed", device=device, stderr=result.stderr.strip())

    def wait_for_device(self, device_path: str, timeout: float, interval: float) -> bool:
        deadline = time.monotonic() + timeout
        while True:
            if os.path.exists(device_path):
                return True
            if time.monotonic() >= deadline:
                return False
            time.sleep(interval)

    # ==================== Mount and Copy Operations ====================

    def mount(self, device_path: str, mount_point: Path) -> None:
        self._run_or_raise(
            [self.MOUNT, device_path, str(mount_point)],
            f"Mounting {device_path} at {mount_point}",
        )

    def unmount(self, mount_point: Path) -> CommandResult:
        return self.run_command([self.UMOUNT, str(mount_point)], check=False)

    def sync_tree(self, source: Path, destination: Path) -> None:
        self._run_or_raise(
            [
                self.RSYNC,
                "-aAXHx",
                "--numeric-ids",
                f"{source}/",
                f"{destination}/",
            ],
            f"Copying {source} to {destination}",
        )

    def remove_tree_contents(self, path: Path) -> None:
        for child in path.iterdir():
            if child.is_dir() and not child.is_symlink():
                shutil.rmtree(child)
            else:
                child.unlink()
