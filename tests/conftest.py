"""
Pytest configuration and fixtures for rootsplit tests.
"""

import os
import shutil
import sys
import tempfile
from pathlib import Path
from typing import Generator

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from rootsplit.core.config import RootSplitConfig  # noqa: E402
from rootsplit.core.inspector import partition_device_path  # noqa: E402
from rootsplit.core.models import FileSystem  # noqa: E402
from rootsplit.platform.base import CommandResult, PlatformBackend  # noqa: E402

GIB = 1024**3


class FakeBackend(PlatformBackend):
    """
    In-memory stand-in for the disk tools.

    Records every call in ``calls``. Partition table changes only update
    a list of partition numbers; copy and delete act on real directories
    so migration tests can check what happened to the data.
    """

    def __init__(
        self,
        disk_size: int = 32 * GIB,
        root_start: int = 8192,
        admin: bool = True,
        missing: list[str] | None = None,
        mounts: dict[str, str] | None = None,
    ) -> None:
        self.disk_size = disk_size
        self.root_start = root_start
        self.admin = admin
        self.missing = missing or []
        self.mounts = mounts if mounts is not None else {"/": "/dev/sdy2"}
        self.partitions = [1, 2]
        self.device_nodes: set[str] = set()
        self.devices_appear = True
        self.fsck_returncode = 0
        self.unmount_failures: set[Path] = set()
        self.failures: dict[str, Exception] = {}
        self.calls: list[tuple] = []

    def _call(self, name: str, *args: object) -> None:
        self.calls.append((name, *args))
        if name in self.failures:
            raise self.failures[name]

    @property
    def call_names(self) -> list[str]:
        return [call[0] for call in self.calls]

    @property
    def name(self) -> str:
        return "fake"

    def is_admin(self) -> bool:
        self._call("is_admin")
        return self.admin

    def required_tools(self) -> list[str]:
        return ["parted", "resize2fs", "rsync"]

    def missing_tools(self) -> list[str]:
        self._call("missing_tools")
        return list(self.missing)

    def read_disk_size(self, device: str) -> int:
        self._call("read_disk_size", device)
        return self.disk_size

    def read_partition_start(self, device: str, number: int) -> int:
        self._call("read_partition_start", device, number)
        return self.root_start

    def next_partition_number(self, device: str) -> int:
        self._call("next_partition_number", device)
        return max(self.partitions) + 1

    def read_mounts(self) -> dict[str, str]:
        self._call("read_mounts")
        return dict(self.mounts)

    def check_filesystem(self, partition_path: str) -> CommandResult:
        self._call("check_filesystem", partition_path)
        return CommandResult(self.fsck_returncode, "", "", ["e2fsck", partition_path])

    def shrink_filesystem(self, partition_path: str, size_bytes: int, block_size: int) -> None:
        self._call("shrink_filesystem", partition_path, size_bytes, block_size)

    def format_partition(self, partition_path: str, filesystem: FileSystem) -> None:
        self._call("format_partition", partition_path, filesystem)

    def lookup_uuid(self, partition_path: str) -> str:
        self._call("lookup_uuid", partition_path)
        return f"uuid-{os.path.basename(partition_path)}"

    def recreate_partition(self, device: str, number: int, start: int, end: int) -> None:
        self._call("recreate_partition", device, number, start, end)

    def create_partition(self, device: str, filesystem: FileSystem, start: int, end: int) -> None:
        self._call("create_partition", device, filesystem, start, end)
        number = max(self.partitions) + 1
        self.partitions.append(number)
        if self.devices_appear:
            self.device_nodes.add(partition_device_path(device, number))

    def rescan(self, device: str) -> None:
        self._call("rescan", device)

    def wait_for_device(self, device_path: str, timeout: float, interval: float) -> bool:
        self._call("wait_for_device", device_path)
        return device_path in self.device_nodes

    def mount(self, device_path: str, mount_point: Path) -> None:
        self._call("mount", device_path, mount_point)

    def unmount(self, mount_point: Path) -> CommandResult:
        self._call("unmount", mount_point)
        if mount_point in self.unmount_failures:
            return CommandResult(32, "", "target is busy", ["umount", str(mount_point)])
        return CommandResult(0, "", "", ["umount", str(mount_point)])

    def sync_tree(self, source: Path, destination: Path) -> None:
        self._call("sync_tree", source, destination)
        shutil.copytree(source, destination, dirs_exist_ok=True, symlinks=True)

    def remove_tree_contents(self, path: Path) -> None:
        self._call("remove_tree_contents", path)
        for child in path.iterdir():
            if child.is_dir() and not child.is_symlink():
                shutil.rmtree(child)
            else:
                child.unlink()


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def sample_config(temp_dir: Path) -> RootSplitConfig:
    """Create a sample configuration for testing."""
    config = RootSplitConfig(session_directory=temp_dir / "sessions")
    config.logging.log_directory = temp_dir / "logs"
    config.logging.console_enabled = False
    config.logging.file_enabled = False
    config.migration.mount_root = temp_dir / "mnt"
    config.tools.device_wait_timeout_seconds = 0.01
    config.tools.device_poll_interval_seconds = 0.001
    config.ensure_directories()
    return config


@pytest.fixture
def fake_backend() -> FakeBackend:
    """A fake backend describing a 32 GiB disk with root on partition 2."""
    return FakeBackend()


@pytest.fixture
def fake_device_nodes(mocker) -> None:
    """Pretend every /dev path the inspector asks about exists."""
    mocker.patch(
        "rootsplit.core.session.normalize_device",
        side_effect=lambda token: token if token.startswith("/dev/") else f"/dev/{token}",
    )
    mocker.patch(
        "rootsplit.core.inspector.root_partition_path",
        side_effect=lambda device, sd_card, number=2: (
            f"{device}p{number}" if sd_card else f"{device}{number}"
        ),
    )


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
