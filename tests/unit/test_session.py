"""
Tests for rootsplit.core.session module.
"""

import json
from pathlib import Path

import pytest

from conftest import FakeBackend
from rootsplit.core.config import RootSplitConfig
from rootsplit.core.errors import (
    InsufficientSpaceError,
    MissingToolError,
    ParseError,
    PolicyError,
    PrivilegeError,
    UnsafeTargetError,
)
from rootsplit.core.session import Session, SplitRequest

GIB = 1024**3

READ_ONLY_CALLS = {
    "is_admin",
    "read_mounts",
    "missing_tools",
    "read_disk_size",
    "read_partition_start",
}


@pytest.mark.usefixtures("fake_device_nodes")
class TestPrepare:
    """Tests for Session.prepare and its gate order."""

    def test_plan_for_plain_disk(
        self, sample_config: RootSplitConfig, fake_backend: FakeBackend
    ) -> None:
        session = Session(config=sample_config, backend=fake_backend)

        prepared = session.prepare(SplitRequest(device="sdz", root_size="8G", swap_size="1G"))

        assert prepared.geometry.device == "/dev/sdz"
        assert prepared.geometry.root_partition == "/dev/sdz2"
        assert prepared.layout.root.end == 16785407
        assert prepared.layout.swap is not None
        assert prepared.plan.confirmation_string == "SPLIT-SDZ"
        assert prepared.plan.steps == [step.intent for step in prepared.job.steps()]
        assert prepared.plan.layout_lines[0] == "Partition Layout:"
        assert set(fake_backend.call_names) <= READ_ONLY_CALLS

    def test_privilege_checked_first(self, sample_config: RootSplitConfig) -> None:
        backend = FakeBackend(admin=False)
        session = Session(config=sample_config, backend=backend)

        with pytest.raises(PrivilegeError):
            session.prepare(SplitRequest(device="/dev/sdz", root_size="8G"))
        assert backend.call_names == ["is_admin"]

    def test_live_root_before_tool_and_size_checks(self, sample_config: RootSplitConfig) -> None:
        backend = FakeBackend(mounts={"/": "/dev/sdz2"}, missing=["rsync"])
        session = Session(config=sample_config, backend=backend)

        with pytest.raises(UnsafeTargetError):
            session.prepare(SplitRequest(device="/dev/sdz", root_size="not-a-size"))
        assert "missing_tools" not in backend.call_names
        assert "read_disk_size" not in backend.call_names

    def test_saved_config_cannot_bypass_live_root(
        self, sample_config: RootSplitConfig, temp_dir: Path
    ) -> None:
        config_path = temp_dir / "config.json"
        data = sample_config.model_dump(mode="json")
        data["safety"]["live_root_protection"] = False
        config_path.write_text(json.dumps(data))
        config = RootSplitConfig.load(config_path)
        session = Session(config=config, backend=FakeBackend(mounts={"/": "/dev/sdz2"}))

        with pytest.raises(UnsafeTargetError):
            session.prepare(SplitRequest(device="/dev/sdz", root_size="8G"))
        assert session.safety.acknowledgments == []

    def test_saved_config_cannot_bypass_sd_policy(
        self, sample_config: RootSplitConfig, temp_dir: Path
    ) -> None:
        config_path = temp_dir / "config.json"
        data = sample_config.model_dump(mode="json")
        data["safety"]["protect_sd_cards"] = False
        config_path.write_text(json.dumps(data))
        config = RootSplitConfig.load(config_path)
        session = Session(config=config, backend=FakeBackend())

        with pytest.raises(PolicyError):
            session.prepare(SplitRequest(device="mmcblk0", root_size="8G", swap_size="1G"))
        assert session.safety.acknowledgments == []

    def test_missing_tools(self, sample_config: RootSplitConfig) -> None:
        backend = FakeBackend(missing=["mkfs.btrfs"])
        session = Session(config=sample_config, backend=backend)

        with pytest.raises(MissingToolError):
            session.prepare(SplitRequest(device="/dev/sdz", root_size="8G"))

    def test_bad_sizes(self, sample_config: RootSplitConfig, fake_backend: FakeBackend) -> None:
        session = Session(config=sample_config, backend=fake_backend)

        with pytest.raises(ParseError):
            session.prepare(SplitRequest(device="/dev/sdz", root_size="eight"))
        with pytest.raises(PolicyError):
            session.prepare(SplitRequest(device="/dev/sdz", root_size="4G"))
        with pytest.raises(PolicyError, match="sector"):
            session.prepare(SplitRequest(device="/dev/sdz", root_size="8G", swap_size="100"))
        assert "read_disk_size" not in fake_backend.call_names

    def test_sd_card_with_swap_aborts_before_anything_destructive(
        self, sample_config: RootSplitConfig, fake_backend: FakeBackend
    ) -> None:
        session = Session(config=sample_config, backend=fake_backend)

        with pytest.raises(PolicyError):
            session.prepare(SplitRequest(device="mmcblk0", root_size="8G", swap_size="1G"))
        assert set(fake_backend.call_names) <= READ_ONLY_CALLS

    def test_sd_card_with_force(
        self, sample_config: RootSplitConfig, fake_backend: FakeBackend
    ) -> None:
        session = Session(config=sample_config, backend=fake_backend)

        prepared = session.prepare(
            SplitRequest(device="mmcblk0", root_size="8G", swap_size="1G", force=True)
        )

        assert prepared.geometry.root_partition == "/dev/mmcblk0p2"
        assert "/dev/mmcblk0 is an SD card" in prepared.plan.warnings
        assert session.safety.acknowledgments[0]["kind"] == "sd_card_media"

    def test_home_too_small(self, sample_config: RootSplitConfig, fake_backend: FakeBackend) -> None:
        session = Session(config=sample_config, backend=fake_backend)

        with pytest.raises(InsufficientSpaceError):
            session.prepare(SplitRequest(device="/dev/sdz", root_size="16G", var_size="8G"))

    def test_live_root_override_warns_about_mounts(self, sample_config: RootSplitConfig) -> None:
        backend = FakeBackend(mounts={"/": "/dev/sdz2"})
        session = Session(config=sample_config, backend=backend)

        prepared = session.prepare(
            SplitRequest(device="/dev/sdz", root_size="8G", allow_live_root=True)
        )

        assert any("Mount Status" in w for w in prepared.plan.warnings)


@pytest.mark.usefixtures("fake_device_nodes")
class TestRunAndReport:
    """Tests for running a prepared job and the session report."""

    def test_run_and_close(self, sample_config: RootSplitConfig, fake_backend: FakeBackend) -> None:
        session = Session(config=sample_config, backend=fake_backend)
        prepared = session.prepare(SplitRequest(device="/dev/sdz", root_size="8G"))

        result = session.run_job(prepared.job)
        report_path = session.close()

        assert result.success is True
        assert result.data.home == "/dev/sdz3"

        report = json.loads(report_path.read_text())
        assert report["summary"] == {"attempted": 1, "succeeded": 1, "failed": 0}
        split = report["splits"][0]
        assert split["device"] == "/dev/sdz"
        assert split["created"]["home"] == "/dev/sdz3"
        assert split["journal_file"] == str(session.journal.journal_file)
        assert session.journal.journal_file.exists()

    def test_failed_run_is_reported(
        self, sample_config: RootSplitConfig, fake_backend: FakeBackend
    ) -> None:
        fake_backend.devices_appear = False
        with Session(config=sample_config, backend=fake_backend) as session:
            prepared = session.prepare(SplitRequest(device="/dev/sdz", root_size="8G"))
            result = session.run_job(prepared.job)

        assert result.success is False
        report = session.report
        failed = report.failed_splits[0]
        assert failed["error_type"] == "DeviceNotReadyError"
        assert failed["failed_stage"] == "HOME_CREATED"
        assert failed["created"]["home"] is None
        assert failed["created"]["root"] == "/dev/sdz2"
        assert report.ended_at is not None


def test_sessions_get_separate_journals(
    sample_config: RootSplitConfig, fake_backend: FakeBackend
) -> None:
    first = Session(config=sample_config, backend=fake_backend)
    second = Session(config=sample_config, backend=fake_backend)

    assert first.journal.journal_file != second.journal.journal_file
    assert first.journal.journal_file.name.endswith(f"_{first.id}.json")
