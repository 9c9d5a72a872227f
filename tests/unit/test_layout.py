"""
Tests for rootsplit.core.layout module.
"""

import pytest

from rootsplit.core.errors import InsufficientSpaceError
from rootsplit.core.layout import align_up, describe_layout, plan_layout
from rootsplit.core.models import DiskGeometry, PartitionRole

GIB = 1024**3


def make_geometry(size_bytes: int = 32 * GIB, root_start: int = 8192) -> DiskGeometry:
    return DiskGeometry(
        device="/dev/sdz",
        size_bytes=size_bytes,
        is_sd_card=False,
        root_partition="/dev/sdz2",
        root_start_sector=root_start,
    )


class TestAlignUp:
    """Tests for align_up."""

    @pytest.mark.parametrize(
        "sector,expected",
        [(0, 0), (1, 2048), (2047, 2048), (2048, 2048), (2049, 4096)],
    )
    def test_default_alignment(self, sector: int, expected: int) -> None:
        assert align_up(sector) == expected

    def test_custom_alignment(self) -> None:
        assert align_up(5, alignment=8) == 8
        assert align_up(16, alignment=8) == 16


class TestPlanLayout:
    """Tests for plan_layout."""

    def test_minimum_root_on_32g_disk(self) -> None:
        layout = plan_layout(make_geometry(), 8 * GIB)

        assert layout.root.start == 8192
        assert layout.root.end == 16785407  # align_up(8192 + 16777216) - 1
        assert layout.home.start == 16785408
        assert layout.home.end == 32 * GIB // 512 - 1
        assert layout.home.size_bytes == (67108864 - 16785408) * 512
        assert layout.home.size_bytes >= 16 * GIB
        assert layout.swap is None
        assert layout.var is None

    def test_swap_and_var_placement(self) -> None:
        layout = plan_layout(make_geometry(64 * GIB), 8 * GIB, swap_bytes=2 * GIB, var_bytes=4 * GIB)

        assert layout.swap is not None and layout.var is not None
        assert layout.swap.start == align_up(layout.root.end + 1)
        assert layout.swap.end == align_up(layout.swap.start + 2 * GIB // 512) - 1
        assert layout.var.start == align_up(layout.swap.end + 1)
        assert layout.var.end == align_up(layout.var.start + 4 * GIB // 512) - 1
        assert layout.home.start == align_up(layout.var.end + 1)

    def test_var_without_swap_follows_root(self) -> None:
        layout = plan_layout(make_geometry(64 * GIB), 8 * GIB, var_bytes=4 * GIB)
        assert layout.swap is None
        assert layout.var is not None
        assert layout.var.start == align_up(layout.root.end + 1)

    def test_zero_sizes_mean_not_requested(self) -> None:
        layout = plan_layout(make_geometry(), 8 * GIB, swap_bytes=0, var_bytes=0)
        assert layout.ranges() == [layout.root, layout.home]

    @pytest.mark.parametrize(
        "swap,var",
        [(None, None), (GIB, None), (None, 2 * GIB), (GIB, 2 * GIB), (512 * 1024**2 + 7, 3 * GIB)],
    )
    def test_ranges_ordered_disjoint_and_aligned(self, swap: int | None, var: int | None) -> None:
        geometry = make_geometry(64 * GIB)
        layout = plan_layout(geometry, 16 * GIB, swap_bytes=swap, var_bytes=var)
        ranges = layout.ranges()

        for previous, current in zip(ranges, ranges[1:]):
            assert current.start == align_up(previous.end + 1)
            assert not current.overlaps(previous)
        for part in ranges[1:]:
            assert part.start % 2048 == 0
        for part in ranges[:-1]:
            assert (part.end + 1) % 2048 == 0
        assert ranges[-1].role is PartitionRole.HOME
        assert ranges[-1].end == geometry.last_sector
        assert layout.home.size_bytes * 2 >= geometry.size_bytes

    def test_unaligned_root_start_is_kept(self) -> None:
        layout = plan_layout(make_geometry(root_start=1000), 8 * GIB)
        assert layout.root.start == 1000
        assert (layout.root.end + 1) % 2048 == 0

    def test_home_below_half_raises(self) -> None:
        with pytest.raises(InsufficientSpaceError) as exc_info:
            plan_layout(make_geometry(), 8 * GIB, swap_bytes=2 * GIB, var_bytes=8 * GIB)

        error = exc_info.value
        assert error.required_bytes == 16 * GIB
        assert error.available_bytes == (67108864 - 37756928) * 512
        assert error.shortfall_bytes == 16 * GIB - error.available_bytes

    def test_no_room_for_home(self) -> None:
        geometry = make_geometry(size_bytes=16779264 * 512, root_start=2048)
        with pytest.raises(InsufficientSpaceError) as exc_info:
            plan_layout(geometry, 8 * GIB)
        assert exc_info.value.available_bytes == 0

    def test_layout_to_dict(self) -> None:
        data = plan_layout(make_geometry(), 8 * GIB).to_dict()
        assert data["alignment"] == 2048
        assert [p["role"] for p in data["partitions"]] == ["root", "home"]


def test_describe_layout() -> None:
    layout = plan_layout(make_geometry(64 * GIB), 8 * GIB, swap_bytes=GIB)
    lines = describe_layout(layout)

    assert lines[0] == "Partition Layout:"
    text = "\n".join(lines)
    assert "Root (/)" in text
    assert "Swap" in text
    assert "/home (ext4)" in text
    assert f"Sectors: {layout.swap.start} - {layout.swap.end}" in text
    assert "8.0 GiB" in text
