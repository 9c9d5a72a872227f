"""
Partition layout planner.

Turns the requested root/swap/var sizes and the disk geometry into sector
ranges. Every start sector is aligned to a 1 MiB boundary and /home gets
whatever is left, which must be at least half of the disk.
"""

from __future__ import annotations

from rootsplit.core.errors import InsufficientSpaceError
from rootsplit.core.models import (
    ALIGNMENT_SECTORS,
    DiskGeometry,
    PartitionLayout,
    PartitionRange,
    PartitionRole,
)
from rootsplit.core.sizes import human_size


def align_up(sector: int, alignment: int = ALIGNMENT_SECTORS) -> int:
    """Round a sector index up to the next multiple of ``alignment``."""
    return ((sector + alignment - 1) // alignment) * alignment


def _place(
    role: PartitionRole,
    start: int,
    size_bytes: int,
    sector_size: int,
    alignment: int,
) -> PartitionRange:
    sectors = size_bytes // sector_size
    end = align_up(start + sectors, alignment) - 1
    return PartitionRange(role=role, start=start, end=end, size_bytes=size_bytes)


def plan_layout(
    geometry: DiskGeometry,
    root_bytes: int,
    swap_bytes: int | None = None,
    var_bytes: int | None = None,
    alignment: int = ALIGNMENT_SECTORS,
) -> PartitionLayout:
    """
    Compute the partition layout.

    The root partition keeps its recorded start sector. Swap and var are
    placed only when a non-zero size is given; whether they are allowed at
    all is decided by the caller.
    """
    sector_size = geometry.sector_size

    root = _place(
        PartitionRole.ROOT, geometry.root_start_sector, root_bytes, sector_size, alignment
    )
    last_end = root.end

    swap = None
    if swap_bytes:
        swap = _place(
            PartitionRole.SWAP, align_up(last_end + 1, alignment), swap_bytes, sector_size, alignment
        )
        last_end = swap.end

    var = None
    if var_bytes:
        var = _place(
            PartitionRole.VAR, align_up(last_end + 1, alignment), var_bytes, sector_size, alignment
        )
        last_end = var.end

    home_start = align_up(last_end + 1, alignment)
    home_end = geometry.size_sectors - 1
    minimum_home = geometry.size_bytes // 2

    if home_start > home_end:
        raise InsufficientSpaceError(minimum_home, 0)

    home_bytes = (home_end - home_start + 1) * sector_size
    if home_bytes < minimum_home:
        raise InsufficientSpaceError(minimum_home, home_bytes)

    home = PartitionRange(
        role=PartitionRole.HOME, start=home_start, end=home_end, size_bytes=home_bytes
    )

    return PartitionLayout(
        root=root,
        swap=swap,
        var=var,
        home=home,
        sector_size=sector_size,
        alignment=alignment,
    )


def describe_layout(layout: PartitionLayout) -> list[str]:
    """Human-readable lines describing each planned partition."""
    titles = {
        PartitionRole.ROOT: "Root (/)",
        PartitionRole.SWAP: "Swap",
        PartitionRole.VAR: "/var (btrfs)",
        PartitionRole.HOME: "/home (ext4)",
    }
    lines = ["Partition Layout:"]
    for part in layout.ranges():
        lines.append(f"  {titles[part.role]}:")
        lines.append(f"    Size: {human_size(part.size_bytes)}")
        lines.append(f"    Sectors: {part.start} - {part.end}")
    return lines
