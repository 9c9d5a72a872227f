"""
Human size strings.

Sizes are binary multiples: ``8G`` is 8 GiB, ``512M`` is 512 MiB.
"""

from __future__ import annotations

import re

import humanize

from rootsplit.core.errors import ParseError, PolicyError
from rootsplit.core.models import SECTOR_SIZE

GIB = 1024**3
DEFAULT_MIN_ROOT_BYTES = 8 * GIB
DEFAULT_MAX_ROOT_BYTES = 64 * GIB

_SIZE_RE = re.compile(r"^(\d+(?:\.\d+)?)\s*([A-Z]?B?)$")

MULTIPLIERS = {
    "": 1,
    "K": 1024,
    "M": 1024**2,
    "G": 1024**3,
    "T": 1024**4,
}


def parse_size(size_str: str) -> int:
    """Parse size string like '10G' or '1.5g' to bytes (fractions truncate)."""
    text = size_str.strip().upper()
    match = _SIZE_RE.match(text)
    if not match:
        raise ParseError(f"Invalid size format: {size_str!r}")

    suffix = match.group(2)
    unit = suffix[:-1] if suffix.endswith("B") else suffix
    if unit not in MULTIPLIERS:
        raise ParseError(f"Unknown size unit: {unit!r}")

    number = match.group(1)
    if "." in number:
        whole, fraction = number.split(".")
        # Exact integer arithmetic, no float rounding on large values
        scale = 10 ** len(fraction)
        return (int(whole) * scale + int(fraction)) * MULTIPLIERS[unit] // scale
    return int(number) * MULTIPLIERS[unit]


def format_size(size_bytes: int) -> str:
    """Format bytes using the largest unit that divides them exactly."""
    if size_bytes < 0:
        raise ValueError("Size must not be negative")
    for unit in ("T", "G", "M", "K"):
        multiplier = MULTIPLIERS[unit]
        if size_bytes and size_bytes % multiplier == 0:
            return f"{size_bytes // multiplier}{unit}"
    return str(size_bytes)


def validate_root_size(
    size_bytes: int,
    min_bytes: int = DEFAULT_MIN_ROOT_BYTES,
    max_bytes: int = DEFAULT_MAX_ROOT_BYTES,
) -> int:
    """Enforce the inclusive root size policy and return the size."""
    if size_bytes < min_bytes:
        raise PolicyError(f"Root size must be at least {format_size(min_bytes)}")
    if size_bytes > max_bytes:
        raise PolicyError(f"Root size must not exceed {format_size(max_bytes)}")
    return size_bytes


def parse_optional_size(size_str: str | None, sector_size: int = SECTOR_SIZE) -> int | None:
    """
    Parse an optional size; None and zero both mean 'not requested'.

    Anything else must cover at least one sector.
    """
    if size_str is None:
        return None
    size = parse_size(size_str)
    if size and size < sector_size:
        raise PolicyError(f"Size {size_str!r} is smaller than one {sector_size}-byte sector")
    return size or None


def human_size(size_bytes: int) -> str:
    return humanize.naturalsize(size_bytes, binary=True)
