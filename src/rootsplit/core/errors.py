"""
rootsplit exceptions.

Every error below is fatal to a run: it unwinds the whole pipeline and
nothing that was already done to the disk is rolled back.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from rootsplit.platform.base import CommandResult


class RootSplitError(Exception):
    """Base exception for rootsplit errors."""


class ParseError(RootSplitError):
    """Malformed size string or unrecognized unit."""


class PolicyError(RootSplitError):
    """Requested configuration violates a sizing or media policy."""


class NotFoundError(RootSplitError):
    """A device or partition path does not exist."""


class UnsafeTargetError(RootSplitError):
    """Target holds the live root filesystem, or data that does not live on it."""


class ToolOutputError(RootSplitError):
    """Expected pattern absent from an external tool's report."""


class ToolExecutionError(RootSplitError):
    """An external tool exited non-zero during a destructive step."""

    def __init__(self, message: str, result: CommandResult | None = None) -> None:
        if result is not None and result.stderr:
            message = f"{message}: {result.stderr.strip()}"
        super().__init__(message)
        self.result = result


class DeviceNotReadyError(RootSplitError):
    """Device node did not appear within the bounded wait."""


class InsufficientSpaceError(RootSplitError):
    """The /home partition would be smaller than half of the disk."""

    def __init__(self, required_bytes: int, available_bytes: int) -> None:
        self.required_bytes = required_bytes
        self.available_bytes = available_bytes
        self.shortfall_bytes = max(0, required_bytes - available_bytes)
        super().__init__(
            "Insufficient space for /home partition: need at least "
            f"{required_bytes} bytes, only {available_bytes} bytes available "
            f"after other partitions (short by {self.shortfall_bytes} bytes)"
        )


class MissingToolError(RootSplitError):
    """One or more required external tools are not installed."""

    def __init__(self, tools: list[str]) -> None:
        self.tools = tools
        super().__init__(f"Missing required tools: {', '.join(tools)}")


class PrivilegeError(RootSplitError):
    """The operation requires root privileges."""
