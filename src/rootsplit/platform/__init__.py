"""
rootsplit Platform Abstraction Layer.

Provides the tool-backed implementation of disk operations. Only Linux is
supported; the partition tools and device naming are Linux specific.
"""

from __future__ import annotations

import platform

from rootsplit.platform.base import CommandResult, PlatformBackend


def get_platform_backend(command_timeout: int = 3600) -> PlatformBackend:
    """Get the platform backend for the current OS."""
    system = platform.system().lower()

    if system == "linux":
        from rootsplit.platform.linux import LinuxBackend

        return LinuxBackend(command_timeout=command_timeout)
    raise RuntimeError(f"Unsupported platform: {system}")


__all__ = [
    "CommandResult",
    "PlatformBackend",
    "get_platform_backend",
]
