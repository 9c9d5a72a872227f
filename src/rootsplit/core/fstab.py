"""
fstab generation for the migrated system.
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from pathlib import Path

from rootsplit.core.models import PartitionRole

DEFAULT_MARKER = "# added by rootsplit"


@dataclass(frozen=True)
class FstabEntry:
    """One line of /etc/fstab."""

    uuid: str
    mountpoint: str
    fstype: str
    options: str = "defaults"
    dump: int = 0
    passno: int = 0

    def render(self, marker: str | None = DEFAULT_MARKER) -> str:
        line = (
            f"UUID={self.uuid}  {self.mountpoint}  {self.fstype}  "
            f"{self.options}  {self.dump}  {self.passno}"
        )
        if marker:
            line = f"{line}  {marker}"
        return line


def entry_for(role: PartitionRole, uuid: str, options: str | None = None) -> FstabEntry:
    """Build the fstab entry of a newly created partition."""
    if role is PartitionRole.SWAP:
        return FstabEntry(uuid=uuid, mountpoint="none", fstype="swap", options=options or "sw")
    if role in (PartitionRole.VAR, PartitionRole.HOME):
        return FstabEntry(
            uuid=uuid,
            mountpoint=role.mountpoint or "",
            fstype=role.filesystem.value,
            options=options or "defaults",
            passno=2,
        )
    raise ValueError(f"No fstab entry is generated for the {role.value} partition")


def append_entries(content: str, lines: list[str]) -> str:
    """Append rendered lines to existing fstab text."""
    if not lines:
        return content
    if content and not content.endswith("\n"):
        content += "\n"
    return content + "\n".join(lines) + "\n"


def write_fstab(path: Path, content: str, atomic: bool = True) -> None:
    """
    Write the whole file back.

    With ``atomic`` the content goes to a temporary file in the same
    directory which then replaces the original, so a crash leaves either
    the old or the new file, never a truncated one.
    """
    if not atomic:
        path.write_text(content, encoding="utf-8")
        return

    mode = path.stat().st_mode & 0o7777 if path.exists() else 0o644
    fd, tmp_name = tempfile.mkstemp(prefix=".fstab.", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp_name, mode)
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise
