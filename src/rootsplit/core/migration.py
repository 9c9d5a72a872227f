"""
Migration orchestrator.

Runs the destructive pipeline that turns one large root partition into
root + optional swap + optional /var + /home:

    fsck -> shrink root fs -> resize root partition -> create swap/var/home
    -> mount -> move /var and /home -> append fstab -> unmount

Steps run strictly in order. Any error aborts the run and nothing already
done is rolled back; the step journal records what completed.
"""

from __future__ import annotations

import os
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from rootsplit.core.errors import DeviceNotReadyError, RootSplitError, UnsafeTargetError
from rootsplit.core.fstab import append_entries, entry_for, write_fstab
from rootsplit.core.inspector import partition_device_path
from rootsplit.core.job import Job, JobContext
from rootsplit.core.logging import OperationLogger, get_logger
from rootsplit.core.models import (
    CreatedPartitions,
    DiskGeometry,
    MigrationStage,
    PartitionLayout,
    PartitionRange,
    PartitionRole,
)
from rootsplit.core.safety import OperationType
from rootsplit.core.sizes import human_size

if TYPE_CHECKING:
    from rootsplit.core.config import MigrationConfig, ToolsConfig
    from rootsplit.core.logging import StepJournal
    from rootsplit.platform.base import PlatformBackend

logger = get_logger(__name__)


@dataclass(frozen=True)
class MountPoints:
    """Where the target partitions are mounted during migration."""

    root: Path
    var: Path
    home: Path

    def for_role(self, role: PartitionRole) -> Path:
        return getattr(self, role.value)


def create_mount_points(mount_root: Path) -> MountPoints:
    """Create the mount point directories. Existing directories are fine."""
    points = MountPoints(
        root=mount_root / "root",
        var=mount_root / "var",
        home=mount_root / "home",
    )
    for path in (points.root, points.var, points.home):
        path.mkdir(parents=True, exist_ok=True)
    return points


@dataclass
class MigrationContext:
    """State threaded through every pipeline transition."""

    geometry: DiskGeometry
    layout: PartitionLayout
    created: CreatedPartitions
    job: JobContext
    stage: MigrationStage = MigrationStage.INIT
    mount_points: MountPoints | None = None
    mounted: list[tuple[PartitionRole, Path]] = field(default_factory=list)

    def require_mount_points(self) -> MountPoints:
        if self.mount_points is None:
            raise RootSplitError("Mount points have not been prepared")
        return self.mount_points

    def warn(self, message: str, **details: Any) -> None:
        logger.warning(message, stage=self.stage.name, **details)
        self.job.add_warning(message)


@dataclass(frozen=True)
class PipelineStep:
    stage: MigrationStage
    intent: str
    action: Callable[[MigrationContext], str]


class MigrationJob(Job[CreatedPartitions]):
    """Shrinks root and moves /var and /home onto new partitions."""

    operation_type = OperationType.MODIFY

    def __init__(
        self,
        backend: PlatformBackend,
        geometry: DiskGeometry,
        layout: PartitionLayout,
        migration: MigrationConfig,
        tools: ToolsConfig,
        root_partition_number: int = 2,
        journal: StepJournal | None = None,
    ) -> None:
        super().__init__(
            name="split_root",
            description=f"Split root filesystem on {geometry.device}",
        )
        self.backend = backend
        self.geometry = geometry
        self.layout = layout
        self.migration = migration
        self.tools = tools
        self.root_partition_number = root_partition_number
        self.journal = journal
        self.created = CreatedPartitions(root=geometry.root_partition)

    # ==================== Plan ====================

    def steps(self) -> list[PipelineStep]:
        """Pipeline steps for this layout; optional ones only when planned."""
        layout = self.layout
        root = self.geometry.root_partition
        steps = [
            PipelineStep(
                MigrationStage.FSCK_CHECKED,
                f"Checking filesystem on {root}",
                self._check_filesystem,
            ),
            PipelineStep(
                MigrationStage.ROOT_SHRUNK,
                f"Shrinking root filesystem to {human_size(layout.root.size_bytes)}",
                self._shrink_root,
            ),
            PipelineStep(
                MigrationStage.ROOT_RESIZED,
                f"Resizing partition {self.root_partition_number} to end at sector {layout.root.end}",
                self._resize_root,
            ),
        ]
        if layout.swap is not None:
            steps.append(
                PipelineStep(
                    MigrationStage.SWAP_CREATED,
                    f"Creating swap partition (sectors {layout.swap.start}-{layout.swap.end})",
                    lambda ctx: self._create_partition(ctx, PartitionRole.SWAP),
                )
            )
        if layout.var is not None:
            steps.append(
                PipelineStep(
                    MigrationStage.VAR_CREATED,
                    f"Creating /var partition (sectors {layout.var.start}-{layout.var.end})",
                    lambda ctx: self._create_partition(ctx, PartitionRole.VAR),
                )
            )
        steps.append(
            PipelineStep(
                MigrationStage.HOME_CREATED,
                f"Creating /home partition (sectors {layout.home.start}-{layout.home.end})",
                lambda ctx: self._create_partition(ctx, PartitionRole.HOME),
            )
        )
        steps += [
            PipelineStep(
                MigrationStage.MOUNT_POINTS_READY,
                f"Preparing mount points under {self.migration.mount_root}",
                self._prepare_mount_points,
            ),
            PipelineStep(MigrationStage.MOUNTED, "Mounting partitions", self._mount),
        ]
        if layout.var is not None:
            steps.append(
                PipelineStep(
                    MigrationStage.VAR_MIGRATED,
                    "Moving /var data to the new partition",
                    lambda ctx: self._migrate(ctx, PartitionRole.VAR),
                )
            )
        steps += [
            PipelineStep(
                MigrationStage.HOME_MIGRATED,
                "Moving /home data to the new partition",
                lambda ctx: self._migrate(ctx, PartitionRole.HOME),
            ),
            PipelineStep(MigrationStage.FSTAB_UPDATED, "Updating /etc/fstab", self._update_fstab),
            PipelineStep(MigrationStage.UNMOUNTED, "Unmounting partitions", self._unmount),
        ]
        return steps

    def get_plan(self) -> str:
        lines = [f"Target: {self.geometry.device} (root {self.geometry.root_partition})"]
        for i, step in enumerate(self.steps(), 1):
            lines.append(f"  {i}. {step.intent}")
        return "\n".join(lines)

    def validate(self) -> list[str]:
        errors = []
        ranges = self.layout.ranges()
        for part in ranges:
            if part.end < part.start:
                errors.append(f"{part.role.value} range {part.start}-{part.end} is empty")
        for previous, current in zip(ranges, ranges[1:]):
            if current.start <= previous.end:
                errors.append(f"{current.role.value} overlaps {previous.role.value}")
        if self.layout.home.end > self.geometry.last_sector:
            errors.append("/home extends past the end of the disk")
        return errors

    # ==================== Execution ====================

    def execute(self, context: JobContext) -> CreatedPartitions:
        ctx = MigrationContext(
            geometry=self.geometry,
            layout=self.layout,
            created=self.created,
            job=context,
        )
        steps = self.steps()
        total = len(steps)

        for index, step in enumerate(steps, 1):
            context.begin_step(index, total, step.stage.name, step.intent)
            try:
                with OperationLogger(step.stage.name.lower(), logger, device=self.geometry.device):
                    outcome = step.action(ctx)
            except Exception as e:
                self._journal(step.stage, "failed", ctx, error=str(e))
                raise
            ctx.stage = step.stage
            self._journal(step.stage, "completed", ctx, outcome=outcome)
            context.finish_step(outcome)

        ctx.stage = MigrationStage.DONE
        return ctx.created

    def _journal(self, stage: MigrationStage, status: str, ctx: MigrationContext, **details: Any) -> None:
        if self.journal is None:
            return
        self.journal.record(
            stage.name,
            status=status,
            device=self.geometry.device,
            created=ctx.created.to_dict(),
            mounted=[str(path) for _, path in ctx.mounted],
            layout=self.layout.to_dict(),
            **details,
        )

    # ==================== Steps ====================

    def _check_filesystem(self, ctx: MigrationContext) -> str:
        result = self.backend.check_filesystem(self.geometry.root_partition)
        if not result.success:
            ctx.warn(
                f"e2fsck returned {result.returncode} on {self.geometry.root_partition}, continuing",
                returncode=result.returncode,
            )
            return "Filesystem check reported problems (continuing)"
        return "Filesystem is clean"

    def _shrink_root(self, ctx: MigrationContext) -> str:
        self.backend.shrink_filesystem(
            self.geometry.root_partition,
            self.layout.root.size_bytes,
            self.tools.resize_block_size,
        )
        return f"Root filesystem shrunk to {human_size(self.layout.root.size_bytes)}"

    def _resize_root(self, ctx: MigrationContext) -> str:
        root = self.layout.root
        self.backend.recreate_partition(
            self.geometry.device, self.root_partition_number, root.start, root.end
        )
        self.backend.rescan(self.geometry.device)
        return f"Root partition now spans sectors {root.start}-{root.end}"

    def _range_for(self, role: PartitionRole) -> PartitionRange:
        part = getattr(self.layout, role.value)
        if part is None:
            raise ValueError(f"No {role.value} partition planned")
        return part

    def _create_partition(self, ctx: MigrationContext, role: PartitionRole) -> str:
        part = self._range_for(role)
        device = self.geometry.device
        number = self.backend.next_partition_number(device)

        self.backend.create_partition(device, role.filesystem, part.start, part.end)
        self.backend.rescan(device)

        path = partition_device_path(device, number)
        ready = self.backend.wait_for_device(
            path,
            self.tools.device_wait_timeout_seconds,
            self.tools.device_poll_interval_seconds,
        )
        if not ready:
            raise DeviceNotReadyError(
                f"Partition device {path} did not appear within "
                f"{self.tools.device_wait_timeout_seconds}s"
            )

        self.backend.format_partition(path, role.filesystem)
        ctx.created.record(role, path)
        return f"{role.value} partition {path} created as {role.filesystem.value}"

    def _prepare_mount_points(self, ctx: MigrationContext) -> str:
        ctx.mount_points = create_mount_points(self.migration.mount_root)
        return f"Mount points ready under {self.migration.mount_root}"

    def _mount(self, ctx: MigrationContext) -> str:
        mount_points = ctx.require_mount_points()
        for role in (PartitionRole.ROOT, PartitionRole.VAR, PartitionRole.HOME):
            device_path = ctx.created.get(role)
            if device_path is None:
                continue
            target = mount_points.for_role(role)
            self.backend.mount(device_path, target)
            ctx.mounted.append((role, target))
        return "Mounted " + ", ".join(str(path) for _, path in ctx.mounted)

    def _migrate(self, ctx: MigrationContext, role: PartitionRole) -> str:
        mount_points = ctx.require_mount_points()
        source = mount_points.root / role.value
        destination = mount_points.for_role(role)

        # is_dir() follows symlinks
        if source.is_symlink():
            raise UnsafeTargetError(
                f"{source} is a symlink to {os.readlink(source)}; refusing to move "
                f"/{role.value} data that does not live on the root filesystem"
            )

        if not source.is_dir():
            logger.info("Nothing to migrate", source=str(source))
            return f"No /{role.value} directory on root, skipped"

        self.backend.sync_tree(source, destination)
        # Only reached after a complete copy
        self.backend.remove_tree_contents(source)
        return f"/{role.value} moved to {ctx.created.get(role)}"

    def _update_fstab(self, ctx: MigrationContext) -> str:
        fstab_path = ctx.require_mount_points().root / "etc" / "fstab"
        options = {
            PartitionRole.SWAP: self.migration.swap_mount_options,
            PartitionRole.VAR: self.migration.var_mount_options,
            PartitionRole.HOME: self.migration.home_mount_options,
        }

        if fstab_path.exists():
            content = fstab_path.read_text(encoding="utf-8")
        else:
            ctx.warn(f"{fstab_path} not found, creating it")
            fstab_path.parent.mkdir(parents=True, exist_ok=True)
            content = ""

        lines = []
        for role, device_path in ctx.created.created():
            uuid = self.backend.lookup_uuid(device_path)
            entry = entry_for(role, uuid, options[role])
            lines.append(entry.render(self.migration.fstab_marker))

        write_fstab(
            fstab_path,
            append_entries(content, lines),
            atomic=self.migration.atomic_fstab_write,
        )
        return f"Added {len(lines)} entries to {fstab_path}"

    def _unmount(self, ctx: MigrationContext) -> str:
        failed = []
        for role, target in reversed(list(ctx.mounted)):
            result = self.backend.unmount(target)
            if result.success:
                ctx.mounted.remove((role, target))
            else:
                failed.append(str(target))
                ctx.warn(
                    f"Failed to unmount {target}; unmount it manually",
                    stderr=result.stderr.strip(),
                )
        if failed:
            return "Still mounted: " + ", ".join(failed)
        return "All partitions unmounted"
