"""
rootsplit Session Management.

A session owns configuration, logging, the safety gates, the job runner and
the step journal. ``prepare`` runs every read-only gate and produces the
migration job; ``run_job`` executes it and records the outcome.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from rootsplit.core.config import RootSplitConfig, load_config
from rootsplit.core.inspector import DiskInspector, normalize_device
from rootsplit.core.job import JobResult, JobRunner
from rootsplit.core.layout import describe_layout, plan_layout
from rootsplit.core.logging import StepJournal, get_logger, setup_logging
from rootsplit.core.migration import MigrationJob
from rootsplit.core.models import CreatedPartitions, DiskGeometry, PartitionLayout
from rootsplit.core.safety import (
    ExecutionPlan,
    PreflightContext,
    SafetyManager,
)
from rootsplit.core.sizes import parse_optional_size, parse_size, validate_root_size
from rootsplit.platform.base import PlatformBackend

logger = get_logger(__name__)


@dataclass
class SplitRequest:
    """What the operator asked for, as given on the command line."""

    device: str
    root_size: str
    swap_size: str | None = None
    var_size: str | None = None
    force: bool = False
    allow_live_root: bool = False


@dataclass
class PreparedSplit:
    """Everything needed to show the plan and, if confirmed, run it."""

    geometry: DiskGeometry
    layout: PartitionLayout
    job: MigrationJob
    plan: ExecutionPlan


@dataclass
class SessionReport:
    """Audit record of every split attempted in a session."""

    session_id: str
    started_at: datetime
    ended_at: datetime | None = None
    splits: list[dict[str, Any]] = field(default_factory=list)
    acknowledgments: list[dict[str, Any]] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    config_snapshot: dict[str, Any] = field(default_factory=dict)

    @property
    def failed_splits(self) -> list[dict[str, Any]]:
        return [s for s in self.splits if not s["success"]]

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "splits": self.splits,
            "acknowledgments": self.acknowledgments,
            "warnings": self.warnings,
            "config": self.config_snapshot,
            "summary": {
                "attempted": len(self.splits),
                "succeeded": len(self.splits) - len(self.failed_splits),
                "failed": len(self.failed_splits),
            },
        }

    def save(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(self.to_dict(), indent=2, default=str), encoding="utf-8")


class Session:
    """
    One invocation of rootsplit: gates, planning, execution and the audit trail.

    Both the CLI and tests drive splits through a session.
    """

    def __init__(
        self,
        config: RootSplitConfig | None = None,
        backend: PlatformBackend | None = None,
        session_id: str | None = None,
    ) -> None:
        self.id = session_id or str(uuid.uuid4())
        self.config = config or load_config()
        self.started_at = datetime.now()

        setup_logging(self.config.logging)

        self.safety = SafetyManager(self.config.safety)
        self.job_runner = JobRunner()
        self.journal = StepJournal(
            self.config.get_session_file(self.id),
            get_logger(f"journal.{self.id[:8]}"),
        )

        self._report = SessionReport(
            session_id=self.id,
            started_at=self.started_at,
            config_snapshot=self.config.model_dump(mode="json"),
        )

        # Platform backend (lazily loaded unless injected)
        self._platform_backend = backend

        logger.info("Session started", session_id=self.id)

    @property
    def platform(self) -> PlatformBackend:
        """Get the platform-specific backend."""
        if self._platform_backend is None:
            from rootsplit.platform import get_platform_backend

            self._platform_backend = get_platform_backend(
                command_timeout=self.config.tools.command_timeout_seconds
            )
        return self._platform_backend

    def prepare(self, request: SplitRequest) -> PreparedSplit:
        """
        Run all read-only gates and plan the split.

        Order matters: the live root check comes before the tool and size
        checks so that a dangerous target is reported first.
        """
        backend = self.platform
        layout_config = self.config.layout

        device = normalize_device(request.device)
        self.safety.check_privileges(backend)
        mounts = backend.read_mounts()
        self.safety.enforce_live_root(device, mounts, request.allow_live_root)
        self.safety.check_tools(backend)

        root_bytes = validate_root_size(
            parse_size(request.root_size),
            layout_config.min_root_bytes,
            layout_config.max_root_bytes,
        )
        swap_bytes = parse_optional_size(request.swap_size, layout_config.sector_size)
        var_bytes = parse_optional_size(request.var_size, layout_config.sector_size)

        inspector = DiskInspector(
            backend,
            root_partition_number=layout_config.root_partition_number,
            sector_size=layout_config.sector_size,
        )
        geometry = inspector.describe(device)

        self.safety.enforce_media_policy(geometry, swap_bytes, var_bytes, request.force)

        layout = plan_layout(
            geometry,
            root_bytes,
            swap_bytes=swap_bytes,
            var_bytes=var_bytes,
            alignment=layout_config.alignment_sectors,
        )

        job = MigrationJob(
            backend=backend,
            geometry=geometry,
            layout=layout,
            migration=self.config.migration,
            tools=self.config.tools,
            root_partition_number=layout_config.root_partition_number,
            journal=self.journal,
        )

        preflight = self.safety.run_preflight(PreflightContext(device=device, mounts=mounts))
        warnings = preflight.failed_messages() if preflight else []
        if geometry.is_sd_card:
            warnings.append(f"{device} is an SD card")

        plan = self.safety.create_execution_plan(
            operation_type=job.operation_type,
            description=job.description,
            target=device,
            steps=[step.intent for step in job.steps()],
            warnings=warnings,
            layout_lines=describe_layout(layout),
            preflight_report=preflight,
        )

        logger.info(
            "Split planned",
            device=device,
            geometry=geometry.to_dict(),
            layout=layout.to_dict(),
        )
        return PreparedSplit(geometry=geometry, layout=layout, job=job, plan=plan)

    def run_job(self, job: MigrationJob) -> JobResult[CreatedPartitions]:
        """Run the migration and record it in the session report."""
        logger.info(
            "Executing split",
            job_id=job.id,
            device=job.geometry.device,
            operation_type=job.operation_type.name,
            plan=job.get_plan(),
        )

        result = self.job_runner.run(job)
        self._record_split(job, result)
        return result

    def _record_split(self, job: MigrationJob, result: JobResult[CreatedPartitions]) -> None:
        record: dict[str, Any] = {
            "timestamp": datetime.now().isoformat(),
            "job_id": job.id,
            "device": job.geometry.device,
            "layout": job.layout.to_dict(),
            "created": job.created.to_dict(),
            "success": result.success,
            "duration_seconds": result.duration_seconds,
            "completed_stages": result.completed_stages,
            "journal_file": str(self.journal.journal_file),
        }
        if not result.success:
            record.update(
                error_type=result.error_type,
                error=result.error,
                failed_stage=result.failed_stage,
            )
        self._report.splits.append(record)
        self._report.warnings.extend(result.warnings)

        if result.success:
            logger.info("Split completed", job_id=job.id, device=job.geometry.device)
        else:
            logger.error(
                "Split failed",
                job_id=job.id,
                device=job.geometry.device,
                error=result.error,
                failed_step=result.failed_stage,
                last_completed_step=result.last_completed_stage,
            )

    def close(self) -> Path:
        """Write the session report next to the step journals."""
        self._report.ended_at = datetime.now()
        self._report.acknowledgments = self.safety.acknowledgments

        report_path = self.config.session_directory / f"report_{self.id[:8]}.json"
        self._report.save(report_path)

        logger.info(
            "Session closed",
            session_id=self.id,
            duration_seconds=(self._report.ended_at - self.started_at).total_seconds(),
            report_path=str(report_path),
        )

        return report_path

    @property
    def report(self) -> SessionReport:
        return self._report

    def __enter__(self) -> Session:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
