"""
rootsplit Job Runner.

A job is an ordered list of steps run to completion on the calling thread.
Each step is announced before it acts (its intent) and reported after it
finishes (its outcome); callbacks registered on the job context receive
both. Disk surgery is strictly sequential, so there is no threading,
pausing or cancellation here.
"""

from __future__ import annotations

import traceback
import uuid
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum, auto
from typing import Any, Generic, TypeVar

from rootsplit.core.logging import get_logger

T = TypeVar("T")
logger = get_logger(__name__)


class JobStatus(Enum):
    """Lifecycle of a job."""

    PENDING = auto()
    RUNNING = auto()
    COMPLETED = auto()
    FAILED = auto()


class StepPhase(Enum):
    """Which half of a step a progress snapshot describes."""

    INTENT = "intent"
    OUTCOME = "outcome"


@dataclass(frozen=True)
class JobProgress:
    """Immutable progress snapshot handed to callbacks."""

    step: int = 0  # steps finished so far
    total: int = 0
    stage: str = ""
    message: str = ""
    phase: StepPhase = StepPhase.INTENT

    @property
    def percentage(self) -> float:
        if self.total == 0:
            return 0.0
        return min(100.0, (self.step / self.total) * 100)

    @property
    def is_outcome(self) -> bool:
        return self.phase is StepPhase.OUTCOME


ProgressCallback = Callable[[JobProgress], None]


class JobContext:
    """Per-run state shared between a job and its observers."""

    def __init__(self) -> None:
        self._progress = JobProgress()
        self._callbacks: list[ProgressCallback] = []
        self._warnings: list[str] = []
        self.completed_stages: list[str] = []

    @property
    def progress(self) -> JobProgress:
        return self._progress

    @property
    def warnings(self) -> list[str]:
        return list(self._warnings)

    def add_progress_callback(self, callback: ProgressCallback) -> None:
        self._callbacks.append(callback)

    def add_warning(self, warning: str) -> None:
        self._warnings.append(warning)

    def begin_step(self, index: int, total: int, stage: str, intent: str) -> None:
        """Announce step ``index`` (1-based) before it touches anything."""
        self._publish(
            JobProgress(
                step=index - 1,
                total=total,
                stage=stage,
                message=intent,
                phase=StepPhase.INTENT,
            )
        )

    def finish_step(self, outcome: str) -> None:
        """Report the outcome of the step announced last."""
        current = self._progress
        self.completed_stages.append(current.stage)
        self._publish(
            replace(current, step=current.step + 1, message=outcome, phase=StepPhase.OUTCOME)
        )

    def _publish(self, progress: JobProgress) -> None:
        self._progress = progress
        for callback in self._callbacks:
            try:
                callback(progress)
            except Exception as e:
                # a failing observer must not interrupt a step
                logger.warning("Progress callback error", error=str(e))


@dataclass
class JobResult(Generic[T]):
    """What a finished job produced, or how far it got before failing."""

    success: bool
    data: T | None = None
    error: str | None = None
    error_type: str | None = None
    exception: BaseException | None = None
    error_traceback: str | None = None
    warnings: list[str] = field(default_factory=list)
    completed_stages: list[str] = field(default_factory=list)
    failed_stage: str | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None

    @property
    def duration_seconds(self) -> float | None:
        if self.start_time and self.end_time:
            return (self.end_time - self.start_time).total_seconds()
        return None

    @property
    def last_completed_stage(self) -> str | None:
        return self.completed_stages[-1] if self.completed_stages else None


class Job(ABC, Generic[T]):
    """Base class for rootsplit jobs."""

    def __init__(self, name: str, description: str) -> None:
        self.id = str(uuid.uuid4())
        self.name = name
        self.description = description
        self.status = JobStatus.PENDING
        self.context = JobContext()
        self.result: JobResult[T] | None = None
        self.started_at: datetime | None = None
        self.completed_at: datetime | None = None

    @abstractmethod
    def execute(self, context: JobContext) -> T:
        """Run every step, reporting through ``context``."""

    @abstractmethod
    def get_plan(self) -> str:
        """Human-readable list of what ``execute`` would do."""

    def validate(self) -> list[str]:
        """Problems that make the job unsafe to start; empty when valid."""
        return []


class JobRunner:
    """Runs jobs one at a time and keeps their results."""

    def __init__(self) -> None:
        self.history: list[Job[Any]] = []

    def run(self, job: Job[T]) -> JobResult[T]:
        """Validate and execute ``job``; failures are captured, not raised."""
        self.history.append(job)
        logger.info("Job started", job_id=job.id, job_name=job.name)

        errors = job.validate()
        if errors:
            now = datetime.now()
            job.status = JobStatus.FAILED
            job.result = JobResult(
                success=False,
                error="Validation failed: " + "; ".join(errors),
                error_type="ValidationError",
                start_time=now,
                end_time=now,
            )
            logger.error("Job rejected", job_id=job.id, errors=errors)
            return job.result

        job.status = JobStatus.RUNNING
        job.started_at = datetime.now()
        context = job.context
        try:
            data = job.execute(context)
        except Exception as e:
            progress = context.progress
            job.status = JobStatus.FAILED
            job.result = JobResult(
                success=False,
                error=str(e),
                error_type=type(e).__name__,
                exception=e,
                error_traceback=traceback.format_exc(),
                warnings=context.warnings,
                completed_stages=list(context.completed_stages),
                failed_stage=progress.stage if not progress.is_outcome else None,
                start_time=job.started_at,
                end_time=datetime.now(),
            )
            logger.error(
                "Job failed",
                job_id=job.id,
                job_name=job.name,
                failed_stage=job.result.failed_stage,
                error_type=job.result.error_type,
                error=str(e),
            )
        else:
            job.status = JobStatus.COMPLETED
            job.result = JobResult(
                success=True,
                data=data,
                warnings=context.warnings,
                completed_stages=list(context.completed_stages),
                start_time=job.started_at,
                end_time=datetime.now(),
            )
            logger.info(
                "Job completed",
                job_id=job.id,
                job_name=job.name,
                duration_seconds=job.result.duration_seconds,
            )
        finally:
            job.completed_at = datetime.now()

        return job.result

    @property
    def last_result(self) -> JobResult[Any] | None:
        return self.history[-1].result if self.history else None
