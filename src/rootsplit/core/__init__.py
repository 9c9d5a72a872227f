"""
rootsplit Core - Backend service layer.

Contains size parsing, disk inspection, layout planning, the migration
pipeline, configuration, safety gates and session management.
"""

from rootsplit.core.config import RootSplitConfig
from rootsplit.core.errors import RootSplitError
from rootsplit.core.job import Job, JobResult, JobRunner, JobStatus
from rootsplit.core.logging import get_logger, setup_logging
from rootsplit.core.safety import SafetyManager
from rootsplit.core.session import Session, SplitRequest

__all__ = [
    "RootSplitConfig",
    "RootSplitError",
    "Job",
    "JobRunner",
    "JobStatus",
    "JobResult",
    "Session",
    "SplitRequest",
    "get_logger",
    "setup_logging",
    "SafetyManager",
]
