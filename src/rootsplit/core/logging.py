"""
rootsplit structured logging.

Provides structured logging for debugging and a step journal that records
every completed disk operation, so an interrupted run can be repaired by hand.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog
from structlog.types import EventDict, WrappedLogger

if TYPE_CHECKING:
    from rootsplit.core.config import LoggingConfig


_configured = False


def add_timestamp(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Add ISO format timestamp to log events."""
    event_dict["timestamp"] = datetime.now().isoformat()
    return event_dict


def add_log_level(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Add log level to event dict."""
    event_dict["level"] = method_name.upper()
    return event_dict


def setup_logging(config: LoggingConfig) -> None:
    """Configure structured logging for rootsplit."""
    global _configured

    if _configured:
        return

    handlers: list[logging.Handler] = []

    if config.console_enabled:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(getattr(logging, config.level))
        handlers.append(console_handler)

    if config.file_enabled:
        config.log_directory.mkdir(parents=True, exist_ok=True)
        log_file = config.log_directory / f"rootsplit_{datetime.now().strftime('%Y%m%d')}.log"
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)  # disk surgery: keep everything on file
        handlers.append(file_handler)

    logging.basicConfig(
        level=logging.DEBUG,
        handlers=handlers,
        format="%(message)s",
    )

    shared_processors: list[structlog.types.Processor] = [
        structlog.stdlib.add_logger_name,
        add_timestamp,
        add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if config.json_format:
        renderers: list[structlog.types.Processor] = [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        renderers = [structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())]

    structlog.configure(
        processors=shared_processors + renderers,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    _configured = True


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name or "rootsplit")


class OperationLogger:
    """Context manager for logging operations with start/end tracking."""

    def __init__(
        self,
        operation: str,
        logger: structlog.stdlib.BoundLogger | None = None,
        **context: Any,
    ):
        self.operation = operation
        self.logger = logger or get_logger()
        self.context = context
        self.start_time: datetime | None = None

    def __enter__(self) -> OperationLogger:
        self.start_time = datetime.now()
        self.logger.info(
            f"Starting {self.operation}",
            operation=self.operation,
            **self.context,
        )
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        duration = (datetime.now() - self.start_time).total_seconds() if self.start_time else 0

        if exc_type is not None:
            self.logger.error(
                f"Failed {self.operation}",
                operation=self.operation,
                duration_seconds=duration,
                error_type=exc_type.__name__,
                error=str(exc_val),
                **self.context,
            )
        else:
            self.logger.info(
                f"Completed {self.operation}",
                operation=self.operation,
                duration_seconds=duration,
                **self.context,
            )


class StepJournal:
    """
    Durable record of completed pipeline steps.

    Each entry is flushed to disk as soon as it is recorded, so the journal
    survives a run that dies halfway through and tells the operator which
    partitions, devices and sector ranges were already touched.
    """

    def __init__(self, journal_file: Path, logger: structlog.stdlib.BoundLogger | None = None):
        self.journal_file = journal_file
        self.logger = logger or get_logger("rootsplit.journal")
        self.entries: list[dict[str, Any]] = []
        self.journal_file.parent.mkdir(parents=True, exist_ok=True)

    def record(self, step: str, status: str = "completed", **details: Any) -> None:
        """Append a step entry and persist the journal."""
        entry = {
            "timestamp": datetime.now().isoformat(),
            "step": step,
            "status": status,
            **details,
        }
        self.entries.append(entry)
        self.logger.info("Journal entry", step=step, status=status, **details)
        self.save()

    def completed_steps(self) -> list[str]:
        return [e["step"] for e in self.entries if e["status"] == "completed"]

    @property
    def last_completed(self) -> dict[str, Any] | None:
        for entry in reversed(self.entries):
            if entry["status"] == "completed":
                return entry
        return None

    def save(self) -> None:
        """Save journal to file."""
        with open(self.journal_file, "w") as f:
            json.dump(
                {
                    "journal_file": str(self.journal_file),
                    "entries": self.entries,
                    "summary": {
                        "total_entries": len(self.entries),
                        "completed": len(self.completed_steps()),
                        "failed": sum(1 for e in self.entries if e["status"] == "failed"),
                    },
                },
                f,
                indent=2,
                default=str,
            )

    @classmethod
    def load(cls, journal_file: Path) -> StepJournal:
        """Reload a journal written by an earlier run."""
        with open(journal_file) as f:
            data = json.load(f)
        journal = cls(journal_file)
        journal.entries = data.get("entries", [])
        return journal
