"""
rootsplit Safety Manager.

Implements the gates that run before anything touches the disk: privilege
and live root checks, the tool presence check, the SD card media policy,
operator confirmation and advisory preflight checks.
"""

from __future__ import annotations

import os
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, auto
from typing import TYPE_CHECKING, Any

import psutil

from rootsplit.core.errors import MissingToolError, PolicyError, PrivilegeError
from rootsplit.core.inspector import device_contains, ensure_not_live_root
from rootsplit.core.logging import get_logger

if TYPE_CHECKING:
    from rootsplit.core.config import SafetyConfig
    from rootsplit.core.models import DiskGeometry
    from rootsplit.platform.base import PlatformBackend

logger = get_logger(__name__)


class OperationType(Enum):
    """Whether an operation can change the disk."""

    READ_ONLY = auto()  # inspect, plan
    MODIFY = auto()  # shrink, repartition, format, move data


class Severity(Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class PreflightContext:
    """What the advisory checks get to look at."""

    device: str
    mounts: dict[str, str] = field(default_factory=dict)


@dataclass
class PreflightCheck:
    """Outcome of one advisory check."""

    name: str
    passed: bool
    message: str
    severity: Severity = Severity.INFO
    details: dict[str, Any] = field(default_factory=dict)

    def render(self) -> str:
        mark = "✓" if self.passed else "✗"
        return f"[{mark}] {self.name}: {self.message}"


PreflightFunc = Callable[[PreflightContext], PreflightCheck]


@dataclass
class PreflightReport:
    checks: list[PreflightCheck] = field(default_factory=list)

    @property
    def failed(self) -> list[PreflightCheck]:
        return [c for c in self.checks if not c.passed]

    @property
    def all_passed(self) -> bool:
        return not self.failed

    def failed_messages(self) -> list[str]:
        """Failed checks as ``"Name: message"``, ready to show as plan warnings."""
        return [f"{c.name}: {c.message}" for c in self.failed]

    def render(self) -> list[str]:
        passed = len(self.checks) - len(self.failed)
        lines = [f"Preflight: {passed}/{len(self.checks)} checks passed"]
        for check in self.checks:
            lines.append(f"  {check.render()}")
            for key, value in check.details.items():
                lines.append(f"      {key}: {value}")
        return lines


@dataclass
class ExecutionPlan:
    """Everything the operator reviews before confirming a split."""

    operation_type: OperationType
    description: str
    target: str
    steps: list[str]
    warnings: list[str] = field(default_factory=list)
    layout_lines: list[str] = field(default_factory=list)
    preflight_report: PreflightReport | None = None
    confirmation_string: str | None = None

    @property
    def needs_confirmation(self) -> bool:
        return self.confirmation_string is not None


class SafetyManager:
    """Runs the safety gates for rootsplit operations."""

    def __init__(self, config: SafetyConfig) -> None:
        self.config = config
        self._acknowledgments: list[dict[str, Any]] = []

    @property
    def acknowledgments(self) -> list[dict[str, Any]]:
        """Explicit operator overrides given during this session."""
        return list(self._acknowledgments)

    def _acknowledge(self, kind: str, target: str, **details: Any) -> None:
        entry = {
            "kind": kind,
            "target": target,
            "timestamp": datetime.now().isoformat(),
            **details,
        }
        self._acknowledgments.append(entry)
        logger.warning("Safety override acknowledged", **entry)

    # ==================== Gates ====================

    def check_privileges(self, backend: PlatformBackend) -> None:
        if not backend.is_admin():
            raise PrivilegeError("This operation must be run as root")

    def enforce_live_root(
        self,
        device: str,
        mounts: dict[str, str],
        allow_live_root: bool = False,
    ) -> None:
        """Refuse a device that backs the running root filesystem."""
        ensure_not_live_root(device, mounts, allow_live_root)
        if allow_live_root:
            self._acknowledge("live_root", device)

    def check_tools(self, backend: PlatformBackend) -> None:
        missing = backend.missing_tools()
        if missing:
            raise MissingToolError(missing)

    def enforce_media_policy(
        self,
        geometry: DiskGeometry,
        swap_bytes: int | None,
        var_bytes: int | None,
        force: bool = False,
    ) -> None:
        """
        Swap and a btrfs /var wear out SD cards quickly.

        Requesting either on an SD card is refused unless ``force`` is set,
        in which case the override is recorded.
        """
        if not geometry.is_sd_card:
            return

        requested = [name for name, size in (("swap", swap_bytes), ("/var", var_bytes)) if size]
        if not requested:
            return

        if not force:
            raise PolicyError(
                f"{geometry.device} looks like an SD card; refusing to create "
                f"{' and '.join(requested)} partitions without --force"
            )
        self._acknowledge("sd_card_media", geometry.device, partitions=requested)

    # ==================== Confirmation ====================

    def generate_confirmation_string(self, device: str) -> str:
        """``SPLIT-`` followed by the upper-cased device name, e.g. ``SPLIT-MMCBLK0``."""
        name = os.path.basename(device.rstrip("/"))
        safe_name = re.sub(r"[^a-zA-Z0-9_-]", "", name)
        return f"SPLIT-{safe_name.upper()}"

    def verify_confirmation(
        self,
        device: str,
        user_input: str,
        operation_id: str,
    ) -> tuple[bool, str]:
        """Compare typed input with the expected string. Returns (verified, message)."""
        expected = self.generate_confirmation_string(device)

        if user_input.strip() != expected:
            logger.warning(
                "Confirmation mismatch",
                expected=expected,
                received=user_input,
                operation_id=operation_id,
            )
            return False, f"Confirmation mismatch. Expected: {expected}"

        logger.info("Operation confirmed", operation_id=operation_id, device=device)
        return True, "Confirmation verified"

    def create_execution_plan(
        self,
        operation_type: OperationType,
        description: str,
        target: str,
        steps: list[str],
        warnings: list[str] | None = None,
        layout_lines: list[str] | None = None,
        preflight_report: PreflightReport | None = None,
    ) -> ExecutionPlan:
        confirmation_string = None
        if operation_type is not OperationType.READ_ONLY and self.config.require_confirmation:
            confirmation_string = self.generate_confirmation_string(target)

        return ExecutionPlan(
            operation_type=operation_type,
            description=description,
            target=target,
            steps=steps,
            warnings=warnings or [],
            layout_lines=layout_lines or [],
            preflight_report=preflight_report,
            confirmation_string=confirmation_string,
        )

    def run_preflight(self, context: PreflightContext) -> PreflightReport | None:
        """Advisory checks; their failures become plan warnings."""
        if not self.config.preflight_checks_enabled:
            return None
        return create_standard_preflight_checker().run_checks(context)


class PreflightChecker:
    """Runs advisory checks; a check that raises is reported, not propagated."""

    def __init__(self) -> None:
        self._checks: list[tuple[str, PreflightFunc]] = []

    def add_check(self, name: str, check: PreflightFunc) -> None:
        self._checks.append((name, check))

    def run_checks(self, context: PreflightContext) -> PreflightReport:
        report = PreflightReport()
        for name, check in self._checks:
            try:
                report.checks.append(check(context))
            except Exception as e:
                logger.warning("Preflight check raised", check=name, error=str(e))
                report.checks.append(
                    PreflightCheck(
                        name=name,
                        passed=False,
                        message=f"Check failed with error: {e}",
                        severity=Severity.ERROR,
                    )
                )
        return report


def check_power_status(context: PreflightContext) -> PreflightCheck:
    """Warn when the machine runs on battery."""
    try:
        battery = psutil.sensors_battery()
    except (AttributeError, OSError) as e:
        return PreflightCheck("Power Status", True, f"Could not check power status: {e}")

    if battery is None:
        return PreflightCheck("Power Status", True, "No battery detected")

    details = {"battery_percent": battery.percent}
    if battery.power_plugged:
        return PreflightCheck("Power Status", True, "System is on AC power", details=details)
    return PreflightCheck(
        "Power Status",
        False,
        f"System on battery ({battery.percent}%); a power loss mid-run corrupts the disk",
        severity=Severity.WARNING,
        details=details,
    )


def check_target_not_mounted(context: PreflightContext) -> PreflightCheck:
    """Warn about partitions of the target that are currently mounted."""
    mounted = sorted(
        mountpoint
        for mountpoint, source in context.mounts.items()
        if device_contains(context.device, source)
    )
    if mounted:
        return PreflightCheck(
            "Mount Status",
            False,
            f"Partitions of {context.device} are mounted at {', '.join(mounted)}",
            severity=Severity.WARNING,
            details={"mountpoints": mounted},
        )
    return PreflightCheck("Mount Status", True, "No partition of the target is mounted")


def create_standard_preflight_checker() -> PreflightChecker:
    checker = PreflightChecker()
    checker.add_check("Power Status", check_power_status)
    checker.add_check("Mount Status", check_target_not_mounted)
    return checker
