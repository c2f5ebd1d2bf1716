"""Result types for silence reconciliation."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List

from shush.core.errors import ErrorKind, ExitCode
from shush.silences.models import SilenceRecord, Target
from shush.silences.plan import Action, Intent, OperationPlan


class Status(str, Enum):
    SUCCEEDED = "succeeded"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class TargetResult:
    """Outcome of the single operation planned for one target."""

    target: Target
    status: Status
    action: Action
    detail: str | None = None
    error_kind: ErrorKind | None = None


@dataclass
class ExecutionReport:
    """Per-target outcome of one invocation."""

    intent: Intent
    plan: OperationPlan
    results: Dict[Target, TargetResult] = field(default_factory=dict)
    dry_run: bool = False
    duration_seconds: float = 0.0

    def _with_status(self, status: Status) -> List[TargetResult]:
        return [self.results[t] for t in sorted(self.results) if self.results[t].status is status]

    @property
    def succeeded(self) -> List[TargetResult]:
        return self._with_status(Status.SUCCEEDED)

    @property
    def skipped(self) -> List[TargetResult]:
        return self._with_status(Status.SKIPPED)

    @property
    def failed(self) -> List[TargetResult]:
        return self._with_status(Status.FAILED)

    @property
    def listing(self) -> tuple[SilenceRecord, ...]:
        return self.plan.listing

    @property
    def ok(self) -> bool:
        """Whether every target either took effect or needed nothing."""
        return not self.failed

    @property
    def exit_code(self) -> ExitCode:
        return ExitCode.SUCCESS if self.ok else ExitCode.PARTIAL_FAILURE


class ResultCollector:
    """Aggregates per-target outcomes while a plan executes."""

    def __init__(self, plan: OperationPlan, *, dry_run: bool = False) -> None:
        self._report = ExecutionReport(intent=plan.intent, plan=plan, dry_run=dry_run)

    def record_success(self, target: Target, action: Action, detail: str | None = None) -> None:
        self._report.results[target] = TargetResult(target, Status.SUCCEEDED, action, detail)

    def record_skip(self, target: Target, action: Action, reason: str | None) -> None:
        self._report.results[target] = TargetResult(target, Status.SKIPPED, action, reason)

    def record_failure(
        self,
        target: Target,
        action: Action,
        kind: ErrorKind,
        detail: str | None = None,
    ) -> None:
        self._report.results[target] = TargetResult(
            target,
            Status.FAILED,
            action,
            detail,
            error_kind=kind,
        )

    def finalize(self, duration: float) -> ExecutionReport:
        """Return the final report with duration set."""
        self._report.duration_seconds = duration
        return self._report
