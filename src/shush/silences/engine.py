"""
Reconciliation engine.

Runs one invocation end to end: validate, resolve, read current state,
plan, execute. Validation happens before any registry call. During
execution each target's operation runs independently, so a registry
failure for one target is recorded against that target and never aborts
the others.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Sequence

import structlog

from shush.core.errors import ErrorKind, RegistryError, ValidationError
from shush.registry.base import CreateOutcome, DeleteOutcome, SilenceRegistry
from shush.silences.models import utcnow, validate_ttl
from shush.silences.plan import (
    ALREADY_SILENCED,
    NOT_SILENCED,
    Action,
    ConflictPolicy,
    Intent,
    OperationPlan,
    PlannedOperation,
    plan,
)
from shush.silences.resolver import Selector, needs_inventory, resolve
from shush.silences.results import ExecutionReport, ResultCollector

logger = structlog.get_logger()

DEFAULT_CONCURRENCY = 8


@dataclass(frozen=True)
class SilenceRequest:
    """Everything one invocation asks for, before anything is resolved."""

    intent: Intent
    selectors: Sequence[Selector] = ()
    ttl: timedelta | None = None
    reason: str | None = None
    creator: str | None = None
    expire_on_resolve: bool = False
    strict: bool = True
    verify_exact: bool = False
    conflict_policy: ConflictPolicy = ConflictPolicy.FAIL
    dry_run: bool = False

    def validate(self) -> None:
        if self.intent is Intent.SILENCE:
            validate_ttl(self.ttl)
        if self.intent is not Intent.LIST and not self.selectors:
            raise ValidationError("No targets specified")


class ReconciliationEngine:
    """Plans and executes silence operations against one registry."""

    def __init__(
        self,
        registry: SilenceRegistry,
        *,
        concurrency: int = DEFAULT_CONCURRENCY,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self._registry = registry
        self._concurrency = concurrency
        self._clock = clock

    async def reconcile(
        self,
        request: SilenceRequest,
        *,
        stop: asyncio.Event | None = None,
        timeout: float | None = None,
    ) -> ExecutionReport:
        """Run one invocation end to end.

        ``timeout`` counts from here, so the inventory and list reads use up
        part of it; once it passes no new write is issued.
        """
        started = time.monotonic()
        request.validate()

        stop = stop or asyncio.Event()
        timer = None
        if timeout is not None:
            timer = asyncio.get_running_loop().call_later(timeout, stop.set)
        try:
            report = await self._reconcile(request, stop)
        finally:
            if timer is not None:
                timer.cancel()
        report.duration_seconds = time.monotonic() - started
        return report

    async def _reconcile(self, request: SilenceRequest, stop: asyncio.Event) -> ExecutionReport:
        inventory = None
        if needs_inventory(request.selectors, verify_exact=request.verify_exact):
            inventory = await self._registry.inventory()
        targets = resolve(
            request.selectors,
            inventory,
            strict=request.strict,
            verify_exact=request.verify_exact,
        )

        if not targets and request.intent is not Intent.LIST:
            logger.warning("no_targets_resolved", intent=request.intent.value)
            empty = OperationPlan(intent=request.intent, planned_at=self._clock())
            return ResultCollector(empty, dry_run=request.dry_run).finalize(0.0)

        current = await self._registry.list()
        operation_plan = plan(
            request.intent,
            targets,
            current,
            now=self._clock(),
            ttl=request.ttl,
            reason=request.reason,
            creator=request.creator,
            expire_on_resolve=request.expire_on_resolve,
            conflict_policy=request.conflict_policy,
        )

        if request.dry_run or request.intent is Intent.LIST:
            return ResultCollector(operation_plan, dry_run=request.dry_run).finalize(0.0)

        return await self.execute(operation_plan, stop=stop)

    async def execute(
        self,
        operation_plan: OperationPlan,
        *,
        stop: asyncio.Event | None = None,
        timeout: float | None = None,
    ) -> ExecutionReport:
        """Run every planned operation, at most ``concurrency`` at a time.

        Once ``stop`` is set, or ``timeout`` seconds pass, no new registry
        call is issued; calls already in flight finish and are reported.
        Operations never issued are reported as cancelled failures.
        """
        started = time.monotonic()
        collector = ResultCollector(operation_plan)
        stop = stop or asyncio.Event()
        semaphore = asyncio.Semaphore(self._concurrency)
        timer = None
        if timeout is not None:
            timer = asyncio.get_running_loop().call_later(timeout, stop.set)

        try:
            await asyncio.gather(
                *(
                    self._run(operation, semaphore, stop, collector)
                    for operation in operation_plan.operations
                )
            )
        finally:
            if timer is not None:
                timer.cancel()

        report = collector.finalize(time.monotonic() - started)
        logger.info(
            "plan_executed",
            intent=operation_plan.intent.value,
            succeeded=len(report.succeeded),
            skipped=len(report.skipped),
            failed=len(report.failed),
        )
        return report

    async def _run(
        self,
        operation: PlannedOperation,
        semaphore: asyncio.Semaphore,
        stop: asyncio.Event,
        collector: ResultCollector,
    ) -> None:
        target, action = operation.target, operation.action
        if action is Action.SKIP:
            collector.record_skip(target, action, operation.reason)
            return

        async with semaphore:
            if stop.is_set():
                collector.record_failure(
                    target,
                    action,
                    ErrorKind.CANCELLED,
                    "not attempted: invocation stopped",
                )
                return
            try:
                if action is Action.CREATE:
                    await self._create(operation, collector)
                else:
                    await self._delete(operation, collector)
            except RegistryError as exc:
                logger.warning(
                    "operation_failed",
                    target=target.id,
                    action=action.value,
                    error_kind=exc.kind.value,
                    error=exc.message,
                )
                collector.record_failure(target, action, exc.kind, exc.message)
            except Exception as exc:
                logger.error(
                    "operation_crashed",
                    target=target.id,
                    action=action.value,
                    error_type=type(exc).__name__,
                    error=str(exc),
                    exc_info=True,
                )
                collector.record_failure(
                    target,
                    action,
                    ErrorKind.REJECTED,
                    f"{type(exc).__name__}: {exc}",
                )

    async def _create(self, operation: PlannedOperation, collector: ResultCollector) -> None:
        assert operation.record is not None
        outcome = await self._registry.create(operation.record, overwrite=operation.overwrite)
        if outcome is CreateOutcome.UNCHANGED:
            collector.record_skip(operation.target, operation.action, ALREADY_SILENCED)
        else:
            logger.info(
                "silence_created",
                target=operation.target.id,
                outcome=outcome.value,
                expiry=operation.record.describe_expiry(),
            )
            collector.record_success(operation.target, operation.action, outcome.value)

    async def _delete(self, operation: PlannedOperation, collector: ResultCollector) -> None:
        outcome = await self._registry.delete(operation.target)
        if outcome is DeleteOutcome.ABSENT:
            collector.record_skip(operation.target, operation.action, NOT_SILENCED)
        else:
            collector.record_success(operation.target, operation.action, outcome.value)
