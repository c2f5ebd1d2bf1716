"""
Operation planning.

Turns an intent, a resolved target set and the registry's current state
into an OperationPlan. Planning is pure: no registry calls are made here,
which is what makes ``--dry-run`` and offline testing possible.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Iterable

import structlog

from shush.core.errors import ValidationError
from shush.silences.models import SilenceRecord, Target, build_record

logger = structlog.get_logger()

ALREADY_SILENCED = "already silenced"
NOT_SILENCED = "not silenced"
DIFFERENT_SETTINGS = "silenced with different settings"


class Intent(str, Enum):
    SILENCE = "silence"
    CLEAR = "clear"
    LIST = "list"


class Action(str, Enum):
    CREATE = "create"
    DELETE = "delete"
    SKIP = "skip"


class ConflictPolicy(str, Enum):
    """What to do when a target is already silenced with different settings.

    FAIL plans a plain create, so the registry reports Conflict for that
    target and the caller decides; OVERWRITE replaces; SKIP leaves it.
    """

    FAIL = "fail"
    OVERWRITE = "overwrite"
    SKIP = "skip"


@dataclass(frozen=True)
class PlannedOperation:
    action: Action
    target: Target
    record: SilenceRecord | None = None
    reason: str | None = None
    overwrite: bool = False
    covered_by: tuple[str, ...] = ()


@dataclass(frozen=True)
class OperationPlan:
    """Ordered operations for one invocation, plus the listing for LIST."""

    intent: Intent
    operations: tuple[PlannedOperation, ...] = ()
    listing: tuple[SilenceRecord, ...] = ()
    planned_at: datetime | None = None

    def by_action(self, action: Action) -> list[PlannedOperation]:
        return [op for op in self.operations if op.action is action]

    @property
    def has_changes(self) -> bool:
        return any(op.action is not Action.SKIP for op in self.operations)

    @property
    def targets(self) -> list[Target]:
        return [op.target for op in self.operations]


def _live_by_id(current: Iterable[SilenceRecord], now: datetime) -> dict[str, SilenceRecord]:
    live: dict[str, SilenceRecord] = {}
    for record in current:
        if record.is_expired(now):
            continue
        live[record.id] = record
    return live


def _plan_silence(
    target: Target,
    live: dict[str, SilenceRecord],
    *,
    ttl: timedelta | None,
    reason: str | None,
    now: datetime,
    creator: str | None,
    expire_on_resolve: bool,
    conflict_policy: ConflictPolicy,
) -> PlannedOperation:
    desired = build_record(
        target,
        ttl,
        reason,
        now,
        creator=creator,
        expire_on_resolve=expire_on_resolve,
    )
    covered_by = tuple(
        sorted(
            record.id
            for record in live.values()
            if record.target != target and record.target.covers(target)
        )
    )
    if covered_by:
        logger.info("target_already_covered", target=target.id, covered_by=list(covered_by))

    existing = live.get(target.id)
    if existing is None:
        return PlannedOperation(Action.CREATE, target, desired, covered_by=covered_by)
    if existing.equivalent_to(desired):
        return PlannedOperation(Action.SKIP, target, existing, reason=ALREADY_SILENCED)
    if conflict_policy is ConflictPolicy.SKIP:
        return PlannedOperation(Action.SKIP, target, existing, reason=DIFFERENT_SETTINGS)
    return PlannedOperation(
        Action.CREATE,
        target,
        desired,
        overwrite=conflict_policy is ConflictPolicy.OVERWRITE,
        covered_by=covered_by,
    )


def plan(
    intent: Intent,
    targets: Iterable[Target],
    current: Iterable[SilenceRecord],
    *,
    now: datetime,
    ttl: timedelta | None = None,
    reason: str | None = None,
    creator: str | None = None,
    expire_on_resolve: bool = False,
    conflict_policy: ConflictPolicy = ConflictPolicy.FAIL,
) -> OperationPlan:
    """Compute the registry operations that bring ``targets`` to ``intent``.

    Records in ``current`` whose expiry has passed are treated as absent.
    Targets are deduplicated and sorted, so no target is planned twice.
    """
    ordered = sorted(set(targets))
    live = _live_by_id(current, now)

    if intent is Intent.LIST:
        records = sorted(live.values(), key=lambda r: r.target)
        if ordered:
            records = [r for r in records if any(t.covers(r.target) for t in ordered)]
        return OperationPlan(intent=intent, listing=tuple(records), planned_at=now)

    if not ordered:
        raise ValidationError("No targets to plan for")

    operations: list[PlannedOperation] = []
    for target in ordered:
        if intent is Intent.SILENCE:
            operations.append(
                _plan_silence(
                    target,
                    live,
                    ttl=ttl,
                    reason=reason,
                    now=now,
                    creator=creator,
                    expire_on_resolve=expire_on_resolve,
                    conflict_policy=conflict_policy,
                )
            )
        elif target.id in live:
            operations.append(PlannedOperation(Action.DELETE, target, live[target.id]))
        else:
            operations.append(PlannedOperation(Action.SKIP, target, reason=NOT_SILENCED))

    result = OperationPlan(intent=intent, operations=tuple(operations), planned_at=now)
    logger.debug(
        "plan_built",
        intent=intent.value,
        creates=len(result.by_action(Action.CREATE)),
        deletes=len(result.by_action(Action.DELETE)),
        skips=len(result.by_action(Action.SKIP)),
    )
    return result
