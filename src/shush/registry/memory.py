"""
In-process silence registry.

Keeps silences in a dict keyed by id with the same create/list/delete
semantics as the Sensu backend. It is mainly a test double: ``fail_on``
injects registry errors per silence id so Conflict or Unavailable can be
simulated without a network.

Selected with ``backend: memory`` it starts empty on every invocation and
persists nothing, with an empty inventory, so only exact selectors
resolve. That is enough to try out flags and output formats offline.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Iterable, Mapping

import structlog

from shush.config.settings import Settings
from shush.core.errors import Conflict, RegistryError
from shush.registry.backends import register_backend
from shush.registry.base import (
    CreateOutcome,
    DeleteOutcome,
    SilenceRegistry,
    TargetOrId,
    silence_id,
)
from shush.silences.models import InventorySnapshot, SilenceRecord, utcnow

logger = structlog.get_logger()


class InMemoryRegistry(SilenceRegistry):
    """Dict-backed registry; expired entries stay stored but are never returned."""

    name = "memory"

    def __init__(
        self,
        *,
        inventory: InventorySnapshot | None = None,
        records: Iterable[SilenceRecord] = (),
        fail_on: Mapping[str, RegistryError] | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._inventory = inventory or InventorySnapshot()
        self._records: dict[str, SilenceRecord] = {r.id: r for r in records}
        self._fail_on = dict(fail_on or {})
        self._clock = clock
        self.calls: list[tuple[str, str]] = []
        self.closed = False

    @property
    def stored(self) -> dict[str, SilenceRecord]:
        """Everything physically stored, including expired entries."""
        return dict(self._records)

    async def aclose(self) -> None:
        self.closed = True

    async def __aenter__(self) -> InMemoryRegistry:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    def _check_failure(self, operation: str, identifier: str) -> None:
        self.calls.append((operation, identifier))
        error = self._fail_on.get(identifier)
        if error is not None:
            raise error

    async def inventory(self) -> InventorySnapshot:
        return self._inventory

    async def list(
        self,
        *,
        subscription: str | None = None,
        check: str | None = None,
    ) -> set[SilenceRecord]:
        self.calls.append(("list", subscription or check or "*"))
        now = self._clock()
        return {
            record
            for record in self._records.values()
            if not record.is_expired(now)
            and (subscription is None or record.target.subscription == subscription)
            and (check is None or record.target.check == check)
        }

    async def create(self, record: SilenceRecord, *, overwrite: bool = False) -> CreateOutcome:
        self._check_failure("create", record.id)
        existing = self._records.get(record.id)
        outcome = CreateOutcome.CREATED
        if existing is not None and not existing.is_expired(self._clock()):
            if existing.equivalent_to(record):
                return CreateOutcome.UNCHANGED
            if not overwrite:
                raise Conflict(
                    f"{record.id} is already silenced with different settings",
                    details={"id": record.id, "existing_reason": existing.reason},
                )
            outcome = CreateOutcome.REPLACED
        self._records[record.id] = record
        logger.debug("memory_silence_written", id=record.id, outcome=outcome.value)
        return outcome

    async def delete(self, target_or_id: TargetOrId) -> DeleteOutcome:
        identifier = silence_id(target_or_id)
        self._check_failure("delete", identifier)
        record = self._records.pop(identifier, None)
        if record is None or record.is_expired(self._clock()):
            return DeleteOutcome.ABSENT
        return DeleteOutcome.DELETED


def _from_settings(settings: Settings) -> InMemoryRegistry:
    return InMemoryRegistry()


register_backend(
    InMemoryRegistry.name,
    _from_settings,
    description="Empty in-process registry, discarded when the invocation ends",
)

__all__ = ["InMemoryRegistry"]
