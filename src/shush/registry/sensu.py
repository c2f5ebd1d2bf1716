"""
Sensu silence registry backend.

Talks to the Sensu 1.x API:

    GET  /clients                          - client inventory
    GET  /checks                           - check inventory
    GET  /silenced                         - every silence entry
    GET  /silenced/subscriptions/{sub}     - entries for one subscription
    GET  /silenced/checks/{check}          - entries for one check
    GET  /silenced/ids/{id}                - one entry
    POST /silenced                         - create or replace an entry
    POST /silenced/clear                   - delete an entry

Sensu reports ``expire`` as the remaining TTL in seconds (-1 when the entry
never expires) and ``timestamp`` as the creation time in epoch seconds.
A missing subscription or check on the wire means "all".
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import httpx
import structlog

from shush.config.settings import Settings
from shush.core.errors import Conflict, NotFound, RegistryError
from shush.registry.backends import register_backend
from shush.registry.base import (
    CreateOutcome,
    DeleteOutcome,
    SilenceRegistry,
    TargetOrId,
    silence_id,
)
from shush.registry.http import DEFAULT_USER_AGENT, RegistryHTTPClient
from shush.silences.models import (
    ALL,
    CLIENT_PREFIX,
    InventorySnapshot,
    SilenceRecord,
    Target,
    utcnow,
)

logger = structlog.get_logger()


def record_from_entry(entry: dict[str, Any], now: datetime) -> SilenceRecord:
    """Convert one ``/silenced`` entry into a SilenceRecord."""
    subscription = entry.get("subscription") or ALL
    check = entry.get("check") or ALL
    target = Target(subscription, check)

    remaining = entry.get("expire")
    expires_at = None
    if isinstance(remaining, (int, float)) and remaining >= 0:
        expires_at = now + timedelta(seconds=remaining)

    timestamp = entry.get("timestamp")
    if isinstance(timestamp, (int, float)):
        created_at = datetime.fromtimestamp(timestamp, tz=timezone.utc)
    else:
        created_at = now

    return SilenceRecord(
        target=target,
        created_at=created_at,
        expires_at=expires_at,
        reason=entry.get("reason") or None,
        creator=entry.get("creator"),
        expire_on_resolve=bool(entry.get("expire_on_resolve", False)),
    )


def entry_from_record(record: SilenceRecord) -> dict[str, Any]:
    """Build the ``POST /silenced`` payload for a record."""
    payload: dict[str, Any] = {}
    if record.creator:
        payload["creator"] = record.creator
    if not record.target.all_resources:
        payload["subscription"] = record.target.subscription
    if not record.target.all_checks:
        payload["check"] = record.target.check
    if record.ttl is not None:
        payload["expire"] = int(record.ttl.total_seconds())
    if record.expire_on_resolve:
        payload["expire_on_resolve"] = True
    if record.reason:
        payload["reason"] = record.reason
    return payload


def inventory_from_payloads(clients: Any, checks: Any) -> InventorySnapshot:
    client_names: set[str] = set()
    subscriptions: set[str] = set()
    instances: dict[str, str] = {}
    for item in clients if isinstance(clients, list) else []:
        if not isinstance(item, dict) or not isinstance(item.get("name"), str):
            continue
        name = item["name"]
        client_names.add(name)
        for sub in item.get("subscriptions") or []:
            if isinstance(sub, str) and not sub.startswith(CLIENT_PREFIX):
                subscriptions.add(sub)
        instance_id = item.get("instance_id")
        if isinstance(instance_id, str):
            instances[instance_id] = name

    check_names = {
        item["name"]
        for item in (checks if isinstance(checks, list) else [])
        if isinstance(item, dict) and isinstance(item.get("name"), str)
    }
    return InventorySnapshot.of(
        client_names,
        subscriptions=subscriptions,
        checks=check_names,
        instances=instances,
    )


class SensuRegistry(SilenceRegistry):
    """Silence registry backed by the Sensu HTTP API."""

    name = "sensu"

    def __init__(
        self,
        api_url: str,
        *,
        username: str | None = None,
        password: str | None = None,
        timeout: float = 10.0,
        max_attempts: int = 3,
        backoff_factor: float = 0.5,
        backoff_max: float = 8.0,
        circuit_failure_threshold: int = 5,
        circuit_recovery_timeout: int = 30,
        user_agent: str = DEFAULT_USER_AGENT,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._clock = clock
        self._http = RegistryHTTPClient(
            api_url,
            timeout=timeout,
            max_attempts=max_attempts,
            backoff_factor=backoff_factor,
            backoff_max=backoff_max,
            circuit_failure_threshold=circuit_failure_threshold,
            circuit_recovery_timeout=circuit_recovery_timeout,
            auth=(username, password) if username and password else None,
            user_agent=user_agent,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> SensuRegistry:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def inventory(self) -> InventorySnapshot:
        clients = await self._http.get_json("/clients")
        checks = await self._http.get_json("/checks")
        snapshot = inventory_from_payloads(clients, checks)
        logger.debug(
            "inventory_fetched",
            clients=len(snapshot.clients),
            subscriptions=len(snapshot.subscriptions),
            checks=len(snapshot.checks),
        )
        return snapshot

    async def list(
        self,
        *,
        subscription: str | None = None,
        check: str | None = None,
    ) -> set[SilenceRecord]:
        if subscription and subscription != ALL:
            path = f"/silenced/subscriptions/{subscription}"
        elif check and check != ALL:
            path = f"/silenced/checks/{check}"
        else:
            path = "/silenced"

        try:
            payload = await self._http.get_json(path)
        except NotFound:
            payload = []
        now = self._clock()

        records: set[SilenceRecord] = set()
        stale = 0
        for entry in payload if isinstance(payload, list) else []:
            if not isinstance(entry, dict):
                continue
            record = record_from_entry(entry, now)
            if record.is_expired(now):
                stale += 1
                continue
            if subscription and record.target.subscription != subscription:
                continue
            if check and record.target.check != check:
                continue
            records.add(record)
        if stale:
            logger.debug("stale_silences_ignored", count=stale)
        return records

    async def get(self, target_or_id: TargetOrId) -> SilenceRecord | None:
        """Return the unexpired silence for a target, if any."""
        identifier = silence_id(target_or_id)
        try:
            entry = await self._http.get_json(f"/silenced/ids/{identifier}")
        except NotFound:
            return None
        if not isinstance(entry, dict):
            return None
        now = self._clock()
        record = record_from_entry(entry, now)
        if record.is_expired(now):
            return None
        return record

    async def create(self, record: SilenceRecord, *, overwrite: bool = False) -> CreateOutcome:
        outcome = CreateOutcome.CREATED
        existing = await self.get(record.target)
        if existing is not None:
            if existing.equivalent_to(record):
                logger.debug("silence_unchanged", id=record.id)
                return CreateOutcome.UNCHANGED
            if not overwrite:
                raise Conflict(
                    f"{record.id} is already silenced with different settings",
                    details={"id": record.id, "existing_reason": existing.reason},
                )
            outcome = CreateOutcome.REPLACED

        response = await self._http.post("/silenced", json=entry_from_record(record))
        if response.status_code not in (200, 201, 204):
            raise RegistryError(
                f"Unexpected registry response creating {record.id}",
                details={"status": response.status_code},
            )
        logger.info("silence_written", id=record.id, outcome=outcome.value)
        return outcome

    async def delete(self, target_or_id: TargetOrId) -> DeleteOutcome:
        identifier = silence_id(target_or_id)
        try:
            await self._http.post("/silenced/clear", json={"id": identifier})
        except NotFound:
            logger.debug("silence_already_absent", id=identifier)
            return DeleteOutcome.ABSENT
        logger.info("silence_cleared", id=identifier)
        return DeleteOutcome.DELETED


def _from_settings(settings: Settings) -> SensuRegistry:
    password = settings.api_password.get_secret_value() if settings.api_password else None
    return SensuRegistry(
        settings.api_url,
        username=settings.api_user,
        password=password,
        timeout=settings.timeout,
        max_attempts=settings.max_attempts,
        backoff_factor=settings.retry_backoff,
        backoff_max=settings.retry_backoff_max,
        circuit_failure_threshold=settings.circuit_failure_threshold,
        circuit_recovery_timeout=settings.circuit_recovery_timeout,
    )


register_backend(
    SensuRegistry.name,
    _from_settings,
    description="Sensu 1.x silence API over HTTP",
)

__all__ = ["SensuRegistry", "entry_from_record", "record_from_entry"]
