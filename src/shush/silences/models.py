"""
Silence value objects.

Target, SilenceRecord and InventorySnapshot are created per invocation and
never mutated. A Target's id is the same "<subscription>:<check>" string
the Sensu API derives for a silence entry, so re-silencing a target
replaces its entry instead of stacking a second one.
"""

from __future__ import annotations

import getpass
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from types import MappingProxyType
from typing import Iterable, Mapping

from shush.core.errors import ValidationError

ALL = "*"
CLIENT_PREFIX = "client:"

# Registry TTLs are whole seconds; this absorbs rounding of remaining TTLs.
TTL_TOLERANCE = timedelta(seconds=1)


@dataclass(frozen=True, order=True)
class Target:
    """A (subscription, check) pair a silence applies to.

    ``subscription`` is ``client:<name>``, a subscription name or ``*``
    for every resource. ``check`` is a check name or ``*`` for every check.
    """

    subscription: str
    check: str = ALL

    def __post_init__(self) -> None:
        if not self.subscription or not self.check:
            raise ValidationError("Target dimensions must not be empty")

    @classmethod
    def for_client(cls, client: str, check: str = ALL) -> Target:
        return cls(f"{CLIENT_PREFIX}{client}", check)

    @property
    def id(self) -> str:
        return f"{self.subscription}:{self.check}"

    @property
    def client(self) -> str | None:
        if self.subscription.startswith(CLIENT_PREFIX):
            return self.subscription[len(CLIENT_PREFIX):]
        return None

    @property
    def all_resources(self) -> bool:
        return self.subscription == ALL

    @property
    def all_checks(self) -> bool:
        return self.check == ALL

    @property
    def is_fleet_wide(self) -> bool:
        return self.all_resources and self.all_checks

    def covers(self, other: Target) -> bool:
        """Whether a silence on this target also silences ``other``."""
        return (self.all_resources or self.subscription == other.subscription) and (
            self.all_checks or self.check == other.check
        )

    def describe(self) -> str:
        check = "all checks" if self.all_checks else f"check {self.check}"
        resource = "all resources" if self.all_resources else self.subscription
        return f"{check} on {resource}"

    def __str__(self) -> str:
        return self.id


@dataclass(frozen=True)
class SilenceRecord:
    """A silence entry as written to, or read back from, the registry."""

    target: Target
    created_at: datetime
    expires_at: datetime | None = None
    reason: str | None = None
    creator: str | None = None
    expire_on_resolve: bool = False

    @property
    def id(self) -> str:
        return self.target.id

    @property
    def is_indefinite(self) -> bool:
        return self.expires_at is None

    @property
    def ttl(self) -> timedelta | None:
        if self.expires_at is None:
            return None
        return self.expires_at - self.created_at

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now

    def equivalent_to(self, other: SilenceRecord) -> bool:
        """Same reason, expire-on-resolve and TTL semantics.

        Expiry instants are not compared: re-silencing with the same TTL a
        minute later is the same request, not a change.
        """
        if self.target != other.target:
            return False
        if (self.reason or None) != (other.reason or None):
            return False
        if self.expire_on_resolve != other.expire_on_resolve:
            return False
        mine, theirs = self.ttl, other.ttl
        if mine is None or theirs is None:
            return mine is None and theirs is None
        return abs(mine - theirs) <= TTL_TOLERANCE

    def describe_expiry(self) -> str:
        resolve = " or on resolution" if self.expire_on_resolve else ""
        if self.expires_at is None:
            return "not expire until resolution" if self.expire_on_resolve else "never expire"
        return f"expire at {self.expires_at.isoformat()}{resolve}"


@dataclass(frozen=True)
class InventorySnapshot:
    """Known clients, subscriptions, checks and instance IDs at one moment.

    Only used to expand patterns; it may be stale and is never authoritative.
    """

    clients: frozenset[str] = frozenset()
    subscriptions: frozenset[str] = frozenset()
    checks: frozenset[str] = frozenset()
    instances: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def of(
        cls,
        clients: Iterable[str] = (),
        *,
        subscriptions: Iterable[str] = (),
        checks: Iterable[str] = (),
        instances: Mapping[str, str] | None = None,
    ) -> InventorySnapshot:
        return cls(
            clients=frozenset(clients),
            subscriptions=frozenset(subscriptions),
            checks=frozenset(checks),
            instances=MappingProxyType(dict(instances or {})),
        )


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def default_creator() -> str:
    """Name recorded as the silence creator: $USER, else "shush"."""
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return "shush"


def validate_ttl(ttl: timedelta | None) -> None:
    """Reject TTLs the registry cannot represent as a future expiry."""
    if ttl is None:
        return
    if ttl < timedelta(seconds=1):
        raise ValidationError(
            "Silence TTL must be at least one second",
            details={"ttl_seconds": ttl.total_seconds()},
        )


def build_record(
    target: Target,
    ttl: timedelta | None,
    reason: str | None,
    now: datetime,
    *,
    creator: str | None = None,
    expire_on_resolve: bool = False,
) -> SilenceRecord:
    """Build the record a silence request for ``target`` would write.

    An absent ``ttl`` produces an indefinite silence.
    """
    if now.tzinfo is None:
        raise ValidationError("Silence timestamps must be timezone-aware")
    validate_ttl(ttl)
    expires_at = None
    if ttl is not None:
        expires_at = now + timedelta(seconds=int(ttl.total_seconds()))
    return SilenceRecord(
        target=target,
        created_at=now,
        expires_at=expires_at,
        reason=reason or None,
        creator=creator or default_creator(),
        expire_on_resolve=expire_on_resolve,
    )
