"""
Target resolution.

Expands user selectors into concrete (subscription, check) targets.

Selector syntax: ``[kind:]RESOURCE[/CHECK]``

- ``kind`` is ``client`` (default), ``sub``/``subscription`` or ``node``
  (a cloud instance ID, mapped to its client through the inventory).
- ``RESOURCE`` and ``CHECK`` are exact names, fnmatch patterns expanded
  against the inventory, or ``@all``.
- An omitted ``CHECK`` means every check on the resource.

Silencing every check on every resource requires ``@all/@all``. Wildcard
expansion only ever yields names the inventory advertises, never the
all-resources or all-checks sentinels.
"""

from __future__ import annotations

import fnmatch
from dataclasses import dataclass
from enum import Enum
from typing import Iterable

import structlog

from shush.core.errors import ResolutionError, ValidationError
from shush.silences.models import ALL, CLIENT_PREFIX, InventorySnapshot, Target

logger = structlog.get_logger()

ALL_TOKEN = "@all"
_WILDCARD_CHARS = frozenset("*?[")


class ResourceKind(str, Enum):
    CLIENT = "client"
    SUBSCRIPTION = "subscription"
    NODE = "node"


_KIND_PREFIXES = {
    "client": ResourceKind.CLIENT,
    "sub": ResourceKind.SUBSCRIPTION,
    "subscription": ResourceKind.SUBSCRIPTION,
    "node": ResourceKind.NODE,
}


def is_pattern(value: str) -> bool:
    return any(char in _WILDCARD_CHARS for char in value)


def _filter(names: Iterable[str], pattern: str) -> list[str]:
    return [name for name in sorted(names) if fnmatch.fnmatchcase(name, pattern)]


@dataclass(frozen=True)
class Selector:
    """One user selector, before expansion.

    ``resource`` is ``None`` only for the explicit ``@all`` token; ``check``
    is ``None`` when every check on the resource is meant.
    """

    resource: str | None
    check: str | None = None
    kind: ResourceKind = ResourceKind.CLIENT
    explicit_all_checks: bool = False

    def __post_init__(self) -> None:
        if self.resource is None and self.check is None and not self.explicit_all_checks:
            raise ValidationError(
                "Selecting every resource requires an explicit check; "
                f"use '{ALL_TOKEN}/{ALL_TOKEN}' to silence everything",
            )
        if self.resource == "" or self.check == "":
            raise ValidationError("Selector names must not be empty")

    @property
    def needs_inventory(self) -> bool:
        if self.kind is ResourceKind.NODE and self.resource is not None:
            return True
        return bool(
            (self.resource and is_pattern(self.resource))
            or (self.check and is_pattern(self.check))
        )

    def __str__(self) -> str:
        resource = ALL_TOKEN if self.resource is None else self.resource
        prefix = "" if self.kind is ResourceKind.CLIENT else f"{self.kind.value}:"
        if self.check is None:
            return f"{prefix}{resource}/{ALL_TOKEN}" if self.explicit_all_checks else f"{prefix}{resource}"
        return f"{prefix}{resource}/{self.check}"


def parse_selector(text: str, default_kind: ResourceKind = ResourceKind.CLIENT) -> Selector:
    """Parse ``[kind:]RESOURCE[/CHECK]`` into a Selector."""
    value = text.strip()
    if not value:
        raise ValidationError("Empty selector")

    kind = default_kind
    prefix, sep, rest = value.partition(":")
    if sep and prefix in _KIND_PREFIXES:
        kind = _KIND_PREFIXES[prefix]
        value = rest
    elif sep:
        raise ValidationError(
            f"Unknown selector kind {prefix!r} in {text!r}",
            details={"kinds": ", ".join(sorted(_KIND_PREFIXES))},
        )

    resource_part, slash, check_part = value.partition("/")
    if slash and not check_part:
        raise ValidationError(f"Selector {text!r} has an empty check")
    if "/" in check_part:
        raise ValidationError(f"Selector {text!r} has more than one '/'")

    resource = None if resource_part == ALL_TOKEN else resource_part
    explicit_all_checks = check_part == ALL_TOKEN
    check = None if (not slash or explicit_all_checks) else check_part
    if resource is None and kind is not ResourceKind.CLIENT:
        raise ValidationError(f"'{ALL_TOKEN}' cannot be combined with kind {kind.value!r}")
    return Selector(
        resource=resource,
        check=check,
        kind=kind,
        explicit_all_checks=explicit_all_checks,
    )


def selectors_from_lists(
    resources: Iterable[str] | None,
    checks: Iterable[str] | None,
    kind: ResourceKind = ResourceKind.CLIENT,
) -> list[Selector]:
    """Build the resource x check product of comma-list style arguments.

    Checks without resources select those checks on every resource.
    """
    resource_list = [r for r in (resources or []) if r]
    check_list = [c for c in (checks or []) if c]
    if not resource_list and not check_list:
        raise ValidationError("No targets specified")
    if not resource_list:
        return [Selector(resource=None, check=check) for check in check_list]
    if not check_list:
        return [Selector(resource=resource, kind=kind) for resource in resource_list]
    return [
        Selector(resource=resource, check=check, kind=kind)
        for resource in resource_list
        for check in check_list
    ]


def needs_inventory(selectors: Iterable[Selector], *, verify_exact: bool = False) -> bool:
    selectors = list(selectors)
    if verify_exact and any(s.resource is not None for s in selectors):
        return True
    return any(s.needs_inventory for s in selectors)


class TargetResolver:
    """Expands selectors against an inventory snapshot."""

    def __init__(
        self,
        inventory: InventorySnapshot | None,
        *,
        strict: bool = True,
        verify_exact: bool = False,
    ) -> None:
        self._inventory = inventory
        self._strict = strict
        self._verify_exact = verify_exact

    def resolve(self, selectors: Iterable[Selector]) -> frozenset[Target]:
        targets: set[Target] = set()
        for selector in selectors:
            expanded = self._expand(selector)
            if not expanded:
                self._unmatched(selector)
                continue
            logger.debug("selector_resolved", selector=str(selector), targets=len(expanded))
            targets.update(expanded)
        return frozenset(targets)

    def _unmatched(self, selector: Selector) -> None:
        if self._strict:
            raise ResolutionError(
                f"Selector {str(selector)!r} matched nothing in the inventory",
                details={"selector": str(selector)},
            )
        logger.warning("selector_matched_nothing", selector=str(selector))

    def _expand(self, selector: Selector) -> set[Target]:
        subscriptions = self._subscriptions(selector)
        checks = self._checks(selector)
        return {Target(sub, check) for sub in subscriptions for check in checks}

    def _subscriptions(self, selector: Selector) -> list[str]:
        if selector.resource is None:
            return [ALL]

        if selector.kind is ResourceKind.NODE:
            instances = self._require_inventory(selector).instances
            if is_pattern(selector.resource):
                ids = _filter(instances, selector.resource)
            else:
                ids = [selector.resource] if selector.resource in instances else []
                if not ids:
                    logger.warning(
                        "instance_not_registered",
                        instance_id=selector.resource,
                        hint="recently provisioned instances may not have registered yet",
                    )
            return [f"{CLIENT_PREFIX}{instances[i]}" for i in ids]

        if selector.kind is ResourceKind.SUBSCRIPTION:
            names = self._match(selector, selector.resource, "subscriptions")
            return list(names)

        names = self._match(selector, selector.resource, "clients")
        return [f"{CLIENT_PREFIX}{name}" for name in names]

    def _checks(self, selector: Selector) -> list[str]:
        if selector.check is None:
            return [ALL]
        return list(self._match(selector, selector.check, "checks"))

    def _match(self, selector: Selector, value: str, field: str) -> list[str]:
        if is_pattern(value):
            known = getattr(self._require_inventory(selector), field)
            return _filter(known, value)
        if self._verify_exact and field != "checks":
            known = getattr(self._require_inventory(selector), field)
            return [value] if value in known else []
        return [value]

    def _require_inventory(self, selector: Selector) -> InventorySnapshot:
        if self._inventory is None:
            raise ResolutionError(
                f"Selector {str(selector)!r} needs an inventory snapshot to expand",
            )
        return self._inventory


def resolve(
    selectors: Iterable[Selector],
    inventory: InventorySnapshot | None,
    *,
    strict: bool = True,
    verify_exact: bool = False,
) -> frozenset[Target]:
    """Expand ``selectors`` into a deduplicated set of targets."""
    return TargetResolver(inventory, strict=strict, verify_exact=verify_exact).resolve(selectors)
