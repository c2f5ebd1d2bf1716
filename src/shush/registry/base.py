from __future__ import annotations

from enum import Enum
from typing import Protocol, Union

from shush.silences.models import InventorySnapshot, SilenceRecord, Target


class CreateOutcome(str, Enum):
    """What a create call did to the registry."""

    CREATED = "created"
    UNCHANGED = "unchanged"
    REPLACED = "replaced"


class DeleteOutcome(str, Enum):
    DELETED = "deleted"
    ABSENT = "absent"


TargetOrId = Union[Target, str]


def silence_id(target_or_id: TargetOrId) -> str:
    if isinstance(target_or_id, Target):
        return target_or_id.id
    return target_or_id


class SilenceRegistry(Protocol):
    """Minimal silence-registry interface exposed to the shush core.

    Implementations must release any network resources in ``aclose``.
    """

    name: str

    async def inventory(self) -> InventorySnapshot:
        ...

    async def list(
        self,
        *,
        subscription: str | None = None,
        check: str | None = None,
    ) -> set[SilenceRecord]:
        """Unexpired silences, optionally narrowed to one subscription or check."""
        ...

    async def create(self, record: SilenceRecord, *, overwrite: bool = False) -> CreateOutcome:
        """Write ``record``.

        An unexpired equivalent entry is left alone (``UNCHANGED``); a
        differing unexpired entry raises Conflict unless ``overwrite``.
        """
        ...

    async def delete(self, target_or_id: TargetOrId) -> DeleteOutcome:
        """Remove a silence; an absent entry is not an error."""
        ...

    async def aclose(self) -> None:
        ...
