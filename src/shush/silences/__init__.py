"""Silence targets, records, resolution, planning and execution."""

from shush.silences.models import (
    ALL,
    InventorySnapshot,
    SilenceRecord,
    Target,
    build_record,
)

__all__ = ["ALL", "InventorySnapshot", "SilenceRecord", "Target", "build_record"]
