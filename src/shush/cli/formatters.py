"""Render execution reports as rich tables or JSON."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any

from shush.cli import ux
from shush.silences.duration import format_ttl
from shush.silences.models import SilenceRecord
from shush.silences.plan import Action, Intent, PlannedOperation
from shush.silences.results import ExecutionReport, Status

_STATUS_STYLE = {
    Status.SUCCEEDED: "[success]succeeded[/success]",
    Status.SKIPPED: "[muted]skipped[/muted]",
    Status.FAILED: "[error]failed[/error]",
}


def _expiry(record: SilenceRecord) -> str:
    if record.expires_at is None:
        return "never"
    return record.expires_at.strftime("%Y-%m-%d %H:%M:%S %Z")


def _planned_ttl(op: PlannedOperation) -> str | None:
    if op.action is not Action.CREATE or op.record is None:
        return None
    return format_ttl(op.record.ttl)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def record_to_dict(record: SilenceRecord) -> dict[str, Any]:
    return {
        "id": record.id,
        "subscription": record.target.subscription,
        "check": record.target.check,
        "expires_at": _iso(record.expires_at),
        "expire_on_resolve": record.expire_on_resolve,
        "creator": record.creator,
        "reason": record.reason,
    }


def report_to_dict(report: ExecutionReport) -> dict[str, Any]:
    data: dict[str, Any] = {
        "intent": report.intent.value,
        "dry_run": report.dry_run,
        "ok": report.ok,
        "duration_seconds": round(report.duration_seconds, 3),
    }
    if report.intent is Intent.LIST:
        data["silences"] = [record_to_dict(r) for r in report.listing]
        return data
    if report.dry_run:
        data["plan"] = [
            {
                "target": op.target.id,
                "action": op.action.value,
                "reason": op.reason,
                "ttl": _planned_ttl(op),
                "overwrite": op.overwrite,
                "covered_by": list(op.covered_by),
            }
            for op in report.plan.operations
        ]
        return data
    data["results"] = [
        {
            "target": result.target.id,
            "status": result.status.value,
            "action": result.action.value,
            "detail": result.detail,
            "error_kind": result.error_kind.value if result.error_kind else None,
        }
        for result in (report.succeeded + report.skipped + report.failed)
    ]
    return data


def render_report(report: ExecutionReport, output: str = "text") -> None:
    if output == "json":
        ux.console.print_json(json.dumps(report_to_dict(report)))
        return

    if report.intent is Intent.LIST:
        if not report.listing:
            ux.info("No active silences")
            return
        ux.print_table(
            "Active silences",
            ["Subscription", "Check", "Expires", "Expire on resolve", "Creator", "Reason"],
            [
                [
                    "all" if r.target.all_resources else r.target.subscription,
                    "all" if r.target.all_checks else r.target.check,
                    _expiry(r),
                    "yes" if r.expire_on_resolve else "no",
                    r.creator or "unknown",
                    r.reason or "",
                ]
                for r in report.listing
            ],
        )
        return

    if report.dry_run:
        if not report.plan.operations:
            ux.info("Nothing to do")
            return
        ux.print_table(
            f"Planned {report.intent.value} (dry run)",
            ["Target", "Action", "TTL", "Note"],
            [
                [
                    op.target.describe(),
                    op.action.value + (" (overwrite)" if op.overwrite else ""),
                    _planned_ttl(op) or "",
                    op.reason or (f"covered by {', '.join(op.covered_by)}" if op.covered_by else ""),
                ]
                for op in report.plan.operations
            ],
        )
        return

    results = report.succeeded + report.skipped + report.failed
    if not results:
        ux.warning("No targets resolved; nothing was changed")
        return
    ux.print_table(
        f"{report.intent.value.capitalize()} results",
        ["Target", "Result", "Detail"],
        [
            [r.target.describe(), _STATUS_STYLE[r.status], r.detail or ""]
            for r in results
        ],
    )
    summary = (
        f"{len(report.succeeded)} succeeded, {len(report.skipped)} skipped, "
        f"{len(report.failed)} failed"
    )
    if report.ok:
        ux.success(summary)
    else:
        ux.error(summary)
