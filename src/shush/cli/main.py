"""
shush command-line entry point.

    shush -i web-01,web-02 -c check_disk -e 30m -m "disk swap"
    shush -s webservers -r
    shush -l
    shush 'db-*' 'sub:webservers/check_http' -e 1h
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from typing import Sequence

import structlog

from shush import __version__
from shush.cli import ux
from shush.cli.formatters import render_report
from shush.config.loader import load_settings
from shush.config.settings import Settings
from shush.core.errors import main_with_error_handling
from shush.logging import bind_context, configure_logging
from shush.registry import create_backend
from shush.silences.duration import parse_ttl
from shush.silences.engine import ReconciliationEngine, SilenceRequest
from shush.silences.plan import ConflictPolicy, Intent
from shush.silences.resolver import (
    ResourceKind,
    Selector,
    parse_selector,
    selectors_from_lists,
)
from shush.silences.results import ExecutionReport

logger = structlog.get_logger()


def _comma_list(value: str | None) -> list[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="shush", description="Sensu silencing tool")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    resources = parser.add_mutually_exclusive_group()
    resources.add_argument("-n", "--aws-nodes", dest="nodes", metavar="NODE1,NODE2,...",
                           help="Comma separated list of instance IDs")
    resources.add_argument("-i", "--client-ids", dest="clients", metavar="ID1,ID2,...",
                           help="Comma separated list of client IDs")
    resources.add_argument("-s", "--subscriptions", dest="subscriptions", metavar="SUB1,SUB2,...",
                           help="Comma separated list of subscriptions")
    parser.add_argument("-c", "--checks", metavar="CHK1,CHK2,...",
                        help="Comma separated list of checks")

    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("-r", "--remove", action="store_true", help="Remove specified silences")
    mode.add_argument("-l", "--list", action="store_true", help="List silences")

    parser.add_argument("-e", "--expire", metavar="EXPIRATION_TTL",
                        help='Time until the silence expires (e.g. 30m, 1d12h) or "none" for unlimited TTL')
    parser.add_argument("-o", "--expire-on-resolve", action="store_true",
                        help="On resolution of alert, clear silence")
    parser.add_argument("-m", "--reason", help="Reason recorded with the silence")
    parser.add_argument("-f", "--config-file", metavar="FILE_PATH", help="Path to YAML config file")

    parser.add_argument("--lenient", action="store_true",
                        help="Warn instead of failing when a selector matches nothing")
    parser.add_argument("--verify", action="store_true",
                        help="Check exact client and subscription names against the inventory")
    parser.add_argument("--on-conflict", choices=[p.value for p in ConflictPolicy],
                        default=ConflictPolicy.FAIL.value,
                        help="What to do when a target is already silenced with different settings")
    parser.add_argument("--dry-run", action="store_true", help="Show planned operations without applying them")
    parser.add_argument("--timeout", type=float, metavar="SECONDS",
                        help="Stop issuing new registry operations this many seconds after the invocation starts")
    parser.add_argument("--output", choices=["text", "json"], default="text", help="Output format")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("selectors", nargs="*", metavar="SELECTOR",
                        help="[client:|sub:|node:]RESOURCE[/CHECK]; wildcards expand against the inventory")
    return parser


def _intent(args: argparse.Namespace) -> Intent:
    if args.remove:
        return Intent.CLEAR
    if args.list:
        return Intent.LIST
    return Intent.SILENCE


def build_selectors(args: argparse.Namespace) -> list[Selector]:
    selectors = [parse_selector(text) for text in args.selectors]

    if args.nodes:
        kind, resources = ResourceKind.NODE, _comma_list(args.nodes)
    elif args.subscriptions:
        kind, resources = ResourceKind.SUBSCRIPTION, _comma_list(args.subscriptions)
    else:
        kind, resources = ResourceKind.CLIENT, _comma_list(args.clients)
    checks = _comma_list(args.checks)

    if resources or checks:
        selectors.extend(selectors_from_lists(resources, checks, kind))
    return selectors


def build_request(args: argparse.Namespace, settings: Settings) -> SilenceRequest:
    intent = _intent(args)
    ttl = None
    if intent is Intent.SILENCE:
        ttl = parse_ttl(args.expire or settings.default_ttl)
    return SilenceRequest(
        intent=intent,
        selectors=tuple(build_selectors(args)),
        ttl=ttl,
        reason=args.reason,
        creator=settings.creator,
        expire_on_resolve=args.expire_on_resolve,
        strict=not args.lenient,
        verify_exact=args.verify,
        conflict_policy=ConflictPolicy(args.on_conflict),
        dry_run=args.dry_run,
    )


async def run(
    request: SilenceRequest,
    settings: Settings,
    *,
    timeout: float | None = None,
) -> ExecutionReport:
    """Execute one invocation against the configured registry backend."""
    registry = create_backend(settings)
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    interrupt_handled = True
    try:
        loop.add_signal_handler(signal.SIGINT, stop.set)
    except (NotImplementedError, RuntimeError):
        interrupt_handled = False

    try:
        engine = ReconciliationEngine(registry, concurrency=settings.concurrency)
        return await engine.reconcile(request, stop=stop, timeout=timeout)
    finally:
        if interrupt_handled:
            loop.remove_signal_handler(signal.SIGINT)
        await registry.aclose()
        if stop.is_set():
            logger.warning("invocation_interrupted", hint="operations not yet issued were skipped")


@main_with_error_handling()
def shush_command(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(logging.DEBUG if args.verbose else logging.WARNING)

    settings = load_settings(args.config_file)
    request = build_request(args, settings)
    bind_context(intent=request.intent.value, backend=settings.backend)

    with ux.spinner(f"Contacting {settings.backend} registry"):
        report = asyncio.run(run(request, settings, timeout=args.timeout))
    render_report(report, args.output)
    return report.exit_code


def main(argv: Sequence[str] | None = None) -> None:
    sys.exit(shush_command(argv))


if __name__ == "__main__":
    main()
