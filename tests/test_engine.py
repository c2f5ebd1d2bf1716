"""Tests for the reconciliation engine against the in-memory registry."""

import asyncio
from datetime import timedelta

import pytest
from shush.core.errors import (
    ErrorKind,
    ExitCode,
    RegistryUnavailable,
    ResolutionError,
    ValidationError,
)
from shush.registry.memory import InMemoryRegistry
from shush.silences.engine import ReconciliationEngine, SilenceRequest
from shush.silences.models import ALL, Target, build_record
from shush.silences.plan import Action, ConflictPolicy, Intent
from shush.silences.resolver import parse_selector
from shush.silences.results import Status

WEB = Target.for_client("web-01")
DB1 = Target.for_client("db-01")
DB2 = Target.for_client("db-02")


def selectors(*texts):
    return tuple(parse_selector(text) for text in texts)


def silence(*texts, ttl=timedelta(minutes=30), **kwargs):
    return SilenceRequest(Intent.SILENCE, selectors(*texts), ttl=ttl, creator="oncall", **kwargs)


def clear(*texts, **kwargs):
    return SilenceRequest(Intent.CLEAR, selectors(*texts), **kwargs)


@pytest.fixture
def registry(inventory, clock):
    return InMemoryRegistry(inventory=inventory, clock=clock)


@pytest.fixture
def engine(registry, clock):
    return ReconciliationEngine(registry, clock=clock)


class SlowRegistry(InMemoryRegistry):
    """Registry whose creates take a while, to exercise stop/timeout."""

    async def create(self, record, *, overwrite=False):
        await asyncio.sleep(0.05)
        return await super().create(record, overwrite=overwrite)


class SlowListRegistry(InMemoryRegistry):
    """Registry whose list read takes a while, before any write is planned."""

    async def list(self, **scope):
        await asyncio.sleep(0.05)
        return await super().list(**scope)


class CrashingRegistry(InMemoryRegistry):
    """Registry that raises a non-registry error for one target."""

    def __init__(self, crash_on, **kwargs):
        super().__init__(**kwargs)
        self._crash_on = crash_on

    async def create(self, record, *, overwrite=False):
        if record.id == self._crash_on:
            raise RuntimeError("unexpected payload")
        return await super().create(record, overwrite=overwrite)


class TestSilence:
    @pytest.mark.asyncio
    async def test_exact_and_wildcard_targets(self, engine, registry, clock):
        report = await engine.reconcile(silence("web-01", "db-*"))

        assert [r.target for r in report.succeeded] == sorted([WEB, DB1, DB2])
        assert all(r.detail == "created" for r in report.succeeded)
        assert report.ok
        assert report.exit_code == ExitCode.SUCCESS
        for target in (WEB, DB1, DB2):
            assert registry.stored[target.id].expires_at == clock() + timedelta(minutes=30)

    @pytest.mark.asyncio
    async def test_repeat_is_idempotent(self, engine, registry, clock):
        first = await engine.reconcile(silence("web-01"))
        assert len(first.succeeded) == 1

        clock.advance(minutes=1)
        second = await engine.reconcile(silence("web-01"))
        assert second.succeeded == []
        assert [r.detail for r in second.skipped] == ["already silenced"]
        assert second.ok
        assert [c for c in registry.calls if c[0] == "create"] == [("create", WEB.id)]

    @pytest.mark.asyncio
    async def test_expired_silence_is_recreated(self, engine, registry, clock):
        await engine.reconcile(silence("web-01", ttl=timedelta(minutes=5)))
        clock.advance(minutes=10)

        report = await engine.reconcile(silence("web-01", ttl=timedelta(minutes=5)))
        assert [r.target for r in report.succeeded] == [WEB]

    @pytest.mark.asyncio
    async def test_indefinite_silence(self, engine, registry):
        report = await engine.reconcile(silence("web-01/check_disk", ttl=None))
        assert report.ok
        assert registry.stored["client:web-01:check_disk"].is_indefinite

    @pytest.mark.asyncio
    async def test_fleet_wide_requires_explicit_token(self, engine, registry):
        report = await engine.reconcile(silence("@all/@all"))
        assert [r.target for r in report.succeeded] == [Target(ALL, ALL)]

        with pytest.raises(ValidationError):
            await engine.reconcile(silence("@all"))

    @pytest.mark.asyncio
    async def test_conflict_reported_per_target(self, inventory, clock):
        existing = build_record(WEB, timedelta(hours=4), "deploy", clock())
        registry = InMemoryRegistry(inventory=inventory, records=[existing], clock=clock)
        engine = ReconciliationEngine(registry, clock=clock)

        report = await engine.reconcile(silence("web-01", "db-01", reason="maintenance"))

        (failure,) = report.failed
        assert failure.target == WEB
        assert failure.error_kind is ErrorKind.CONFLICT
        assert [r.target for r in report.succeeded] == [DB1]
        assert report.exit_code == ExitCode.PARTIAL_FAILURE
        assert registry.stored[WEB.id].reason == "deploy"

    @pytest.mark.asyncio
    async def test_conflict_overwrite(self, inventory, clock):
        existing = build_record(WEB, timedelta(hours=4), "deploy", clock())
        registry = InMemoryRegistry(inventory=inventory, records=[existing], clock=clock)
        engine = ReconciliationEngine(registry, clock=clock)

        report = await engine.reconcile(
            silence("web-01", reason="maintenance", conflict_policy=ConflictPolicy.OVERWRITE)
        )

        assert [r.detail for r in report.succeeded] == ["replaced"]
        assert registry.stored[WEB.id].reason == "maintenance"

    @pytest.mark.asyncio
    async def test_conflict_skip(self, inventory, clock):
        existing = build_record(WEB, timedelta(hours=4), "deploy", clock())
        registry = InMemoryRegistry(inventory=inventory, records=[existing], clock=clock)
        engine = ReconciliationEngine(registry, clock=clock)

        report = await engine.reconcile(
            silence("web-01", reason="maintenance", conflict_policy=ConflictPolicy.SKIP)
        )

        assert report.ok
        assert [r.detail for r in report.skipped] == ["silenced with different settings"]
        assert not [c for c in registry.calls if c[0] == "create"]


class TestClear:
    @pytest.mark.asyncio
    async def test_clear_after_silence(self, engine, registry):
        await engine.reconcile(silence("web-01", "db-*"))
        report = await engine.reconcile(clear("web-01", "db-*"))

        assert [r.target for r in report.succeeded] == sorted([WEB, DB1, DB2])
        assert all(r.action is Action.DELETE for r in report.succeeded)
        assert registry.stored == {}

    @pytest.mark.asyncio
    async def test_clear_never_silenced_is_skip(self, engine, registry):
        report = await engine.reconcile(clear("web-01"))

        (result,) = report.skipped
        assert result.detail == "not silenced"
        assert report.ok
        assert not [c for c in registry.calls if c[0] == "delete"]

    @pytest.mark.asyncio
    async def test_clear_expired_is_skip(self, engine, registry, clock):
        await engine.reconcile(silence("web-01", ttl=timedelta(minutes=1)))
        clock.advance(minutes=2)

        report = await engine.reconcile(clear("web-01"))
        assert [r.detail for r in report.skipped] == ["not silenced"]


class TestList:
    @pytest.mark.asyncio
    async def test_list_excludes_expired(self, engine, clock):
        await engine.reconcile(silence("web-01", ttl=timedelta(minutes=1)))
        await engine.reconcile(silence("db-01", ttl=None))
        clock.advance(minutes=5)

        report = await engine.reconcile(SilenceRequest(Intent.LIST))
        assert [r.target for r in report.listing] == [DB1]
        assert report.results == {}
        assert report.ok

    @pytest.mark.asyncio
    async def test_list_filtered_by_selector(self, engine):
        await engine.reconcile(silence("web-01", "db-01"))
        report = await engine.reconcile(SilenceRequest(Intent.LIST, selectors("db-*")))
        assert [r.target for r in report.listing] == [DB1]


class TestFailures:
    @pytest.mark.asyncio
    async def test_one_unavailable_target_does_not_abort_others(self, inventory, clock):
        registry = InMemoryRegistry(
            inventory=inventory,
            fail_on={DB1.id: RegistryUnavailable("registry timed out")},
            clock=clock,
        )
        engine = ReconciliationEngine(registry, clock=clock)

        report = await engine.reconcile(silence("web-01", "db-*"))

        (failure,) = report.failed
        assert failure.target == DB1
        assert failure.error_kind is ErrorKind.UNAVAILABLE
        assert [r.target for r in report.succeeded] == sorted([WEB, DB2])
        assert report.exit_code == ExitCode.PARTIAL_FAILURE
        assert DB1.id not in registry.stored

    @pytest.mark.asyncio
    async def test_unexpected_error_is_recorded_against_its_target(self, inventory, clock):
        registry = CrashingRegistry(DB1.id, inventory=inventory, clock=clock)
        engine = ReconciliationEngine(registry, clock=clock)

        report = await engine.reconcile(silence("web-01", "db-*"))

        (failure,) = report.failed
        assert failure.target == DB1
        assert failure.error_kind is ErrorKind.REJECTED
        assert "RuntimeError" in failure.detail
        assert [r.target for r in report.succeeded] == sorted([WEB, DB2])
        assert report.exit_code == ExitCode.PARTIAL_FAILURE

    @pytest.mark.asyncio
    async def test_validation_precedes_registry_calls(self, engine, registry):
        with pytest.raises(ValidationError):
            await engine.reconcile(silence("web-01", ttl=timedelta(0)))
        with pytest.raises(ValidationError):
            await engine.reconcile(SilenceRequest(Intent.CLEAR))
        assert registry.calls == []

    @pytest.mark.asyncio
    async def test_strict_unmatched_selector_aborts(self, engine, registry):
        with pytest.raises(ResolutionError):
            await engine.reconcile(silence("web-01", "cache-*"))
        assert not [c for c in registry.calls if c[0] == "create"]

    @pytest.mark.asyncio
    async def test_lenient_unmatched_selector_continues(self, engine):
        report = await engine.reconcile(silence("web-01", "cache-*", strict=False))
        assert [r.target for r in report.succeeded] == [WEB]

    @pytest.mark.asyncio
    async def test_lenient_with_nothing_matched(self, engine, registry):
        report = await engine.reconcile(silence("cache-*", strict=False))
        assert report.results == {}
        assert report.ok
        assert registry.calls == []


class TestStopping:
    @pytest.mark.asyncio
    async def test_preset_stop_cancels_everything(self, engine, registry):
        stop = asyncio.Event()
        stop.set()

        report = await engine.reconcile(silence("web-01", "db-*"), stop=stop)

        assert len(report.failed) == 3
        assert {r.error_kind for r in report.failed} == {ErrorKind.CANCELLED}
        assert registry.stored == {}

    @pytest.mark.asyncio
    async def test_timeout_stops_new_operations(self, inventory, clock):
        registry = SlowRegistry(inventory=inventory, clock=clock)
        engine = ReconciliationEngine(registry, concurrency=1, clock=clock)

        report = await engine.reconcile(silence("web-01", "db-*"), timeout=0.01)

        assert len(report.succeeded) == 1
        assert len(report.failed) == 2
        assert all(r.error_kind is ErrorKind.CANCELLED for r in report.failed)
        assert len(registry.stored) == 1

    @pytest.mark.asyncio
    async def test_timeout_counts_from_invocation_start(self, inventory, clock):
        registry = SlowListRegistry(inventory=inventory, clock=clock)
        engine = ReconciliationEngine(registry, clock=clock)

        report = await engine.reconcile(silence("web-01", "db-*"), timeout=0.01)

        assert report.succeeded == []
        assert len(report.failed) == 3
        assert all(r.error_kind is ErrorKind.CANCELLED for r in report.failed)
        assert registry.stored == {}


class TestDryRun:
    @pytest.mark.asyncio
    async def test_dry_run_writes_nothing(self, engine, registry):
        report = await engine.reconcile(silence("web-01", "db-*", dry_run=True))

        assert report.dry_run
        assert report.results == {}
        assert [op.action for op in report.plan.operations] == [Action.CREATE] * 3
        assert registry.stored == {}
        assert {c[0] for c in registry.calls} == {"list"}


def test_concurrency_must_be_positive(registry):
    with pytest.raises(ValueError):
        ReconciliationEngine(registry, concurrency=0)


@pytest.mark.asyncio
async def test_results_are_deterministic(inventory, clock):
    reports = []
    for _ in range(2):
        registry = InMemoryRegistry(inventory=inventory, clock=clock)
        engine = ReconciliationEngine(registry, concurrency=3, clock=clock)
        reports.append(await engine.reconcile(silence("db-*/check_*", "web-01")))
    assert [r.target for r in reports[0].succeeded] == [r.target for r in reports[1].succeeded]
    assert len(reports[0].succeeded) == 7
    disk = Target.for_client("db-01", "check_disk")
    assert reports[0].results[disk].status is Status.SUCCEEDED


@pytest.mark.asyncio
async def test_maintenance_window_round_trip(engine, registry, clock):
    request = silence("web-01", "db-*", ttl=timedelta(minutes=10), reason="maintenance")

    report = await engine.reconcile(request)
    assert [op.action for op in report.plan.operations] == [Action.CREATE] * 3
    assert len(report.succeeded) == 3

    listing = await engine.reconcile(SilenceRequest(Intent.LIST))
    assert [r.target for r in listing.listing] == sorted([WEB, DB1, DB2])
    assert {r.reason for r in listing.listing} == {"maintenance"}

    clock.advance(minutes=10)
    expired = await engine.reconcile(SilenceRequest(Intent.LIST))
    assert expired.listing == ()
