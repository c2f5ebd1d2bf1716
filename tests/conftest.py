"""Root test configuration."""

import logging
import os
from datetime import datetime, timedelta, timezone

import pytest
import structlog
from shush.silences.models import InventorySnapshot

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


def pytest_configure(config):
    """Configure structlog for tests to suppress debug/info output."""
    logging.basicConfig(level=logging.WARNING, force=True)
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.processors.add_log_level,
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


class FakeClock:
    """Callable clock that tests can move forward."""

    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def inventory():
    return InventorySnapshot.of(
        ["web-01", "db-01", "db-02"],
        subscriptions=["webservers", "databases"],
        checks=["check_disk", "check_http", "check_mysql"],
        instances={"i-0abc": "web-01", "i-0def": "db-01"},
    )


@pytest.fixture
def isolated_env(tmp_path, monkeypatch):
    """Run with no config files and no SHUSH_* variables in scope."""
    from pathlib import Path

    from shush.config import loader

    home = tmp_path / "home"
    home.mkdir()
    workdir = tmp_path / "work"
    workdir.mkdir()
    monkeypatch.chdir(workdir)
    monkeypatch.setattr(Path, "home", classmethod(lambda cls: home))
    monkeypatch.setattr(loader, "SYSTEM_CONFIG", tmp_path / "etc" / "config.yaml")
    for name in list(os.environ):
        if name.startswith("SHUSH_"):
            monkeypatch.delenv(name)
    return workdir
