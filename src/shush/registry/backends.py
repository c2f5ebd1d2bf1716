"""
Registry backend selection.

Each backend module registers a factory that builds its registry from the
loaded Settings; the CLI picks one by ``Settings.backend``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

import structlog

from shush.config.settings import Settings
from shush.core.errors import ConfigurationError
from shush.registry.base import SilenceRegistry

logger = structlog.get_logger()

BackendFactory = Callable[[Settings], SilenceRegistry]


@dataclass(frozen=True)
class Backend:
    """A named way of building a silence registry from settings."""

    name: str
    factory: BackendFactory
    description: str


_backends: dict[str, Backend] = {}


def register_backend(name: str, factory: BackendFactory, *, description: str) -> None:
    if not name:
        raise ValueError("Backend name is required")
    _backends[name] = Backend(name=name, factory=factory, description=description)


def list_backends() -> list[Backend]:
    return [_backends[name] for name in sorted(_backends)]


def create_backend(settings: Settings) -> SilenceRegistry:
    """Build the registry named by ``settings.backend``."""
    backend = _backends.get(settings.backend)
    if backend is None:
        raise ConfigurationError(
            f"Unknown registry backend {settings.backend!r}",
            details={"known": ", ".join(sorted(_backends))},
        )
    logger.debug("backend_selected", backend=backend.name)
    return backend.factory(settings)
