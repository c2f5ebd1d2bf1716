"""Silence registry backends.

Importing this package registers the built-in ``sensu`` and ``memory``
backends with the backend registry.
"""

from shush.registry.backends import create_backend, list_backends, register_backend
from shush.registry.base import CreateOutcome, DeleteOutcome, SilenceRegistry
from shush.registry.memory import InMemoryRegistry
from shush.registry.sensu import SensuRegistry

__all__ = [
    "CreateOutcome",
    "DeleteOutcome",
    "InMemoryRegistry",
    "SensuRegistry",
    "SilenceRegistry",
    "create_backend",
    "list_backends",
    "register_backend",
]
