"""Core modules for shush - centralized error definitions."""

from shush.core.errors import (
    Conflict,
    ConfigurationError,
    ErrorKind,
    ExitCode,
    NotFound,
    RegistryError,
    RegistryUnavailable,
    ResolutionError,
    ShushError,
    Unauthorized,
    ValidationError,
    format_error_message,
    main_with_error_handling,
    report_error,
)

__all__ = [
    "ExitCode",
    "ErrorKind",
    "ShushError",
    "ConfigurationError",
    "ValidationError",
    "ResolutionError",
    "RegistryError",
    "RegistryUnavailable",
    "Conflict",
    "Unauthorized",
    "NotFound",
    "main_with_error_handling",
    "format_error_message",
    "report_error",
]
