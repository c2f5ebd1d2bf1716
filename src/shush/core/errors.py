"""
Unified error handling for shush.

Every failure shush can report derives from ShushError and carries an
exit code, so the CLI can map it without special cases.

Exit Codes:
- 0: Success
- 1: Partial failure (some targets failed, others took effect)
- 10: Configuration error
- 11: Registry error (silence registry failure before any write)
- 12: Validation error
- 13: Resolution error (selector matched nothing in strict mode)
- 127: Unknown/internal error
- 130: Interrupted
"""

from __future__ import annotations

import functools
import sys
import traceback
from enum import Enum, IntEnum
from typing import Any, Callable, TypeVar

import structlog

logger = structlog.get_logger()


class ExitCode(IntEnum):
    """Standardized exit codes for the CLI."""

    SUCCESS = 0
    PARTIAL_FAILURE = 1
    CONFIG_ERROR = 10
    REGISTRY_ERROR = 11
    VALIDATION_ERROR = 12
    RESOLUTION_ERROR = 13
    UNKNOWN_ERROR = 127
    INTERRUPTED = 130


class ErrorKind(str, Enum):
    """Classification of a per-target failure."""

    UNAVAILABLE = "unavailable"
    CONFLICT = "conflict"
    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class ShushError(Exception):
    """Base exception for shush errors with exit code support."""

    exit_code: ExitCode = ExitCode.UNKNOWN_ERROR
    show_traceback: bool = False

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(ShushError):
    """Raised for configuration-related errors."""

    exit_code = ExitCode.CONFIG_ERROR


class ValidationError(ShushError):
    """Raised for invalid input, before any registry call is made."""

    exit_code = ExitCode.VALIDATION_ERROR


class ResolutionError(ShushError):
    """Raised when a selector matches nothing and strict mode is on."""

    exit_code = ExitCode.RESOLUTION_ERROR


class RegistryError(ShushError):
    """Raised when the silence registry rejects or fails a request."""

    exit_code = ExitCode.REGISTRY_ERROR
    kind: ErrorKind = ErrorKind.REJECTED
    retryable: bool = False


class RegistryUnavailable(RegistryError):
    """Transport failure, timeout or 5xx-class response. Retried."""

    kind = ErrorKind.UNAVAILABLE
    retryable = True


class Conflict(RegistryError):
    """A different unexpired silence already exists for the target."""

    kind = ErrorKind.CONFLICT


class Unauthorized(RegistryError):
    """The registry refused our credentials. Never retried."""

    kind = ErrorKind.UNAUTHORIZED


class NotFound(RegistryError):
    """The addressed registry resource does not exist. Never retried."""

    kind = ErrorKind.NOT_FOUND


# Type variable for decorated functions
F = TypeVar("F", bound=Callable[..., int])


def main_with_error_handling(
    *,
    show_traceback: bool = False,
    log_errors: bool = True,
) -> Callable[[F], F]:
    """
    Decorator for CLI entry points that converts exceptions to exit codes.

    Args:
        show_traceback: If True, show full traceback for unexpected errors
        log_errors: If True, log errors to structlog

    Exit codes:
        - ShushError subclasses: Uses the error's exit_code
        - KeyboardInterrupt: Returns 130
        - Other exceptions: Returns 127
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> int:
            try:
                return func(*args, **kwargs)
            except ShushError as e:
                if log_errors:
                    logger.error(
                        "command_error",
                        error_type=type(e).__name__,
                        message=e.message,
                        exit_code=int(e.exit_code),
                        **e.details,
                    )
                report_error(e)
                if e.show_traceback or show_traceback:
                    traceback.print_exc(file=sys.stderr)
                return e.exit_code
            except KeyboardInterrupt:
                if log_errors:
                    logger.info("command_interrupted")
                return ExitCode.INTERRUPTED
            except Exception as e:
                if log_errors:
                    logger.error(
                        "unexpected_error",
                        error_type=type(e).__name__,
                        message=str(e),
                        exit_code=int(ExitCode.UNKNOWN_ERROR),
                    )
                if show_traceback:
                    traceback.print_exc(file=sys.stderr)
                return ExitCode.UNKNOWN_ERROR

        return wrapper  # type: ignore[return-value]

    return decorator


def format_error_message(error: ShushError) -> str:
    """Format an error message for display to users."""
    msg = error.message
    if error.details:
        detail_str = ", ".join(f"{k}={v}" for k, v in error.details.items())
        msg = f"{msg} ({detail_str})"
    return msg


def report_error(error: ShushError) -> None:
    """Print an error for the user on stderr."""
    from shush.cli.ux import error_console

    error_console.print(f"✗ {format_error_message(error)}", style="error", markup=False, highlight=False)
