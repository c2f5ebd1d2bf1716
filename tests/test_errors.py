"""Tests for the shush error hierarchy and CLI error handling."""

import pytest
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
)


class TestExitCodes:
    @pytest.mark.parametrize(
        "error,code",
        [
            (ConfigurationError, ExitCode.CONFIG_ERROR),
            (ValidationError, ExitCode.VALIDATION_ERROR),
            (ResolutionError, ExitCode.RESOLUTION_ERROR),
            (RegistryError, ExitCode.REGISTRY_ERROR),
            (RegistryUnavailable, ExitCode.REGISTRY_ERROR),
            (ShushError, ExitCode.UNKNOWN_ERROR),
        ],
    )
    def test_exit_code(self, error, code):
        assert error("boom").exit_code == code


class TestRegistryErrorKinds:
    @pytest.mark.parametrize(
        "error,kind,retryable",
        [
            (RegistryUnavailable, ErrorKind.UNAVAILABLE, True),
            (Conflict, ErrorKind.CONFLICT, False),
            (Unauthorized, ErrorKind.UNAUTHORIZED, False),
            (NotFound, ErrorKind.NOT_FOUND, False),
            (RegistryError, ErrorKind.REJECTED, False),
        ],
    )
    def test_classification(self, error, kind, retryable):
        exc = error("registry said no")
        assert exc.kind is kind
        assert exc.retryable is retryable
        assert isinstance(exc, RegistryError)


def test_format_error_message():
    error = ConfigurationError("Config file not found", details={"path": "/tmp/x.yaml"})
    assert format_error_message(error) == "Config file not found (path=/tmp/x.yaml)"
    assert format_error_message(ValidationError("bad")) == "bad"


class TestMainWithErrorHandling:
    def test_success_passthrough(self):
        @main_with_error_handling()
        def command():
            return 0

        assert command() == 0

    def test_shush_error_maps_to_exit_code(self, capsys):
        @main_with_error_handling()
        def command():
            raise ResolutionError("Selector 'db-*' matched nothing")

        assert command() == ExitCode.RESOLUTION_ERROR
        assert "matched nothing" in capsys.readouterr().err

    def test_keyboard_interrupt(self):
        @main_with_error_handling()
        def command():
            raise KeyboardInterrupt

        assert command() == ExitCode.INTERRUPTED

    def test_unexpected_error(self):
        @main_with_error_handling(log_errors=False)
        def command():
            raise RuntimeError("surprise")

        assert command() == ExitCode.UNKNOWN_ERROR
