"""Runtime error taxonomy.

Only `BundleLoadError` is fatal to a dispatch call. Every other error is caught at
the invocation boundary and reported in the aggregate outcome under its `kind`.
"""

from __future__ import annotations


class FlowwRuntimeError(Exception):
    """Base class for runtime errors."""

    kind = "runtime"


class BundleLoadError(FlowwRuntimeError):
    """The bundle entrypoint could not be resolved or failed during registration."""

    kind = "load"


class SecretValidationError(FlowwRuntimeError):
    """A resolved secret is missing or does not match its declared schema."""

    kind = "secret_validation"

    def __init__(self, name: str, message: str) -> None:
        super().__init__(f"Secret '{name}': {message}")
        self.name = name


class HandlerError(FlowwRuntimeError):
    """A matched handler raised."""

    kind = "handler"

    @classmethod
    def from_exception(cls, exc: BaseException) -> HandlerError:
        message = str(exc) or type(exc).__name__
        if not isinstance(exc, Exception) and str(exc):
            # SystemExit(3) alone would read as "3".
            message = f"{type(exc).__name__}: {exc}"
        error = cls(message)
        error.__cause__ = exc
        return error


class DispatchTimeoutError(FlowwRuntimeError):
    """An invocation outlived the dispatch deadline."""

    kind = "timeout"
