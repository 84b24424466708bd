"""Exceptions raised by pyrevive."""

from enum import Enum


class HelperFailure(Enum):
    """Why a helper invocation failed."""

    NONZERO_EXIT = "nonzero-exit"
    TIMEOUT = "timeout"
    SPAWN_ERROR = "spawn-error"


class PyreviveError(Exception):
    """Base class for pyrevive errors."""


class ConfigError(PyreviveError, ValueError):
    """Invalid configuration value."""


class ValidationError(PyreviveError, ValueError):
    """A request was rejected before any side effect."""


class AuthenticationError(PyreviveError):
    """Missing or wrong shared-secret token."""


class HelperError(PyreviveError):
    """
    The privileged helper did not succeed.

    The captured streams are kept so callers can show them to the operator.
    A timeout is reported here too; the helper may still have acted.
    """

    def __init__(
        self,
        reason: HelperFailure,
        command: tuple[str, ...],
        stdout: str = "",
        stderr: str = "",
        exit_status: int | None = None,
        message: str | None = None,
    ) -> None:
        self.reason = reason
        self.command = command
        self.stdout = stdout
        self.stderr = stderr
        self.exit_status = exit_status
        if message is None:
            message = f"helper {' '.join(command)} failed: {reason.value}"
            if exit_status is not None:
                message += f" (exit {exit_status})"
        super().__init__(message)

    @property
    def operation(self) -> str:
        """The helper command that failed: snapshot, restore, or helper."""
        for part in self.command:
            if part in ("snapshot", "restore"):
                return part
        return "helper"

    @property
    def detail(self) -> str:
        """Best diagnostic text available for the failure."""
        return self.stderr.strip() or str(self)
