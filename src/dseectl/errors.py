"""Exception hierarchy shared by the reconciliation engine."""
from __future__ import annotations

from collections.abc import Sequence


class DseectlError(RuntimeError):
    """Base class for every error raised by dseectl."""


class ValidationError(DseectlError):
    """Raised by pre-flight checks before any external command runs."""


class RegistryKindError(DseectlError):
    """Raised when a registry listing is requested for an unsupported kind."""


class SecretMaterializationError(DseectlError):
    """Raised when a credential cannot be written to or protected on disk."""


class ExecutionError(DseectlError):
    """Raised when a vendor command exits outside its acceptable codes."""

    def __init__(
        self,
        message: str,
        *,
        command: Sequence[str] = (),
        exit_status: int | None = None,
        stdout: str = "",
        stderr: str = "",
    ) -> None:
        """Capture the raw process context alongside *message*."""
        super().__init__(message)
        self.command = tuple(command)
        self.exit_status = exit_status
        self.stdout = stdout
        self.stderr = stderr

    @property
    def detail(self) -> str:
        """Return the most useful output for operators (stderr first)."""
        return self.stderr.strip() or self.stdout.strip() or "no output"


class TransientToolMissing(ExecutionError):
    """The vendor executable was not found; retried by the invoker."""


class CommandTimeoutError(ExecutionError):
    """The vendor command exceeded the configured timeout; never retried."""


__all__ = [
    "CommandTimeoutError",
    "DseectlError",
    "ExecutionError",
    "RegistryKindError",
    "SecretMaterializationError",
    "TransientToolMissing",
    "ValidationError",
]
