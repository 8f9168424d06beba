"""CLI exit codes and the mapping from dseectl errors onto them."""
from __future__ import annotations

from enum import IntEnum

from .config import ConfigError
from .errors import (
    ExecutionError,
    RegistryKindError,
    SecretMaterializationError,
    TransientToolMissing,
    ValidationError,
)
from .locking import LockTimeoutError


class ExitCode(IntEnum):
    """Well-known exit codes enforced across the CLI."""

    OK = 0
    VALIDATION = 2
    ENVIRONMENT = 3
    PROVIDER = 4


# Order matters: TransientToolMissing is also an ExecutionError.
_ERROR_CODES: tuple[tuple[type[BaseException], ExitCode], ...] = (
    (ValidationError, ExitCode.VALIDATION),
    (RegistryKindError, ExitCode.VALIDATION),
    (ConfigError, ExitCode.VALIDATION),
    (TransientToolMissing, ExitCode.ENVIRONMENT),
    (SecretMaterializationError, ExitCode.ENVIRONMENT),
    (LockTimeoutError, ExitCode.ENVIRONMENT),
    (ExecutionError, ExitCode.PROVIDER),
)


def exit_code_for(exc: BaseException) -> ExitCode:
    """Return the exit code an operator should see for *exc*."""
    for error_type, code in _ERROR_CODES:
        if isinstance(exc, error_type):
            return code
    return ExitCode.PROVIDER


__all__ = ["ExitCode", "exit_code_for"]
