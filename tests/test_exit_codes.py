"""Tests for the error-to-exit-code mapping."""
from __future__ import annotations

import pytest

from dseectl.config import ConfigError
from dseectl.errors import (
    CommandTimeoutError,
    DseectlError,
    ExecutionError,
    RegistryKindError,
    SecretMaterializationError,
    TransientToolMissing,
    ValidationError,
)
from dseectl.exit_codes import ExitCode, exit_code_for
from dseectl.locking import LockTimeoutError


@pytest.mark.parametrize(
    ("exc", "expected"),
    [
        (ValidationError("bad port"), ExitCode.VALIDATION),
        (RegistryKindError("widgets"), ExitCode.VALIDATION),
        (ConfigError("unknown key"), ExitCode.VALIDATION),
        (TransientToolMissing("dsadm executable not found."), ExitCode.ENVIRONMENT),
        (SecretMaterializationError("read-only"), ExitCode.ENVIRONMENT),
        (LockTimeoutError("busy"), ExitCode.ENVIRONMENT),
        (ExecutionError("dsadm create exited with status 1.", exit_status=1), ExitCode.PROVIDER),
        (CommandTimeoutError("dsconf import timed out."), ExitCode.PROVIDER),
        (DseectlError("other"), ExitCode.PROVIDER),
    ],
)
def test_exit_code_for(exc: BaseException, expected: ExitCode) -> None:
    """Each error family maps onto its documented exit code."""
    assert exit_code_for(exc) is expected
