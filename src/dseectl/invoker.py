"""Serialised execution of vendor commands.

Every command runs through the process-wide execution gate, is classified by
its exit status against a per-subcommand allow-list and, when the executable
could not be found yet, retried with exponential backoff. Freshly installed
DSEE bits are frequently not on ``PATH`` for the first few seconds after the
installer returns, which is the only condition worth retrying.
"""
from __future__ import annotations

import logging
import os
import subprocess
import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path

from tenacity import RetryCallState, Retrying, retry_if_exception_type, stop_after_attempt

from .commands import CommandInvocation
from .errors import CommandTimeoutError, ExecutionError, TransientToolMissing
from .locking import ExecutionLock, shared_lock

SYSTEM_DIRS: tuple[Path, ...] = (
    Path("/bin"),
    Path("/usr/bin"),
    Path("/sbin"),
    Path("/usr/sbin"),
)
DEFAULT_ATTEMPTS = 4
DEFAULT_BACKOFF_BASE = 4

_LOG = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExecutionResult:
    """Captured output of one successful invocation."""

    argv: tuple[str, ...]
    exit_status: int
    stdout: str
    stderr: str
    elapsed_ms: int
    attempts: int = 1


class ToolLocator:
    """Resolve vendor executables using a fixed search order."""

    def __init__(
        self,
        install_dir: Path = Path("/opt"),
        product_dir: str = "dsee7",
        *,
        env: Mapping[str, str] | None = None,
        system_dirs: Iterable[Path] = SYSTEM_DIRS,
    ) -> None:
        """Search *system_dirs*, the product bin directories, then ``PATH``."""
        self.install_dir = Path(install_dir)
        self.product_dir = product_dir
        self._env = env
        self._system_dirs = tuple(Path(entry) for entry in system_dirs)

    def search_path(self) -> list[Path]:
        """Return the directories searched, in order."""
        product = self.install_dir / self.product_dir
        dirs = [*self._system_dirs, product / "bin", product / "dsrk" / "bin"]
        env = os.environ if self._env is None else self._env
        dirs.extend(Path(entry) for entry in env.get("PATH", "").split(os.pathsep) if entry)
        return dirs

    def locate(self, tool: str) -> Path | None:
        """Return the first executable called *tool*, or ``None``."""
        for directory in self.search_path():
            candidate = directory / tool
            if candidate.is_file() and os.access(candidate, os.X_OK):
                return candidate
        return None


class ProcessInvoker:
    """Run :class:`CommandInvocation` objects through the execution gate."""

    def __init__(
        self,
        *,
        locator: ToolLocator | None = None,
        lock: ExecutionLock | None = None,
        attempts: int = DEFAULT_ATTEMPTS,
        backoff_base: float = DEFAULT_BACKOFF_BASE,
        timeout: float | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Configure retry policy, gate and optional per-command timeout."""
        if attempts < 1:
            raise ValueError("attempts must be at least 1.")
        self.locator = locator or ToolLocator()
        self.lock = lock if lock is not None else shared_lock()
        self.attempts = attempts
        self.backoff_base = backoff_base
        self.timeout = timeout
        self._sleep = sleep

    def execute(
        self,
        invocation: CommandInvocation,
        acceptable: Iterable[int] = (0,),
        insure: Callable[[], None] | None = None,
    ) -> ExecutionResult:
        """Run *invocation*, retrying only when the executable is missing.

        ``insure`` runs exactly once after the final attempt, whether the call
        succeeded or raised.
        """
        allowed = frozenset(acceptable)
        retrying = Retrying(
            retry=retry_if_exception_type(TransientToolMissing),
            stop=stop_after_attempt(self.attempts),
            wait=lambda rs: self.backoff_base**rs.attempt_number,
            sleep=self._sleep,
            before_sleep=lambda rs: self._log_retry(invocation, rs),
            reraise=True,
        )
        try:
            for attempt in retrying:
                with attempt:
                    with self.lock.hold():
                        return self._attempt(
                            invocation, allowed, attempt.retry_state.attempt_number
                        )
            raise AssertionError("unreachable")  # pragma: no cover
        finally:
            if insure is not None:
                insure()

    def _log_retry(self, invocation: CommandInvocation, retry_state: RetryCallState) -> None:
        delay = retry_state.next_action.sleep if retry_state.next_action else 0
        _LOG.warning(
            "%s not found (attempt %d/%d); retrying in %ss.",
            invocation.tool,
            retry_state.attempt_number,
            self.attempts,
            delay,
        )

    def _attempt(
        self,
        invocation: CommandInvocation,
        allowed: frozenset[int],
        attempt: int,
    ) -> ExecutionResult:
        executable = self.locator.locate(invocation.tool) or invocation.tool
        argv = invocation.argv(executable)
        _LOG.debug("Running %s", invocation)
        started = time.perf_counter()
        try:
            completed = self._spawn(argv)
        except FileNotFoundError as exc:
            raise TransientToolMissing(
                f"{invocation.tool} executable not found.",
                command=argv,
            ) from exc
        except PermissionError as exc:
            raise ExecutionError(
                f"Permission denied running {invocation.tool}: {exc}",
                command=argv,
            ) from exc
        except subprocess.TimeoutExpired as exc:
            raise CommandTimeoutError(
                f"{invocation.tool} {invocation.subcommand} timed out after {self.timeout}s.",
                command=argv,
            ) from exc
        elapsed_ms = int((time.perf_counter() - started) * 1000)
        stdout = completed.stdout or ""
        stderr = completed.stderr or ""

        if completed.returncode not in allowed:
            raise ExecutionError(
                f"{invocation.tool} {invocation.subcommand} exited with status "
                f"{completed.returncode}.",
                command=argv,
                exit_status=completed.returncode,
                stdout=stdout,
                stderr=stderr,
            )

        if stdout.strip():
            _LOG.info("%s %s: %s", invocation.tool, invocation.subcommand, stdout.strip())
        return ExecutionResult(
            argv=tuple(argv),
            exit_status=completed.returncode,
            stdout=stdout,
            stderr=stderr,
            elapsed_ms=elapsed_ms,
            attempts=attempt,
        )

    def _spawn(self, argv: list[str]) -> subprocess.CompletedProcess[str]:
        """Run *argv*; isolated so tests can substitute a fake vendor tool."""
        return subprocess.run(  # noqa: S603
            argv,
            capture_output=True,
            text=True,
            check=False,
            timeout=self.timeout,
        )


__all__ = [
    "DEFAULT_ATTEMPTS",
    "DEFAULT_BACKOFF_BASE",
    "ExecutionResult",
    "ProcessInvoker",
    "SYSTEM_DIRS",
    "ToolLocator",
]
