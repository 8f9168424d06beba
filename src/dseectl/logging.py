"""Logging helpers for dseectl.

Two channels are maintained:

* Module loggers (``logging.getLogger("dseectl.<module>")``) carry the
  operational log, including the stdout of every successful vendor command.
  :func:`configure_logging` attaches a file handler and a Rich console
  handler to the ``dseectl`` root logger.
* :class:`StructuredLogger` appends one JSON document per CLI operation to
  ``operations.jsonl`` so runs can be audited after the fact.

Neither channel may fail a command: unwritable log locations disable the
structured log instead of raising.
"""
from __future__ import annotations

import getpass
import json
import logging
import os
import time
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path

from rich.logging import RichHandler

ROOT_LOGGER = "dseectl"
OPERATIONS_LOG = "operations.jsonl"
TEXT_LOG = "dseectl.log"

_LOG = logging.getLogger(__name__)


def configure_logging(logs_dir: Path | None, *, verbose: bool = False) -> logging.Logger:
    """Attach handlers to the ``dseectl`` logger and return it."""
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    for handler in list(logger.handlers):
        if getattr(handler, "_dseectl_handler", False):
            logger.removeHandler(handler)
            handler.close()

    console = RichHandler(level=logging.DEBUG if verbose else logging.WARNING, show_path=False)
    console._dseectl_handler = True  # type: ignore[attr-defined]
    logger.addHandler(console)

    if logs_dir is not None:
        try:
            logs_dir.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(logs_dir / TEXT_LOG, encoding="utf-8")
        except OSError as exc:
            logger.warning("File logging disabled: %s", exc)
        else:
            file_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
            file_handler.setFormatter(
                logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
            )
            file_handler._dseectl_handler = True  # type: ignore[attr-defined]
            logger.addHandler(file_handler)
    return logger


def _sanitize(value: object) -> object:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, Mapping):
        return {str(key): _sanitize(item) for key, item in value.items()}
    if isinstance(value, Sequence) and not isinstance(value, (bytes, bytearray)):
        return [_sanitize(item) for item in value]
    return str(value)


class OperationScope:
    """Collects steps and the final result of one CLI operation."""

    def __init__(
        self,
        logger: StructuredLogger,
        command: str,
        args: Mapping[str, object] | None,
        target: Mapping[str, object] | None,
    ) -> None:
        """Initialise an empty scope for *command*."""
        self._logger = logger
        self._started = time.perf_counter()
        self.command = command
        self.args = dict(args or {})
        self.target = dict(target or {})
        self.steps: list[dict[str, object]] = []
        self.lock_wait_ms: int | None = None
        self.result: dict[str, object] | None = None

    def add_step(self, name: str, *, status: str, detail: str | None = None) -> None:
        """Record an intermediate step."""
        step: dict[str, object] = {"name": name, "status": status}
        if detail:
            step["detail"] = detail
        self.steps.append(step)

    def set_lock_wait_ms(self, wait_ms: int) -> None:
        """Record how long the execution gate took to acquire."""
        self.lock_wait_ms = wait_ms

    def success(
        self,
        message: str,
        *,
        changed: int = 0,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation successful."""
        self._set_result("success", message, changed=changed, context=context)

    def warning(
        self,
        message: str,
        *,
        warnings: Sequence[str] = (),
        errors: Sequence[str] = (),
        changed: int = 0,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation complete with warnings."""
        self._set_result(
            "warning",
            message,
            changed=changed,
            warnings=list(warnings),
            errors=list(errors),
            context=context,
        )

    def error(
        self,
        message: str,
        *,
        errors: Sequence[str] | None = None,
        rc: int | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation failed."""
        self._set_result(
            "error",
            message,
            errors=list(errors) if errors else [message],
            rc=rc,
            context=context,
        )

    def _set_result(
        self,
        status: str,
        message: str,
        *,
        changed: int = 0,
        warnings: list[str] | None = None,
        errors: list[str] | None = None,
        rc: int | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        result: dict[str, object] = {
            "status": status,
            "message": message,
            "changed": changed,
        }
        if warnings:
            result["warnings"] = warnings
        if errors:
            result["errors"] = errors
        if rc is not None:
            result["rc"] = rc
        if context:
            result["context"] = _sanitize(dict(context))
        self.result = result

    def to_record(self) -> dict[str, object]:
        """Return the JSON document written for this operation."""
        record: dict[str, object] = {
            "ts": datetime.now(UTC).isoformat(),
            "pid": os.getpid(),
            "actor": _actor(),
            "command": self.command,
            "args": _sanitize(self.args),
            "target": _sanitize(self.target),
            "steps": self.steps,
            "duration_ms": int((time.perf_counter() - self._started) * 1000),
            "result": self.result,
        }
        if self.lock_wait_ms is not None:
            record["lock_wait_ms"] = self.lock_wait_ms
        return record


class StructuredLogger:
    """Append-only JSONL operation log."""

    def __init__(self, logs_dir: Path) -> None:
        """Prepare *logs_dir*; disable the logger if it cannot be created."""
        self.logs_dir = logs_dir
        self._operations_log_path = logs_dir / OPERATIONS_LOG
        self._enabled = True
        try:
            logs_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            _LOG.warning("Structured logging disabled (%s): %s", logs_dir, exc)
            self._enabled = False

    @contextmanager
    def operation(
        self,
        command: str,
        *,
        args: Mapping[str, object] | None = None,
        target: Mapping[str, object] | None = None,
    ) -> Iterator[OperationScope]:
        """Yield an :class:`OperationScope` and persist it on exit."""
        scope = OperationScope(self, command, args, target)
        try:
            yield scope
        except BaseException as exc:
            if scope.result is None:
                scope.error(f"Unhandled {type(exc).__name__}: {exc}")
            raise
        finally:
            if scope.result is None:
                scope.success("Completed.")
            self._write(scope.to_record())

    def _write(self, record: Mapping[str, object]) -> None:
        if not self._enabled:
            return
        try:
            with self._operations_log_path.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(record, sort_keys=False) + "\n")
        except OSError as exc:
            _LOG.warning("Structured logging disabled after write failure: %s", exc)
            self._enabled = False


def _actor() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return str(os.getuid())


__all__ = ["OperationScope", "StructuredLogger", "configure_logging"]
