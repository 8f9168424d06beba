"""Failure-mode tests for the logging subsystem."""
from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from dseectl.logging import StructuredLogger, configure_logging


def test_structured_logger_disables_when_directory_unavailable(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Logger gracefully disables itself when log directory cannot be created."""
    log_dir = tmp_path / "logs"

    original_mkdir = Path.mkdir

    def fail_mkdir(self: Path, *args: object, **kwargs: object) -> None:
        if self == log_dir:
            raise PermissionError("no access")
        original_mkdir(self, *args, **kwargs)

    monkeypatch.setattr(Path, "mkdir", fail_mkdir)

    logger = StructuredLogger(log_dir)
    assert logger._enabled is False  # type: ignore[attr-defined]

    with logger.operation("instance create", args={"path": "/opt/dsInst"}) as op:
        op.success("done", changed=1)


def test_structured_logger_disables_after_write_failure(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Write failures mark the logger disabled so subsequent writes are skipped."""
    logger = StructuredLogger(tmp_path / "logs")
    operations_path = logger._operations_log_path  # type: ignore[attr-defined]

    original_open = Path.open

    def fail_once(self: Path, *args: object, **kwargs: object) -> object:
        if self == operations_path:
            raise OSError("disk full")
        return original_open(self, *args, **kwargs)

    monkeypatch.setattr(Path, "open", fail_once)

    with logger.operation("instance start") as op:
        op.success("done")

    assert logger._enabled is False  # type: ignore[attr-defined]

    # Subsequent operations should not raise even though logger is disabled.
    with logger.operation("instance stop") as op:
        op.success("done")


def test_operation_record_contains_target_steps_and_lock_wait(tmp_path: Path) -> None:
    """Each operation is one JSON line with its target, steps and gate wait."""
    logger = StructuredLogger(tmp_path / "logs")

    with logger.operation(
        "instance create",
        args={"dry_run": False},
        target={"kind": "instance", "identity": "/opt/dsInst"},
    ) as op:
        op.set_lock_wait_ms(3)
        op.add_step("reconcile", status="success", detail="Directory server instance created.")
        op.success("Directory server instance created.", changed=1)

    lines = logger._operations_log_path.read_text(encoding="utf-8").splitlines()  # type: ignore[attr-defined]
    assert len(lines) == 1
    record = json.loads(lines[0])
    assert record["command"] == "instance create"
    assert record["target"] == {"kind": "instance", "identity": "/opt/dsInst"}
    assert record["lock_wait_ms"] == 3
    assert record["steps"][0]["name"] == "reconcile"
    assert record["result"] == {
        "status": "success",
        "message": "Directory server instance created.",
        "changed": 1,
    }


def test_operation_scope_warning_sanitises_context(tmp_path: Path) -> None:
    """Warnings should be recorded with JSON-safe context values."""
    logger = StructuredLogger(tmp_path / "logs")

    class Custom:
        def __str__(self) -> str:
            return "<custom>"

    with logger.operation("suffix import", args={"ldif": Path("Example.ldif")}) as op:
        op.warning(
            "warned",
            warnings=("note",),
            errors=("err",),
            context={"path": Path("/opt/dsInst"), "obj": Custom()},
        )

    record = json.loads(logger._operations_log_path.read_text(encoding="utf-8"))  # type: ignore[attr-defined]
    result = record["result"]
    assert record["args"] == {"ldif": "Example.ldif"}
    assert result["status"] == "warning"
    assert result["warnings"] == ["note"]
    assert result["errors"] == ["err"]
    assert result["context"] == {"path": "/opt/dsInst", "obj": "<custom>"}


def test_operation_scope_error_defaults_error_list(tmp_path: Path) -> None:
    """Errors should default to the message when not provided."""
    logger = StructuredLogger(tmp_path / "logs")

    with logger.operation("instance create") as op:
        op.error("boom", errors=None, rc=4, context={"value": {1, 2}})

    record = json.loads(logger._operations_log_path.read_text(encoding="utf-8"))  # type: ignore[attr-defined]
    result = record["result"]
    assert result["status"] == "error"
    assert result["errors"] == ["boom"]
    assert result["rc"] == 4
    assert result["context"] == {"value": "{1, 2}"}


def test_unhandled_exception_is_recorded_and_reraised(tmp_path: Path) -> None:
    """Exceptions escaping an operation are logged as errors."""
    logger = StructuredLogger(tmp_path / "logs")

    with pytest.raises(ValueError, match="bad"):
        with logger.operation("agent create"):
            raise ValueError("bad")

    record = json.loads(logger._operations_log_path.read_text(encoding="utf-8"))  # type: ignore[attr-defined]
    assert record["result"]["status"] == "error"
    assert record["result"]["message"] == "Unhandled ValueError: bad"


def test_configure_logging_writes_text_log(tmp_path: Path) -> None:
    """Module loggers reach ``dseectl.log``; reconfiguring does not duplicate handlers."""
    logs_dir = tmp_path / "logs"
    configure_logging(logs_dir)
    root = configure_logging(logs_dir)

    tagged = [h for h in root.handlers if getattr(h, "_dseectl_handler", False)]
    assert len(tagged) == 2

    logging.getLogger("dseectl.invoker").info("dsadm info: State: Running")
    for handler in tagged:
        handler.flush()

    text = (logs_dir / "dseectl.log").read_text(encoding="utf-8")
    assert "dsadm info: State: Running" in text
    assert "INFO dseectl.invoker" in text

    for handler in tagged:
        root.removeHandler(handler)
        handler.close()
