"""Tests for the short-lived credential files."""
from __future__ import annotations

import logging
import os
import stat
import tempfile
import threading
from pathlib import Path

import pytest

from dseectl.credentials import SecretFile, SecretVault, with_secret
from dseectl.errors import SecretMaterializationError
from dseectl.models import CredentialReference


def test_with_secret_writes_restricted_file_and_removes_it(tmp_path: Path) -> None:
    """The file holds the value with mode 0400 and disappears afterwards."""
    with with_secret("secret123", directory=tmp_path) as path:
        assert path.read_text(encoding="utf-8") == "secret123"
        assert stat.S_IMODE(path.stat().st_mode) == 0o400
        assert path.parent == tmp_path

    assert not path.exists()
    assert list(tmp_path.iterdir()) == []


def test_secret_removed_when_block_raises(tmp_path: Path) -> None:
    """Cleanup is unconditional."""
    with pytest.raises(RuntimeError, match="boom"):
        with with_secret("secret123", directory=tmp_path) as path:
            raise RuntimeError("boom")

    assert not path.exists()


def test_nested_scopes_share_one_materialisation(tmp_path: Path) -> None:
    """Only the outermost scope deletes the file."""
    secret = SecretFile("pw", directory=tmp_path)

    with secret.transient() as outer:
        with secret.transient() as inner:
            assert inner == outer
            assert secret.valid()
        assert outer.exists()
        assert secret.valid()

    assert not secret.valid()
    assert not outer.exists()


def test_stale_file_is_overwritten(tmp_path: Path) -> None:
    """A file left behind by a crashed run is replaced."""
    secret = SecretFile("fresh", directory=tmp_path, name="pw")
    stale = tmp_path / "pw"
    stale.write_text("stale", encoding="utf-8")
    stale.chmod(0o400)

    with secret.transient() as path:
        assert path == stale
        assert path.read_text(encoding="utf-8") == "fresh"

    assert not stale.exists()


def test_unwritable_directory_raises(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Failure to create the file is a materialisation error."""

    def fail_mkstemp(*args: object, **kwargs: object) -> tuple[int, str]:
        raise PermissionError("read-only file system")

    monkeypatch.setattr(tempfile, "mkstemp", fail_mkstemp)

    with pytest.raises(SecretMaterializationError, match="Cannot create secret file"):
        with with_secret("pw", directory=tmp_path):
            pass


def test_permission_failure_is_logged_not_fatal(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    caplog: pytest.LogCaptureFixture,
) -> None:
    """A failing chmod only produces a warning."""

    def fail_fchmod(fd: int, mode: int) -> None:
        raise OSError("operation not permitted")

    monkeypatch.setattr(os, "fchmod", fail_fchmod)
    caplog.set_level(logging.WARNING, logger="dseectl.credentials")

    with with_secret("pw", directory=tmp_path) as path:
        assert path.read_text(encoding="utf-8") == "pw"

    assert "Could not restrict permissions" in caplog.text


def test_vault_materialises_several_credentials(tmp_path: Path) -> None:
    """Each credential gets its own file; all vanish together."""
    vault = SecretVault(tmp_path)
    refs = [
        CredentialReference("admin_password", "admin-pw"),
        CredentialReference("agent_password", "agent-pw"),
    ]

    with vault.materialize(refs) as paths:
        assert set(paths) == {"admin_password", "agent_password"}
        assert paths["admin_password"].read_text(encoding="utf-8") == "admin-pw"
        assert paths["agent_password"].read_text(encoding="utf-8") == "agent-pw"
        assert paths["admin_password"] != paths["agent_password"]

    assert list(tmp_path.iterdir()) == []


def test_vault_reuses_file_per_credential_name(tmp_path: Path) -> None:
    """The same logical credential maps to the same SecretFile until its value changes."""
    vault = SecretVault(tmp_path)
    ref = CredentialReference("admin_password", "one")

    first = vault.secret_file(ref)
    assert vault.secret_file(ref) is first
    assert vault.secret_file(CredentialReference("admin_password", "two")) is not first


def test_reprs_never_show_secret_values(tmp_path: Path) -> None:
    """Neither the reference nor the file leaks the plaintext in its repr."""
    ref = CredentialReference("admin_password", "hunter2")
    secret = SecretFile("hunter2", directory=tmp_path)

    assert "hunter2" not in repr(ref)
    assert "hunter2" not in repr(secret)


def test_credential_reference_requires_name() -> None:
    """Anonymous credentials are rejected."""
    with pytest.raises(ValueError, match="non-empty"):
        CredentialReference("  ", "x")


def test_threads_sharing_a_secret_file_write_once_and_last_one_deletes(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Concurrent users of one SecretFile share a single write; the file outlives the first exit."""
    secret = SecretFile("pw", directory=tmp_path)
    writes: list[Path] = []
    original_write = secret.write

    def counting_write() -> Path:
        writes.append(original_write())
        return writes[-1]

    monkeypatch.setattr(secret, "write", counting_write)
    entered = threading.Event()
    leave = threading.Event()

    def first_user() -> None:
        with secret.transient():
            entered.set()
            leave.wait(5)

    thread = threading.Thread(target=first_user, daemon=True)
    thread.start()
    try:
        assert entered.wait(5)
        with secret.transient() as path:
            assert secret.valid()
            leave.set()
            thread.join(5)
            assert not thread.is_alive()
            assert path.read_text(encoding="utf-8") == "pw"
    finally:
        leave.set()
        thread.join(5)

    assert len(writes) == 1
    assert not secret.path.exists()


def test_different_secrets_do_not_block_each_other(tmp_path: Path) -> None:
    """Holding one credential open leaves the others free."""
    vault = SecretVault(tmp_path)
    admin = CredentialReference("admin_password", "admin-pw")
    agent = CredentialReference("agent_password", "agent-pw")
    entered = threading.Event()
    leave = threading.Event()
    seen: list[str] = []

    def hold_admin() -> None:
        with vault.materialize([admin]):
            entered.set()
            leave.wait(5)

    def use_agent() -> None:
        with vault.materialize([agent]) as paths:
            seen.append(paths["agent_password"].read_text(encoding="utf-8"))

    holder = threading.Thread(target=hold_admin, daemon=True)
    holder.start()
    try:
        assert entered.wait(5)
        other = threading.Thread(target=use_agent, daemon=True)
        other.start()
        other.join(5)
        assert not other.is_alive()
        assert seen == ["agent-pw"]
    finally:
        leave.set()
        holder.join(5)

    assert list(tmp_path.iterdir()) == []
