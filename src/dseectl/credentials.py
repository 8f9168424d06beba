"""Short-lived on-disk credentials for the vendor tools.

``dsadm``, ``dsccreg`` and friends only accept passwords through files, so each
credential is materialised as a mode ``0400`` file for exactly as long as the
operation that needs it runs.
"""
from __future__ import annotations

import logging
import os
import tempfile
import threading
import uuid
from collections.abc import Iterable, Iterator
from contextlib import ExitStack, contextmanager
from pathlib import Path

from .errors import SecretMaterializationError
from .models import CredentialReference

SECRET_MODE = 0o400

_LOG = logging.getLogger(__name__)


class SecretFile:
    """A credential file that exists only inside :meth:`transient` scopes."""

    def __init__(self, value: str, *, directory: Path | None = None, name: str | None = None) -> None:
        """Prepare (but do not create) a secret file for *value*."""
        self._value = value
        self.directory = Path(directory) if directory is not None else Path(tempfile.gettempdir())
        self.path = self.directory / (name or f"dseectl-{uuid.uuid4().hex}")
        self._lock = threading.RLock()
        self._depth = 0

    def __repr__(self) -> str:
        """Never include the secret value."""
        return f"SecretFile(path={str(self.path)!r})"

    def valid(self) -> bool:
        """Return ``True`` when the file exists and holds the expected value."""
        try:
            return self.path.read_text(encoding="utf-8") == self._value
        except OSError:
            return False

    def write(self) -> Path:
        """Atomically write the secret, replacing any stale file."""
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=".dseectl-", dir=self.directory)
        except OSError as exc:
            raise SecretMaterializationError(
                f"Cannot create secret file in {self.directory}: {exc}"
            ) from exc
        tmp_path = Path(tmp_name)
        try:
            try:
                os.fchmod(fd, SECRET_MODE)
            except OSError as exc:
                _LOG.warning("Could not restrict permissions on %s: %s", tmp_path, exc)
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(self._value)
            os.replace(tmp_path, self.path)
        except OSError as exc:
            tmp_path.unlink(missing_ok=True)
            raise SecretMaterializationError(
                f"Cannot write secret file {self.path}: {exc}"
            ) from exc
        return self.path

    def delete(self) -> None:
        """Remove the file if present."""
        try:
            self.path.unlink(missing_ok=True)
        except OSError as exc:
            _LOG.warning("Could not remove secret file %s: %s", self.path, exc)

    @contextmanager
    def transient(self) -> Iterator[Path]:
        """Materialise the file for the ``with`` block and remove it afterwards.

        Overlapping scopes, nested or from other threads, share one file: the
        first writes it and the last one out deletes it. The lock covers only
        the write and the delete, never the body of the block.
        """
        with self._lock:
            self._depth += 1
            try:
                if self._depth == 1 or not self.valid():
                    self.write()
            except BaseException:
                self._depth -= 1
                raise
        try:
            yield self.path
        finally:
            with self._lock:
                self._depth -= 1
                if self._depth == 0:
                    self.delete()


class SecretVault:
    """One :class:`SecretFile` per logical credential name."""

    def __init__(self, directory: Path | None = None) -> None:
        """Create a vault writing into *directory* (system temp by default)."""
        self.directory = directory
        self._files: dict[str, SecretFile] = {}
        self._lock = threading.Lock()

    def secret_file(self, ref: CredentialReference) -> SecretFile:
        """Return the file tracking *ref*, replacing it when the value changed."""
        with self._lock:
            current = self._files.get(ref.name)
            if current is None or current._value != ref.value:
                current = SecretFile(ref.value, directory=self.directory)
                self._files[ref.name] = current
            return current

    @contextmanager
    def materialize(self, refs: Iterable[CredentialReference]) -> Iterator[dict[str, Path]]:
        """Write every credential in *refs* and yield ``{name: path}``."""
        with ExitStack() as stack:
            paths: dict[str, Path] = {}
            for ref in refs:
                paths[ref.name] = stack.enter_context(self.secret_file(ref).transient())
            yield paths


@contextmanager
def with_secret(value: str, *, directory: Path | None = None) -> Iterator[Path]:
    """Yield the path of a freshly written secret file holding *value*."""
    with SecretFile(value, directory=directory).transient() as path:
        yield path


__all__ = ["SECRET_MODE", "SecretFile", "SecretVault", "with_secret"]
