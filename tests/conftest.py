"""Pytest configuration helpers for the test suite."""

from __future__ import annotations

import subprocess
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from dseectl.credentials import SecretVault
from dseectl.invoker import ProcessInvoker, ToolLocator
from dseectl.locking import ExecutionLock

SECRET_TOKENS = {"-w", "-G", "-W"}

Response = tuple[int, str, str] | BaseException | Callable[[list[str]], tuple[int, str, str]]


@dataclass
class FakeVendor:
    """In-process stand-in for the DSEE command-line tools.

    Responses are queued per ``(tool, subcommand)``; the last queued response
    repeats. Unregistered commands succeed silently.
    """

    responses: dict[tuple[str, str], list[Response]] = field(default_factory=dict)
    calls: list[list[str]] = field(default_factory=list)
    secrets_seen: list[dict[str, str]] = field(default_factory=list)
    observers: list[Callable[[list[str]], None]] = field(default_factory=list)

    def on(
        self,
        tool: str,
        subcommand: str,
        *,
        stdout: str = "",
        stderr: str = "",
        rc: int = 0,
        exc: BaseException | None = None,
        handler: Callable[[list[str]], tuple[int, str, str]] | None = None,
    ) -> FakeVendor:
        """Queue a response for ``tool subcommand``."""
        response: Response
        if exc is not None:
            response = exc
        elif handler is not None:
            response = handler
        else:
            response = (rc, stdout, stderr)
        self.responses.setdefault((tool, subcommand), []).append(response)
        return self

    def commands(self) -> list[tuple[str, str]]:
        """Return ``(tool, subcommand)`` for every call made so far."""
        return [(Path(argv[0]).name, argv[1]) for argv in self.calls]

    def count(self, tool: str, subcommand: str) -> int:
        """Return how many times ``tool subcommand`` ran."""
        return self.commands().count((tool, subcommand))

    def __call__(self, argv: list[str]) -> subprocess.CompletedProcess[str]:
        self.calls.append(list(argv))
        seen: dict[str, str] = {}
        for index, token in enumerate(argv[:-1]):
            if token in SECRET_TOKENS:
                secret_path = Path(argv[index + 1])
                seen[token] = (
                    secret_path.read_text(encoding="utf-8") if secret_path.exists() else "<missing>"
                )
        self.secrets_seen.append(seen)
        for observer in self.observers:
            observer(argv)

        key = (Path(argv[0]).name, argv[1])
        queue = self.responses.get(key)
        if not queue:
            return subprocess.CompletedProcess(argv, 0, "", "")
        response = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(response, BaseException):
            raise response
        if callable(response):
            rc, stdout, stderr = response(argv)
        else:
            rc, stdout, stderr = response
        return subprocess.CompletedProcess(argv, rc, stdout, stderr)


@pytest.fixture
def fake_vendor(monkeypatch: pytest.MonkeyPatch) -> FakeVendor:
    """Route every vendor invocation to a :class:`FakeVendor`."""
    vendor = FakeVendor()
    monkeypatch.setattr(ProcessInvoker, "_spawn", lambda self, argv: vendor(argv))
    return vendor


@pytest.fixture
def sleeps() -> list[float]:
    """Collect backoff delays instead of sleeping."""
    return []


@pytest.fixture
def invoker(tmp_path: Path, sleeps: list[float]) -> ProcessInvoker:
    """Invoker with an isolated search path, a private gate and no real sleeping."""
    locator = ToolLocator(tmp_path / "opt", env={"PATH": ""}, system_dirs=())
    return ProcessInvoker(locator=locator, lock=ExecutionLock(), sleep=sleeps.append)


@pytest.fixture
def vault(tmp_path: Path) -> SecretVault:
    """Secret vault writing into a per-test directory."""
    return SecretVault(tmp_path / "secrets")
