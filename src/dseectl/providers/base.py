"""Shared probe-decide-act machinery for the reconcilers."""
from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import ClassVar

from ..commands import CommandBuilder, dasherize
from ..credentials import SecretVault
from ..invoker import ExecutionResult, ProcessInvoker
from ..locking import LockHandle
from ..models import DesiredStateRecord, ParsedState, ReconcileResult
from ..probes import RegistryClient, StateProber, run_with_credentials

_LOG = logging.getLogger(__name__)


@dataclass(slots=True)
class Reconciler:
    """Base class: subclasses decide, this class probes and acts.

    Each public action holds the invoker's execution gate for its whole
    duration so the probe and the command it justifies cannot interleave with
    another thread's work.
    """

    tool: ClassVar[str] = ""

    invoker: ProcessInvoker
    builder: CommandBuilder = field(default_factory=CommandBuilder)
    vault: SecretVault = field(default_factory=SecretVault)
    dry_run: bool = False
    prober: StateProber = field(init=False)
    registry: RegistryClient = field(init=False)

    def __post_init__(self) -> None:
        """Wire the prober and registry client to the shared invoker."""
        self.prober = StateProber(self.invoker, builder=self.builder, vault=self.vault)
        self.registry = RegistryClient(self.invoker, builder=self.builder, vault=self.vault)

    @contextmanager
    def gate(self) -> Iterator[LockHandle]:
        """Hold the execution gate for a probe-and-act sequence."""
        with self.invoker.lock.hold() as handle:
            yield handle

    def snapshot(self, record: DesiredStateRecord) -> ParsedState | None:
        """Fail-safe ``info`` snapshot for *record*."""
        return self.prober.snapshot(self.tool, record)

    def run(self, subcommand: str, record: DesiredStateRecord) -> ExecutionResult:
        """Execute ``tool subcommand`` for *record*; credentials are removed afterwards."""
        return run_with_credentials(
            self.invoker, self.builder, self.vault, self.tool, subcommand, record
        )

    # ------------------------------------------------------------------
    # Result helpers
    # ------------------------------------------------------------------
    def skip(
        self,
        action: str,
        record: DesiredStateRecord,
        reason: str,
        state: ParsedState | None = None,
    ) -> ReconcileResult:
        """Report that *action* was already converged."""
        _LOG.info("%s %s for %s: %s - nothing to do", self.tool, action, record.identity, reason)
        return ReconcileResult(
            action=action,
            identity=record.identity,
            changed=False,
            message=reason,
            state=state,
        )

    def act(
        self,
        action: str,
        record: DesiredStateRecord,
        done: str,
        plan: str,
        *,
        subcommand: str | None = None,
        refresh: bool = True,
    ) -> ReconcileResult:
        """Run *subcommand* (defaults to *action*) unless in dry-run mode."""
        command = dasherize(subcommand or action)
        if self.dry_run:
            # Build anyway so validation errors surface in dry runs too.
            placeholders = {name: Path(f"<{name}>") for name in record.credentials}
            self.builder.build(self.tool, command, record, placeholders)
            _LOG.info("[dry-run] %s %s %s", self.tool, command, record.identity)
            return ReconcileResult(
                action=action,
                identity=record.identity,
                changed=False,
                planned=True,
                message=plan,
            )
        self.run(command, record)
        _LOG.info("%s %s for %s: %s", self.tool, action, record.identity, done)
        state = self.snapshot(record) if refresh else None
        return ReconcileResult(
            action=action,
            identity=record.identity,
            changed=True,
            message=done,
            state=state,
        )


__all__ = ["Reconciler"]
