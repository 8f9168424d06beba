"""Directory server instances managed through ``dsadm``."""
from __future__ import annotations

from ..models import DesiredStateRecord, ParsedState, ReconcileResult
from .base import Reconciler


class InstanceReconciler(Reconciler):
    """Create, delete, start and stop directory server instances."""

    tool = "dsadm"

    def create(self, record: DesiredStateRecord) -> ReconcileResult:
        """Create the instance at ``record.identity`` unless it already exists."""
        with self.gate():
            state = self.snapshot(record)
            if self.prober.is_present(state, record.identity):
                return self.skip("create", record, "Instance already exists.", state)
            return self.act(
                "create",
                record,
                "Directory server instance created.",
                "Would create the directory server instance.",
            )

    def delete(self, record: DesiredStateRecord) -> ReconcileResult:
        """Delete the instance if it exists."""
        with self.gate():
            state = self.snapshot(record)
            if not self.prober.is_present(state, record.identity):
                return self.skip("delete", record, "Instance does not exist.", state)
            return self.act(
                "delete",
                record,
                "Directory server instance deleted.",
                "Would delete the directory server instance.",
                refresh=False,
            )

    def start(self, record: DesiredStateRecord) -> ReconcileResult:
        """Start the instance when it exists and is not already running."""
        with self.gate():
            state = self.snapshot(record)
            if not self.prober.is_present(state, record.identity):
                return self.skip("start", record, "Instance does not exist.", state)
            if self.prober.is_running(state):
                return self.skip("start", record, "Instance already running.", state)
            return self.act(
                "start",
                record,
                "Directory server instance started.",
                "Would start the directory server instance.",
            )

    def stop(self, record: DesiredStateRecord) -> ReconcileResult:
        """Stop the instance when it is running."""
        with self.gate():
            state = self.snapshot(record)
            if not self.prober.is_running(state):
                return self.skip("stop", record, "Instance is not running.", state)
            return self.act(
                "stop",
                record,
                "Directory server instance stopped.",
                "Would stop the directory server instance.",
            )

    def restart(self, record: DesiredStateRecord) -> ReconcileResult:
        """Restart an existing instance; always acts when the instance exists."""
        with self.gate():
            state = self.snapshot(record)
            if not self.prober.is_present(state, record.identity):
                return self.skip("restart", record, "Instance does not exist.", state)
            return self.act(
                "restart",
                record,
                "Directory server instance restarted.",
                "Would restart the directory server instance.",
            )

    def info(self, record: DesiredStateRecord) -> ParsedState:
        """Return the parsed ``dsadm info`` output; raises on failure."""
        return self.prober.probe(self.tool, record)


__all__ = ["InstanceReconciler"]
