"""DSCC agents managed through ``dsccagent``."""
from __future__ import annotations

from ..models import DesiredStateRecord, ParsedState, ReconcileResult
from .base import Reconciler


class AgentReconciler(Reconciler):
    """Create, delete, start and stop DSCC agents and toggle their SNMP agent."""

    tool = "dsccagent"

    def create(self, record: DesiredStateRecord) -> ReconcileResult:
        """Create the agent at ``record.identity`` unless it already exists."""
        with self.gate():
            state = self.snapshot(record)
            if self.prober.is_present(state, record.identity):
                return self.skip("create", record, "Agent already exists.", state)
            return self.act("create", record, "DSCC agent created.", "Would create the DSCC agent.")

    def delete(self, record: DesiredStateRecord) -> ReconcileResult:
        """Delete the agent if it exists."""
        with self.gate():
            state = self.snapshot(record)
            if not self.prober.is_present(state, record.identity):
                return self.skip("delete", record, "Agent does not exist.", state)
            return self.act(
                "delete",
                record,
                "DSCC agent deleted.",
                "Would delete the DSCC agent.",
                refresh=False,
            )

    def start(self, record: DesiredStateRecord) -> ReconcileResult:
        """Start the agent when it exists and is not already running."""
        with self.gate():
            state = self.snapshot(record)
            if not self.prober.is_present(state, record.identity):
                return self.skip("start", record, "Agent does not exist.", state)
            if self.prober.is_running(state):
                return self.skip("start", record, "Agent already running.", state)
            return self.act("start", record, "DSCC agent started.", "Would start the DSCC agent.")

    def stop(self, record: DesiredStateRecord) -> ReconcileResult:
        """Stop the agent when it is running."""
        with self.gate():
            state = self.snapshot(record)
            if not self.prober.is_running(state):
                return self.skip("stop", record, "Agent is not running.", state)
            return self.act("stop", record, "DSCC agent stopped.", "Would stop the DSCC agent.")

    def enable_snmp(self, record: DesiredStateRecord) -> ReconcileResult:
        """Enable SNMP only when the agent reports it as disabled."""
        with self.gate():
            state = self.snapshot(record)
            snmp = self.prober.snmp_enabled(state)
            if snmp is not False:
                reason = "SNMP already enabled." if snmp is True else "SNMP status unknown."
                return self.skip("enable_snmp", record, reason, state)
            return self.act(
                "enable_snmp",
                record,
                "SNMP agent enabled.",
                "Would enable the SNMP agent.",
            )

    def disable_snmp(self, record: DesiredStateRecord) -> ReconcileResult:
        """Disable SNMP only when the agent reports it as enabled."""
        with self.gate():
            state = self.snapshot(record)
            snmp = self.prober.snmp_enabled(state)
            if snmp is not True:
                reason = "SNMP already disabled." if snmp is False else "SNMP status unknown."
                return self.skip("disable_snmp", record, reason, state)
            return self.act(
                "disable_snmp",
                record,
                "SNMP agent disabled.",
                "Would disable the SNMP agent.",
            )

    def info(self, record: DesiredStateRecord) -> ParsedState:
        """Return the parsed ``dsccagent info`` output; raises on failure."""
        return self.prober.probe(self.tool, record)


__all__ = ["AgentReconciler"]
