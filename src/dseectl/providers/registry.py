"""DSCC registry membership (``dsccreg``) and registry setup (``dsccsetup``)."""
from __future__ import annotations

from ..models import CredentialReference, DesiredStateRecord, ReconcileResult, RegistryEntry
from .base import Reconciler


class RegistryReconciler(Reconciler):
    """Register and unregister agents and servers with the DSCC registry."""

    tool = "dsccreg"

    def _admin(self, record: DesiredStateRecord) -> CredentialReference | None:
        return record.credential("admin_password")

    def _add(self, kind: str, record: DesiredStateRecord) -> ReconcileResult:
        action = f"add_{kind[:-1]}"
        with self.gate():
            if self.registry.member_of(kind, record.identity, self._admin(record)):
                return self.skip(action, record, f"Already registered in {kind}.")
            return self.act(
                action,
                record,
                f"Registered with the DSCC registry ({kind}).",
                f"Would register with the DSCC registry ({kind}).",
                refresh=False,
            )

    def _remove(self, kind: str, record: DesiredStateRecord) -> ReconcileResult:
        action = f"remove_{kind[:-1]}"
        with self.gate():
            if not self.registry.member_of(kind, record.identity, self._admin(record)):
                return self.skip(action, record, f"Not registered in {kind}.")
            return self.act(
                action,
                record,
                f"Removed from the DSCC registry ({kind}).",
                f"Would remove from the DSCC registry ({kind}).",
                refresh=False,
            )

    def add_agent(self, record: DesiredStateRecord) -> ReconcileResult:
        """Register the agent at ``record.identity`` unless already listed."""
        return self._add("agents", record)

    def remove_agent(self, record: DesiredStateRecord) -> ReconcileResult:
        """Unregister the agent at ``record.identity`` if listed."""
        return self._remove("agents", record)

    def add_server(self, record: DesiredStateRecord) -> ReconcileResult:
        """Register the server instance at ``record.identity`` unless already listed."""
        return self._add("servers", record)

    def remove_server(self, record: DesiredStateRecord) -> ReconcileResult:
        """Unregister the server instance at ``record.identity`` if listed."""
        return self._remove("servers", record)

    def list_agents(self, admin: CredentialReference | None = None) -> list[RegistryEntry]:
        """Return the registered agents; raises on failure."""
        return self.registry.list_entries("agents", admin)

    def list_servers(self, admin: CredentialReference | None = None) -> list[RegistryEntry]:
        """Return the registered servers; raises on failure."""
        return self.registry.list_entries("servers", admin)


class RegistrySetupReconciler(Reconciler):
    """Create or delete the DSCC registry instance itself."""

    tool = "dsccsetup"

    def ads_create(self, record: DesiredStateRecord) -> ReconcileResult:
        """Initialise the registry unless ``dsccsetup status`` says it exists."""
        with self.gate():
            if self.prober.registry_created():
                return self.skip("ads_create", record, "DSCC registry already created.")
            return self.act(
                "ads_create",
                record,
                "DSCC registry created.",
                "Would create the DSCC registry.",
                refresh=False,
            )

    def ads_delete(self, record: DesiredStateRecord) -> ReconcileResult:
        """Delete the registry if it exists."""
        with self.gate():
            if not self.prober.registry_created():
                return self.skip("ads_delete", record, "DSCC registry does not exist.")
            return self.act(
                "ads_delete",
                record,
                "DSCC registry deleted.",
                "Would delete the DSCC registry.",
                refresh=False,
            )

    def status(self) -> bool:
        """Return ``True`` when the registry has been created."""
        return self.prober.registry_created()


__all__ = ["RegistryReconciler", "RegistrySetupReconciler"]
