"""Suffixes and their data managed through ``dsconf``."""
from __future__ import annotations

from ..models import DesiredStateRecord, ParsedState, ReconcileResult
from ..parsing import parse_info
from .base import Reconciler


class SuffixReconciler(Reconciler):
    """Create and delete suffixes and seed empty ones from LDIF.

    ``record.identity`` is the suffix DN. Connection flags (``hostname``,
    ``ldap_port``, ``accept_cert``) and the ``admin_password`` credential are
    used both for probing and for acting.
    """

    tool = "dsconf"

    def create_suffix(self, record: DesiredStateRecord) -> ReconcileResult:
        """Create the suffix unless ``dsconf info`` already lists it."""
        with self.gate():
            if self.prober.suffix_created(record):
                return self.skip("create_suffix", record, "Suffix already exists.")
            return self.act(
                "create_suffix",
                record,
                "Suffix created.",
                "Would create the suffix.",
                refresh=False,
            )

    def delete_suffix(self, record: DesiredStateRecord) -> ReconcileResult:
        """Delete the suffix and its data if it exists."""
        with self.gate():
            if not self.prober.suffix_created(record):
                return self.skip("delete_suffix", record, "Suffix does not exist.")
            return self.act(
                "delete_suffix",
                record,
                "Suffix deleted.",
                "Would delete the suffix.",
                refresh=False,
            )

    def import_ldif(self, record: DesiredStateRecord) -> ReconcileResult:
        """Import ``record.flag('ldif_file')`` only into an existing, empty suffix."""
        with self.gate():
            text = self.prober.suffix_text(record)
            if not self.prober.suffix_created(record, text=text or ""):
                return self.skip("import", record, "Suffix does not exist.")
            if not self.prober.suffix_empty(record, text=text or ""):
                return self.skip("import", record, "Suffix already populated.")
            return self.act(
                "import",
                record,
                "LDIF data imported.",
                "Would import LDIF data.",
                refresh=False,
            )

    def info(self, record: DesiredStateRecord) -> ParsedState:
        """Return the parsed ``dsconf info`` output; raises on failure."""
        return parse_info(self.prober.probe_text(self.tool, record))


__all__ = ["SuffixReconciler"]
