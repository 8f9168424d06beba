"""Read-only questions asked of the vendor tools.

Probes never raise: a failing ``info`` call is logged and treated as "no
information", which every predicate maps to its conservative answer.
"""
from __future__ import annotations

import logging
import os
import re
from collections.abc import Callable
from typing import TypeVar

from .commands import CommandBuilder, dasherize
from .credentials import SecretVault
from .errors import DseectlError, RegistryKindError
from .invoker import ExecutionResult, ProcessInvoker
from .models import (
    UNKNOWN,
    CredentialReference,
    DesiredStateRecord,
    ParsedState,
    ProbeUnknown,
    RegistryEntry,
)
from .parsing import parse_info, parse_multivalue, parse_table

REGISTRY_CREATED_MARKER = "DSCC Registry has been created"
REGISTRY_KINDS: tuple[str, ...] = ("agents", "servers")

_LOG = logging.getLogger(__name__)
_T = TypeVar("_T")


def _fail_safe(label: str, default: _T, func: Callable[[], _T]) -> _T:
    try:
        return func()
    except Exception as exc:  # noqa: BLE001 - probes degrade instead of raising
        _LOG.debug("Probe %s failed: %s", label, exc)
        return default


def _same_path(left: str | None, right: str) -> bool:
    if not left:
        return False
    return os.path.normpath(left.strip()) == os.path.normpath(right.strip())


def normalize_dn(dn: str) -> str:
    """Return *dn* unquoted, lower-cased and without spaces around separators."""
    text = dn.strip().strip("\"'")
    return re.sub(r"\s*([,=+])\s*", r"\1", text).lower()


def run_with_credentials(
    invoker: ProcessInvoker,
    builder: CommandBuilder,
    vault: SecretVault,
    tool: str,
    subcommand: str,
    record: DesiredStateRecord,
) -> ExecutionResult:
    """Materialise the credentials *subcommand* needs, run it, then destroy them."""
    spec = builder.spec(tool, subcommand)
    refs = [
        ref
        for ref in (record.credential(name) for name in spec.secret_names)
        if ref is not None
    ]
    with vault.materialize(refs) as paths:
        invocation = builder.build(tool, subcommand, record, paths)
        return invoker.execute(invocation, acceptable=spec.acceptable)


class StateProber:
    """Build, run and parse ``info``-style commands."""

    def __init__(
        self,
        invoker: ProcessInvoker,
        *,
        builder: CommandBuilder | None = None,
        vault: SecretVault | None = None,
    ) -> None:
        """Share *invoker* (and its gate) with the reconcilers."""
        self.invoker = invoker
        self.builder = builder or CommandBuilder()
        self.vault = vault or SecretVault()

    # ------------------------------------------------------------------
    # Raw probes
    # ------------------------------------------------------------------
    def probe_text(self, tool: str, record: DesiredStateRecord, subcommand: str = "info") -> str:
        """Return the raw stdout of ``tool subcommand``; raises on failure."""
        result = run_with_credentials(
            self.invoker, self.builder, self.vault, tool, dasherize(subcommand), record
        )
        return result.stdout

    def probe(self, tool: str, record: DesiredStateRecord) -> ParsedState:
        """Return the parsed ``info`` output for *record*; raises on failure."""
        return parse_info(self.probe_text(tool, record))

    def snapshot(self, tool: str, record: DesiredStateRecord) -> ParsedState | None:
        """Return :meth:`probe` output, or ``None`` when probing failed."""
        return _fail_safe(f"{tool} info", None, lambda: self.probe(tool, record))

    # ------------------------------------------------------------------
    # Predicates over one snapshot
    # ------------------------------------------------------------------
    @staticmethod
    def is_present(state: ParsedState | None, identity: str) -> bool:
        """Return ``True`` when the snapshot reports *identity* as its instance path."""
        if not state:
            return False
        return _same_path(state.get("instance_path"), identity)

    @staticmethod
    def state_of(state: ParsedState | None) -> str:
        """Return the reported ``State`` value, or ``Unknown``."""
        if not state or not state.get("state"):
            return str(UNKNOWN)
        return state["state"]

    @staticmethod
    def is_running(state: ParsedState | None) -> bool:
        """Return ``True`` only when the snapshot says ``Running``."""
        return bool(state) and re.fullmatch(r"running", StateProber.state_of(state), re.I) is not None

    @staticmethod
    def is_stopped(state: ParsedState | None) -> bool:
        """Return ``True`` only when the snapshot says ``Stopped``."""
        return bool(state) and re.fullmatch(r"stopped", StateProber.state_of(state), re.I) is not None

    @staticmethod
    def snmp_enabled(state: ParsedState | None) -> bool | ProbeUnknown:
        """Return the SNMP status from an agent snapshot.

        ``SNMP port : Disabled`` maps to ``False``, any other value to ``True``
        and a missing line to :data:`~dseectl.models.UNKNOWN`.
        """
        if not state or "snmp_port" not in state:
            return UNKNOWN
        return re.search(r"disabled", state["snmp_port"], re.I) is None

    # ------------------------------------------------------------------
    # Convenience wrappers (probe and evaluate)
    # ------------------------------------------------------------------
    def exists(self, tool: str, record: DesiredStateRecord) -> bool:
        """Probe and evaluate :meth:`is_present`."""
        return self.is_present(self.snapshot(tool, record), record.identity)

    def running(self, tool: str, record: DesiredStateRecord) -> bool:
        """Probe and evaluate :meth:`is_running`."""
        return self.is_running(self.snapshot(tool, record))

    def stopped(self, tool: str, record: DesiredStateRecord) -> bool:
        """Probe and evaluate :meth:`is_stopped`."""
        return self.is_stopped(self.snapshot(tool, record))

    # ------------------------------------------------------------------
    # Registry and suffix probes
    # ------------------------------------------------------------------
    def registry_created(self) -> bool:
        """Return ``True`` when ``dsccsetup status`` reports a created registry."""
        record = DesiredStateRecord.build("dscc-registry")
        return _fail_safe(
            "dsccsetup status",
            False,
            lambda: REGISTRY_CREATED_MARKER in self.probe_text("dsccsetup", record, "status"),
        )

    def suffix_text(self, record: DesiredStateRecord) -> str | None:
        """Return raw ``dsconf info`` output, or ``None`` when probing failed."""
        return _fail_safe("dsconf info", None, lambda: self.probe_text("dsconf", record))

    def suffix_created(self, record: DesiredStateRecord, text: str | None = None) -> bool:
        """Return ``True`` when ``dsconf info`` lists ``record.identity`` as a suffix."""
        output = self.suffix_text(record) if text is None else text
        if not output:
            return False
        wanted = normalize_dn(record.identity)
        return any(normalize_dn(value) == wanted for value in parse_multivalue(output, "suffixes"))

    def suffix_empty(self, record: DesiredStateRecord, text: str | None = None) -> bool:
        """Return ``True`` when the server holds fewer than two entries.

        An unreadable entry count is treated as "not empty" so imports never
        run against data whose state is unknown.
        """
        output = self.suffix_text(record) if text is None else text
        if not output:
            return False
        raw = parse_info(output).get("total_entries", "")
        try:
            return int(raw) < 2
        except ValueError:
            return False


class RegistryClient:
    """List and query DSCC registry membership."""

    def __init__(
        self,
        invoker: ProcessInvoker,
        *,
        builder: CommandBuilder | None = None,
        vault: SecretVault | None = None,
    ) -> None:
        """Share *invoker* (and its gate) with the reconcilers."""
        self.invoker = invoker
        self.builder = builder or CommandBuilder()
        self.vault = vault or SecretVault()

    @staticmethod
    def _check_kind(kind: str) -> str:
        normalized = kind.strip().lower()
        if normalized not in REGISTRY_KINDS:
            allowed = ", ".join(REGISTRY_KINDS)
            raise RegistryKindError(f"Unknown registry kind '{kind}'. Expected one of: {allowed}.")
        return normalized

    def list_entries(self, kind: str, admin: CredentialReference | None = None) -> list[RegistryEntry]:
        """Return the registry rows for *kind* (``agents`` or ``servers``)."""
        normalized = self._check_kind(kind)
        record = DesiredStateRecord.build(
            "dscc-registry",
            credentials=[admin] if admin is not None else (),
        )
        result = run_with_credentials(
            self.invoker, self.builder, self.vault, "dsccreg", f"list-{normalized}", record
        )
        return [RegistryEntry.from_row(row) for row in parse_table(result.stdout)]

    def member_of(self, kind: str, path: str, admin: CredentialReference | None = None) -> bool:
        """Return ``True`` when *path* is registered as *kind*.

        Unsupported kinds raise :class:`RegistryKindError`; listing failures
        read as "not a member".
        """
        normalized = self._check_kind(kind)
        try:
            entries = self.list_entries(normalized, admin)
        except DseectlError as exc:
            _LOG.debug("Registry listing for %s failed: %s", normalized, exc)
            return False
        return any(_same_path(entry.ipath, path) for entry in entries)


__all__ = [
    "REGISTRY_CREATED_MARKER",
    "REGISTRY_KINDS",
    "RegistryClient",
    "StateProber",
    "normalize_dn",
    "run_with_credentials",
]
