"""Declarative command tables and the builder that renders them.

Each ``(tool, subcommand)`` pair owns an ordered tuple of :class:`Flag`
definitions. The builder walks that tuple, asks the
:class:`~dseectl.models.DesiredStateRecord` for each value and emits the
corresponding tokens, so argument order is fixed by the table and never by the
caller. Secret flags never see the plaintext; they receive the path of a
materialised credential file instead.
"""
from __future__ import annotations

import re
import shlex
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from .errors import ValidationError
from .models import DesiredStateRecord


class FlagKind(Enum):
    """How a flag value is validated and rendered."""

    VALUE = "value"
    PORT = "port"
    HOST = "host"
    PATH = "path"
    SWITCH = "switch"
    SECRET = "secret"


@dataclass(frozen=True)
class Flag:
    """One entry of a command table.

    ``token`` is ``None`` for positional operands. ``name`` is looked up on the
    record; the special name ``identity`` maps to ``record.identity``.
    """

    name: str
    token: str | None
    kind: FlagKind = FlagKind.VALUE


@dataclass(frozen=True)
class CommandSpec:
    """Flags, operands and acceptable exit codes for one subcommand."""

    tool: str
    subcommand: str
    flags: tuple[Flag, ...] = ()
    operands: tuple[Flag, ...] = ()
    acceptable: tuple[int, ...] = (0,)

    @property
    def secret_names(self) -> tuple[str, ...]:
        """Names of the credentials this subcommand can consume."""
        return tuple(flag.name for flag in self.flags if flag.kind is FlagKind.SECRET)


@dataclass(frozen=True)
class CommandInvocation:
    """A fully rendered vendor command, minus the resolved executable."""

    tool: str
    subcommand: str
    args: tuple[str, ...] = ()

    def argv(self, executable: str | Path | None = None) -> list[str]:
        """Return the argument vector, using *executable* in place of the tool name."""
        return [str(executable or self.tool), self.subcommand, *self.args]

    def __str__(self) -> str:
        """Shell-quoted rendering for logs."""
        return shlex.join(self.argv())


def dasherize(name: str) -> str:
    """Normalise ``add_agent`` style names to the vendor ``add-agent`` form."""
    return name.strip().replace("_", "-")


def _switch(name: str, token: str) -> Flag:
    return Flag(name, token, FlagKind.SWITCH)


def _operand(name: str, kind: FlagKind = FlagKind.VALUE) -> Flag:
    return Flag(name, None, kind)


# ---------------------------------------------------------------------------
# Command tables
# ---------------------------------------------------------------------------

_IDENTITY = (_operand("identity"),)
_NO_INTER = _switch("no_inter", "-i")
_ADMIN_PW = Flag("admin_password", "-w", FlagKind.SECRET)
_AGENT_PW = Flag("agent_password", "-G", FlagKind.SECRET)

_DSADM_START_FLAGS = (
    _switch("safe_mode", "-E"),
    _NO_INTER,
    _switch("schema_push", "--schema-push"),
    Flag("cert_password", "-W", FlagKind.SECRET),
)

_DSCONF_CONNECTION = (
    _NO_INTER,
    Flag("hostname", "-h", FlagKind.HOST),
    Flag("ldap_port", "-p", FlagKind.PORT),
    _switch("accept_cert", "-c"),
)

_REGISTRY_ADD = (
    Flag("description", "-d"),
    Flag("hostname", "-H", FlagKind.HOST),
    Flag("agent_port", "-p", FlagKind.PORT),
    _AGENT_PW,
    _ADMIN_PW,
)

_REGISTRY_REMOVE = (
    Flag("hostname", "-H", FlagKind.HOST),
    Flag("agent_port", "-p", FlagKind.PORT),
    _switch("force", "-f"),
    _ADMIN_PW,
)

_SPECS: tuple[CommandSpec, ...] = (
    # dsadm: directory server instances
    CommandSpec(
        "dsadm",
        "create",
        flags=(
            _switch("below", "-B"),
            _NO_INTER,
            Flag("user_name", "-u"),
            Flag("group_name", "-g"),
            Flag("hostname", "-h", FlagKind.HOST),
            Flag("ldap_port", "-p", FlagKind.PORT),
            Flag("ldaps_port", "-P", FlagKind.PORT),
            Flag("dn", "-D"),
            _ADMIN_PW,
        ),
        operands=_IDENTITY,
    ),
    CommandSpec("dsadm", "delete", flags=(_NO_INTER,), operands=_IDENTITY),
    CommandSpec("dsadm", "start", flags=_DSADM_START_FLAGS, operands=_IDENTITY),
    CommandSpec("dsadm", "stop", flags=(_switch("force", "--force"),), operands=_IDENTITY),
    CommandSpec("dsadm", "restart", flags=_DSADM_START_FLAGS, operands=_IDENTITY),
    CommandSpec("dsadm", "info", operands=_IDENTITY, acceptable=(0, 125, 154)),
    # dsccagent: DSCC agents
    CommandSpec(
        "dsccagent",
        "create",
        flags=(
            _NO_INTER,
            Flag("agent_port", "-p", FlagKind.PORT),
            Flag("agent_password", "-w", FlagKind.SECRET),
        ),
        operands=_IDENTITY,
    ),
    CommandSpec("dsccagent", "delete", flags=(_NO_INTER,), operands=_IDENTITY),
    CommandSpec("dsccagent", "start", operands=_IDENTITY),
    CommandSpec("dsccagent", "stop", operands=_IDENTITY),
    CommandSpec(
        "dsccagent",
        "enable-snmp",
        flags=(
            _switch("snmp_v3", "-v3"),
            Flag("snmp_port", "--snmp-port", FlagKind.PORT),
            Flag("ds_port", "--ds-port", FlagKind.PORT),
        ),
        operands=_IDENTITY,
    ),
    CommandSpec("dsccagent", "disable-snmp", operands=_IDENTITY),
    CommandSpec("dsccagent", "info", operands=_IDENTITY, acceptable=(0, 125)),
    # dsccreg: registry membership
    CommandSpec("dsccreg", "add-agent", flags=_REGISTRY_ADD, operands=_IDENTITY),
    CommandSpec("dsccreg", "remove-agent", flags=_REGISTRY_REMOVE, operands=_IDENTITY),
    CommandSpec("dsccreg", "add-server", flags=_REGISTRY_ADD, operands=_IDENTITY),
    CommandSpec("dsccreg", "remove-server", flags=_REGISTRY_REMOVE, operands=_IDENTITY),
    CommandSpec("dsccreg", "list-agents", flags=(_ADMIN_PW,)),
    CommandSpec("dsccreg", "list-servers", flags=(_ADMIN_PW,)),
    # dsccsetup: the registry itself
    CommandSpec(
        "dsccsetup",
        "ads-create",
        flags=(
            _NO_INTER,
            _ADMIN_PW,
            Flag("registry_ldap_port", "-p", FlagKind.PORT),
            Flag("registry_ldaps_port", "-P", FlagKind.PORT),
        ),
    ),
    CommandSpec("dsccsetup", "ads-delete", flags=(_NO_INTER,)),
    CommandSpec("dsccsetup", "status"),
    # dsconf: suffixes and data
    CommandSpec(
        "dsconf",
        "create-suffix",
        flags=(
            _NO_INTER,
            Flag("hostname", "-h", FlagKind.HOST),
            Flag("ldap_port", "-p", FlagKind.PORT),
            Flag("db_name", "-B"),
            Flag("db_path", "-L"),
            _switch("accept_cert", "-c"),
            _switch("no_top_entry", "-N"),
            _ADMIN_PW,
        ),
        operands=_IDENTITY,
    ),
    CommandSpec(
        "dsconf",
        "delete-suffix",
        flags=(*_DSCONF_CONNECTION, _ADMIN_PW),
        operands=_IDENTITY,
    ),
    CommandSpec(
        "dsconf",
        "import",
        flags=(
            *_DSCONF_CONNECTION,
            _switch("async_import", "-a"),
            _switch("incremental", "-K"),
            Flag("import_options", "-f"),
            Flag("exclude_dn", "-x"),
            _ADMIN_PW,
        ),
        operands=(_operand("ldif_file", FlagKind.PATH), _operand("identity")),
    ),
    CommandSpec("dsconf", "info", flags=(*_DSCONF_CONNECTION, _ADMIN_PW)),
)

COMMANDS: dict[tuple[str, str], CommandSpec] = {
    (spec.tool, spec.subcommand): spec for spec in _SPECS
}

_HOST_PATTERN = re.compile(r"^[A-Za-z0-9_.:\-\[\]]+$")


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------


class CommandBuilder:
    """Render :class:`CommandInvocation` objects from desired-state records."""

    def __init__(self, table: Mapping[tuple[str, str], CommandSpec] | None = None) -> None:
        """Use *table* instead of the built-in command tables when given."""
        self._table = dict(COMMANDS if table is None else table)

    def spec(self, tool: str, subcommand: str) -> CommandSpec:
        """Return the table entry for ``tool subcommand``."""
        key = (tool, dasherize(subcommand))
        try:
            return self._table[key]
        except KeyError:
            if tool not in {known for known, _ in self._table}:
                raise ValidationError(f"Unknown tool '{tool}'.") from None
            raise ValidationError(
                f"Unknown subcommand '{key[1]}' for tool '{tool}'."
            ) from None

    def build(
        self,
        tool: str,
        subcommand: str,
        record: DesiredStateRecord,
        secret_paths: Mapping[str, Path] | None = None,
    ) -> CommandInvocation:
        """Return the invocation for *record*; raises :class:`ValidationError`."""
        spec = self.spec(tool, subcommand)
        secrets = dict(secret_paths or {})
        args: list[str] = []
        for flag in spec.flags:
            args.extend(self._render_flag(flag, record, secrets))
        for operand in spec.operands:
            value = _lookup(record, operand.name)
            if value is None or value == "":
                raise ValidationError(
                    f"{tool} {spec.subcommand} requires a value for '{operand.name}'."
                )
            args.append(_validate(operand, value))
        return CommandInvocation(tool=tool, subcommand=spec.subcommand, args=tuple(args))

    @staticmethod
    def _render_flag(
        flag: Flag,
        record: DesiredStateRecord,
        secrets: Mapping[str, Path],
    ) -> list[str]:
        token = str(flag.token)
        if flag.kind is FlagKind.SECRET:
            if record.credential(flag.name) is None:
                return []
            path = secrets.get(flag.name)
            if path is None:
                raise ValidationError(
                    f"Credential '{flag.name}' was supplied but not materialised."
                )
            return [token, str(path)]

        value = _lookup(record, flag.name)
        if flag.kind is FlagKind.SWITCH:
            return [token] if value else []
        if value is None or value is False or value == "":
            return []
        return [token, _validate(flag, value)]


def _lookup(record: DesiredStateRecord, name: str) -> object:
    if name == "identity":
        return record.identity
    return record.flag(name)


def _validate(flag: Flag, value: object) -> str:
    if flag.kind is FlagKind.PORT:
        return str(_expect_port(value, flag.name))
    text = str(value).strip()
    if flag.kind is FlagKind.HOST and not _HOST_PATTERN.match(text):
        raise ValidationError(f"Invalid hostname for '{flag.name}': {value!r}.")
    if flag.kind is FlagKind.PATH and not Path(text).exists():
        raise ValidationError(f"Path for '{flag.name}' does not exist: {text}.")
    return text


def _expect_port(value: object, label: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"Port '{label}' must be an integer, got {value!r}.")
    if isinstance(value, int):
        port = value
    elif isinstance(value, str) and value.strip().isdigit():
        port = int(value.strip())
    else:
        raise ValidationError(f"Port '{label}' must be an integer, got {value!r}.")
    if not 1 <= port <= 65535:
        raise ValidationError(f"Port '{label}' must be between 1 and 65535, got {port}.")
    return port


__all__ = [
    "COMMANDS",
    "CommandBuilder",
    "CommandInvocation",
    "CommandSpec",
    "Flag",
    "FlagKind",
    "dasherize",
]
