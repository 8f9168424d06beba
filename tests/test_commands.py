"""Tests for the declarative command builder."""
from __future__ import annotations

from pathlib import Path

import pytest

from dseectl.commands import COMMANDS, CommandBuilder, dasherize
from dseectl.errors import ValidationError
from dseectl.models import CredentialReference, DesiredStateRecord


def _record(identity: str = "/opt/dsInst", **flags: object) -> DesiredStateRecord:
    return DesiredStateRecord.build(identity, flags=flags)


def test_dsadm_create_renders_flags_in_table_order() -> None:
    """Flag order follows the table, not the caller's mapping order."""
    record = DesiredStateRecord.build(
        "/opt/dsInst",
        flags={"ldap_port": 389, "no_inter": True, "hostname": "ldap.example.com"},
        credentials=[CredentialReference("admin_password", "secret123")],
    )

    invocation = CommandBuilder().build(
        "dsadm", "create", record, {"admin_password": Path("/tmp/pw")}
    )

    assert invocation.tool == "dsadm"
    assert invocation.subcommand == "create"
    assert invocation.args == (
        "-i",
        "-h",
        "ldap.example.com",
        "-p",
        "389",
        "-w",
        "/tmp/pw",
        "/opt/dsInst",
    )
    assert "secret123" not in str(invocation)


def test_absent_credential_contributes_nothing() -> None:
    """Secret flags are omitted when the record carries no such credential."""
    invocation = CommandBuilder().build("dsadm", "create", _record(ldap_port=389))

    assert "-w" not in invocation.args
    assert invocation.args == ("-p", "389", "/opt/dsInst")


def test_supplied_credential_must_be_materialised() -> None:
    """A credential without a file path is a validation error."""
    record = DesiredStateRecord.build(
        "/opt/dsInst", credentials=[CredentialReference("admin_password", "x")]
    )

    with pytest.raises(ValidationError, match="not materialised"):
        CommandBuilder().build("dsadm", "create", record)


def test_credentials_must_be_keyed_by_their_name() -> None:
    """A record cannot file a credential under another name."""
    with pytest.raises(ValueError, match="mismatched key 'pw'"):
        DesiredStateRecord(
            "/opt/dsInst", credentials={"pw": CredentialReference("admin_password", "x")}
        )


def test_subcommand_names_are_dasherized() -> None:
    """Underscore names map to the vendor's dash form."""
    invocation = CommandBuilder().build("dsccreg", "add_agent", _record("/opt/agent"))

    assert dasherize("enable_snmp") == "enable-snmp"
    assert invocation.subcommand == "add-agent"
    assert invocation.argv("/opt/dsee7/bin/dsccreg")[0] == "/opt/dsee7/bin/dsccreg"


def test_unknown_tool_and_subcommand_raise() -> None:
    """Only tabulated commands can be built."""
    builder = CommandBuilder()

    with pytest.raises(ValidationError, match="Unknown tool"):
        builder.build("ldapmodify", "add", _record())
    with pytest.raises(ValidationError, match="Unknown subcommand"):
        builder.build("dsadm", "explode", _record())


@pytest.mark.parametrize("port", [0, 70000, "abc", True, -1])
def test_invalid_ports_are_rejected(port: object) -> None:
    """Ports must be integers between 1 and 65535."""
    with pytest.raises(ValidationError, match="Port 'ldap_port'"):
        CommandBuilder().build("dsadm", "create", _record(ldap_port=port))


def test_invalid_hostname_is_rejected() -> None:
    """Host values with shell metacharacters are refused."""
    with pytest.raises(ValidationError, match="Invalid hostname"):
        CommandBuilder().build("dsadm", "create", _record(hostname="ldap; rm -rf /"))


def test_switches_emit_bare_token_only_when_true() -> None:
    """Switch flags ignore falsey values."""
    builder = CommandBuilder()

    on = builder.build("dsadm", "stop", _record(force=True))
    off = builder.build("dsadm", "stop", _record(force=False))

    assert on.args == ("--force", "/opt/dsInst")
    assert off.args == ("/opt/dsInst",)


def test_callable_flags_are_resolved_at_build_time() -> None:
    """Zero-argument callables are evaluated when the command is built."""
    ports = iter([1389, 2389])
    record = _record(ldap_port=lambda: next(ports))

    builder = CommandBuilder()
    first = builder.build("dsadm", "create", record)
    second = builder.build("dsadm", "create", record)

    assert first.args[1] == "1389"
    assert second.args[1] == "2389"


def test_import_operands_follow_flags(tmp_path: Path) -> None:
    """The LDIF file and suffix DN come last, in that order."""
    ldif = tmp_path / "Example.ldif"
    ldif.write_text("dn: dc=example,dc=com\n", encoding="utf-8")
    record = DesiredStateRecord.build(
        "dc=example,dc=com",
        flags={"ldif_file": str(ldif), "accept_cert": True, "incremental": True},
        credentials=[CredentialReference("admin_password", "pw")],
    )

    invocation = CommandBuilder().build(
        "dsconf", "import", record, {"admin_password": tmp_path / "pw"}
    )

    assert invocation.args == (
        "-c",
        "-K",
        "-w",
        str(tmp_path / "pw"),
        str(ldif),
        "dc=example,dc=com",
    )


def test_missing_ldif_file_fails_validation(tmp_path: Path) -> None:
    """Path operands must exist before the command is built."""
    record = _record("dc=example,dc=com", ldif_file=str(tmp_path / "missing.ldif"))

    with pytest.raises(ValidationError, match="does not exist"):
        CommandBuilder().build("dsconf", "import", record)


def test_missing_operand_fails_validation() -> None:
    """Operands are mandatory."""
    with pytest.raises(ValidationError, match="requires a value for 'ldif_file'"):
        CommandBuilder().build("dsconf", "import", _record("dc=example,dc=com"))


def test_str_quotes_arguments_with_spaces() -> None:
    """The log rendering is shell-quoted."""
    invocation = CommandBuilder().build(
        "dsadm", "create", _record(dn="cn=Directory Manager")
    )

    assert "'cn=Directory Manager'" in str(invocation)


def test_info_commands_accept_vendor_specific_exit_codes() -> None:
    """``dsadm info`` and ``dsccagent info`` tolerate their documented codes."""
    assert COMMANDS[("dsadm", "info")].acceptable == (0, 125, 154)
    assert COMMANDS[("dsccagent", "info")].acceptable == (0, 125)
    assert COMMANDS[("dsadm", "create")].acceptable == (0,)
