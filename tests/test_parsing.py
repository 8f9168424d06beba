"""Tests for the vendor output parsers."""
from __future__ import annotations

from dseectl.parsing import normalize_key, parse_info, parse_multivalue, parse_table, zip_hash

DSADM_INFO = """\
Instance Path:         /opt/dsInst
Owner:                 root(root)
Non-secure port:       389
Secure port:           636
Bit format:            64-bit
State:                 Running
Server PID:            781
DSCC url:              https://dscc.example.com:6789/dscc
Instance version:      D-A30
"""

REGISTRY_TABLE = """\
Hostname           Port  Type   Owner  Flags  iPath                      Description
-----------------  ----  -----  -----  -----  -------------------------  -----------
ldap1.example.com  3997  agent  root   -      /opt/dsee7/var/dcc/agent   -
ldap2.example.com  3997  agent  root   -      /opt/other/dcc/agent       -

2 agent(s) found in DSCC registry database.
"""


def test_parse_info_normalises_keys() -> None:
    """Keys are lower-cased with spaces and dashes replaced by underscores."""
    state = parse_info(DSADM_INFO)

    assert state["instance_path"] == "/opt/dsInst"
    assert state["non_secure_port"] == "389"
    assert state["server_pid"] == "781"
    assert state["state"] == "Running"


def test_parse_info_splits_on_first_colon_only() -> None:
    """Values that contain colons (URLs) are preserved intact."""
    state = parse_info(DSADM_INFO)

    assert state["dscc_url"] == "https://dscc.example.com:6789/dscc"


def test_parse_info_ignores_lines_without_colon() -> None:
    """Banner and blank lines do not produce keys."""
    text = "Directory Server instance\n\nState: Stopped\n-- end --\n"

    assert parse_info(text) == {"state": "Stopped"}


def test_parse_info_round_trip_preserves_key_set() -> None:
    """Re-rendering parsed output keeps the normalised key set."""
    original = {"Instance Path": "/a", "Secure-port": "636", "Bit format": "64-bit"}
    text = "".join(f"{key}: {value}\n" for key, value in original.items())

    parsed = parse_info(text)
    rendered = "".join(f"{key}: {value}\n" for key, value in parsed.items())

    assert set(parse_info(rendered)) == {normalize_key(key) for key in original}
    assert parse_info(rendered) == parsed


def test_zip_hash_truncation_law() -> None:
    """Missing values map to None and extra values are dropped."""
    assert zip_hash(["a", "b", "c"], ["1", "2"]) == {"a": "1", "b": "2", "c": None}
    assert zip_hash(["a"], ["1", "2"]) == {"a": "1"}


def test_parse_table_uses_first_line_as_header() -> None:
    """Header columns are lower-cased and noise lines are dropped."""
    rows = parse_table(REGISTRY_TABLE)

    assert len(rows) == 2
    assert rows[0]["hostname"] == "ldap1.example.com"
    assert rows[0]["ipath"] == "/opt/dsee7/var/dcc/agent"
    assert rows[1]["ipath"] == "/opt/other/dcc/agent"
    assert set(rows[0]) == {"hostname", "port", "type", "owner", "flags", "ipath", "description"}


def test_parse_table_empty_listing() -> None:
    """A listing with only a header and trailer yields no rows."""
    text = "Hostname  Port  iPath\n--------  ----  -----\n\n0 instance(s) found in DSCC registry.\n"

    assert parse_table(text) == []
    assert parse_table("") == []


def test_parse_table_whitespace_in_cells_shifts_columns() -> None:
    """Cells containing spaces misalign the remaining columns of that row."""
    text = "Hostname  Description  iPath\nhost1  my agent  /opt/a\n"

    row = parse_table(text)[0]

    assert row["description"] == "my"
    assert row["ipath"] == "agent"


def test_parse_multivalue_collects_continuation_lines() -> None:
    """Indented lines after a labelled value belong to that label."""
    text = (
        "Instance path   : /opt/dsInst\n"
        "Suffixes        : dc=example,dc=com\n"
        "                  o=example\n"
        "Total entries   : 12\n"
    )

    assert parse_multivalue(text, "Suffixes") == ["dc=example,dc=com", "o=example"]
    assert parse_multivalue(text, "missing") == []
