"""Parsers for the semi-structured text printed by the DSEE tools.

``info`` subcommands print ``Key : value`` lines; ``dsccreg list-*`` prints a
whitespace-aligned table. Both are turned into plain dictionaries with
normalised keys (lower case, spaces and dashes replaced by underscores).
"""
from __future__ import annotations

import re
from collections.abc import Sequence

from .models import ParsedState

_KEY_SEPARATORS = re.compile(r"[\s\-]+")
_TABLE_NOISE = re.compile(
    r"^--|(instance|agent|server)\(s\)\s+(found|display)",
    re.IGNORECASE,
)


def normalize_key(key: str) -> str:
    """Return *key* lower-cased with whitespace and dashes collapsed to ``_``."""
    return _KEY_SEPARATORS.sub("_", key.strip()).lower()


def parse_info(text: str) -> ParsedState:
    """Parse ``Key: value`` lines; lines without a colon are ignored.

    Only the first colon separates key from value, so URLs and timestamps keep
    their own colons. Later duplicate keys win.
    """
    state: ParsedState = {}
    for line in text.splitlines():
        if ":" not in line:
            continue
        key, _, value = line.partition(":")
        normalized = normalize_key(key)
        if not normalized:
            continue
        state[normalized] = value.strip()
    return state


def parse_multivalue(text: str, key: str) -> list[str]:
    """Return every value listed under *key*, including continuation lines.

    ``dsconf info`` prints one suffix per line with only the first carrying
    the ``Suffixes :`` label::

        Suffixes        : dc=example,dc=com
                          o=example
        Total entries   : 12
    """
    wanted = normalize_key(key)
    values: list[str] = []
    collecting = False
    for line in text.splitlines():
        if ":" in line:
            label, _, value = line.partition(":")
            collecting = normalize_key(label) == wanted
            if collecting and value.strip():
                values.append(value.strip())
            continue
        if not line.strip():
            collecting = False
            continue
        if collecting:
            values.append(line.strip())
    return values


def zip_hash(keys: Sequence[str], values: Sequence[str]) -> dict[str, str | None]:
    """Pair *keys* with *values*; missing values become ``None``, extras are dropped."""
    return {key: (values[index] if index < len(values) else None) for index, key in enumerate(keys)}


def parse_table(text: str) -> list[dict[str, str | None]]:
    """Parse a ``dsccreg list-*`` table into one mapping per row.

    The first non-blank line is the header. Separator lines (``----``) and the
    ``N instance(s) found`` trailer are dropped. Columns are split on runs of
    whitespace, so a cell that itself contains spaces shifts the remaining
    cells of that row.
    """
    lines = [line for line in text.splitlines() if line.strip()]
    if not lines:
        return []
    header = [column.lower() for column in lines[0].split()]
    rows: list[dict[str, str | None]] = []
    for line in lines[1:]:
        if _TABLE_NOISE.search(line.strip()):
            continue
        rows.append(zip_hash(header, line.split()))
    return rows


__all__ = [
    "normalize_key",
    "parse_info",
    "parse_multivalue",
    "parse_table",
    "zip_hash",
]
