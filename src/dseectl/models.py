"""Value types exchanged between the reconcilers and their callers."""
from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any

ParsedState = dict[str, str]


class ProbeUnknown(Enum):
    """Sentinel for probes whose answer could not be determined."""

    UNKNOWN = "Unknown"

    def __str__(self) -> str:
        """Render as the vendor-style ``Unknown`` label."""
        return self.value


UNKNOWN = ProbeUnknown.UNKNOWN


@dataclass(frozen=True)
class CredentialReference:
    """A named secret (admin, agent or certificate password)."""

    name: str
    value: str = field(repr=False)

    def __post_init__(self) -> None:
        """Reject anonymous credentials."""
        if not self.name.strip():
            raise ValueError("Credential name must be a non-empty string.")


@dataclass(frozen=True)
class DesiredStateRecord:
    """Caller-supplied intent for one reconciliation call.

    ``flags`` values may be zero-argument callables; they are resolved each
    time :meth:`flag` is consulted so defaults can depend on late state.
    """

    identity: str
    flags: Mapping[str, object] = field(default_factory=dict)
    credentials: Mapping[str, CredentialReference] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Freeze the mappings so the record stays immutable.

        Credentials must be keyed by their own name; secret paths are looked up
        that way when commands are rendered.
        """
        for key, ref in self.credentials.items():
            if key != ref.name:
                raise ValueError(
                    f"Credential '{ref.name}' is filed under mismatched key '{key}'."
                )
        object.__setattr__(self, "flags", MappingProxyType(dict(self.flags)))
        object.__setattr__(self, "credentials", MappingProxyType(dict(self.credentials)))

    @classmethod
    def build(
        cls,
        identity: str,
        *,
        flags: Mapping[str, object] | None = None,
        credentials: Iterable[CredentialReference] = (),
    ) -> DesiredStateRecord:
        """Return a record keyed by each credential's name."""
        return cls(
            identity=identity,
            flags=dict(flags or {}),
            credentials={ref.name: ref for ref in credentials},
        )

    def flag(self, name: str) -> Any:
        """Return the resolved value of flag *name* (``None`` when absent)."""
        value = self.flags.get(name)
        if callable(value):
            value = value()
        return value

    def credential(self, name: str) -> CredentialReference | None:
        """Return the credential called *name*, if supplied."""
        return self.credentials.get(name)


@dataclass(frozen=True)
class RegistryEntry:
    """One row of a ``dsccreg list-*`` listing."""

    ipath: str | None
    fields: Mapping[str, str | None] = field(default_factory=dict)

    @classmethod
    def from_row(cls, row: Mapping[str, str | None]) -> RegistryEntry:
        """Split the ``ipath`` column from the remaining columns."""
        others = {key: value for key, value in row.items() if key != "ipath"}
        return cls(ipath=row.get("ipath"), fields=others)


@dataclass(frozen=True)
class ReconcileResult:
    """Outcome of one reconciler action."""

    action: str
    identity: str
    changed: bool
    message: str
    planned: bool = False
    state: Mapping[str, str] | None = None

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "action": self.action,
            "identity": self.identity,
            "changed": self.changed,
            "planned": self.planned,
            "message": self.message,
            "state": dict(self.state) if self.state is not None else None,
        }


__all__ = [
    "CredentialReference",
    "DesiredStateRecord",
    "ParsedState",
    "ProbeUnknown",
    "ReconcileResult",
    "RegistryEntry",
    "UNKNOWN",
]
