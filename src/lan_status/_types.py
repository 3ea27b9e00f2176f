"""
Type definitions for the LAN status monitor.

These dataclasses define the core domain model: machine records from the
inventory file, per-address probe results, and the immutable status
snapshots pushed to live clients.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Optional


def now_ms() -> int:
    """Get current wall-clock time as epoch milliseconds."""
    return int(time.time() * 1000)


class AddressRole(str, Enum):
    """Named address positions a machine record may provide."""
    IP = "ip"
    GATEWAY = "gateway"
    KIOSK_PC = "kiosk_pc"


class StatusColor(str, Enum):
    """Display color derived from a probe result."""
    GREEN = "green"    # <= 10ms
    ORANGE = "orange"  # <= 100ms
    RED = "red"        # > 100ms or unreachable


# Latency thresholds (milliseconds, inclusive upper bounds)
GREEN_MAX_MS = 10
ORANGE_MAX_MS = 100

# Persisted field order of a machine entry
RECORD_FIELDS = (
    "name",
    "ip",
    "gateway",
    "kiosk_pc",
    "uplink",
    "source_switch",
    "column",
    "bay",
    "section",
)


def status_color(latency_ms: float, reachable: bool) -> StatusColor:
    """Derive the display color for a single probe."""
    if not reachable:
        return StatusColor.RED
    if latency_ms <= GREEN_MAX_MS:
        return StatusColor.GREEN
    if latency_ms <= ORANGE_MAX_MS:
        return StatusColor.ORANGE
    return StatusColor.RED


def _as_text(value: Any) -> Optional[str]:
    """YAML turns `bay: 12` into an int; metadata is carried as text."""
    if value is None:
        return None
    if isinstance(value, bool):
        return str(value).lower()
    return str(value)


@dataclass(frozen=True)
class MachineRecord:
    """
    One inventory entry.

    `name` is a display key only; duplicates are legal and list order is
    the only disambiguator. Metadata fields are never interpreted.
    """
    name: str
    ip: Optional[str] = None
    gateway: Optional[str] = None
    kiosk_pc: Optional[str] = None

    # Descriptive metadata
    uplink: Optional[str] = None
    source_switch: Optional[str] = None
    column: Optional[str] = None
    bay: Optional[str] = None
    section: Optional[str] = None

    # Unknown keys found in the file, written back untouched
    extra: dict[str, Any] = field(default_factory=dict, hash=False)

    def address_for(self, role: AddressRole) -> Optional[str]:
        """Return the configured address for a role, or None if blank."""
        value = getattr(self, role.value)
        if value is None or not str(value).strip():
            return None
        return str(value).strip()

    @property
    def configured_roles(self) -> list[AddressRole]:
        return [role for role in AddressRole if self.address_for(role)]

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MachineRecord":
        """Build a record from a persisted mapping."""
        known = {
            key: _as_text(data.get(key))
            for key in RECORD_FIELDS
            if key != "name"
        }
        extra = {k: v for k, v in data.items() if k not in RECORD_FIELDS}
        return cls(name=_as_text(data.get("name")) or "", extra=extra, **known)

    def to_dict(self) -> dict[str, Any]:
        """Persisted form. Unset optional fields are omitted."""
        data: dict[str, Any] = {"name": self.name}
        for key in RECORD_FIELDS[1:]:
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        data.update(self.extra)
        return data


@dataclass(frozen=True)
class ProbeResult:
    """Reachability and latency of one address role of one machine."""
    address: str
    reachable: bool
    latency_ms: float = 0.0

    @property
    def status_color(self) -> StatusColor:
        return status_color(self.latency_ms, self.reachable)

    @classmethod
    def unreachable(cls, address: str) -> "ProbeResult":
        return cls(address=address, reachable=False, latency_ms=0.0)

    def to_dict(self) -> dict[str, Any]:
        return {
            "ip": self.address,
            "alive": self.reachable,
            "ping": self.latency_ms,
            "color": self.status_color.value,
        }


@dataclass(frozen=True)
class MachineStatus:
    """
    A machine record joined with its probe results.

    Roles without a configured address are absent from `results`, which
    is a read-only view once the status is built.
    """
    record: MachineRecord
    results: Mapping[AddressRole, ProbeResult] = field(default_factory=dict, hash=False)

    def __post_init__(self):
        object.__setattr__(self, "results", MappingProxyType(dict(self.results)))

    def to_dict(self) -> dict[str, Any]:
        data = self.record.to_dict()
        data["results"] = {
            role.value: result.to_dict()
            for role, result in self.results.items()
        }
        return data


@dataclass(frozen=True)
class StatusSnapshot:
    """Complete result of one broadcast cycle."""
    machines: tuple[MachineStatus, ...]
    ts: int = field(default_factory=now_ms)

    def to_dict(self) -> dict[str, Any]:
        return {
            "machines": [m.to_dict() for m in self.machines],
            "ts": self.ts,
        }
