"""
NUMA Route Validator — Core Data Models
Host-local. One pass. Nothing persisted.

The question for every NIC:
  Which PCI device backs it? → Which NUMA node is that device on? →
  Which static routes point out of it? → Are their destinations reachable through it?
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional


# ============================================================
# Topology — NIC → PCI → NUMA
# ============================================================

NUMA_UNAVAILABLE = "N/A"


@dataclass
class NumaAffinity:
    """NUMA node for a PCI device. node=None means the platform exposes none."""
    node: Optional[int] = None
    raw: str = ""                       # file content as read, stripped

    @property
    def available(self) -> bool:
        return self.node is not None

    def __str__(self) -> str:
        return str(self.node) if self.node is not None else NUMA_UNAVAILABLE


@dataclass
class NicTopology:
    """One non-loopback interface with a resolved backing device."""
    interface: str                      # e.g. "eth0"
    device_path: str                    # resolved /sys/devices/... path
    pci_id: str                         # last path component, e.g. "0000:81:00.0"
    numa: NumaAffinity = field(default_factory=NumaAffinity)


@dataclass
class TopologyMap:
    """
    Output of the discoverer, keyed by interface name.
    Exposes the two maps downstream stages use:
      interface → PCI id, PCI id → NUMA affinity.
    Interfaces that failed resolution are listed in `skipped` and nowhere else.
    """
    nics: dict[str, NicTopology] = field(default_factory=dict)
    skipped: list[str] = field(default_factory=list)

    @property
    def iface_to_pci(self) -> dict[str, str]:
        return {name: nic.pci_id for name, nic in self.nics.items()}

    @property
    def pci_to_numa(self) -> dict[str, NumaAffinity]:
        return {nic.pci_id: nic.numa for nic in self.nics.values()}

    def interfaces(self) -> list[str]:
        """Mapped interfaces, sorted for reproducible output."""
        return sorted(self.nics)


# ============================================================
# Routes — what the static config says lives behind each NIC
# ============================================================

@dataclass
class RouteEntry:
    """A single route line. Only the destination is used; the rest rides along."""
    interface: str
    destination: str                    # first token, unvalidated
    line: str = ""                      # the original line, stripped
    line_number: int = 0


@dataclass
class RouteFile:
    interface: str
    path: str
    exists: bool = False
    entries: list[RouteEntry] = field(default_factory=list)
    error: str = ""                     # set when the file exists but cannot be read

    @property
    def destinations(self) -> list[str]:
        return [e.destination for e in self.entries]


# ============================================================
# Probe — binary reachability through a specific NIC
# ============================================================

class ProbeOutcome(Enum):
    REACHABLE = "reachable"
    UNREACHABLE = "unreachable"


@dataclass
class ProbeResult:
    interface: str
    destination: str
    outcome: ProbeOutcome = ProbeOutcome.UNREACHABLE

    @property
    def ok(self) -> bool:
        return self.outcome is ProbeOutcome.REACHABLE

    def describe(self) -> str:
        if self.ok:
            return f"[OK] {self.destination} is reachable via {self.interface}"
        return f"[FAIL] {self.destination} is NOT reachable via {self.interface}"


# ============================================================
# Report — the full run
# ============================================================

class RunStatus(Enum):
    COMPLETE = "complete"
    ABORTED = "aborted"                 # precondition failed
    IN_PROGRESS = "in-progress"


@dataclass
class InterfaceReport:
    nic: NicTopology
    routes: Optional[RouteFile] = None
    probes: list[ProbeResult] = field(default_factory=list)


@dataclass
class ValidationReport:
    topology: TopologyMap = field(default_factory=TopologyMap)
    interfaces: dict[str, InterfaceReport] = field(default_factory=dict)
    status: RunStatus = RunStatus.IN_PROGRESS
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def probes(self) -> list[ProbeResult]:
        return [p for name in sorted(self.interfaces)
                for p in self.interfaces[name].probes]

    @property
    def ok_count(self) -> int:
        return sum(1 for p in self.probes if p.ok)

    @property
    def fail_count(self) -> int:
        return sum(1 for p in self.probes if not p.ok)

    @property
    def duration(self) -> Optional[timedelta]:
        if self.started_at and self.completed_at:
            return self.completed_at - self.started_at
        return None

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": (self.duration.total_seconds()
                                 if self.duration is not None else None),
            "skipped_interfaces": sorted(self.topology.skipped),
            "interfaces": [
                {
                    "interface": name,
                    "pci_id": r.nic.pci_id,
                    "numa_node": r.nic.numa.node,
                    "route_file": r.routes.path if r.routes else None,
                    "route_file_found": bool(r.routes and r.routes.exists),
                    "route_file_error": r.routes.error if r.routes else "",
                    "destinations": r.routes.destinations if r.routes else [],
                    "probes": [
                        {"destination": p.destination, "outcome": p.outcome.value}
                        for p in r.probes
                    ],
                }
                for name, r in sorted(self.interfaces.items())
            ],
            "summary": {
                "interfaces": len(self.interfaces),
                "probes": len(self.probes),
                "ok": self.ok_count,
                "fail": self.fail_count,
            },
        }
