"""
NUMA Route Validator — Diagnostic Framework

Every sysfs read, every route file, every ping — traceable.
Three levels:
  1. Run report (always, stdout)
  2. Per-stage detail (--verbose, logger at INFO to stderr)
  3. Raw capture (--debug / --log, exact commands and return codes)

If an interface is missing from the summary, the record says why:
  - no device link (virtual NIC)?
  - no numa_node file?
  - route file present but every line a comment?
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional
import json
import logging


# ============================================================
# Structured Diagnostic Records
# ============================================================

class TopologyStatus(Enum):
    MAPPED = "mapped"               # device resolved, NUMA read
    NUMA_UNAVAILABLE = "numa-n/a"   # device resolved, no numa_node
    NO_DEVICE = "no-device"         # skipped: no backing device


@dataclass
class InterfaceRecord:
    """What the discoverer and extractor saw for one interface."""
    interface: str
    status: TopologyStatus = TopologyStatus.NO_DEVICE
    device_path: str = ""
    pci_id: str = ""
    numa_raw: str = ""
    route_file: str = ""
    route_file_found: bool = False
    route_file_error: str = ""
    destinations: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "interface": self.interface,
            "status": self.status.value,
            "device_path": self.device_path,
            "pci_id": self.pci_id,
            "numa_raw": self.numa_raw,
            "route_file": self.route_file,
            "route_file_found": self.route_file_found,
            "route_file_error": self.route_file_error,
            "destinations": self.destinations,
        }


@dataclass
class ProbeRecord:
    """Complete record of a single probe execution."""
    interface: str
    destination: str
    command: str = ""
    timestamp: datetime = field(default_factory=datetime.now)
    outcome: str = ""               # ProbeOutcome value
    returncode: Optional[int] = None
    duration_ms: Optional[float] = None
    error: str = ""

    def to_dict(self) -> dict:
        return {
            "interface": self.interface,
            "destination": self.destination,
            "command": self.command,
            "timestamp": self.timestamp.isoformat(),
            "outcome": self.outcome,
            "returncode": self.returncode,
            "duration_ms": self.duration_ms,
            "error": self.error,
        }


@dataclass
class RunDiagnostic:
    """Complete diagnostic record for one validation run."""
    sysfs_root: str
    route_dir: str
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    interfaces: dict[str, InterfaceRecord] = field(default_factory=dict)
    probes: list[ProbeRecord] = field(default_factory=list)

    def record_for(self, interface: str) -> InterfaceRecord:
        if interface not in self.interfaces:
            self.interfaces[interface] = InterfaceRecord(interface=interface)
        return self.interfaces[interface]

    def failed_probes(self) -> list[ProbeRecord]:
        return [p for p in self.probes if p.outcome != "reachable"]

    def to_dict(self) -> dict:
        return {
            "sysfs_root": self.sysfs_root,
            "route_dir": self.route_dir,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "summary": {
                "interfaces": len(self.interfaces),
                "skipped": sum(1 for r in self.interfaces.values()
                               if r.status == TopologyStatus.NO_DEVICE),
                "probes": len(self.probes),
                "failed_probes": len(self.failed_probes()),
            },
            "interfaces": [self.interfaces[k].to_dict()
                           for k in sorted(self.interfaces)],
            "probes": [p.to_dict() for p in self.probes],
        }

    def dump_json(self, path: str):
        """Write full diagnostic to JSON file."""
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2, default=str)


# ============================================================
# Logger Setup
# ============================================================
#
#   (default)       : nothing but the report on stdout
#   --verbose / -v  : stage-level info to stderr
#   --debug         : every command and sysfs read to stderr
#   --log FILE      : debug-level to file, regardless of the above
#

def setup_logging(
    log_file: Optional[str] = None,
    debug: bool = False,
    verbose: bool = False,
) -> logging.Logger:
    """
    Configure the "numaroute" logger tree.

    - log_file: write debug-level to file
    - debug: debug-level to stderr
    - verbose: info-level to stderr
    """
    logger = logging.getLogger("numaroute")
    logger.setLevel(logging.DEBUG)
    logger.handlers.clear()

    formatter = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    if log_file:
        fh = logging.FileHandler(log_file, mode="w")
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(formatter)
        logger.addHandler(fh)

    if debug or verbose:
        sh = logging.StreamHandler()
        sh.setLevel(logging.DEBUG if debug else logging.INFO)
        sh.setFormatter(formatter)
        logger.addHandler(sh)

    if not logger.handlers:
        logger.addHandler(logging.NullHandler())

    return logger


# ============================================================
# Diagnostic Dump Formats
# ============================================================

def dump_interface_detail(rec: InterfaceRecord) -> str:
    """Multi-line detail for --verbose or drill-down."""
    lines = [f"═══ {rec.interface} ({rec.status.value}) ═══"]
    if rec.device_path:
        lines.append(f"  device: {rec.device_path}")
    if rec.pci_id:
        lines.append(f"  pci:    {rec.pci_id}  numa_node={rec.numa_raw or '∅'}")
    if rec.route_file:
        found = "found" if rec.route_file_found else "absent"
        if rec.route_file_error:
            found = f"unreadable: {rec.route_file_error}"
        lines.append(f"  routes: {rec.route_file} ({found})")
    for dest in rec.destinations:
        lines.append(f"    → {dest}")
    return "\n".join(lines)


def dump_run_summary(diag: RunDiagnostic) -> str:
    """Per-probe summary — suitable for terminal or report output."""
    lines = [
        f"Run: sysfs={diag.sysfs_root} routes={diag.route_dir}",
        f"{'─' * 50}",
    ]
    for p in diag.probes:
        icon = "✓" if p.outcome == "reachable" else "✗"
        time_str = f" ({p.duration_ms:.0f}ms)" if p.duration_ms is not None else ""
        lines.append(f"  [{icon}] {p.interface:12s} {p.destination}{time_str}")
        if p.error:
            lines.append(f"      error: {p.error}")

    s = diag.to_dict()["summary"]
    lines.append(f"{'─' * 50}")
    lines.append(
        f"Interfaces: {s['interfaces']} | "
        f"Skipped: {s['skipped']} | "
        f"Probes: {s['probes']} | "
        f"Failed: {s['failed_probes']}"
    )
    return "\n".join(lines)
