"""
Shared event types for validator ↔ TUI communication.

The validator emits ValidationEvents through a callback; the TUI consumes
them. Neither side imports the other — this is the only shared dependency.

Usage (validator side):
    from .events import ValidationEvent, EventVerdict
    callback(ValidationEvent(event="probe_done", interface="eth0", ...))

Usage (TUI side):
    from .events import ValidationEvent, EventVerdict, LogLevel
    for evt in event_stream:
        process(evt)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional


class EventVerdict(Enum):
    """Icons for tree display."""
    MAPPED = "mapped"
    NUMA_UNAVAILABLE = "numa_unavailable"
    SKIPPED = "skipped"
    NO_ROUTES = "no_routes"
    REACHABLE = "reachable"
    UNREACHABLE = "unreachable"


# Verdict → (color, icon) for the tree pane
VERDICT_STYLE: dict[EventVerdict, tuple[str, str]] = {
    EventVerdict.MAPPED:           ("#00ff88", "●"),
    EventVerdict.NUMA_UNAVAILABLE: ("#ffcc00", "◐"),
    EventVerdict.SKIPPED:          ("#888888", "○"),
    EventVerdict.NO_ROUTES:        ("#888888", "—"),
    EventVerdict.REACHABLE:        ("#00ff88", "✓"),
    EventVerdict.UNREACHABLE:      ("#ff4444", "✗"),
}


class LogLevel(Enum):
    BASIC = "basic"
    VERBOSE = "verbose"
    DEBUG = "debug"


@dataclass
class ValidationEvent:
    """
    One event from the validator to the TUI.

    Events:
        nic_mapped      — interface resolved to PCI id + NUMA node
        nic_skipped     — interface has no backing device
        routes_found    — route file parsed (may hold zero destinations)
        routes_missing  — no route file for this interface, or one that cannot be read
        probe_done      — one destination probed
        run_done        — all stages finished, final counts

    Log lines use Rich markup for coloring.
    """
    event: str

    interface: str = ""
    pci_id: str = ""
    numa_node: str = ""                 # rendered, "N/A" when unavailable
    route_file: str = ""
    destinations: list[str] = field(default_factory=list)
    error: str = ""                     # routes_missing: why an existing file gave nothing

    # probe_done only
    destination: str = ""
    verdict: Optional[EventVerdict] = None

    # Log lines at three verbosity levels (Rich markup)
    log_basic: list[str] = field(default_factory=list)
    log_verbose: list[str] = field(default_factory=list)
    log_debug: list[str] = field(default_factory=list)

    # run_done fields
    total_interfaces: int = 0
    total_probes: int = 0
    failed_probes: int = 0
    duration: float = 0.0
    status: str = ""                    # "complete", "aborted"


# Type alias for the event callback
EventCallback = Callable[[ValidationEvent], None]
