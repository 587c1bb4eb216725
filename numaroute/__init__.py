"""
numaroute — NIC → PCI → NUMA mapping and per-NIC static route reachability.

Not a route daemon — a one-shot host audit.
"""

__version__ = "0.1.0"

from .models import (
    NumaAffinity, NicTopology, TopologyMap,
    RouteEntry, RouteFile,
    ProbeOutcome, ProbeResult,
    InterfaceReport, ValidationReport, RunStatus,
)
from .topology import SysfsTopology, discover_topology
from .routes import extract_routes, parse_route_text
from .prober import Prober, PingProber
from .validator import NumaRouteValidator, ValidatorConfig
from .exceptions import NumaRouteError, InsufficientPrivilegeError, InterfaceEnumerationError
