"""
NUMA Route Validator — Static Route Files

RHEL-style per-interface route files:

  /etc/sysconfig/network-scripts/route-<iface>

Accepted line shapes (only the first token is used):

  192.168.10.0/24 via 192.168.10.1 dev eth0
  192.168.20.0/24 via 192.168.20.1
  10.1.2.0/24 10.1.2.1

Blank lines and '#' comments are skipped. The destination is NOT validated;
a malformed token is passed through and will simply fail its probe.
The key=value form (ADDRESS0=, NETMASK0=, GATEWAY0=) is not interpreted —
its first token is passed through like any other line.
"""

from __future__ import annotations
import logging
import os
from typing import Optional

from .models import RouteEntry, RouteFile

logger = logging.getLogger("numaroute.routes")

DEFAULT_ROUTE_DIR = "/etc/sysconfig/network-scripts"
DEFAULT_ROUTE_PREFIX = "route"


def route_file_path(interface: str,
                    route_dir: str = DEFAULT_ROUTE_DIR,
                    prefix: str = DEFAULT_ROUTE_PREFIX) -> str:
    return os.path.join(route_dir, f"{prefix}-{interface}")


def parse_route_line(line: str) -> Optional[str]:
    """Destination token for one line, or None for blank/comment lines."""
    stripped = line.strip()
    if not stripped or stripped.startswith("#"):
        return None
    return stripped.split()[0]


def parse_route_text(interface: str, text: str) -> list[RouteEntry]:
    """Parse route file content. Order of lines is preserved."""
    entries: list[RouteEntry] = []
    for lineno, line in enumerate(text.splitlines(), start=1):
        dest = parse_route_line(line)
        if dest is None:
            continue
        entries.append(RouteEntry(
            interface=interface,
            destination=dest,
            line=line.strip(),
            line_number=lineno,
        ))
    return entries


def extract_routes(interface: str,
                   route_dir: str = DEFAULT_ROUTE_DIR,
                   prefix: str = DEFAULT_ROUTE_PREFIX) -> RouteFile:
    """
    Locate and parse the route file for one interface.
    A missing file is a normal outcome: exists=False, no entries.
    An unreadable file keeps exists=True, no entries, and the OSError in `error`.
    """
    path = route_file_path(interface, route_dir, prefix)
    route_file = RouteFile(interface=interface, path=path)

    if not os.path.isfile(path):
        logger.debug(f"{interface}: no route file at {path}")
        return route_file

    route_file.exists = True
    try:
        with open(path, "r", errors="replace") as f:
            text = f.read()
    except OSError as e:
        logger.warning(f"{interface}: cannot read {path}: {e}")
        route_file.error = f"{type(e).__name__}: {e}"
        return route_file

    route_file.entries = parse_route_text(interface, text)
    logger.debug(
        f"{interface}: {len(route_file.entries)} destination(s) from {path}"
    )
    return route_file
