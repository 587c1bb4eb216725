"""
NUMA Route Validator — Topology Discovery

NIC → PCI device → NUMA node, read straight from sysfs:

  /sys/class/net/<iface>/device            symlink to the backing device
  /sys/bus/pci/devices/<pci-id>/numa_node  integer, -1 if the platform has none

Three small lookups, each behind a method on SysfsTopology so a test (or a
netlink-based source) can stand in for the real filesystem:

  list_interfaces()            → [name, ...]      raises if sysfs is unusable
  resolve_device_path(iface)   → path | None
  read_numa_affinity(pci_id)   → NumaAffinity     node=None when absent

discover_topology() never raises for a single interface. A NIC without a
backing device is reported via the `on_skip` callback and left out of every map.
"""

from __future__ import annotations
import logging
import os
from typing import Callable, Iterable, Optional

from .exceptions import InterfaceEnumerationError
from .models import NicTopology, NumaAffinity, TopologyMap

logger = logging.getLogger("numaroute.topology")

LOOPBACK = "lo"

SkipCallback = Callable[[str], None]


class SysfsTopology:
    """Read-only view of the kernel's device tree rooted at `root` (normally /sys)."""

    def __init__(self, root: str = "/sys"):
        self.root = root

    @property
    def net_class_dir(self) -> str:
        return os.path.join(self.root, "class", "net")

    def pci_device_dir(self, pci_id: str) -> str:
        return os.path.join(self.root, "bus", "pci", "devices", pci_id)

    def list_interfaces(self) -> list[str]:
        """All interfaces the kernel knows about, loopback included."""
        try:
            return sorted(os.listdir(self.net_class_dir))
        except OSError as e:
            raise InterfaceEnumerationError(self.net_class_dir, e) from e

    def resolve_device_path(self, interface: str) -> Optional[str]:
        """
        Fully resolve /sys/class/net/<iface>/device. Virtual interfaces
        (bridges, bonds, veth, tun) have no such link and resolve to None.
        """
        link = os.path.join(self.net_class_dir, interface, "device")
        if not os.path.lexists(link):
            logger.debug(f"{interface}: no device link at {link}")
            return None
        try:
            path = os.path.realpath(link)
        except OSError as e:
            logger.debug(f"{interface}: realpath({link}) failed: {e}")
            return None
        return path or None

    def read_numa_affinity(self, pci_id: str) -> NumaAffinity:
        numa_file = os.path.join(self.pci_device_dir(pci_id), "numa_node")
        if not os.path.isfile(numa_file):
            logger.debug(f"{pci_id}: no numa_node file at {numa_file}")
            return NumaAffinity()
        try:
            with open(numa_file, "r") as f:
                raw = f.read().strip()
        except OSError as e:
            logger.warning(f"{pci_id}: cannot read {numa_file}: {e}")
            return NumaAffinity()
        return parse_numa_node(raw)


def parse_numa_node(raw: str) -> NumaAffinity:
    """Kernel writes a signed decimal; anything else is treated as unavailable."""
    text = (raw or "").strip()
    try:
        return NumaAffinity(node=int(text), raw=text)
    except ValueError:
        logger.debug(f"Unparseable numa_node content: {text!r}")
        return NumaAffinity(raw=text)


def pci_id_from_path(device_path: str) -> str:
    """'/sys/devices/pci0000:80/0000:80:01.0/0000:81:00.0' → '0000:81:00.0'"""
    return os.path.basename(device_path.rstrip("/"))


def discover_topology(
    source: SysfsTopology,
    skip: Iterable[str] = (LOOPBACK,),
    on_skip: Optional[SkipCallback] = None,
) -> TopologyMap:
    """
    Walk every interface once. Loopback (and anything else in `skip`) is
    ignored silently; interfaces without a device are skipped with a notice.
    """
    excluded = set(skip)
    topo = TopologyMap()

    for iface in source.list_interfaces():
        if iface in excluded:
            continue

        device_path = source.resolve_device_path(iface)
        if not device_path:
            topo.skipped.append(iface)
            logger.info(f"{iface}: no PCI device path, skipped")
            if on_skip is not None:
                on_skip(iface)
            continue

        pci_id = pci_id_from_path(device_path)
        numa = source.read_numa_affinity(pci_id)
        topo.nics[iface] = NicTopology(
            interface=iface,
            device_path=device_path,
            pci_id=pci_id,
            numa=numa,
        )
        logger.debug(f"{iface}: {device_path} → pci {pci_id} → numa {numa}")

    return topo
