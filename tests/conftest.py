# tests/conftest.py
import os
from collections import deque

import pytest

from numaroute.models import ProbeOutcome
from numaroute.prober import Prober, ProbeAttempt


class FakeSysfs:
    """Builds a minimal /sys tree: class/net links and pci numa_node files."""

    def __init__(self, root):
        self.root = root
        self.net = root / "class" / "net"
        self.pci = root / "bus" / "pci" / "devices"
        self.devices = root / "devices" / "pci0000:80"
        self.net.mkdir(parents=True)
        self.pci.mkdir(parents=True)
        self.devices.mkdir(parents=True)

    def add_virtual(self, name):
        (self.net / name).mkdir()

    def add_nic(self, name, pci_id, numa="0"):
        dev = self.devices / pci_id
        dev.mkdir(exist_ok=True)
        iface_dir = self.net / name
        iface_dir.mkdir()
        os.symlink(dev, iface_dir / "device")
        pci_dir = self.pci / pci_id
        pci_dir.mkdir(exist_ok=True)
        if numa is not None:
            (pci_dir / "numa_node").write_text(f"{numa}\n")
        return dev


class ScriptedProber(Prober):
    """
    script: dict[(interface, destination)] -> deque of ProbeOutcome.
    Unscripted pairs time out, like a real unanswered ping.
    """

    def __init__(self, script=None):
        self.calls = []
        self.script = {k: deque(v) for k, v in (script or {}).items()}

    def probe(self, interface, destination, timeout=2):
        self.calls.append((interface, destination, timeout))
        dq = self.script.get((interface, destination))
        outcome = dq.popleft() if dq else ProbeOutcome.UNREACHABLE
        return ProbeAttempt(
            outcome=outcome,
            command=f"ping -c 1 -W {timeout:g} -I {interface} -- {destination}",
            returncode=0 if outcome is ProbeOutcome.REACHABLE else 1,
            duration_ms=1.0,
        )


@pytest.fixture
def sysfs(tmp_path):
    fake = FakeSysfs(tmp_path / "sys")
    fake.add_virtual("lo")
    return fake


@pytest.fixture
def route_dir(tmp_path):
    d = tmp_path / "network-scripts"
    d.mkdir()
    return d


@pytest.fixture
def prober():
    return ScriptedProber()
