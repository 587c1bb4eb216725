"""
NUMA Route Validator — Reachability Probe

One ICMP echo, sourced from a specific NIC, bounded by a short timeout:

  ping -c 1 -W <timeout> -I <iface> -- <destination>

The destination always follows "--", so a token such as "-V" is an
address that fails, never a ping option.

Exit status 0 → REACHABLE. Anything else — non-zero exit, ping missing,
the subprocess hanging past its own deadline — is UNREACHABLE.
"No route", "host down", and "wrong interface" are not distinguished.
"""

from __future__ import annotations
import logging
import shlex
import subprocess
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from .models import ProbeOutcome

logger = logging.getLogger("numaroute.prober")

DEFAULT_TIMEOUT = 2
DEFAULT_PING = "ping"


@dataclass
class ProbeAttempt:
    """What actually ran. Feeds the diagnostic record, not the report."""
    outcome: ProbeOutcome
    command: str = ""
    returncode: Optional[int] = None
    duration_ms: Optional[float] = None
    error: str = ""


class Prober(ABC):
    @abstractmethod
    def probe(self, interface: str, destination: str,
              timeout: float = DEFAULT_TIMEOUT) -> ProbeAttempt:
        """Send exactly one probe from `interface` to `destination`."""
        raise NotImplementedError


class PingProber(Prober):
    """
    Wraps the system ping. Output is discarded; only the exit status counts.
    The subprocess gets a few seconds of slack beyond -W before it is killed.
    """

    def __init__(self, ping_binary: str = DEFAULT_PING, grace: float = 3.0):
        self.ping_binary = ping_binary
        self.grace = grace

    def build_cmd(self, interface: str, destination: str,
                  timeout: float = DEFAULT_TIMEOUT) -> list[str]:
        return [
            self.ping_binary,
            "-c", "1",
            "-W", f"{timeout:g}",
            "-I", interface,
            "--", destination,
        ]

    def probe(self, interface: str, destination: str,
              timeout: float = DEFAULT_TIMEOUT) -> ProbeAttempt:
        cmd = self.build_cmd(interface, destination, timeout)
        cmd_str = shlex.join(cmd)
        logger.debug(f"exec: {cmd_str}")

        start = time.monotonic()
        try:
            proc = subprocess.run(
                cmd,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                timeout=timeout + self.grace,
                check=False,
            )
        except subprocess.TimeoutExpired:
            elapsed = (time.monotonic() - start) * 1000
            logger.debug(f"{cmd_str}: killed after {elapsed:.0f}ms")
            return ProbeAttempt(
                outcome=ProbeOutcome.UNREACHABLE, command=cmd_str,
                duration_ms=elapsed, error="timeout",
            )
        except OSError as e:
            elapsed = (time.monotonic() - start) * 1000
            logger.error(f"Cannot run {self.ping_binary}: {e}")
            return ProbeAttempt(
                outcome=ProbeOutcome.UNREACHABLE, command=cmd_str,
                duration_ms=elapsed, error=f"{type(e).__name__}: {e}",
            )

        elapsed = (time.monotonic() - start) * 1000
        outcome = (ProbeOutcome.REACHABLE if proc.returncode == 0
                   else ProbeOutcome.UNREACHABLE)
        logger.debug(f"{cmd_str}: rc={proc.returncode} ({elapsed:.0f}ms)")
        return ProbeAttempt(
            outcome=outcome, command=cmd_str,
            returncode=proc.returncode, duration_ms=elapsed,
        )
