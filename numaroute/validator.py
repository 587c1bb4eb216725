"""
NUMA Route Validator — three linear stages, one pass, no retries.

  1. Topology   /sys/class/net/<nic>/device → PCI id → numa_node
  2. Routes     /etc/sysconfig/network-scripts/route-<nic> → destinations
  3. Probes     ping -c 1 -W 2 -I <nic> -- <destination> → [OK] / [FAIL]

Data only flows forward. Each stage takes the previous stage's output as an
argument; nothing is shared through module state.

Failure tiers:
  - Fatal: not root, or /sys/class/net unreadable → [ERROR] on stderr, exit 1,
    before anything else is printed for that stage.
  - Per item: no device, no NUMA file, no route file, failed probe → one
    report line each, run continues, exit 0.

Order: every interface map is walked in sorted order so two runs on the same
host print the same report.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, TextIO
import logging
import os
import sys

from rich.markup import escape

from .models import (
    TopologyMap, RouteFile, ProbeResult, ProbeOutcome,
    InterfaceReport, ValidationReport, RunStatus, NicTopology,
)
from .topology import SysfsTopology, discover_topology, LOOPBACK
from .routes import extract_routes, DEFAULT_ROUTE_DIR, DEFAULT_ROUTE_PREFIX
from .prober import Prober, PingProber, DEFAULT_TIMEOUT, DEFAULT_PING
from .diagnostics import (
    RunDiagnostic, ProbeRecord, TopologyStatus,
    setup_logging, dump_interface_detail, dump_run_summary,
)
from .exceptions import (
    ExitCode, NumaRouteError, InsufficientPrivilegeError,
)
from .events import ValidationEvent, EventVerdict, EventCallback

logger = logging.getLogger("numaroute")


# ============================================================
# Validator Configuration
# ============================================================

@dataclass
class ValidatorConfig:
    # Host layout
    sysfs_root: str = "/sys"
    route_dir: str = DEFAULT_ROUTE_DIR
    route_prefix: str = DEFAULT_ROUTE_PREFIX
    skip_interfaces: tuple[str, ...] = (LOOPBACK,)

    # Probe behavior — one attempt, no retry
    probe_timeout: float = DEFAULT_TIMEOUT
    ping_binary: str = DEFAULT_PING

    # Preconditions
    require_root: bool = True

    # Diagnostics
    log_file: Optional[str] = None
    dump_file: Optional[str] = None
    verbose: bool = False
    debug: bool = False
    json_output: bool = False

    # TUI event callback — if set, validator emits ValidationEvent at each stage
    event_callback: Optional[EventCallback] = None


def check_privileges() -> None:
    """Raise unless running with effective uid 0."""
    euid = os.geteuid()
    if euid != 0:
        raise InsufficientPrivilegeError(euid)


# ============================================================
# Validator
# ============================================================

class NumaRouteValidator:
    """
    Usage:
        validator = NumaRouteValidator(ValidatorConfig())
        report = validator.run()

        # report.topology.iface_to_pci → {"eth0": "0000:81:00.0"}
        # report.fail_count            → probes that did not answer
        # validator.diagnostics.dump_json("/tmp/numaroute.json")

    `source` and `prober` default to the real sysfs and ping; tests pass
    stand-ins.
    """

    def __init__(
        self,
        config: ValidatorConfig,
        source: Optional[SysfsTopology] = None,
        prober: Optional[Prober] = None,
        out: Optional[TextIO] = None,
    ):
        self.config = config
        self.source = source or SysfsTopology(root=config.sysfs_root)
        self.prober = prober or PingProber(ping_binary=config.ping_binary)
        self._out = out

        self._report: Optional[ValidationReport] = None
        self._diagnostics: Optional[RunDiagnostic] = None

    @property
    def report(self) -> Optional[ValidationReport]:
        return self._report

    @property
    def diagnostics(self) -> Optional[RunDiagnostic]:
        return self._diagnostics

    # ────────────────────────────────────────────
    # Report Output
    # ────────────────────────────────────────────

    def _say(self, msg: str = "") -> None:
        """
        The human-readable report. Not gated by logging config. Resolved
        per call so pytest's capsys sees it.
        """
        out = self._out or (sys.stderr if self.config.json_output else sys.stdout)
        print(msg, file=out, flush=True)

    # ────────────────────────────────────────────
    # TUI Event Emission
    # ────────────────────────────────────────────

    def _emit(self, event: ValidationEvent) -> None:
        """Send an event to the TUI callback, if registered."""
        cb = self.config.event_callback
        if cb is not None:
            try:
                cb(event)
            except Exception as e:
                logger.debug(f"Event callback error: {e}")

    # ────────────────────────────────────────────
    # Run
    # ────────────────────────────────────────────

    def run(self) -> ValidationReport:
        """Execute all three stages. Raises NumaRouteError on unmet preconditions."""
        setup_logging(
            log_file=self.config.log_file,
            debug=self.config.debug,
            verbose=self.config.verbose,
        )

        started_at = datetime.now()
        self._report = ValidationReport(started_at=started_at)
        self._diagnostics = RunDiagnostic(
            sysfs_root=self.config.sysfs_root,
            route_dir=self.config.route_dir,
            started_at=started_at,
        )

        try:
            if self.config.require_root:
                check_privileges()
            topology = self.discover()
        except NumaRouteError as e:
            self._report.status = RunStatus.ABORTED
            self._report.completed_at = datetime.now()
            logger.error(e.message)
            self._emit(ValidationEvent(
                event="run_done", status=RunStatus.ABORTED.value,
                log_basic=[f"[#ff4444]{e.message}[/]"],
            ))
            raise

        route_files = self.extract(topology)
        self.verify(route_files)

        completed_at = datetime.now()
        self._report.status = RunStatus.COMPLETE
        self._report.completed_at = completed_at
        self._diagnostics.completed_at = completed_at

        r = self._report
        self._say(f"Summary: {len(r.interfaces)} interface(s), "
                  f"{len(r.probes)} destination(s), "
                  f"{r.ok_count} OK, {r.fail_count} FAIL "
                  f"({r.duration.total_seconds():.1f}s)")
        self._say("Validation complete.")

        if self.config.verbose or self.config.debug:
            for name in sorted(self._diagnostics.interfaces):
                logger.info(dump_interface_detail(self._diagnostics.interfaces[name]))
            logger.info(dump_run_summary(self._diagnostics))

        if self.config.dump_file:
            try:
                self._diagnostics.dump_json(self.config.dump_file)
                logger.info(f"Diagnostics written to {self.config.dump_file}")
            except OSError as e:
                logger.error(f"Cannot write {self.config.dump_file}: {e}")

        elapsed = self._report.duration.total_seconds()
        self._emit(ValidationEvent(
            event="run_done",
            status=RunStatus.COMPLETE.value,
            total_interfaces=len(self._report.interfaces),
            total_probes=len(self._report.probes),
            failed_probes=self._report.fail_count,
            duration=elapsed,
            log_basic=[
                "", "[#00ff88]━━━ Validation complete ━━━[/]",
                f"  {len(self._report.interfaces)} NICs │ "
                f"[#00ff88]{self._report.ok_count} OK[/] │ "
                f"[#ff4444]{self._report.fail_count} FAIL[/] │ {elapsed:.1f}s",
            ],
        ))
        return self._report

    # ────────────────────────────────────────────
    # Stage 1 — Topology
    # ────────────────────────────────────────────

    def discover(self) -> TopologyMap:
        self._say("Gathering NIC and PCI/NUMA information...")
        logger.info(f"Discovering topology under {self.config.sysfs_root}")

        topology = discover_topology(
            self.source,
            skip=self.config.skip_interfaces,
            on_skip=self._on_skip,
        )
        self._report.topology = topology

        self._say("NIC -> PCI -> NUMA Summary:")
        for name in topology.interfaces():
            nic = topology.nics[name]
            self._report.interfaces[name] = InterfaceReport(nic=nic)

            rec = self._diagnostics.record_for(name)
            rec.status = (TopologyStatus.MAPPED if nic.numa.available
                          else TopologyStatus.NUMA_UNAVAILABLE)
            rec.device_path = nic.device_path
            rec.pci_id = nic.pci_id
            rec.numa_raw = nic.numa.raw

            self._say(f"  * Interface: {name}")
            self._say(f"       PCI ID: {nic.pci_id}")
            self._say(f"    NUMA Node: {nic.numa}")
            self._emit_mapped(nic)
        self._say()
        return topology

    def _on_skip(self, interface: str) -> None:
        self._diagnostics.record_for(interface).status = TopologyStatus.NO_DEVICE
        self._say(f"Could not get PCI path for interface {interface}, skipping...")
        self._emit(ValidationEvent(
            event="nic_skipped", interface=interface,
            log_basic=[f"[#888888]{interface}: no PCI device, skipped[/]"],
        ))

    def _emit_mapped(self, nic: NicTopology) -> None:
        verdict = "mapped" if nic.numa.available else "NUMA N/A"
        self._emit(ValidationEvent(
            event="nic_mapped", interface=nic.interface,
            pci_id=nic.pci_id, numa_node=str(nic.numa),
            log_basic=[f"[#00d4ff]{nic.interface}[/] → {nic.pci_id} → "
                       f"NUMA [bold]{nic.numa}[/]"],
            log_verbose=[
                f"[#00d4ff]{nic.interface}[/] → {nic.pci_id} → "
                f"NUMA [bold]{nic.numa}[/]",
                f"  [#888888]{verdict}[/]",
            ],
            log_debug=[
                f"[#00d4ff]{nic.interface}[/] → {nic.pci_id} → "
                f"NUMA [bold]{nic.numa}[/]",
                f"  [#444444]device: {nic.device_path}[/]",
                f"  [#444444]numa_node raw: {nic.numa.raw or '∅'}[/]",
            ],
        ))

    # ────────────────────────────────────────────
    # Stage 2 — Routes
    # ────────────────────────────────────────────

    def extract(self, topology: TopologyMap) -> dict[str, RouteFile]:
        self._say("Checking static route files for each interface...")
        route_files: dict[str, RouteFile] = {}

        for name in topology.interfaces():
            rf = extract_routes(name, self.config.route_dir, self.config.route_prefix)
            route_files[name] = rf
            self._report.interfaces[name].routes = rf

            rec = self._diagnostics.record_for(name)
            rec.route_file = rf.path
            rec.route_file_found = rf.exists
            rec.route_file_error = rf.error
            rec.destinations = rf.destinations

            if rf.error:
                self._say(f"  Cannot read route file {rf.path} for NIC {name}: "
                          f"{rf.error}")
                self._emit(ValidationEvent(
                    event="routes_missing", interface=name, route_file=rf.path,
                    error=rf.error,
                    log_basic=[f"  [#ff4444]{name}: cannot read {escape(rf.path)}: "
                               f"{escape(rf.error)}[/]"],
                ))
            elif rf.exists:
                self._say(f"  Found route file {rf.path} for NIC {name}")
                self._emit(ValidationEvent(
                    event="routes_found", interface=name, route_file=rf.path,
                    destinations=rf.destinations,
                    log_basic=[f"  {name}: {len(rf.entries)} route(s) in {rf.path}"],
                    log_verbose=[f"  {name}: {len(rf.entries)} route(s) in {rf.path}"]
                    + [f"    [#888888]{e.line_number}: {escape(e.line)}[/]" for e in rf.entries],
                ))
            else:
                self._say(f"  No route file for {name}, "
                          f"skipping route checks for this interface.")
                self._emit(ValidationEvent(
                    event="routes_missing", interface=name, route_file=rf.path,
                    log_basic=[f"  [#888888]{name}: no route file[/]"],
                ))
        self._say()
        return route_files

    # ────────────────────────────────────────────
    # Stage 3 — Probes
    # ────────────────────────────────────────────

    def verify(self, route_files: dict[str, RouteFile]) -> list[ProbeResult]:
        self._say("Validating route reachability...")
        results: list[ProbeResult] = []

        for name in sorted(route_files):
            destinations = route_files[name].destinations
            if not destinations:
                continue

            self._say(f"Interface: {name}")
            for dest in destinations:
                self._say(f"  Testing reachability to {dest} via {name}...")
                result = self._probe_one(name, dest)
                self._report.interfaces[name].probes.append(result)
                results.append(result)
                self._say(f"    {result.describe()}")
            self._say()
        return results

    def _probe_one(self, interface: str, destination: str) -> ProbeResult:
        try:
            attempt = self.prober.probe(interface, destination,
                                        timeout=self.config.probe_timeout)
            outcome, command = attempt.outcome, attempt.command
            returncode, duration_ms, error = (
                attempt.returncode, attempt.duration_ms, attempt.error)
        except Exception as e:
            # A broken prober is still just an unanswered probe for this pair.
            logger.error(f"Probe {interface} → {destination} raised: {e}")
            outcome, command = ProbeOutcome.UNREACHABLE, ""
            returncode, duration_ms, error = None, None, f"{type(e).__name__}: {e}"

        self._diagnostics.probes.append(ProbeRecord(
            interface=interface, destination=destination, command=command,
            outcome=outcome.value, returncode=returncode,
            duration_ms=duration_ms, error=error,
        ))

        result = ProbeResult(interface=interface, destination=destination,
                             outcome=outcome)
        ok = result.ok
        color = "#00ff88" if ok else "#ff4444"
        self._emit(ValidationEvent(
            event="probe_done", interface=interface, destination=destination,
            verdict=EventVerdict.REACHABLE if ok else EventVerdict.UNREACHABLE,
            log_basic=[f"    [{color}]{escape(result.describe())}[/]"],
            log_debug=[
                f"    [{color}]{escape(result.describe())}[/]",
                f"      [#444444]{escape(command) or '(no command)'} rc={returncode}"
                + (f" {duration_ms:.0f}ms" if duration_ms is not None else "")
                + (f" {escape(error)}" if error else "") + "[/]",
            ],
        ))
        return result


# ============================================================
# CLI Entry Point
# ============================================================

def build_argparser():
    import argparse

    parser = argparse.ArgumentParser(
        prog="numaroute",
        description=(
            "Map each NIC to its PCI device and NUMA node, then check that "
            "every static route in route-<nic> is reachable through that NIC."
        ),
        epilog=(
            "Examples:\n"
            "  sudo numaroute\n"
            "  sudo numaroute -v --log /tmp/numaroute.log\n"
            "  sudo numaroute --json --dump /tmp/numaroute.json\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument("--route-dir", default=DEFAULT_ROUTE_DIR,
                        help=f"Route file directory (default: {DEFAULT_ROUTE_DIR})")
    parser.add_argument("--sysfs-root", default="/sys",
                        help="sysfs mount point (default: /sys)")
    parser.add_argument("--timeout", type=float, default=DEFAULT_TIMEOUT,
                        help="Per-probe timeout in seconds (default: 2)")
    parser.add_argument("--ping", default=DEFAULT_PING,
                        help="ping binary to use (default: ping)")
    parser.add_argument("--no-root-check", action="store_true",
                        help="Skip the effective-uid check")

    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Per-interface detail to stderr")
    parser.add_argument("--debug", action="store_true")
    parser.add_argument("--log", default=None,
                        help="Write debug log to file")
    parser.add_argument("--dump", default=None,
                        help="Write full diagnostic JSON to file")
    parser.add_argument("--json", action="store_true",
                        help="Output report as JSON (text report goes to stderr)")
    return parser


def config_from_args(args) -> ValidatorConfig:
    return ValidatorConfig(
        sysfs_root=args.sysfs_root,
        route_dir=args.route_dir,
        probe_timeout=args.timeout,
        ping_binary=args.ping,
        require_root=not args.no_root_check,
        log_file=args.log,
        dump_file=args.dump,
        verbose=args.verbose,
        debug=args.debug,
        json_output=args.json,
    )


def main(argv: Optional[list[str]] = None) -> int:
    """
    numaroute [--route-dir DIR] [--timeout S] [-v] [--log FILE] [--json]

    Exit 0 once every item is processed, however many probes failed.
    Exit 1 on an unmet precondition.
    """
    import json as json_mod

    parser = build_argparser()
    args = parser.parse_args(argv)
    if args.timeout <= 0:
        parser.error(f"--timeout must be positive, got {args.timeout}")

    config = config_from_args(args)
    validator = NumaRouteValidator(config)

    try:
        report = validator.run()
    except NumaRouteError as e:
        print(e.format_error(), file=sys.stderr)
        return int(e.exit_code)
    except KeyboardInterrupt:
        print("\n[ERROR] Interrupted.", file=sys.stderr)
        return int(ExitCode.INTERRUPTED)

    if args.json:
        print(json_mod.dumps(report.to_dict(), indent=2, default=str))

    return int(ExitCode.SUCCESS)


if __name__ == "__main__":
    sys.exit(main())
