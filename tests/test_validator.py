# tests/test_validator.py
import json

import pytest

from numaroute.exceptions import InsufficientPrivilegeError
from numaroute.models import ProbeOutcome, RunStatus
from numaroute.validator import NumaRouteValidator, ValidatorConfig, main

from conftest import ScriptedProber


def _validator(sysfs, route_dir, prober, **kwargs):
    config = ValidatorConfig(
        sysfs_root=str(sysfs.root),
        route_dir=str(route_dir),
        require_root=False,
        **kwargs,
    )
    return NumaRouteValidator(config, prober=prober)


def test_end_to_end_timeout_reports_fail_and_completes(sysfs, route_dir, prober, capsys):
    """eth0 on 0000:81:00.0 / NUMA 0, one route whose probe times out."""
    sysfs.add_nic("eth0", "0000:81:00.0", numa="0")
    (route_dir / "route-eth0").write_text(
        "192.168.10.0/24 via 192.168.10.1 dev eth0\n"
    )

    report = _validator(sysfs, route_dir, prober).run()
    out = capsys.readouterr().out

    assert "  * Interface: eth0" in out
    assert "       PCI ID: 0000:81:00.0" in out
    assert "    NUMA Node: 0" in out
    assert f"  Found route file {route_dir}/route-eth0 for NIC eth0" in out
    assert "  Testing reachability to 192.168.10.0/24 via eth0..." in out
    assert "[FAIL] 192.168.10.0/24 is NOT reachable via eth0" in out
    assert "[OK]" not in out
    assert out.rstrip().endswith("Validation complete.")

    assert report.status is RunStatus.COMPLETE
    assert report.interfaces["eth0"].routes.destinations == ["192.168.10.0/24"]
    assert prober.calls == [("eth0", "192.168.10.0/24", 2)]


def test_reachable_destination_reports_ok(sysfs, route_dir, capsys):
    sysfs.add_nic("eth0", "0000:81:00.0")
    (route_dir / "route-eth0").write_text("10.0.0.0/8 via 10.0.0.1 dev eth0\n")
    prober = ScriptedProber({("eth0", "10.0.0.0/8"): [ProbeOutcome.REACHABLE]})

    report = _validator(sysfs, route_dir, prober).run()
    out = capsys.readouterr().out

    assert "    [OK] 10.0.0.0/8 is reachable via eth0" in out
    assert report.ok_count == 1 and report.fail_count == 0


def test_no_route_file_means_no_probes(sysfs, route_dir, prober, capsys):
    sysfs.add_nic("eth0", "0000:81:00.0")

    _validator(sysfs, route_dir, prober).run()
    out = capsys.readouterr().out

    assert "  No route file for eth0, skipping route checks for this interface." in out
    assert "Interface: eth0" not in out.splitlines()
    assert prober.calls == []


def test_comment_only_route_file_means_no_probe_section(sysfs, route_dir, prober, capsys):
    sysfs.add_nic("eth0", "0000:81:00.0")
    (route_dir / "route-eth0").write_text("# nothing yet\n\n")

    _validator(sysfs, route_dir, prober).run()
    out = capsys.readouterr().out

    assert "Found route file" in out
    assert "Interface: eth0" not in out.splitlines()
    assert prober.calls == []


def test_skipped_interface_is_announced_and_never_probed(sysfs, route_dir, prober, capsys):
    sysfs.add_virtual("br0")
    (route_dir / "route-br0").write_text("10.9.0.0/16 via 10.9.0.1\n")

    report = _validator(sysfs, route_dir, prober).run()
    out = capsys.readouterr().out

    assert "Could not get PCI path for interface br0, skipping..." in out
    assert "br0" not in report.interfaces
    assert prober.calls == []


def test_loopback_never_probed(sysfs, route_dir, prober, capsys):
    (route_dir / "route-lo").write_text("127.0.0.0/8\n")
    _validator(sysfs, route_dir, prober).run()
    out = capsys.readouterr().out
    assert "Interface: lo" not in out
    assert "route-lo" not in out
    assert prober.calls == []


def test_report_is_sorted_by_interface(sysfs, route_dir, prober, capsys):
    sysfs.add_nic("eth1", "0000:c1:00.0", numa="1")
    sysfs.add_nic("eth0", "0000:81:00.0", numa="0")
    (route_dir / "route-eth1").write_text("10.1.0.0/16 via 10.1.0.1\n")
    (route_dir / "route-eth0").write_text("10.0.0.0/16 via 10.0.0.1\n")

    _validator(sysfs, route_dir, prober).run()
    out = capsys.readouterr().out

    assert out.index("Interface: eth0") < out.index("Interface: eth1")
    assert [c[0] for c in prober.calls] == ["eth0", "eth1"]


def test_numa_unavailable_renders_na(sysfs, route_dir, prober, capsys):
    sysfs.add_nic("eth0", "0000:81:00.0", numa=None)
    _validator(sysfs, route_dir, prober).run()
    assert "    NUMA Node: N/A" in capsys.readouterr().out


def test_prober_exception_is_a_fail_not_an_abort(sysfs, route_dir, capsys):
    class Broken(ScriptedProber):
        def probe(self, interface, destination, timeout=2):
            raise RuntimeError("socket gone")

    sysfs.add_nic("eth0", "0000:81:00.0")
    (route_dir / "route-eth0").write_text("10.0.0.0/8\n10.1.0.0/16\n")

    validator = _validator(sysfs, route_dir, Broken())
    report = validator.run()

    assert report.fail_count == 2
    assert validator.diagnostics.probes[0].error.startswith("RuntimeError")


def test_events_follow_stage_order(sysfs, route_dir, prober, capsys):
    sysfs.add_virtual("br0")
    sysfs.add_nic("eth0", "0000:81:00.0")
    (route_dir / "route-eth0").write_text("10.0.0.0/8\n")
    events = []

    _validator(sysfs, route_dir, prober, event_callback=events.append).run()

    assert [e.event for e in events] == [
        "nic_skipped", "nic_mapped", "routes_found", "probe_done", "run_done",
    ]
    assert events[-1].failed_probes == 1


def test_unprivileged_run_is_refused_before_discovery(sysfs, route_dir, prober, monkeypatch, capsys):
    monkeypatch.setattr("numaroute.validator.os.geteuid", lambda: 1000)
    sysfs.add_nic("eth0", "0000:81:00.0")
    config = ValidatorConfig(sysfs_root=str(sysfs.root), route_dir=str(route_dir))

    validator = NumaRouteValidator(config, prober=prober)
    with pytest.raises(InsufficientPrivilegeError):
        validator.run()

    assert capsys.readouterr().out == ""
    assert validator.report.status is RunStatus.ABORTED


def test_main_exits_nonzero_without_root(sysfs, route_dir, monkeypatch, capsys):
    monkeypatch.setattr("numaroute.validator.os.geteuid", lambda: 1000)

    rc = main(["--sysfs-root", str(sysfs.root), "--route-dir", str(route_dir)])
    captured = capsys.readouterr()

    assert rc != 0
    assert "[ERROR] This script must be run as root." in captured.err
    assert "Gathering" not in captured.out


def test_main_exits_nonzero_when_interfaces_cannot_be_listed(tmp_path, capsys):
    rc = main(["--sysfs-root", str(tmp_path / "missing"), "--no-root-check"])
    assert rc == 1
    assert "Cannot enumerate network interfaces" in capsys.readouterr().err


def test_main_json_output(sysfs, route_dir, capsys):
    sysfs.add_nic("eth0", "0000:81:00.0", numa="0")

    rc = main(["--sysfs-root", str(sysfs.root), "--route-dir", str(route_dir),
               "--no-root-check", "--json"])
    captured = capsys.readouterr()
    data = json.loads(captured.out)

    assert rc == 0
    assert data["interfaces"][0]["interface"] == "eth0"
    assert data["interfaces"][0]["numa_node"] == 0
    assert data["interfaces"][0]["route_file_found"] is False
    assert "Validation complete." in captured.err


def test_dump_file_holds_probe_records(sysfs, route_dir, prober, tmp_path, capsys):
    sysfs.add_nic("eth0", "0000:81:00.0")
    (route_dir / "route-eth0").write_text("10.0.0.0/8\n")
    dump = tmp_path / "diag.json"

    _validator(sysfs, route_dir, prober, dump_file=str(dump)).run()
    data = json.loads(dump.read_text())

    assert data["summary"]["probes"] == 1
    assert data["summary"]["failed_probes"] == 1
    assert data["probes"][0]["command"].startswith("ping -c 1 -W 2 -I eth0")


def _deny_open(monkeypatch):
    def denied(path, *args, **kwargs):
        raise PermissionError(13, "Permission denied", str(path))
    monkeypatch.setattr("numaroute.routes.open", denied, raising=False)


def test_unreadable_route_file_is_reported(sysfs, route_dir, prober, monkeypatch, capsys):
    sysfs.add_nic("eth0", "0000:81:00.0")
    (route_dir / "route-eth0").write_text("10.0.0.0/8\n")
    _deny_open(monkeypatch)
    events = []

    validator = _validator(sysfs, route_dir, prober, event_callback=events.append)
    report = validator.run()
    out = capsys.readouterr().out

    assert (f"  Cannot read route file {route_dir}/route-eth0 for NIC eth0: "
            "PermissionError") in out
    assert "Found route file" not in out
    assert prober.calls == []
    assert report.status is RunStatus.COMPLETE
    assert validator.diagnostics.interfaces["eth0"].route_file_error.startswith(
        "PermissionError")
    routes_evt = next(e for e in events if e.interface == "eth0"
                      and e.event.startswith("routes_"))
    assert routes_evt.event == "routes_missing"
    assert routes_evt.error.startswith("PermissionError")


def test_debug_log_lines_are_valid_markup(sysfs, route_dir, capsys):
    from rich.text import Text

    class Refused(ScriptedProber):
        def probe(self, interface, destination, timeout=2):
            raise RuntimeError("bad [/] token")

    sysfs.add_nic("eth0", "0000:81:00.0")
    (route_dir / "route-eth0").write_text("[/]\n[bold]x\n")
    events = []

    _validator(sysfs, route_dir, Refused(), event_callback=events.append).run()

    probes = [e for e in events if e.event == "probe_done"]
    assert [e.destination for e in probes] == ["[/]", "[bold]x"]
    for evt in events:
        for line in evt.log_basic + evt.log_verbose + evt.log_debug:
            Text.from_markup(line)
    assert "bad [/] token" in Text.from_markup(probes[0].log_debug[-1]).plain
