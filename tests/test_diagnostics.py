# tests/test_diagnostics.py
import logging

from numaroute.diagnostics import (
    InterfaceRecord, ProbeRecord, RunDiagnostic, TopologyStatus,
    dump_interface_detail, dump_run_summary, setup_logging,
)


def test_setup_logging_quiet_by_default():
    logger = setup_logging()
    assert len(logger.handlers) == 1
    assert isinstance(logger.handlers[0], logging.NullHandler)


def test_setup_logging_verbose_and_file(tmp_path):
    log_file = tmp_path / "run.log"
    logger = setup_logging(log_file=str(log_file), verbose=True)
    levels = sorted(h.level for h in logger.handlers)
    assert levels == [logging.DEBUG, logging.INFO]
    for h in logger.handlers:
        h.close()


def test_run_summary_counts():
    diag = RunDiagnostic(sysfs_root="/sys", route_dir="/etc/sysconfig/network-scripts")
    diag.record_for("br0").status = TopologyStatus.NO_DEVICE
    diag.record_for("eth0").status = TopologyStatus.MAPPED
    diag.probes.append(ProbeRecord("eth0", "10.0.0.0/8", outcome="reachable"))
    diag.probes.append(ProbeRecord("eth0", "10.1.0.0/16", outcome="unreachable",
                                   error="timeout"))

    summary = diag.to_dict()["summary"]
    assert summary == {"interfaces": 2, "skipped": 1, "probes": 2, "failed_probes": 1}

    text = dump_run_summary(diag)
    assert "Failed: 1" in text
    assert "error: timeout" in text


def test_interface_detail_lists_destinations():
    rec = InterfaceRecord(
        interface="eth0", status=TopologyStatus.MAPPED,
        pci_id="0000:81:00.0", numa_raw="0",
        route_file="/etc/sysconfig/network-scripts/route-eth0",
        route_file_found=True, destinations=["192.168.10.0/24"],
    )
    text = dump_interface_detail(rec)
    assert "0000:81:00.0" in text
    assert "→ 192.168.10.0/24" in text
