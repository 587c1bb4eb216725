"""
Textual TUI for numaroute — live NIC / NUMA / route reachability view.

Two modes:
  Live:  NumaRouteApp(validator_config=ValidatorConfig(...))
         Validator runs in a thread worker, emits ValidationEvents via queue.
  Demo:  NumaRouteApp()
         Replays a canned two-NIC run without touching the host.
"""

from __future__ import annotations

import asyncio
import io
import queue
import threading
from datetime import datetime
from pathlib import Path

from rich.markup import escape
from rich.text import Text
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.widgets import RichLog, Static, Tree
from textual.widgets.tree import TreeNode

from .events import ValidationEvent, EventVerdict, VERDICT_STYLE, LogLevel
from .models import NUMA_UNAVAILABLE

CSS_PATH = Path(__file__).parent / "theme.tcss"


class TitleBar(Static):
    pass

class StatusBar(Static):
    pass


class NumaRouteApp(App):
    """numaroute TUI — NIC → PCI → NUMA tree with per-route probe results."""

    CSS_PATH = CSS_PATH
    TITLE = "numaroute"

    BINDINGS = [
        Binding("q", "quit", "Quit"),
        Binding("b", "log_basic", "Basic"),
        Binding("v", "log_verbose", "Verbose"),
        Binding("d", "log_debug", "Debug"),
    ]

    def __init__(
        self,
        validator_config=None,
        events: list[ValidationEvent] | None = None,
    ):
        super().__init__()
        self._validator_config = validator_config
        self._events = events
        self.route_dir = (validator_config.route_dir if validator_config
                          else "/etc/sysconfig/network-scripts")

        self._log_level = LogLevel.BASIC
        self._nic_nodes: dict[str, TreeNode] = {}
        self._all_logs: list[tuple[ValidationEvent, datetime]] = []
        self._probe_count = 0
        self._fail_count = 0
        self._run_done = False
        self._result: ValidationEvent | None = None
        self._run_start = datetime.now()
        self._event_queue: queue.Queue[ValidationEvent | None] = queue.Queue()

    def compose(self) -> ComposeResult:
        yield TitleBar(f"  numaroute: routes in {self.route_dir}", id="title-bar")
        with Horizontal(id="main-split"):
            with Vertical(id="tree-pane"):
                tree: Tree[str] = Tree("NICs", id="nic-tree")
                tree.show_root = True
                tree.root.expand()
                tree.guide_depth = 3
                yield tree
            with Vertical(id="log-pane"):
                yield RichLog(id="log-view", highlight=True, markup=True,
                              wrap=True, auto_scroll=True)
        yield StatusBar(id="status-bar")

    def on_mount(self) -> None:
        self._update_status()
        if self._validator_config:
            self.run_worker(self._run_live(), exclusive=True, group="validate")
        else:
            self.run_worker(self._replay_events(), exclusive=True, group="validate")

    # ── Live validator integration ──────────────────────────────────────

    async def _run_live(self) -> None:
        """
        Run the real validator in a background thread.
        Validator (sync/subprocess) → queue.put(ValidationEvent) → async poll → TUI.
        The text report is captured so it doesn't scribble over the screen.
        """
        from .exceptions import NumaRouteError
        from .validator import NumaRouteValidator

        config = self._validator_config
        config.event_callback = self._event_queue.put

        def _validator_thread():
            try:
                NumaRouteValidator(config, out=io.StringIO()).run()
            except NumaRouteError:
                pass  # validator already emitted an aborted run_done
            except Exception as e:
                self._event_queue.put(ValidationEvent(
                    event="run_done", status="error",
                    log_basic=[f"[#ff4444]Validator error: {e}[/]"],
                ))
            finally:
                self._event_queue.put(None)

        thread = threading.Thread(target=_validator_thread, daemon=True)
        thread.start()

        while True:
            try:
                evt = self._event_queue.get_nowait()
            except queue.Empty:
                await asyncio.sleep(0.05)
                continue
            if evt is None:
                break
            self._process_event(evt)
            if evt.event == "run_done":
                break

        thread.join(timeout=5.0)

    # ── Event processing ────────────────────────────────────────────────

    async def _replay_events(self) -> None:
        for evt in self._events or build_demo_events():
            self._process_event(evt)
            await asyncio.sleep(0.4 if evt.event == "probe_done" else 0.1)

    def _process_event(self, evt: ValidationEvent) -> None:
        now = datetime.now()
        self._all_logs.append((evt, now))
        if evt.event in ("nic_mapped", "nic_skipped"):
            self._add_nic_node(evt)
        elif evt.event in ("routes_found", "routes_missing"):
            self._annotate_routes(evt)
        elif evt.event == "probe_done":
            self._add_probe_leaf(evt)
            self._probe_count += 1
            if evt.verdict == EventVerdict.UNREACHABLE:
                self._fail_count += 1
        elif evt.event == "run_done":
            self._run_done = True
            self._result = evt
        self._write_log_lines(evt, now)
        self._update_status()

    # ── Tree management ─────────────────────────────────────────────────

    def _nic_label(self, evt: ValidationEvent, note: str = "") -> Text:
        if evt.event == "nic_skipped":
            verdict = EventVerdict.SKIPPED
        elif evt.numa_node == NUMA_UNAVAILABLE:
            verdict = EventVerdict.NUMA_UNAVAILABLE
        else:
            verdict = EventVerdict.MAPPED
        color, icon = VERDICT_STYLE[verdict]
        label = Text()
        label.append(f"{icon} ", style=color)
        label.append(evt.interface, style="bold " + color)
        if evt.pci_id:
            label.append(f"  {evt.pci_id}", style="#888888")
            label.append(f"  NUMA {evt.numa_node}", style="#00d4ff")
        else:
            label.append("  no PCI device", style="#888888 italic")
        if note:
            label.append(f"  {note}", style="#888888 italic")
        return label

    def _add_nic_node(self, evt: ValidationEvent) -> None:
        tree = self.query_one("#nic-tree", Tree)
        node = tree.root.add(self._nic_label(evt), data=evt, expand=True)
        self._nic_nodes[evt.interface] = node
        tree.scroll_end(animate=False)

    def _annotate_routes(self, evt: ValidationEvent) -> None:
        node = self._nic_nodes.get(evt.interface)
        if node is None:
            return
        if evt.event == "routes_missing":
            note = "(route file unreadable)" if evt.error else "(no route file)"
            color, icon = VERDICT_STYLE[EventVerdict.NO_ROUTES]
            leaf = Text()
            leaf.append(f"{icon} ", style=color)
            leaf.append(evt.error or "no route checks", style=color + " italic")
            node.add_leaf(leaf)
        else:
            note = f"({len(evt.destinations)} route(s))"
        node.set_label(self._nic_label(node.data, note))

    def _add_probe_leaf(self, evt: ValidationEvent) -> None:
        node = self._nic_nodes.get(evt.interface)
        if node is None:
            return
        color, icon = VERDICT_STYLE.get(evt.verdict, ("#888888", "?"))
        label = Text()
        label.append(f"{icon} ", style=color)
        label.append(evt.destination, style=color)
        node.add_leaf(label)

    # ── Log pane ────────────────────────────────────────────────────────

    def _write_log_lines(self, evt: ValidationEvent, now: datetime) -> None:
        log = self.query_one("#log-view", RichLog)
        ts = now.strftime("%H:%M:%S")
        for line in self._get_lines_for_level(evt):
            log.write(Text.from_markup(f"[#555555]{ts}[/] {line}"))

    def _get_lines_for_level(self, evt: ValidationEvent) -> list[str]:
        if self._log_level == LogLevel.DEBUG:
            return evt.log_debug or evt.log_verbose or evt.log_basic
        elif self._log_level == LogLevel.VERBOSE:
            return evt.log_verbose or evt.log_basic
        return evt.log_basic

    def _rebuild_log(self) -> None:
        log = self.query_one("#log-view", RichLog)
        log.clear()
        for evt, ts in self._all_logs:
            ts_str = ts.strftime("%H:%M:%S")
            for line in self._get_lines_for_level(evt):
                log.write(Text.from_markup(f"[#555555]{ts_str}[/] {line}"))

    # ── Status bar ──────────────────────────────────────────────────────

    def _update_status(self) -> None:
        bar = self.query_one("#status-bar", StatusBar)
        elapsed = (datetime.now() - self._run_start).total_seconds()
        level_str = self._log_level.value
        parts = []
        for label in ("basic", "verbose", "debug"):
            if level_str == label:
                parts.append(f"[bold]{label[0]}[/bold]{label[1:]}")
            else:
                parts.append(label)
        level_hints = "  ".join(parts)

        if self._run_done and self._result:
            r = self._result
            if r.status != "complete":
                head = f"[#ff4444]✗ {r.status.upper() or 'ABORTED'}[/]"
            elif r.failed_probes:
                head = f"[#ffcc00]⚠ {r.failed_probes} FAIL[/]"
            else:
                head = "[#00ff88]✓ ALL OK[/]"
            bar.update(Text.from_markup(
                f"  {head} │ {r.total_interfaces} NICs │ "
                f"{r.total_probes} probes │ {r.duration:.1f}s │ "
                f"{level_hints} │ q:quit"
            ))
        else:
            bar.update(Text.from_markup(
                f"  [#00d4ff]⟳[/] probe {self._probe_count} "
                f"({self._fail_count} fail) │ {elapsed:.0f}s │ "
                f"{level_hints} │ q:quit"
            ))

    # ── Key bindings ────────────────────────────────────────────────────

    def action_log_basic(self) -> None:
        self._log_level = LogLevel.BASIC
        self._rebuild_log()
        self._update_status()

    def action_log_verbose(self) -> None:
        self._log_level = LogLevel.VERBOSE
        self._rebuild_log()
        self._update_status()

    def action_log_debug(self) -> None:
        self._log_level = LogLevel.DEBUG
        self._rebuild_log()
        self._update_status()

    def action_quit(self) -> None:
        self.exit()


# ── Demo run ────────────────────────────────────────────────────────────

def build_demo_events() -> list[ValidationEvent]:
    """eth0 on NUMA 0 with one dead route, eth1 on NUMA 1 with none, a bridge skipped."""
    V = ValidationEvent
    R, U = EventVerdict.REACHABLE, EventVerdict.UNREACHABLE
    rd = "/etc/sysconfig/network-scripts"

    def _probe(iface, dest, verdict):
        ok = verdict == R
        color = "#00ff88" if ok else "#ff4444"
        text = (f"[OK] {dest} is reachable via {iface}" if ok
                else f"[FAIL] {dest} is NOT reachable via {iface}")
        return V(event="probe_done", interface=iface, destination=dest,
                 verdict=verdict, log_basic=[f"    [{color}]{escape(text)}[/]"])

    return [
        V(event="nic_skipped", interface="br0",
          log_basic=["[#888888]br0: no PCI device, skipped[/]"]),
        V(event="nic_mapped", interface="eth0", pci_id="0000:81:00.0",
          numa_node="0",
          log_basic=["[#00d4ff]eth0[/] → 0000:81:00.0 → NUMA [bold]0[/]"]),
        V(event="nic_mapped", interface="eth1", pci_id="0000:c1:00.0",
          numa_node="1",
          log_basic=["[#00d4ff]eth1[/] → 0000:c1:00.0 → NUMA [bold]1[/]"]),
        V(event="routes_found", interface="eth0", route_file=f"{rd}/route-eth0",
          destinations=["192.168.10.0/24", "10.20.0.0/16"],
          log_basic=[f"  eth0: 2 route(s) in {rd}/route-eth0"]),
        V(event="routes_missing", interface="eth1", route_file=f"{rd}/route-eth1",
          log_basic=["  [#888888]eth1: no route file[/]"]),
        _probe("eth0", "192.168.10.0/24", U),
        _probe("eth0", "10.20.0.0/16", R),
        V(event="run_done", status="complete", total_interfaces=2,
          total_probes=2, failed_probes=1, duration=2.1,
          log_basic=["", "[#00ff88]━━━ Validation complete ━━━[/]",
                     "  2 NICs │ [#00ff88]1 OK[/] │ [#ff4444]1 FAIL[/] │ 2.1s"]),
    ]


def main():
    import argparse

    from .routes import DEFAULT_ROUTE_DIR
    from .validator import ValidatorConfig

    parser = argparse.ArgumentParser(prog="numaroute-tui",
                                     description="numaroute TUI")
    parser.add_argument("--demo", action="store_true", help="Replay a canned run")
    parser.add_argument("--route-dir", default=DEFAULT_ROUTE_DIR)
    parser.add_argument("--sysfs-root", default="/sys")
    parser.add_argument("--timeout", type=float, default=2.0)
    parser.add_argument("--no-root-check", action="store_true")
    parser.add_argument("--log", default=None)
    args = parser.parse_args()

    if args.demo:
        NumaRouteApp().run()
        return

    config = ValidatorConfig(
        sysfs_root=args.sysfs_root, route_dir=args.route_dir,
        probe_timeout=args.timeout, require_root=not args.no_root_check,
        log_file=args.log,
    )
    NumaRouteApp(validator_config=config).run()


if __name__ == "__main__":
    main()
