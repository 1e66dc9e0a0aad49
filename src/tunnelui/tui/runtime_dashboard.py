"""Runtime dashboard sub-model shown while a tunnel is active."""

from __future__ import annotations

import asyncio
import copy
import threading
from dataclasses import dataclass, field
from enum import IntEnum
from typing import List, Optional, Tuple

from rich.console import RenderableType
from rich.text import Text

from tunnelui.mode import Mode
from tunnelui.preferences import Preferences, PreferencesStore
from tunnelui.stats import TrafficSnapshot, TrafficStats, format_bytes, traffic_stats
from tunnelui.tui.commands import EVENT_POLL_INTERVAL, Cmd, KeyMsg, Msg, WindowSizeMsg, batch, clear_screen, quit_cmd, tick, watch_event
from tunnelui.tui.log_buffer import RuntimeLogFeed
from tunnelui.tui.log_viewport import LogViewport, LogViewportTickMsg
from tunnelui.tui.render import option_list, palette_for, render_frame, sparkline
from tunnelui.tui.sequence import SequenceGuard
from tunnelui.tui.settings_rows import handle_settings_key, settings_view

SPARKLINE_POINTS = 40
TICK_INTERVAL = 1.0
TABS = ("Dataplane", "Settings", "Logs")
CONFIRM_OPTIONS = ("Continue", "Stop")

LOGS_HINT = "up/down scroll | PgUp/PgDn page | Home/End jump | Space follow | Tab switch tabs | Esc back | ctrl+c exit"
SETTINGS_HINT = "up/k down/j row | left/right/Enter change | Tab switch tabs | Esc back | ctrl+c exit"
DATAPLANE_HINT = "Tab switch tabs | Esc stop tunnel | ctrl+c exit"
CONFIRM_HINT = "left/right choose | Enter confirm | Esc cancel | ctrl+c exit"


class DashboardScreen(IntEnum):
    DATAPLANE = 0
    SETTINGS = 1
    LOGS = 2


@dataclass(frozen=True)
class RuntimeTickMsg:
    seq: int
    runtime_seq: int = 0


@dataclass(frozen=True)
class RuntimeContextDoneMsg:
    """The live connection backing a dashboard ended; ``seq`` is its epoch."""

    seq: int


@dataclass(frozen=True)
class RuntimeReadyMsg:
    seq: int


@dataclass(frozen=True)
class RuntimeDashboardOptions:
    mode: Mode = Mode.CLIENT
    log_feed: Optional[RuntimeLogFeed] = None
    server_supported: bool = True
    ready: Optional[threading.Event] = None
    stats: Optional[TrafficStats] = None


def runtime_tick_cmd(seq: int, runtime_seq: int = 0) -> Cmd:
    return tick(TICK_INTERVAL, lambda: RuntimeTickMsg(seq, runtime_seq))


def wait_for_connection_done(connection_done: threading.Event, seq: int) -> Cmd:
    return watch_event(connection_done, lambda: RuntimeContextDoneMsg(seq))


def wait_for_ready(ready: threading.Event, connection_done: threading.Event, seq: int) -> Cmd:
    async def _wait() -> Msg:
        while True:
            if connection_done.is_set():
                return RuntimeContextDoneMsg(seq)
            if ready.is_set():
                return RuntimeReadyMsg(seq)
            await asyncio.sleep(EVENT_POLL_INTERVAL)

    return _wait


@dataclass
class RuntimeDashboard:
    store: PreferencesStore
    connection_done: threading.Event
    stats: TrafficStats
    mode: Mode = Mode.CLIENT
    log_feed: Optional[RuntimeLogFeed] = None
    server_supported: bool = True
    ready: Optional[threading.Event] = None
    runtime_seq: int = 0
    width: int = 0
    height: int = 0
    screen: DashboardScreen = DashboardScreen.DATAPLANE
    settings_cursor: int = 0
    logs: LogViewport = field(default_factory=LogViewport)
    rx_samples: Tuple[float, ...] = ()
    tx_samples: Tuple[float, ...] = ()
    tick_seq: SequenceGuard = SequenceGuard(1)
    confirm_open: bool = False
    confirm_cursor: int = 0
    connected: bool = False
    exit_requested: bool = False
    reconfigure_requested: bool = False

    @classmethod
    def create(
        cls,
        connection_done: threading.Event,
        options: RuntimeDashboardOptions,
        store: PreferencesStore,
        *,
        runtime_seq: int = 0,
    ) -> "RuntimeDashboard":
        mode = Mode.SERVER if options.mode is Mode.SERVER else Mode.CLIENT
        connected = mode is Mode.SERVER or options.ready is None or options.ready.is_set()
        model = cls(
            store=store,
            connection_done=connection_done,
            stats=options.stats if options.stats is not None else traffic_stats,
            mode=mode,
            log_feed=options.log_feed,
            server_supported=options.server_supported,
            ready=options.ready,
            runtime_seq=runtime_seq,
            connected=connected,
        )
        if store.preferences().show_dataplane_graph:
            model._record_sample(model.stats.sample())
        return model

    def init(self) -> Optional[Cmd]:
        ready_cmd = None
        if self.mode is Mode.CLIENT and not self.connected and self.ready is not None:
            ready_cmd = wait_for_ready(self.ready, self.connection_done, self.runtime_seq)
        return batch(
            runtime_tick_cmd(self.tick_seq.value, self.runtime_seq),
            wait_for_connection_done(self.connection_done, self.runtime_seq),
            ready_cmd,
        )

    def update(self, msg: Msg) -> Tuple["RuntimeDashboard", Optional[Cmd]]:
        m = copy.copy(self)
        if isinstance(msg, WindowSizeMsg):
            m.width, m.height = msg.width, msg.height
            if m.screen is DashboardScreen.LOGS:
                m.logs = m.logs.ensure(m.height, m.store.preferences()).refresh(m.log_feed)
            return m, None
        if isinstance(msg, RuntimeTickMsg):
            stale = msg.runtime_seq != m.runtime_seq or not m.tick_seq.accepts(msg.seq)
            if stale or m.screen is not DashboardScreen.DATAPLANE:
                return m, None
            snapshot = m.stats.sample()
            if m.store.preferences().show_dataplane_graph:
                m._record_sample(snapshot)
            return m, runtime_tick_cmd(m.tick_seq.value, m.runtime_seq)
        if isinstance(msg, LogViewportTickMsg):
            if m.screen is not DashboardScreen.LOGS or not m.logs.accepts(msg):
                return m, None
            m.logs = m.logs.refresh(m.log_feed)
            return m, m._log_wait_cmd()
        if isinstance(msg, RuntimeReadyMsg):
            if msg.seq == m.runtime_seq:
                m.connected = True
            return m, None
        if isinstance(msg, RuntimeContextDoneMsg):
            m.logs.stop_wait()
            return m, quit_cmd
        if isinstance(msg, KeyMsg):
            return m._handle_key(msg.key)
        return m, None

    def _handle_key(self, key: str) -> Tuple["RuntimeDashboard", Optional[Cmd]]:
        if key == "ctrl+c":
            self.logs.stop_wait()
            self.exit_requested = True
            return self, quit_cmd
        if self.confirm_open:
            return self._update_confirm(key)
        if key == "esc":
            if self.screen is DashboardScreen.DATAPLANE:
                if self.mode is Mode.CLIENT and not self.connected:
                    self.logs.stop_wait()
                    self.reconfigure_requested = True
                    return self, quit_cmd
                self.confirm_open = True
                self.confirm_cursor = 0
                return self, None
            if self.screen is DashboardScreen.LOGS:
                self.logs.stop_wait()
            return self._enter_dataplane()
        if key == "tab":
            return self._cycle_screen()
        if self.screen is DashboardScreen.SETTINGS:
            return self._update_settings(key)
        if self.screen is DashboardScreen.LOGS:
            self.logs = self.logs.handle_key(key)
        return self, None

    def _update_confirm(self, key: str) -> Tuple["RuntimeDashboard", Optional[Cmd]]:
        if key == "esc":
            self.confirm_open = False
            self.confirm_cursor = 0
        elif key in {"up", "left", "k", "h"}:
            self.confirm_cursor = 0
        elif key in {"down", "right", "j", "l"}:
            self.confirm_cursor = 1
        elif key == "enter":
            if CONFIRM_OPTIONS[self.confirm_cursor] == "Stop":
                self.logs.stop_wait()
                self.reconfigure_requested = True
                return self, quit_cmd
            self.confirm_open = False
            self.confirm_cursor = 0
        return self, None

    def _cycle_screen(self) -> Tuple["RuntimeDashboard", Optional[Cmd]]:
        previous = self.screen
        self.screen = DashboardScreen((self.screen + 1) % len(TABS))
        if self.screen is DashboardScreen.LOGS:
            self.logs = self.logs.restart_wait().ensure(self.height, self.store.preferences()).refresh(self.log_feed)
            return self, self._log_wait_cmd()
        if previous is DashboardScreen.LOGS:
            self.logs.stop_wait()
        if self.screen is DashboardScreen.DATAPLANE:
            return self._enter_dataplane()
        return self, None

    def _enter_dataplane(self) -> Tuple["RuntimeDashboard", Optional[Cmd]]:
        self.screen = DashboardScreen.DATAPLANE
        self.tick_seq = self.tick_seq.advance()
        return self, runtime_tick_cmd(self.tick_seq.value, self.runtime_seq)

    def _update_settings(self, key: str) -> Tuple["RuntimeDashboard", Optional[Cmd]]:
        graph_before = self.store.preferences().show_dataplane_graph
        self.settings_cursor, theme_changed = handle_settings_key(
            self.settings_cursor, key, self.store, server_supported=self.server_supported
        )
        graph_after = self.store.preferences().show_dataplane_graph
        if graph_before and not graph_after:
            self.rx_samples = self.tx_samples = ()
        elif graph_after and not graph_before:
            self._record_sample(self.stats.snapshot())
        return self, clear_screen if theme_changed else None

    def _log_wait_cmd(self) -> Optional[Cmd]:
        return self.logs.wait_cmd(
            self.log_feed,
            connection_done=self.connection_done,
            on_connection_done=lambda seq=self.runtime_seq: RuntimeContextDoneMsg(seq),
        )

    def _record_sample(self, snapshot: TrafficSnapshot) -> None:
        self.rx_samples = (self.rx_samples + (snapshot.rx_rate,))[-SPARKLINE_POINTS:]
        self.tx_samples = (self.tx_samples + (snapshot.tx_rate,))[-SPARKLINE_POINTS:]

    # -- view -----------------------------------------------------------------

    def status_lines(self) -> Tuple[str, str]:
        if self.mode is Mode.SERVER:
            return "Mode: Server", "Status: Running"
        return "Mode: Client", "Status: Connected" if self.connected else "Status: Connecting to server..."

    def view(self) -> str:
        prefs = self.store.preferences()
        if self.screen is DashboardScreen.SETTINGS:
            body: List[RenderableType] = [settings_view(prefs, self.settings_cursor, self.server_supported, palette_for(prefs))]
            return self._frame(prefs, "Settings", body, SETTINGS_HINT)
        if self.screen is DashboardScreen.LOGS:
            return self._frame(prefs, "Logs", [self.logs.view(palette_for(prefs))], LOGS_HINT)
        return self._frame(
            prefs,
            "Dataplane",
            self._dataplane_body(prefs),
            CONFIRM_HINT if self.confirm_open else DATAPLANE_HINT,
        )

    def _dataplane_body(self, prefs: Preferences) -> List[RenderableType]:
        palette = palette_for(prefs)
        mode_line, status_line = self.status_lines()
        lines = [mode_line, status_line]
        if prefs.show_dataplane_stats or prefs.show_dataplane_graph:
            lines.append("")
        if prefs.show_dataplane_stats:
            snapshot = self.stats.snapshot()
            units = prefs.stats_units
            lines.append(f"RX: {format_bytes(snapshot.rx_bytes, units)} ({format_bytes(snapshot.rx_rate, units)}/s)")
            lines.append(f"TX: {format_bytes(snapshot.tx_bytes, units)} ({format_bytes(snapshot.tx_rate, units)}/s)")
        if prefs.show_dataplane_graph:
            width = max(min((self.width or 80) - 16, SPARKLINE_POINTS), 8)
            lines.append("RX trend: " + sparkline(self.rx_samples, width))
            lines.append("TX trend: " + sparkline(self.tx_samples, width))
        if not prefs.show_dataplane_stats and not prefs.show_dataplane_graph:
            lines.extend(["", "Dataplane metrics are hidden in Settings."])
        body: List[RenderableType] = [Text("\n".join(lines), style=palette.text)]
        if self.confirm_open:
            body.extend([Text(""), Text("Stop tunnel?", style=palette.warning), option_list(CONFIRM_OPTIONS, self.confirm_cursor, palette)])
        return body

    def _frame(self, prefs: Preferences, title: str, body: List[RenderableType], hint: str) -> str:
        return render_frame(
            prefs,
            width=self.width,
            height=self.height,
            title=title,
            body=body,
            tabs=TABS,
            active_tab=int(self.screen),
            hint=hint,
        )
