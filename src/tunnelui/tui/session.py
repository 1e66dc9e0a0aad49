"""Unified session: one interactive loop shared by the configurator and the runtime dashboard.

:class:`UnifiedSessionModel` is the coordinator. It owns the phase state
machine and the active sub-model, and reports outcomes as
:class:`SessionEvent` values. :class:`UnifiedSession` runs it on a dedicated
thread and exposes blocking waits to the application thread.
"""

from __future__ import annotations

import contextlib
import copy
import logging
import queue
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterator, Optional, Tuple

from rich.text import Text

from tunnelui.errors import ConfiguratorExitError, RuntimeDisconnectedError, SessionClosedError, SessionQuitError
from tunnelui.log_utils import log_event
from tunnelui.mode import Mode
from tunnelui.preferences import PreferencesStore
from tunnelui.tui.commands import Cmd, Msg, WindowSizeMsg, batch, clear_screen, filter_quit, quit_cmd, watch_event
from tunnelui.tui.configurator import ConfiguratorSessionModel, ConfiguratorSessionOptions
from tunnelui.tui.log_buffer import write_runtime_log_separator
from tunnelui.tui.program import Program
from tunnelui.tui.render import palette_for, render_frame
from tunnelui.tui.runtime_dashboard import RuntimeContextDoneMsg, RuntimeDashboard, RuntimeDashboardOptions
from tunnelui.tui.sequence import SequenceGuard
from tunnelui.tui.terminal import Terminal, clear_terminal_after_tui

logger = logging.getLogger(__name__)

class Phase(Enum):
    CONFIGURING = "configuring"
    WAITING_FOR_RUNTIME = "waiting_for_runtime"
    RUNTIME = "runtime"


class EventKind(Enum):
    MODE_SELECTED = "mode_selected"
    RECONFIGURE = "reconfigure"
    RUNTIME_DISCONNECTED = "runtime_disconnected"
    EXIT = "exit"
    ERROR = "error"


@dataclass(frozen=True)
class SessionEvent:
    kind: EventKind
    mode: Mode = Mode.UNKNOWN
    error: Optional[BaseException] = None


@dataclass(frozen=True)
class ActivateRuntimeMsg:
    connection_done: threading.Event
    options: RuntimeDashboardOptions


@dataclass(frozen=True)
class AppStoppedMsg:
    """The process-wide stop event fired."""


EventSink = Callable[[SessionEvent], None]
ConfiguratorFactory = Callable[..., ConfiguratorSessionModel]


@dataclass
class UnifiedSessionModel:
    """Coordinator snapshot. Every :meth:`update` returns a new copy."""

    config_options: ConfiguratorSessionOptions
    store: PreferencesStore
    emit: EventSink
    configurator: ConfiguratorSessionModel
    app_stop: Optional[threading.Event] = None
    configurator_factory: ConfiguratorFactory = ConfiguratorSessionModel.create
    phase: Phase = Phase.CONFIGURING
    runtime: Optional[RuntimeDashboard] = None
    width: int = 0
    height: int = 0
    runtime_epoch: SequenceGuard = SequenceGuard()
    startup_cmd: Optional[Cmd] = None
    finished: bool = False

    @classmethod
    def create(
        cls,
        config_options: ConfiguratorSessionOptions,
        store: PreferencesStore,
        emit: EventSink,
        *,
        app_stop: Optional[threading.Event] = None,
        configurator_factory: ConfiguratorFactory = ConfiguratorSessionModel.create,
    ) -> "UnifiedSessionModel":
        """Build the coordinator around a fresh configurator.

        Raises :class:`~tunnelui.errors.SessionDependencyError` when the
        configurator cannot be constructed. If the configurator finished
        during construction (auto-connect), the outcome is emitted right away.
        """
        configurator = configurator_factory(config_options, store)
        model = cls(
            config_options=config_options,
            store=store,
            emit=emit,
            configurator=configurator,
            app_stop=app_stop,
            configurator_factory=configurator_factory,
        )
        if configurator.done:
            model, model.startup_cmd = model._configurator_finished()
        return model

    def init(self) -> Optional[Cmd]:
        stop_watch = None
        if self.app_stop is not None:
            stop_watch = watch_event(self.app_stop, AppStoppedMsg)
        if self.startup_cmd is not None:
            return batch(self.startup_cmd, stop_watch)
        return batch(filter_quit(self.configurator.init()), stop_watch)

    def update(self, msg: Msg) -> Tuple["UnifiedSessionModel", Optional[Cmd]]:
        m = copy.copy(self)
        m.startup_cmd = None
        if m.finished:
            return m, None
        if isinstance(msg, AppStoppedMsg) or (m.app_stop is not None and m.app_stop.is_set()):
            m._emit(EventKind.EXIT)
            return m._stop()
        if isinstance(msg, WindowSizeMsg):
            m.width, m.height = msg.width, msg.height
        if isinstance(msg, ActivateRuntimeMsg):
            return m._activate_runtime(msg)
        if isinstance(msg, RuntimeContextDoneMsg):
            return m._runtime_done(msg)
        if m.phase is Phase.CONFIGURING:
            return m._update_configurator(msg)
        if m.phase is Phase.RUNTIME and m.runtime is not None:
            return m._update_runtime(msg)
        return m, None

    # -- phases ---------------------------------------------------------------

    def _update_configurator(self, msg: Msg) -> Tuple["UnifiedSessionModel", Optional[Cmd]]:
        self.configurator, cmd = self.configurator.update(msg)
        if self.configurator.done:
            return self._configurator_finished()
        return self, filter_quit(cmd)

    def _configurator_finished(self) -> Tuple["UnifiedSessionModel", Optional[Cmd]]:
        error = self.configurator.result_error
        if error is None:
            self._set_phase(Phase.WAITING_FOR_RUNTIME)
            self._emit(EventKind.MODE_SELECTED, mode=self.configurator.result_mode)
            return self, None
        if isinstance(error, ConfiguratorExitError):
            self._emit(EventKind.EXIT)
        else:
            self._emit(EventKind.ERROR, error=error)
        return self._stop()

    def _activate_runtime(self, msg: ActivateRuntimeMsg) -> Tuple["UnifiedSessionModel", Optional[Cmd]]:
        if self.phase is not Phase.WAITING_FOR_RUNTIME:
            log_event(logger, "session.activate_ignored", level=logging.DEBUG, phase=self.phase.value)
            return self, None
        self.runtime_epoch = self.runtime_epoch.advance()
        dashboard = RuntimeDashboard.create(
            msg.connection_done, msg.options, self.store, runtime_seq=self.runtime_epoch.value
        )
        if self.width or self.height:
            dashboard, _ = dashboard.update(WindowSizeMsg(self.width, self.height))
        self.runtime = dashboard
        self._set_phase(Phase.RUNTIME)
        return self, batch(filter_quit(dashboard.init()), clear_screen)

    def _runtime_done(self, msg: RuntimeContextDoneMsg) -> Tuple["UnifiedSessionModel", Optional[Cmd]]:
        if self.phase is not Phase.RUNTIME or not self.runtime_epoch.accepts(msg.seq):
            log_event(
                logger,
                "session.stale_disconnect",
                level=logging.DEBUG,
                seq=msg.seq,
                epoch=self.runtime_epoch.value,
            )
            return self, None
        self._drop_runtime("disconnected")
        self._set_phase(Phase.WAITING_FOR_RUNTIME)
        self._emit(EventKind.RUNTIME_DISCONNECTED)
        return self, clear_screen

    def _update_runtime(self, msg: Msg) -> Tuple["UnifiedSessionModel", Optional[Cmd]]:
        dashboard, cmd = self.runtime.update(msg)  # type: ignore[union-attr]
        self.runtime = dashboard
        if dashboard.exit_requested:
            self._emit(EventKind.EXIT)
            return self._stop()
        if dashboard.reconfigure_requested:
            return self._reconfigure()
        return self, filter_quit(cmd)

    def _reconfigure(self) -> Tuple["UnifiedSessionModel", Optional[Cmd]]:
        self._drop_runtime("reconfigured")
        try:
            configurator = self.configurator_factory(self.config_options, self.store, auto_select=False)
        except Exception as exc:
            logger.exception("Could not rebuild the configurator")
            self._emit(EventKind.ERROR, error=exc)
            return self._stop()
        if self.width or self.height:
            configurator, _ = configurator.update(WindowSizeMsg(self.width, self.height))
        self.configurator = configurator
        self._set_phase(Phase.CONFIGURING)
        self._emit(EventKind.RECONFIGURE)
        return self, batch(filter_quit(configurator.init()), clear_screen)

    # -- helpers --------------------------------------------------------------

    def _drop_runtime(self, label: str) -> None:
        if self.runtime is not None:
            self.runtime.logs.stop_wait()
        self.runtime = None
        write_runtime_log_separator(label)

    def _stop(self) -> Tuple["UnifiedSessionModel", Optional[Cmd]]:
        self.configurator.logs.stop_wait()
        if self.runtime is not None:
            self.runtime.logs.stop_wait()
        self.finished = True
        return self, quit_cmd

    def _set_phase(self, phase: Phase) -> None:
        if phase is self.phase:
            return
        log_event(logger, "session.phase", previous=self.phase.value, phase=phase.value)
        self.phase = phase

    def _emit(self, kind: EventKind, *, mode: Mode = Mode.UNKNOWN, error: Optional[BaseException] = None) -> None:
        log_event(
            logger,
            "session.event",
            kind=kind.value,
            mode=mode.value,
            error=str(error) if error is not None else None,
        )
        self.emit(SessionEvent(kind, mode, error))

    def view(self) -> str:
        if self.phase is Phase.CONFIGURING:
            return self.configurator.view()
        if self.phase is Phase.RUNTIME and self.runtime is not None:
            return self.runtime.view()
        prefs = self.store.preferences()
        return render_frame(
            prefs,
            width=self.width,
            height=self.height,
            title="Tunnel",
            body=[Text("Starting...", style=palette_for(prefs).muted)],
        )


class UnifiedSession:
    """Handle for a running unified session.

    ``wait_for_mode`` and ``wait_for_runtime_exit`` are meant to be called by
    one application thread, one after the other. A second concurrent waiter
    gets :class:`RuntimeError`.
    """

    def __init__(
        self,
        app_stop: threading.Event,
        config_options: ConfiguratorSessionOptions,
        *,
        store: Optional[PreferencesStore] = None,
        terminal: Optional[Terminal] = None,
        program_factory: Callable[..., Program] = Program,
        configurator_factory: ConfiguratorFactory = ConfiguratorSessionModel.create,
        cleanup: Callable[[], None] = clear_terminal_after_tui,
    ) -> None:
        # ``None`` marks the end of the stream; it is queued after the last event.
        self._events: "queue.Queue[Optional[SessionEvent]]" = queue.Queue()
        self._store = store if store is not None else PreferencesStore.load()
        model = UnifiedSessionModel.create(
            config_options,
            self._store,
            self._events.put,
            app_stop=app_stop,
            configurator_factory=configurator_factory,
        )
        self._program = program_factory(model, terminal=terminal)
        self._cleanup = cleanup
        self._done = threading.Event()
        self._error: Optional[BaseException] = None
        self._wait_lock = threading.Lock()
        self._close_lock = threading.Lock()
        self._closed = False
        self._thread = threading.Thread(target=self._run, name="tunnelui-session", daemon=True)
        self._thread.start()

    @property
    def store(self) -> PreferencesStore:
        return self._store

    def is_done(self) -> bool:
        """Whether the session loop has exited."""
        return self._done.is_set()

    def wait_done(self, timeout: Optional[float] = None) -> bool:
        return self._done.wait(timeout)

    @property
    def error(self) -> Optional[BaseException]:
        return self._error

    def wait_for_mode(self) -> Mode:
        with self._single_waiter():
            while True:
                event = self._next_event()
                if event.kind is EventKind.MODE_SELECTED:
                    return event.mode
                if event.kind is EventKind.EXIT:
                    raise SessionQuitError()
                if event.kind is EventKind.ERROR:
                    raise event.error or SessionClosedError()

    def activate_runtime(self, connection_done: threading.Event, options: RuntimeDashboardOptions) -> None:
        self._program.send(ActivateRuntimeMsg(connection_done, options))

    def wait_for_runtime_exit(self) -> bool:
        """Block until the runtime phase ends.

        Returns ``True`` when the user asked to reconfigure. Raises
        :class:`RuntimeDisconnectedError` when the live connection ended.
        """
        with self._single_waiter():
            event = self._next_event()
            if event.kind in (EventKind.RECONFIGURE, EventKind.MODE_SELECTED):
                return True
            if event.kind is EventKind.RUNTIME_DISCONNECTED:
                raise RuntimeDisconnectedError()
            if event.kind is EventKind.EXIT:
                raise SessionQuitError()
            raise event.error or SessionClosedError()

    def close(self) -> None:
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
            self._program.quit()
            self._done.wait()
            self._thread.join()
            self._cleanup()

    def _run(self) -> None:
        try:
            self._program.run()
        except Exception as exc:
            logger.exception("Unified session loop failed")
            self._error = exc
        finally:
            self._done.set()
            self._events.put(None)

    def _next_event(self) -> SessionEvent:
        event = self._events.get()
        if event is None:
            # Leave the marker for the next waiter.
            self._events.put(None)
            raise self._error or SessionClosedError()
        return event

    @contextlib.contextmanager
    def _single_waiter(self) -> Iterator[None]:
        if not self._wait_lock.acquire(blocking=False):
            raise RuntimeError("another caller is already waiting on this unified session")
        try:
            yield
        finally:
            self._wait_lock.release()
