from __future__ import annotations

import threading
from pathlib import Path
from typing import Any, List

import pytest

from tunnelui import cli
from tunnelui.errors import RuntimeDisconnectedError, SessionDependencyError, SessionQuitError
from tunnelui.mode import Mode
from tunnelui.stats import traffic_stats
from tunnelui.tui.terminal import HeadlessTerminal


class FakeRuntime:
    def __init__(self, mode: Mode, connection_done: threading.Event) -> None:
        self.mode = mode
        self.connection_done = connection_done
        self.ready = threading.Event()
        self.ready.set()
        self.stopped = False

    def stop(self) -> None:
        self.stopped = True


class FakeSession:
    """Replays scripted outcomes; exceptions in a script are raised."""

    def __init__(self, modes: List[Any], exits: List[Any] | None = None) -> None:
        self._modes = list(modes)
        self._exits = list(exits or [])
        self.activations: List[Any] = []
        self.closed = 0

    def _next(self, script: List[Any]) -> Any:
        item = script.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    def wait_for_mode(self) -> Mode:
        return self._next(self._modes)

    def activate_runtime(self, connection_done: threading.Event, options: Any) -> None:
        self.activations.append((connection_done, options))

    def wait_for_runtime_exit(self) -> bool:
        return self._next(self._exits)

    def close(self) -> None:
        self.closed += 1


class RuntimeRecorder:
    def __init__(self) -> None:
        self.started: List[FakeRuntime] = []

    def __call__(self, mode: Mode, connection_done: threading.Event) -> FakeRuntime:
        runtime = FakeRuntime(mode, connection_done)
        self.started.append(runtime)
        return runtime


def test_disconnect_restarts_runtime_then_reconfigure_returns_to_mode_selection() -> None:
    session = FakeSession(
        modes=[Mode.CLIENT, Mode.SERVER, SessionQuitError()],
        exits=[RuntimeDisconnectedError(), True, True],
    )
    starter = RuntimeRecorder()

    code = cli.run_session(session, starter, threading.Event(), reconnect_delay=0)

    assert code == 0
    assert [runtime.mode for runtime in starter.started] == [Mode.CLIENT, Mode.CLIENT, Mode.SERVER]
    assert all(runtime.stopped for runtime in starter.started)
    assert all(runtime.connection_done.is_set() for runtime in starter.started)
    assert len(session.activations) == 3
    assert session.activations[2][1].mode is Mode.SERVER
    assert session.activations[0][1].ready is starter.started[0].ready
    assert session.closed == 1


def test_disconnect_during_shutdown_exits_cleanly() -> None:
    session = FakeSession(modes=[Mode.CLIENT], exits=[RuntimeDisconnectedError()])
    starter = RuntimeRecorder()
    app_stop = threading.Event()
    app_stop.set()

    assert cli.run_session(session, starter, app_stop, reconnect_delay=5) == 0
    assert len(starter.started) == 1
    assert starter.started[0].stopped
    assert session.closed == 1


def test_traffic_counters_reset_for_each_activation() -> None:
    traffic_stats.add_rx(1024)
    session = FakeSession(modes=[Mode.CLIENT, SessionQuitError()], exits=[True])

    cli.run_session(session, RuntimeRecorder(), threading.Event())

    assert traffic_stats.snapshot().rx_bytes == 0


def test_unexpected_error_returns_failure_and_closes() -> None:
    session = FakeSession(modes=[RuntimeError("boom")])
    assert cli.run_session(session, RuntimeRecorder(), threading.Event()) == 1
    assert session.closed == 1


def test_runtime_options_carry_log_feed_and_server_support() -> None:
    feed = object()
    session = FakeSession(modes=[Mode.SERVER, SessionQuitError()], exits=[True])

    cli.run_session(session, RuntimeRecorder(), threading.Event(), log_feed=feed, server_supported=False)

    options = session.activations[0][1]
    assert options.log_feed is feed
    assert options.server_supported is False


def test_parser_flags() -> None:
    args = cli.build_parser().parse_args(["--headless", "--no-server", "--config-dir", "/tmp/x"])
    assert args.headless and args.no_server
    assert args.config_dir == "/tmp/x"

    defaults = cli.build_parser().parse_args([])
    assert not defaults.headless
    assert defaults.config_dir is None


def test_session_options_share_one_client_store(tmp_path: Path) -> None:
    options = cli.build_session_options(tmp_path, server_supported=False)
    assert options.observer is options.selector is options.creator is options.deleter
    assert options.client_config_manager is options.observer
    assert options.server_supported is False


@pytest.fixture
def quiet_main(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli, "load_dotenv", lambda: None)
    monkeypatch.setattr(cli, "configure_logging", lambda config: None)
    monkeypatch.setattr(cli, "enable_global_runtime_log_capture", lambda: None)
    monkeypatch.setattr(cli, "install_stop_handlers", lambda app_stop: None)


@pytest.mark.usefixtures("quiet_main")
def test_main_reports_dependency_errors(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    def factory(*args: Any, **kwargs: Any) -> Any:
        raise SessionDependencyError("server configuration manager is required")

    code = cli.main(["--config-dir", str(tmp_path)], session_factory=factory)

    assert code == 2
    assert "server configuration manager is required" in capsys.readouterr().err


@pytest.mark.usefixtures("quiet_main")
def test_main_headless_uses_in_memory_terminal(tmp_path: Path) -> None:
    created: dict[str, Any] = {}

    def factory(app_stop: threading.Event, options: Any, **kwargs: Any) -> FakeSession:
        created.update(kwargs, options=options)
        return FakeSession(modes=[SessionQuitError()])

    code = cli.main(["--headless", "--no-server", "--config-dir", str(tmp_path)], session_factory=factory)

    assert code == 0
    assert isinstance(created["terminal"], HeadlessTerminal)
    assert created["options"].server_supported is False
    created["cleanup"]()
