"""Command line entry point: run the unified session and supervise the tunnel runtime."""

from __future__ import annotations

import argparse
import logging
import signal
import sys
import threading
from pathlib import Path
from typing import Callable, Optional

from dotenv import load_dotenv

from tunnelui.config_store import ClientConfigurationStore, ServerConfigurationStore
from tunnelui.errors import RuntimeDisconnectedError, SessionClosedError, SessionDependencyError, SessionQuitError
from tunnelui.log_utils import build_log_config, configure_logging, log_context, log_event
from tunnelui.paths import tunnel_config_dir
from tunnelui.runtime import RuntimeStarter, start_idle_runtime
from tunnelui.stats import traffic_stats
from tunnelui.tui.configurator import ConfiguratorSessionOptions
from tunnelui.tui.log_buffer import RuntimeLogFeed, enable_global_runtime_log_capture
from tunnelui.tui.runtime_dashboard import RuntimeDashboardOptions
from tunnelui.tui.session import UnifiedSession
from tunnelui.tui.terminal import HeadlessTerminal, clear_terminal_after_tui

logger = logging.getLogger(__name__)

RECONNECT_DELAY = 1.0
SERVER_CONFIG_FILE_NAME = "server_configuration.json"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tunnelui", description="Configure and monitor the tunnel client/server.")
    parser.add_argument(
        "--headless",
        action="store_true",
        help="Run without drawing to the terminal (useful together with auto-connect).",
    )
    parser.add_argument("--no-server", action="store_true", help="Hide server mode.")
    parser.add_argument(
        "--config-dir",
        type=str,
        help="Directory holding client and server configurations (default: TUNNELUI_CONFIG_DIR or the user config dir).",
    )
    return parser


def build_session_options(config_root: Path, *, server_supported: bool = True) -> ConfiguratorSessionOptions:
    clients = ClientConfigurationStore(config_root)
    server = ServerConfigurationStore(config_root / SERVER_CONFIG_FILE_NAME)
    return ConfiguratorSessionOptions(
        observer=clients,
        selector=clients,
        creator=clients,
        deleter=clients,
        client_config_manager=clients,
        server_config_manager=server,
        server_supported=server_supported,
    )


def install_stop_handlers(app_stop: threading.Event) -> None:
    def _handle(signum: int, _frame: object) -> None:
        log_event(logger, "cli.signal", signal=signal.Signals(signum).name)
        app_stop.set()

    signal.signal(signal.SIGINT, _handle)
    signal.signal(signal.SIGTERM, _handle)


def run_session(
    session: UnifiedSession,
    start_runtime: RuntimeStarter,
    app_stop: threading.Event,
    *,
    log_feed: Optional[RuntimeLogFeed] = None,
    server_supported: bool = True,
    reconnect_delay: float = RECONNECT_DELAY,
) -> int:
    """Drive the session until the user quits.

    A disconnected runtime is restarted after ``reconnect_delay`` seconds; a
    reconfigure request goes back to mode selection. Returns the exit code.
    """
    try:
        while True:
            mode = session.wait_for_mode()
            with log_context(mode=mode.value):
                while True:
                    connection_done = threading.Event()
                    traffic_stats.reset()
                    runtime = start_runtime(mode, connection_done)
                    try:
                        session.activate_runtime(
                            connection_done,
                            RuntimeDashboardOptions(
                                mode=mode,
                                log_feed=log_feed,
                                server_supported=server_supported,
                                ready=runtime.ready,
                            ),
                        )
                        session.wait_for_runtime_exit()
                        log_event(logger, "cli.reconfigure")
                        break
                    except RuntimeDisconnectedError:
                        log_event(logger, "cli.runtime_disconnected", level=logging.WARNING)
                        if app_stop.wait(reconnect_delay):
                            raise SessionQuitError() from None
                    finally:
                        runtime.stop()
                        connection_done.set()
    except (SessionQuitError, SessionClosedError):
        return 0
    except Exception:
        logger.exception("Unified session failed")
        return 1
    finally:
        session.close()


def main(
    argv: Optional[list[str]] = None,
    *,
    start_runtime: RuntimeStarter = start_idle_runtime,
    session_factory: Callable[..., UnifiedSession] = UnifiedSession,
) -> int:
    args = build_parser().parse_args(argv)
    load_dotenv()
    configure_logging(build_log_config())
    log_feed = enable_global_runtime_log_capture()

    config_root = Path(args.config_dir).expanduser() if args.config_dir else tunnel_config_dir()
    server_supported = not args.no_server
    options = build_session_options(config_root, server_supported=server_supported)

    app_stop = threading.Event()
    install_stop_handlers(app_stop)
    log_event(logger, "cli.start", config_root=str(config_root), headless=args.headless)

    try:
        session = session_factory(
            app_stop,
            options,
            terminal=HeadlessTerminal() if args.headless else None,
            cleanup=(lambda: None) if args.headless else clear_terminal_after_tui,
        )
    except SessionDependencyError as exc:
        logger.error("Could not start the session: %s", exc)
        print(f"tunnelui: {exc}", file=sys.stderr)
        return 2
    return run_session(
        session,
        start_runtime,
        app_stop,
        log_feed=log_feed,
        server_supported=server_supported,
    )


def main_entry() -> None:
    try:
        raise SystemExit(main(sys.argv[1:]))
    except KeyboardInterrupt:
        raise SystemExit(130)


if __name__ == "__main__":
    main_entry()
