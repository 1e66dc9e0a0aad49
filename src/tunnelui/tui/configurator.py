"""Configurator sub-model: choose a mode and manage client/server configurations."""

from __future__ import annotations

import copy
import json
import logging
import time
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from pathlib import Path
from typing import Any, Callable, List, Optional, Protocol, Sequence, Tuple

from rich.console import RenderableType
from rich.text import Text

from tunnelui.config_store import AllowedPeer, ClientConfiguration, parse_client_configuration, summarize_configuration_error
from tunnelui.errors import ConfiguratorExitError, InvalidClientConfigurationError, SessionDependencyError
from tunnelui.log_utils import log_event
from tunnelui.mode import Mode
from tunnelui.preferences import ModePreference, PreferencesStore
from tunnelui.tui.commands import Cmd, KeyMsg, Msg, PasteMsg, WindowSizeMsg, clear_screen, quit_cmd, tick
from tunnelui.tui.log_buffer import RuntimeLogFeed, global_runtime_log_feed
from tunnelui.tui.log_viewport import LogViewport, LogViewportTickMsg
from tunnelui.tui.render import option_list, palette_for, render_frame
from tunnelui.tui.sequence import SequenceGuard
from tunnelui.tui.settings_rows import handle_settings_key, settings_view
from tunnelui.tui.text_field import TextField

logger = logging.getLogger(__name__)

PASTE_DEBOUNCE = 0.3
NAME_CHAR_LIMIT = 256
TABS = ("Main", "Settings", "Logs")

MODE_CLIENT = "client"
MODE_SERVER = "server"
CLIENT_ADD = "add configuration"
CLIENT_REMOVE = "remove configuration"
INVALID_DELETE = "Delete invalid configuration"
INVALID_OK = "OK"
SERVER_START = "start server"
SERVER_ADD = "add client"
SERVER_MANAGE = "manage clients"
SERVER_DELETE_CONFIRM = "Delete client"
CANCEL = "Cancel"
SERVER_MENU = (SERVER_START, SERVER_ADD, SERVER_MANAGE)

LOGS_HINT = "up/down scroll | PgUp/PgDn page | Home/End jump | Space follow | Tab switch tabs | Esc back | ctrl+c exit"
SETTINGS_HINT = "up/k down/j row | left/right/Enter change | Tab switch tabs | Esc back | ctrl+c exit"


class ConfigurationObserver(Protocol):
    def observe(self) -> List[str]: ...


class ConfigurationSelector(Protocol):
    def select(self, name: str) -> None: ...


class ConfigurationCreator(Protocol):
    def create(self, configuration: ClientConfiguration, name: str) -> Any: ...


class ConfigurationDeleter(Protocol):
    def delete(self, name: str) -> None: ...


class ClientConfigurationManager(Protocol):
    def configuration(self) -> ClientConfiguration: ...


class ServerConfigurationManager(Protocol):
    def list_allowed_peers(self) -> List[AllowedPeer]: ...

    def set_allowed_peer_enabled(self, client_id: int, enabled: bool) -> None: ...

    def remove_allowed_peer(self, client_id: int) -> None: ...

    def add_client(self) -> Path: ...


@dataclass(frozen=True)
class ConfiguratorSessionOptions:
    observer: Optional[ConfigurationObserver] = None
    selector: Optional[ConfigurationSelector] = None
    creator: Optional[ConfigurationCreator] = None
    deleter: Optional[ConfigurationDeleter] = None
    client_config_manager: Optional[ClientConfigurationManager] = None
    server_config_manager: Optional[ServerConfigurationManager] = None
    server_supported: bool = True


_REQUIRED = ("observer", "selector", "creator", "deleter", "server_config_manager")


class Screen(Enum):
    MODE = "mode"
    CLIENT_SELECT = "client_select"
    CLIENT_REMOVE = "client_remove"
    CLIENT_ADD_NAME = "client_add_name"
    CLIENT_ADD_JSON = "client_add_json"
    CLIENT_INVALID = "client_invalid"
    SERVER_SELECT = "server_select"
    SERVER_MANAGE = "server_manage"
    SERVER_DELETE_CONFIRM = "server_delete_confirm"


_TEXT_SCREENS = {Screen.CLIENT_ADD_NAME, Screen.CLIENT_ADD_JSON}


class Tab(IntEnum):
    MAIN = 0
    SETTINGS = 1
    LOGS = 2


@dataclass(frozen=True)
class PasteSettledMsg:
    seq: int


def peer_label(peer: AllowedPeer) -> str:
    status = "enabled" if peer.enabled else "disabled"
    return f"#{peer.client_id} {peer.display_name} [{status}]"


@dataclass
class ConfiguratorSessionModel:
    """Copy-on-write configurator state.

    ``done`` is set once a mode was chosen or the session must end; the result
    is in ``result_mode`` / ``result_error``.
    """

    options: ConfiguratorSessionOptions
    store: PreferencesStore
    clock: Callable[[], float] = time.monotonic
    width: int = 0
    height: int = 0
    screen: Screen = Screen.MODE
    cursor: int = 0
    mode_options: Tuple[str, ...] = (MODE_CLIENT,)
    configs: Tuple[str, ...] = ()
    client_menu: Tuple[str, ...] = ()
    remove_paths: Tuple[str, ...] = ()
    name_input: TextField = TextField(char_limit=NAME_CHAR_LIMIT)
    json_input: TextField = TextField(multiline=True)
    add_name: str = ""
    last_input_at: Optional[float] = None
    paste_seq: SequenceGuard = SequenceGuard()
    invalid_error: Optional[BaseException] = None
    invalid_config: str = ""
    invalid_allow_delete: bool = False
    peers: Tuple[AllowedPeer, ...] = ()
    delete_peer: Optional[AllowedPeer] = None
    delete_cursor: int = 0
    notice: str = ""
    tab: Tab = Tab.MAIN
    settings_cursor: int = 0
    logs: LogViewport = field(default_factory=LogViewport)
    log_feed: Optional[Callable[[], Optional[RuntimeLogFeed]]] = None
    result_mode: Mode = Mode.UNKNOWN
    result_error: Optional[BaseException] = None
    done: bool = False

    @classmethod
    def create(
        cls,
        options: ConfiguratorSessionOptions,
        store: PreferencesStore,
        *,
        auto_select: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ) -> "ConfiguratorSessionModel":
        """Build the configurator, honouring the saved start mode.

        With ``auto_select`` and auto-connect enabled, a remembered client
        configuration is selected straight away and the model starts done.
        """
        missing = [name for name in _REQUIRED if getattr(options, name) is None]
        if missing:
            raise SessionDependencyError(
                "configurator session dependencies are not initialized: " + ", ".join(missing)
            )
        if not options.server_supported and store.preferences().auto_select_mode is ModePreference.SERVER:
            store.update(auto_select_mode=ModePreference.CLIENT)

        model = cls(
            options=options,
            store=store,
            clock=clock,
            mode_options=(MODE_CLIENT, MODE_SERVER) if options.server_supported else (MODE_CLIENT,),
        )
        prefs = store.preferences()
        if prefs.auto_select_mode is ModePreference.CLIENT or not options.server_supported:
            model._reload_client_configs()
            model.screen = Screen.CLIENT_SELECT
            model._apply_remembered_client(auto_select)
        elif prefs.auto_select_mode is ModePreference.SERVER:
            model.screen = Screen.SERVER_SELECT
        return model

    def init(self) -> Optional[Cmd]:
        return None

    def update(self, msg: Msg) -> Tuple["ConfiguratorSessionModel", Optional[Cmd]]:
        m = copy.copy(self)
        if m.done:
            m.logs.stop_wait()
            return m, quit_cmd
        if isinstance(msg, WindowSizeMsg):
            m.width, m.height = msg.width, msg.height
            if m.tab is Tab.LOGS:
                m.logs = m.logs.ensure(m.height, m.store.preferences()).refresh(m._feed())
            return m, None
        if isinstance(msg, LogViewportTickMsg):
            if m.tab is not Tab.LOGS or not m.logs.accepts(msg):
                return m, None
            feed = m._feed()
            m.logs = m.logs.refresh(feed)
            return m, m.logs.wait_cmd(feed)
        if isinstance(msg, PasteSettledMsg):
            if m.screen is Screen.CLIENT_ADD_JSON and m.paste_seq.accepts(msg.seq):
                m._try_format_json()
            return m, None
        if isinstance(msg, PasteMsg):
            return m._handle_paste(msg.text)
        if isinstance(msg, KeyMsg):
            return m._handle_key(msg.key)
        return m, None

    # -- keys -----------------------------------------------------------------

    def _handle_key(self, key: str) -> Tuple["ConfiguratorSessionModel", Optional[Cmd]]:
        if key == "ctrl+c":
            return self._finish(error=ConfiguratorExitError())
        if key == "tab" and self.screen not in _TEXT_SCREENS:
            return self._cycle_tab()
        if self.tab is Tab.SETTINGS:
            return self._update_settings_tab(key)
        if self.tab is Tab.LOGS:
            return self._update_logs_tab(key)
        handler = {
            Screen.MODE: self._update_mode_screen,
            Screen.CLIENT_SELECT: self._update_client_select_screen,
            Screen.CLIENT_REMOVE: self._update_client_remove_screen,
            Screen.CLIENT_ADD_NAME: self._update_client_add_name_screen,
            Screen.CLIENT_ADD_JSON: self._update_client_add_json_screen,
            Screen.CLIENT_INVALID: self._update_client_invalid_screen,
            Screen.SERVER_SELECT: self._update_server_select_screen,
            Screen.SERVER_MANAGE: self._update_server_manage_screen,
            Screen.SERVER_DELETE_CONFIRM: self._update_server_delete_confirm_screen,
        }[self.screen]
        return handler(key)

    def _handle_paste(self, text: str) -> Tuple["ConfiguratorSessionModel", Optional[Cmd]]:
        if self.screen is Screen.CLIENT_ADD_NAME:
            self.name_input = self.name_input.insert(text)
            return self, None
        if self.screen is Screen.CLIENT_ADD_JSON:
            self.json_input = self.json_input.insert(text)
            return self, self._schedule_paste_settle()
        return self, None

    def _update_mode_screen(self, key: str) -> Tuple["ConfiguratorSessionModel", Optional[Cmd]]:
        if key == "esc":
            return self._finish(error=ConfiguratorExitError())
        self._move_cursor(key, len(self.mode_options))
        if key != "enter":
            return self, None
        if self.mode_options[self.cursor] == MODE_CLIENT:
            try:
                self._reload_client_configs()
            except Exception as exc:
                return self._finish(error=exc)
            self._go(Screen.CLIENT_SELECT)
        else:
            self._go(Screen.SERVER_SELECT)
        return self, None

    def _update_client_select_screen(self, key: str) -> Tuple["ConfiguratorSessionModel", Optional[Cmd]]:
        if key == "esc":
            if not self.options.server_supported:
                return self._finish(error=ConfiguratorExitError())
            self._go(Screen.MODE)
            return self, None
        self._move_cursor(key, len(self.client_menu))
        if key != "enter" or not self.client_menu:
            return self, None

        selected = self.client_menu[self.cursor]
        if selected == CLIENT_ADD:
            self._go(Screen.CLIENT_ADD_NAME)
            self.name_input = TextField(char_limit=NAME_CHAR_LIMIT)
            return self, None
        if selected == CLIENT_REMOVE:
            if not self.configs:
                self.notice = "No configurations available for removal."
                return self, None
            self._go(Screen.CLIENT_REMOVE)
            self.remove_paths = self.configs
            return self, None

        try:
            self.options.selector.select(selected)  # type: ignore[union-attr]
        except Exception as exc:
            return self._finish(error=exc)
        if self.options.client_config_manager is not None:
            try:
                self.options.client_config_manager.configuration()
            except InvalidClientConfigurationError as exc:
                self._show_invalid(exc, selected, allow_delete=True)
                return self, None
            except Exception as exc:
                return self._finish(error=exc)
        self.store.update(auto_select_client_config=selected)
        return self._finish(mode=Mode.CLIENT)

    def _update_client_remove_screen(self, key: str) -> Tuple["ConfiguratorSessionModel", Optional[Cmd]]:
        if key == "esc":
            self._go(Screen.CLIENT_SELECT)
            return self, None
        self._move_cursor(key, len(self.remove_paths))
        if key != "enter" or not self.remove_paths:
            return self, None
        try:
            self.options.deleter.delete(self.remove_paths[self.cursor])  # type: ignore[union-attr]
            self._reload_client_configs()
        except Exception as exc:
            return self._finish(error=exc)
        self._go(Screen.CLIENT_SELECT)
        self.notice = "Configuration removed."
        return self, None

    def _update_client_add_name_screen(self, key: str) -> Tuple["ConfiguratorSessionModel", Optional[Cmd]]:
        if key == "esc":
            self._go(Screen.CLIENT_SELECT)
            return self, None
        if key == "enter":
            name = self.name_input.value.strip()
            if not name:
                self.notice = "Configuration name cannot be empty."
                return self, None
            self.add_name = name
            self._go(Screen.CLIENT_ADD_JSON)
            self.last_input_at = None
            self.json_input = TextField(multiline=True)
            return self, None
        self.name_input = self.name_input.handle_key(key)
        return self, None

    def _update_client_add_json_screen(self, key: str) -> Tuple["ConfiguratorSessionModel", Optional[Cmd]]:
        if key == "esc":
            self.notice = ""
            self.screen = Screen.CLIENT_ADD_NAME
            return self, None
        if key == "enter":
            now = self.clock()
            # Character-by-character pastes deliver their newlines as Enter.
            if self.last_input_at is not None and now - self.last_input_at < PASTE_DEBOUNCE:
                self.last_input_at = now
                self.json_input = self.json_input.newline()
                return self, None
            try:
                configuration = parse_client_configuration(self.json_input.value)
            except InvalidClientConfigurationError as exc:
                self._show_invalid(exc, "", allow_delete=False)
                return self, None
            try:
                self.options.creator.create(configuration, self.add_name)  # type: ignore[union-attr]
                self._reload_client_configs()
            except Exception as exc:
                return self._finish(error=exc)
            self._go(Screen.CLIENT_SELECT)
            self.notice = "Configuration added."
            return self, None
        self.json_input = self.json_input.handle_key(key)
        return self, self._schedule_paste_settle()

    def _update_client_invalid_screen(self, key: str) -> Tuple["ConfiguratorSessionModel", Optional[Cmd]]:
        if key == "esc":
            self._go(Screen.CLIENT_SELECT)
            return self, None
        options = self._invalid_options()
        self._move_cursor(key, len(options))
        if key != "enter":
            return self, None
        if options[self.cursor] == INVALID_DELETE:
            if not self.invalid_config.strip():
                return self._finish(error=RuntimeError("invalid configuration cannot be deleted"))
            try:
                self.options.deleter.delete(self.invalid_config)  # type: ignore[union-attr]
                self._reload_client_configs()
            except Exception as exc:
                return self._finish(error=exc)
            self._go(Screen.CLIENT_SELECT)
            self.notice = "Invalid configuration deleted."
            return self, None
        self._go(Screen.CLIENT_SELECT)
        return self, None

    def _update_server_select_screen(self, key: str) -> Tuple["ConfiguratorSessionModel", Optional[Cmd]]:
        if key == "esc":
            self._go(Screen.MODE)
            return self, None
        self._move_cursor(key, len(SERVER_MENU))
        if key != "enter":
            return self, None
        manager = self.options.server_config_manager
        selected = SERVER_MENU[self.cursor]
        if selected == SERVER_START:
            return self._finish(mode=Mode.SERVER)
        if selected == SERVER_ADD:
            try:
                path = manager.add_client()  # type: ignore[union-attr]
            except Exception as exc:
                return self._finish(error=exc)
            self.notice = f"Client configuration saved to {path}"
            return self, None
        try:
            peers = manager.list_allowed_peers()  # type: ignore[union-attr]
        except Exception as exc:
            return self._finish(error=exc)
        if not peers:
            self.notice = "No clients configured yet."
            return self, None
        self._go(Screen.SERVER_MANAGE)
        self.peers = tuple(peers)
        return self, None

    def _update_server_manage_screen(self, key: str) -> Tuple["ConfiguratorSessionModel", Optional[Cmd]]:
        if key == "esc":
            self._go(Screen.SERVER_SELECT)
            return self, None
        if key in {"d", "D"}:
            if not self.peers:
                return self, None
            self.delete_peer = self.peers[self.cursor]
            self.delete_cursor = self.cursor
            self.cursor = 0
            self.screen = Screen.SERVER_DELETE_CONFIRM
            return self, None
        self._move_cursor(key, len(self.peers))
        if key != "enter" or not self.peers:
            return self, None

        peer = self.peers[self.cursor]
        manager = self.options.server_config_manager
        try:
            manager.set_allowed_peer_enabled(peer.client_id, not peer.enabled)  # type: ignore[union-attr]
        except Exception as exc:
            logger.warning("Failed to update client #%s", peer.client_id, exc_info=True)
            self._go(Screen.SERVER_SELECT)
            self.notice = f"Failed to update client #{peer.client_id}: {exc}"
            return self, None
        return self._refresh_peers(self.cursor)

    def _update_server_delete_confirm_screen(self, key: str) -> Tuple["ConfiguratorSessionModel", Optional[Cmd]]:
        options = (SERVER_DELETE_CONFIRM, CANCEL)
        if key == "esc":
            self._back_to_manage()
            return self, None
        self._move_cursor(key, len(options))
        if key != "enter":
            return self, None
        if options[self.cursor] == CANCEL or self.delete_peer is None:
            self._back_to_manage()
            return self, None

        peer = self.delete_peer
        try:
            self.options.server_config_manager.remove_allowed_peer(peer.client_id)  # type: ignore[union-attr]
        except Exception as exc:
            logger.warning("Failed to remove client #%s", peer.client_id, exc_info=True)
            self.notice = f"Failed to remove client #{peer.client_id}: {exc}"
            self.screen = Screen.SERVER_MANAGE
            self.cursor = 0
            return self, None
        model, cmd = self._refresh_peers(self.delete_cursor)
        if model.screen is Screen.SERVER_MANAGE:
            model.notice = f"Client #{peer.client_id} {peer.display_name} removed."
        return model, cmd

    # -- tabs -----------------------------------------------------------------

    def _cycle_tab(self) -> Tuple["ConfiguratorSessionModel", Optional[Cmd]]:
        previous = self.tab
        self.tab = Tab((self.tab + 1) % len(TABS))
        if self.tab is Tab.LOGS:
            feed = self._feed()
            self.logs = self.logs.restart_wait().ensure(self.height, self.store.preferences()).refresh(feed)
            return self, self.logs.wait_cmd(feed)
        if previous is Tab.LOGS:
            self.logs.stop_wait()
        return self, None

    def _update_settings_tab(self, key: str) -> Tuple["ConfiguratorSessionModel", Optional[Cmd]]:
        if key == "esc":
            self.tab = Tab.MAIN
            return self, None
        self.settings_cursor, theme_changed = handle_settings_key(
            self.settings_cursor, key, self.store, server_supported=self.options.server_supported
        )
        return self, clear_screen if theme_changed else None

    def _update_logs_tab(self, key: str) -> Tuple["ConfiguratorSessionModel", Optional[Cmd]]:
        if key == "esc":
            self.logs.stop_wait()
            self.tab = Tab.MAIN
            return self, None
        self.logs = self.logs.handle_key(key)
        return self, None

    # -- helpers --------------------------------------------------------------

    def _finish(
        self, *, mode: Mode = Mode.UNKNOWN, error: Optional[BaseException] = None
    ) -> Tuple["ConfiguratorSessionModel", Optional[Cmd]]:
        self.logs.stop_wait()
        self.result_mode = mode
        self.result_error = error
        self.done = True
        if error is not None and not isinstance(error, ConfiguratorExitError):
            log_event(logger, "configurator.failed", level=logging.WARNING, error=str(error))
        return self, quit_cmd

    def _go(self, screen: Screen) -> None:
        self.notice = ""
        self.cursor = 0
        self.screen = screen

    def _move_cursor(self, key: str, size: int) -> None:
        if size <= 0:
            self.cursor = 0
        elif key in {"up", "k"}:
            self.cursor = max(self.cursor - 1, 0)
        elif key in {"down", "j"}:
            self.cursor = min(self.cursor + 1, size - 1)

    def _reload_client_configs(self) -> None:
        configs = tuple(self.options.observer.observe())  # type: ignore[union-attr]
        self.configs = configs
        self.client_menu = configs + ((CLIENT_REMOVE,) if configs else ()) + (CLIENT_ADD,)

    def _apply_remembered_client(self, auto_select: bool) -> None:
        prefs = self.store.preferences()
        target = prefs.auto_select_client_config
        if not target:
            return
        if target not in self.configs:
            self.store.update(auto_select_client_config="")
            return
        self.cursor = self.client_menu.index(target)
        if not (auto_select and prefs.auto_connect):
            return
        try:
            self.options.selector.select(target)  # type: ignore[union-attr]
            if self.options.client_config_manager is not None:
                self.options.client_config_manager.configuration()
        except InvalidClientConfigurationError as exc:
            self._show_invalid(exc, target, allow_delete=True)
            return
        except Exception as exc:
            logger.warning("Auto-select of %s failed", target, exc_info=True)
            self.notice = f"Auto-select failed for {target!r}: {exc}"
            return
        log_event(logger, "configurator.auto_selected", path=target)
        self.result_mode = Mode.CLIENT
        self.done = True

    def _show_invalid(self, exc: BaseException, config: str, *, allow_delete: bool) -> None:
        self.invalid_error = exc
        self.invalid_config = config
        self.invalid_allow_delete = allow_delete
        self.cursor = 0
        self.screen = Screen.CLIENT_INVALID

    def _invalid_options(self) -> Tuple[str, ...]:
        return (INVALID_DELETE, INVALID_OK) if self.invalid_allow_delete else (INVALID_OK,)

    def _refresh_peers(self, cursor: int) -> Tuple["ConfiguratorSessionModel", Optional[Cmd]]:
        try:
            peers = self.options.server_config_manager.list_allowed_peers()  # type: ignore[union-attr]
        except Exception as exc:
            return self._finish(error=exc)
        if not peers:
            self._go(Screen.SERVER_SELECT)
            self.notice = "No clients configured yet."
            return self, None
        self.peers = tuple(peers)
        self.cursor = min(cursor, len(peers) - 1)
        self.screen = Screen.SERVER_MANAGE
        return self, None

    def _back_to_manage(self) -> None:
        self.cursor = min(self.delete_cursor, len(self.peers) - 1) if self.peers else 0
        self.screen = Screen.SERVER_MANAGE

    def _schedule_paste_settle(self) -> Cmd:
        self.last_input_at = self.clock()
        self.paste_seq = self.paste_seq.advance()
        seq = self.paste_seq.value
        return tick(PASTE_DEBOUNCE, lambda: PasteSettledMsg(seq))

    def _try_format_json(self) -> None:
        raw = self.json_input.value
        if not raw.strip():
            return
        try:
            pretty = json.dumps(json.loads(raw), indent=2)
        except ValueError:
            return
        if pretty != raw:
            self.json_input = self.json_input.set(pretty)

    def _feed(self) -> Optional[RuntimeLogFeed]:
        if self.log_feed is not None:
            return self.log_feed()
        return global_runtime_log_feed()

    # -- view -----------------------------------------------------------------

    def view(self) -> str:
        if self.tab is Tab.SETTINGS:
            return self._settings_view()
        if self.tab is Tab.LOGS:
            return self._logs_view()
        return self._main_view()

    def _frame(self, title: str, body: Sequence[RenderableType], hint: str, notice: str = "") -> str:
        return render_frame(
            self.store.preferences(),
            width=self.width,
            height=self.height,
            title=title,
            body=body,
            tabs=TABS,
            active_tab=int(self.tab),
            notice=notice,
            hint=hint,
        )

    def _selection(self, title: str, subtitle: str, options: Sequence[str], hint: str) -> str:
        palette = palette_for(self.store.preferences())
        body: List[RenderableType] = []
        if subtitle.strip():
            body.extend([Text(subtitle, style=palette.warning), Text("")])
        body.append(option_list(options, self.cursor, palette))
        return self._frame(title, body, hint)

    def _esc_label(self) -> str:
        return "Esc exit" if not self.options.server_supported else "Esc back"

    def _main_view(self) -> str:
        palette = palette_for(self.store.preferences())
        if self.screen is Screen.MODE:
            return self._selection(
                "Select mode",
                self.notice,
                self.mode_options,
                "up/k down/j move | Enter select | Tab switch tabs | Esc exit | ctrl+c exit",
            )
        if self.screen is Screen.CLIENT_SELECT:
            return self._selection(
                "Select configuration - or add/remove one:",
                self.notice,
                self.client_menu,
                f"up/k down/j move | Enter select | Tab switch tabs | {self._esc_label()} | ctrl+c exit",
            )
        if self.screen is Screen.CLIENT_REMOVE:
            return self._selection(
                "Choose a configuration to remove:",
                "",
                self.remove_paths,
                "up/k down/j move | Enter remove | Tab switch tabs | Esc back | ctrl+c exit",
            )
        if self.screen is Screen.CLIENT_ADD_NAME:
            value = self.name_input.value
            body: List[RenderableType] = [
                Text(f"> {value or 'Give it a name'}", style=palette.text if value else palette.muted),
                Text(f"Characters: {len(value)}/{NAME_CHAR_LIMIT}", style=palette.muted),
            ]
            return self._frame("Name configuration", body, "Enter confirm | Esc back | ctrl+c exit", self.notice)
        if self.screen is Screen.CLIENT_ADD_JSON:
            lines = self.json_input.value.split("\n") if self.json_input.value else [""]
            visible = lines[-max(self.height - 10, 5):]
            start = len(lines) - len(visible) + 1
            numbered = "\n".join(f"{start + index:>3} {line}" for index, line in enumerate(visible))
            body = [
                Text(numbered if self.json_input.value else "  1 Paste it here", style=palette.text),
                Text(f"Lines: {len(lines)}", style=palette.muted),
            ]
            return self._frame("Paste configuration", body, "Enter confirm | Esc back | ctrl+c exit", self.notice)
        if self.screen is Screen.CLIENT_INVALID:
            summary = summarize_configuration_error(self.invalid_error) if self.invalid_error else ""
            return self._selection(
                "Configuration error",
                f"Configuration is invalid: {summary}",
                self._invalid_options(),
                "up/k down/j move | Enter select | Tab switch tabs | Esc back | ctrl+c exit",
            )
        if self.screen is Screen.SERVER_SELECT:
            return self._selection(
                "Choose an option",
                self.notice,
                SERVER_MENU,
                "up/k down/j move | Enter select | Tab switch tabs | Esc back | ctrl+c exit",
            )
        if self.screen is Screen.SERVER_MANAGE:
            return self._selection(
                "Select client to enable/disable or delete",
                self.notice,
                [peer_label(peer) for peer in self.peers],
                "up/k down/j move | Enter toggle | d delete | Tab switch tabs | Esc back | ctrl+c exit",
            )
        peer = self.delete_peer
        title = f"Delete client #{peer.client_id} {peer.display_name}?" if peer else "Delete client?"
        return self._selection(
            title,
            "This action removes client access from server configuration.",
            (SERVER_DELETE_CONFIRM, CANCEL),
            "up/k down/j move | Enter confirm | Tab switch tabs | Esc back | ctrl+c exit",
        )

    def _settings_view(self) -> str:
        prefs = self.store.preferences()
        body = [settings_view(prefs, self.settings_cursor, self.options.server_supported, palette_for(prefs))]
        return self._frame("Settings", body, SETTINGS_HINT)

    def _logs_view(self) -> str:
        body = [self.logs.view(palette_for(self.store.preferences()))]
        return self._frame("Logs", body, LOGS_HINT)
