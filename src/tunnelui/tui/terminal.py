"""Terminal backends for the TUI program."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections import deque
from typing import Callable, Deque, Optional, Protocol, Tuple

from prompt_toolkit.input import Input, create_input
from prompt_toolkit.key_binding import KeyPress
from prompt_toolkit.keys import Keys
from prompt_toolkit.output import Output, create_output

from tunnelui.tui.commands import KeyMsg, Msg, PasteMsg, WindowSizeMsg

logger = logging.getLogger(__name__)

Send = Callable[[Msg], None]

SIZE_POLL_INTERVAL = 0.25
ESCAPE_FLUSH_DELAY = 0.05

_KEY_NAMES = {
    Keys.ControlC: "ctrl+c",
    Keys.ControlD: "ctrl+d",
    Keys.ControlM: "enter",
    Keys.ControlJ: "enter",
    Keys.ControlI: "tab",
    Keys.BackTab: "shift+tab",
    Keys.Escape: "esc",
    Keys.ControlH: "backspace",
    Keys.Delete: "delete",
    Keys.Up: "up",
    Keys.Down: "down",
    Keys.Left: "left",
    Keys.Right: "right",
    Keys.PageUp: "pgup",
    Keys.PageDown: "pgdown",
    Keys.Home: "home",
    Keys.End: "end",
}


def key_name(press: KeyPress) -> Optional[str]:
    """Map a prompt_toolkit key press to the short names models match on."""
    if isinstance(press.key, Keys):
        return _KEY_NAMES.get(press.key)
    return press.key or None


class Terminal(Protocol):
    def start(self, send: Send) -> None: ...

    def size(self) -> Optional[Tuple[int, int]]: ...

    def render(self, view: str) -> None: ...

    def clear(self) -> None: ...

    def stop(self) -> None: ...


class PromptToolkitTerminal:
    """Raw-mode keyboard input and alternate-screen output via prompt_toolkit.

    ``start`` must run inside the program's event loop: prompt_toolkit
    registers the stdin reader on the running loop.
    """

    def __init__(self, input: Input | None = None, output: Output | None = None) -> None:
        self._input = input or create_input()
        self._output = output or create_output()
        self._send: Optional[Send] = None
        self._stack = contextlib.ExitStack()
        self._size_task: Optional[asyncio.Task[None]] = None
        self._flush_handle: Optional[asyncio.TimerHandle] = None
        self._last_view: Optional[str] = None
        self._last_size: Optional[Tuple[int, int]] = None

    def start(self, send: Send) -> None:
        self._send = send
        loop = asyncio.get_running_loop()
        self._stack.enter_context(self._input.raw_mode())
        self._stack.enter_context(self._input.attach(self._on_input_ready))
        out = self._output
        out.enter_alternate_screen()
        out.hide_cursor()
        out.enable_bracketed_paste()
        out.flush()
        self._last_size = self.size()
        self._size_task = loop.create_task(self._watch_size())

    def size(self) -> Optional[Tuple[int, int]]:
        try:
            size = self._output.get_size()
        except OSError:
            return None
        return size.columns, size.rows

    def render(self, view: str) -> None:
        if view == self._last_view:
            return
        self._last_view = view
        out = self._output
        out.cursor_goto(0, 0)
        lines = view.split("\n")
        for index, line in enumerate(lines):
            out.write_raw(line)
            out.erase_end_of_line()
            if index < len(lines) - 1:
                out.write_raw("\r\n")
        out.erase_down()
        out.flush()

    def clear(self) -> None:
        self._last_view = None
        self._output.erase_screen()
        self._output.cursor_goto(0, 0)
        self._output.flush()

    def stop(self) -> None:
        if self._size_task is not None:
            self._size_task.cancel()
            self._size_task = None
        if self._flush_handle is not None:
            self._flush_handle.cancel()
            self._flush_handle = None
        self._stack.close()
        out = self._output
        out.disable_bracketed_paste()
        out.show_cursor()
        out.quit_alternate_screen()
        out.flush()

    def _on_input_ready(self) -> None:
        self._dispatch(self._input.read_keys())
        if self._flush_handle is not None:
            self._flush_handle.cancel()
        # A lone escape stays in the parser until flushed.
        self._flush_handle = asyncio.get_running_loop().call_later(ESCAPE_FLUSH_DELAY, self._flush_pending)

    def _flush_pending(self) -> None:
        self._flush_handle = None
        self._dispatch(self._input.flush_keys())

    def _dispatch(self, presses: list[KeyPress]) -> None:
        if self._send is None:
            return
        for press in presses:
            if press.key == Keys.BracketedPaste:
                self._send(PasteMsg(press.data))
                continue
            name = key_name(press)
            if name is not None:
                self._send(KeyMsg(name))

    async def _watch_size(self) -> None:
        while True:
            await asyncio.sleep(SIZE_POLL_INTERVAL)
            size = self.size()
            if size is not None and size != self._last_size:
                self._last_size = size
                self._last_view = None
                if self._send is not None:
                    self._send(WindowSizeMsg(*size))


class HeadlessTerminal:
    """Terminal stand-in that keeps rendered frames in memory.

    Used when stdin is not a TTY and by tests.
    """

    def __init__(self, width: int = 80, height: int = 24, *, keep_frames: int = 32) -> None:
        self.width = width
        self.height = height
        self.frames: Deque[str] = deque(maxlen=keep_frames)
        self.clears = 0
        self.started = False
        self.stopped = False
        self.send: Optional[Send] = None

    def start(self, send: Send) -> None:
        self.send = send
        self.started = True

    def size(self) -> Optional[Tuple[int, int]]:
        return self.width, self.height

    def render(self, view: str) -> None:
        self.frames.append(view)

    def clear(self) -> None:
        self.clears += 1

    def stop(self) -> None:
        self.stopped = True

    @property
    def last_frame(self) -> str:
        return self.frames[-1] if self.frames else ""


def clear_terminal_after_tui(output: Output | None = None) -> None:
    """Erase whatever the TUI left on the primary screen."""
    out = output or create_output()
    out.erase_screen()
    out.cursor_goto(0, 0)
    out.show_cursor()
    out.flush()
