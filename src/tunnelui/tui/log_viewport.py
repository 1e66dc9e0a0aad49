"""Scrollable view over a runtime log feed."""

from __future__ import annotations

import asyncio
import threading
from dataclasses import dataclass, replace
from typing import Callable, Optional, Tuple

from rich.text import Text

from tunnelui.preferences import Preferences
from tunnelui.tui.commands import Cmd, Msg
from tunnelui.tui.log_buffer import DEFAULT_CAPACITY, RuntimeLogFeed
from tunnelui.tui.render import Palette
from tunnelui.tui.sequence import SequenceGuard

LOG_POLL_INTERVAL = 0.1
# Feeds without a version counter are re-read on a fixed cadence.
LOG_FALLBACK_TICK = 0.5
FRAME_CHROME_LINES = 7


@dataclass(frozen=True)
class LogViewportTickMsg:
    seq: int


def log_update_cmd(
    feed: Optional[RuntimeLogFeed],
    stop: threading.Event,
    seq: int,
    since_version: int,
    *,
    connection_done: Optional[threading.Event] = None,
    on_connection_done: Optional[Callable[[], Msg]] = None,
) -> Cmd:
    """Wait for new log lines, a stop request, or the end of the connection."""

    async def _wait() -> Optional[Msg]:
        waited = 0.0
        while True:
            if connection_done is not None and on_connection_done is not None and connection_done.is_set():
                return on_connection_done()
            if stop.is_set():
                return None
            version = getattr(feed, "version", None)
            if version is not None and version != since_version:
                return LogViewportTickMsg(seq)
            if version is None and waited >= LOG_FALLBACK_TICK:
                return LogViewportTickMsg(seq)
            await asyncio.sleep(LOG_POLL_INTERVAL)
            waited += LOG_POLL_INTERVAL

    return _wait


@dataclass(frozen=True)
class LogViewport:
    lines: Tuple[str, ...] = ()
    offset: int = 0
    follow: bool = True
    page_height: int = 10
    tick_seq: SequenceGuard = SequenceGuard()
    wait_stop: Optional[threading.Event] = None
    seen_version: int = -1

    def ensure(self, height: int, prefs: Preferences) -> "LogViewport":
        chrome = FRAME_CHROME_LINES + (1 if prefs.show_footer else 0)
        return replace(self, page_height=max(height - chrome, 3))._clamped()

    def refresh(self, feed: Optional[RuntimeLogFeed]) -> "LogViewport":
        if feed is None:
            return replace(self, lines=(), offset=0)
        updated = replace(
            self,
            lines=tuple(feed.tail(DEFAULT_CAPACITY)),
            seen_version=getattr(feed, "version", -1),
        )
        if updated.follow:
            return replace(updated, offset=0)
        return updated._clamped()

    def handle_key(self, key: str) -> "LogViewport":
        page = self.page_height
        if key in {"up", "k"}:
            return replace(self, offset=self.offset + 1, follow=False)._clamped()
        if key in {"down", "j"}:
            return self._scroll_down(1)
        if key == "pgup":
            return replace(self, offset=self.offset + page, follow=False)._clamped()
        if key == "pgdown":
            return self._scroll_down(page)
        if key == "home":
            return replace(self, offset=self._max_offset(), follow=False)
        if key == "end":
            return replace(self, offset=0, follow=True)
        if key == " ":
            return replace(self, follow=not self.follow, offset=0 if not self.follow else self.offset)
        return self

    def restart_wait(self) -> "LogViewport":
        """Abandon any in-flight wait and start a new tagged round."""
        self.stop_wait()
        return replace(self, tick_seq=self.tick_seq.advance(), wait_stop=threading.Event())

    def stop_wait(self) -> None:
        if self.wait_stop is not None:
            self.wait_stop.set()

    def accepts(self, msg: LogViewportTickMsg) -> bool:
        return self.tick_seq.accepts(msg.seq)

    def wait_cmd(
        self,
        feed: Optional[RuntimeLogFeed],
        *,
        connection_done: Optional[threading.Event] = None,
        on_connection_done: Optional[Callable[[], Msg]] = None,
    ) -> Optional[Cmd]:
        if self.wait_stop is None or (feed is None and connection_done is None):
            return None
        return log_update_cmd(
            feed,
            self.wait_stop,
            self.tick_seq.value,
            self.seen_version,
            connection_done=connection_done,
            on_connection_done=on_connection_done,
        )

    def visible_lines(self) -> Tuple[str, ...]:
        end = len(self.lines) - self.offset
        start = max(end - self.page_height, 0)
        return self.lines[start:end]

    def view(self, palette: Palette) -> Text:
        text = Text()
        visible = self.visible_lines()
        if not visible:
            text.append("No log lines yet.", style=palette.muted)
        else:
            text.append("\n".join(visible), style=palette.text)
        status = "follow" if self.follow else f"scrolled {self.offset} up"
        text.append(f"\n[{status}]", style=palette.muted)
        return text

    def _scroll_down(self, amount: int) -> "LogViewport":
        offset = max(self.offset - amount, 0)
        return replace(self, offset=offset, follow=offset == 0)

    def _max_offset(self) -> int:
        return max(len(self.lines) - self.page_height, 0)

    def _clamped(self) -> "LogViewport":
        offset = min(self.offset, self._max_offset())
        if offset == self.offset:
            return self
        return replace(self, offset=offset)
