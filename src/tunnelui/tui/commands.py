"""Messages and commands for the single-loop TUI runtime.

A command (``Cmd``) is a zero-argument coroutine function. The program runs
each command as a task on its event loop and feeds whatever message it
returns back into the mailbox. Models never await commands themselves.
"""

from __future__ import annotations

import asyncio
import threading
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Tuple

Msg = Any
Cmd = Callable[[], Awaitable[Optional[Msg]]]


@dataclass(frozen=True)
class KeyMsg:
    key: str


@dataclass(frozen=True)
class PasteMsg:
    text: str


@dataclass(frozen=True)
class WindowSizeMsg:
    width: int
    height: int


@dataclass(frozen=True)
class QuitMsg:
    """Terminate the event loop."""


@dataclass(frozen=True)
class ClearScreenMsg:
    """Erase the terminal before the next frame."""


@dataclass(frozen=True)
class BatchMsg:
    cmds: Tuple[Cmd, ...]


async def quit_cmd() -> QuitMsg:
    return QuitMsg()


async def clear_screen() -> ClearScreenMsg:
    return ClearScreenMsg()


def message(msg: Msg) -> Cmd:
    """Command that resolves immediately to ``msg``."""

    async def _message() -> Msg:
        return msg

    return _message


def batch(*cmds: Optional[Cmd]) -> Optional[Cmd]:
    """Run several commands concurrently; ``None`` entries are dropped."""
    valid = tuple(cmd for cmd in cmds if cmd is not None)
    if not valid:
        return None
    if len(valid) == 1:
        return valid[0]

    async def _batch() -> BatchMsg:
        return BatchMsg(valid)

    return _batch


def tick(delay: float, factory: Callable[[], Msg]) -> Cmd:
    """Command that sleeps ``delay`` seconds and then resolves to ``factory()``."""

    async def _tick() -> Msg:
        await asyncio.sleep(delay)
        return factory()

    return _tick


EVENT_POLL_INTERVAL = 0.05


def watch_event(
    event: threading.Event,
    factory: Callable[[], Msg],
    *,
    stop: Optional[threading.Event] = None,
    interval: float = EVENT_POLL_INTERVAL,
) -> Cmd:
    """Command resolving to ``factory()`` once ``event`` is set.

    Resolves to ``None`` if ``stop`` is set first.
    """

    async def _watch() -> Optional[Msg]:
        while not event.is_set():
            if stop is not None and stop.is_set():
                return None
            await asyncio.sleep(interval)
        return factory()

    return _watch


def filter_quit(cmd: Optional[Cmd]) -> Optional[Cmd]:
    """Wrap ``cmd`` so a sub-model's quit never reaches the shared loop.

    A ``QuitMsg`` result becomes ``None``; a ``BatchMsg`` result is rebuilt
    with every member wrapped the same way.
    """
    if cmd is None:
        return None

    async def _filtered() -> Optional[Msg]:
        result = await cmd()
        if isinstance(result, QuitMsg):
            return None
        if isinstance(result, BatchMsg):
            return BatchMsg(tuple(filter_quit(member) for member in result.cmds))  # type: ignore[misc]
        return result

    return _filtered
