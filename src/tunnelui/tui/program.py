"""Single-loop message runtime hosting one model.

All model updates happen on the program's own asyncio loop, strictly in
arrival order. Other threads talk to the model only through :meth:`send`.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import threading
from typing import Any, Optional, Set

from tunnelui.tui.commands import BatchMsg, ClearScreenMsg, Cmd, Msg, QuitMsg, WindowSizeMsg
from tunnelui.tui.submodel import SubModel
from tunnelui.tui.terminal import PromptToolkitTerminal, Terminal

logger = logging.getLogger(__name__)


class Program:
    def __init__(self, model: SubModel, *, terminal: Terminal | None = None) -> None:
        self._model = model
        self._terminal: Terminal = terminal if terminal is not None else PromptToolkitTerminal()
        self._loop = asyncio.new_event_loop()
        self._queue: asyncio.Queue[Msg] = asyncio.Queue()
        self._tasks: Set[asyncio.Task[Any]] = set()
        self._state_lock = threading.Lock()
        self._running = False
        self._finished = False

    @property
    def model(self) -> SubModel:
        """Latest model snapshot. Only meaningful once :meth:`run` returned."""
        return self._model

    def send(self, msg: Msg) -> None:
        """Post ``msg`` from any thread; dropped once the program has finished."""
        with self._state_lock:
            if self._finished:
                return
            with contextlib.suppress(RuntimeError):
                self._loop.call_soon_threadsafe(self._queue.put_nowait, msg)

    def quit(self) -> None:
        self.send(QuitMsg())

    def run(self) -> SubModel:
        """Run the loop in the calling thread until a ``QuitMsg`` arrives."""
        with self._state_lock:
            if self._running or self._finished:
                raise RuntimeError("program already started")
            self._running = True
        try:
            return self._loop.run_until_complete(self._main())
        finally:
            with self._state_lock:
                self._finished = True
            self._loop.close()

    async def _main(self) -> SubModel:
        terminal = self._terminal
        try:
            terminal.start(self.send)
            size = terminal.size()
            if size is not None:
                self._queue.put_nowait(WindowSizeMsg(*size))
            self._execute(self._model.init())
            terminal.render(self._model.view())
            while True:
                msg = await self._queue.get()
                if msg is None:
                    continue
                if isinstance(msg, QuitMsg):
                    break
                if isinstance(msg, BatchMsg):
                    for cmd in msg.cmds:
                        self._execute(cmd)
                    continue
                if isinstance(msg, ClearScreenMsg):
                    terminal.clear()
                    continue
                self._model, cmd = self._model.update(msg)
                self._execute(cmd)
                terminal.render(self._model.view())
        finally:
            await self._cancel_tasks()
            terminal.stop()
        return self._model

    def _execute(self, cmd: Optional[Cmd]) -> None:
        if cmd is None:
            return
        task = self._loop.create_task(self._run_cmd(cmd))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run_cmd(self, cmd: Cmd) -> None:
        try:
            result = await cmd()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Command failed")
            return
        if result is not None:
            self._queue.put_nowait(result)

    async def _cancel_tasks(self) -> None:
        pending = list(self._tasks)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
