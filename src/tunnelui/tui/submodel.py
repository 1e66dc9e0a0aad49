"""Contract shared by every model the session can host."""

from __future__ import annotations

from typing import Optional, Protocol, Tuple, runtime_checkable

from tunnelui.tui.commands import Cmd, Msg


@runtime_checkable
class SubModel(Protocol):
    """Copy-on-write model: ``update`` returns the successor, never mutates."""

    def init(self) -> Optional[Cmd]: ...

    def update(self, msg: Msg) -> Tuple["SubModel", Optional[Cmd]]: ...

    def view(self) -> str: ...
