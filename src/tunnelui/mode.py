"""Operating modes the session can hand back to the application."""

from __future__ import annotations

from enum import Enum


class Mode(str, Enum):
    UNKNOWN = "unknown"
    CLIENT = "client"
    SERVER = "server"

    @property
    def label(self) -> str:
        return self.value.capitalize()
