"""Minimal editable text buffer for the configurator's input screens."""

from __future__ import annotations

from dataclasses import dataclass, replace

_EDIT_KEYS = {"backspace", "ctrl+u"}


@dataclass(frozen=True)
class TextField:
    value: str = ""
    char_limit: int = 0
    multiline: bool = False

    def insert(self, text: str) -> "TextField":
        if not self.multiline:
            text = text.replace("\r", "").replace("\n", "")
        else:
            text = text.replace("\r\n", "\n").replace("\r", "\n")
        value = self.value + text
        if self.char_limit:
            value = value[: self.char_limit]
        return replace(self, value=value)

    def newline(self) -> "TextField":
        return self.insert("\n") if self.multiline else self

    def handle_key(self, key: str) -> "TextField":
        """Apply an editing key; unknown named keys leave the buffer unchanged."""
        if key == "backspace":
            return replace(self, value=self.value[:-1])
        if key == "ctrl+u":
            return replace(self, value="")
        if len(key) == 1 and key.isprintable():
            return self.insert(key)
        return self

    @staticmethod
    def is_edit_key(key: str) -> bool:
        return key in _EDIT_KEYS or (len(key) == 1 and key.isprintable())

    def set(self, value: str) -> "TextField":
        return replace(self, value="").insert(value)
