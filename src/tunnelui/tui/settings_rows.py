"""Settings tab rows shared by the configurator and the runtime dashboard.

The visible rows depend on the preferences: the start-mode row only exists
when server mode is supported, and the auto-connect row only when the
effective start mode is client.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Sequence, Tuple

from rich.text import Text

from tunnelui.preferences import LANGUAGES, ModePreference, Preferences, PreferencesStore, StatsUnits, ThemeOption
from tunnelui.tui.render import Palette


@dataclass(frozen=True)
class SettingsRow:
    key: str
    label: str
    value: str


_LABELS = {
    "theme": "Theme",
    "language": "Language",
    "stats_units": "Traffic units",
    "show_dataplane_stats": "Dataplane stats",
    "show_dataplane_graph": "Dataplane graph",
    "show_footer": "Footer hints",
    "auto_select_mode": "Start in mode",
    "auto_connect": "Auto-connect",
}
_BASE_KEYS = (
    "theme",
    "language",
    "stats_units",
    "show_dataplane_stats",
    "show_dataplane_graph",
    "show_footer",
)


def visible_settings_keys(prefs: Preferences, server_supported: bool) -> Tuple[str, ...]:
    if not server_supported:
        return _BASE_KEYS + ("auto_connect",)
    if prefs.auto_select_mode is ModePreference.CLIENT:
        return _BASE_KEYS + ("auto_select_mode", "auto_connect")
    return _BASE_KEYS + ("auto_select_mode",)


def _display(value: Any) -> str:
    if isinstance(value, bool):
        return "on" if value else "off"
    return str(getattr(value, "value", value)).replace("_", " ")


def settings_rows(prefs: Preferences, server_supported: bool) -> List[SettingsRow]:
    return [
        SettingsRow(key, _LABELS[key], _display(getattr(prefs, key)))
        for key in visible_settings_keys(prefs, server_supported)
    ]


def _choices(key: str, server_supported: bool) -> Sequence[Any]:
    if key == "theme":
        return list(ThemeOption)
    if key == "language":
        return LANGUAGES
    if key == "stats_units":
        return list(StatsUnits)
    if key == "auto_select_mode":
        if server_supported:
            return list(ModePreference)
        return [ModePreference.NONE, ModePreference.CLIENT]
    return (False, True)


def apply_settings_change(store: PreferencesStore, cursor: int, step: int, *, server_supported: bool) -> Preferences:
    """Cycle the value under ``cursor`` (an index into the visible rows) by ``step``."""
    keys = visible_settings_keys(store.preferences(), server_supported)
    key = keys[min(max(cursor, 0), len(keys) - 1)]
    current = getattr(store.preferences(), key)
    choices = list(_choices(key, server_supported))
    try:
        index = choices.index(current)
    except ValueError:
        index = 0
    return store.update(**{key: choices[(index + step) % len(choices)]})


def handle_settings_key(
    cursor: int, key: str, store: PreferencesStore, *, server_supported: bool
) -> Tuple[int, bool]:
    """Move the cursor or change the focused row.

    Returns the new cursor and whether the theme changed.
    """
    before = store.preferences()
    count = len(visible_settings_keys(before, server_supported))
    if key in {"up", "k"}:
        return max(cursor - 1, 0), False
    if key in {"down", "j"}:
        return min(cursor + 1, count - 1), False
    if key in {"left", "h"}:
        after = apply_settings_change(store, cursor, -1, server_supported=server_supported)
    elif key in {"right", "l", "enter"}:
        after = apply_settings_change(store, cursor, 1, server_supported=server_supported)
    else:
        return cursor, False
    visible = len(visible_settings_keys(after, server_supported))
    return min(cursor, visible - 1), after.theme is not before.theme


def settings_view(prefs: Preferences, cursor: int, server_supported: bool, palette: Palette) -> Text:
    rows = settings_rows(prefs, server_supported)
    width = max(len(row.label) for row in rows)
    text = Text()
    for index, row in enumerate(rows):
        if index:
            text.append("\n")
        if index == cursor:
            text.append(f"> {row.label.ljust(width)}  < {row.value} >", style=palette.selected)
        else:
            text.append(f"  {row.label.ljust(width)}  ", style=palette.text)
            text.append(row.value, style=palette.accent)
    return text
