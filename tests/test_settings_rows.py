from __future__ import annotations

from tests.utils import make_store
from tunnelui.preferences import ModePreference, StatsUnits, ThemeOption
from tunnelui.tui.render import PALETTES
from tunnelui.tui.settings_rows import (
    apply_settings_change,
    handle_settings_key,
    settings_rows,
    settings_view,
    visible_settings_keys,
)


def test_visible_rows_depend_on_server_support_and_mode() -> None:
    store = make_store()
    assert visible_settings_keys(store.preferences(), True)[-1] == "auto_select_mode"
    assert "auto_connect" not in visible_settings_keys(store.preferences(), True)

    assert visible_settings_keys(store.preferences(), False)[-1] == "auto_connect"
    assert "auto_select_mode" not in visible_settings_keys(store.preferences(), False)

    client = make_store(auto_select_mode="client").preferences()
    assert visible_settings_keys(client, True)[-2:] == ("auto_select_mode", "auto_connect")


def test_rows_render_values() -> None:
    rows = {row.key: row.value for row in settings_rows(make_store(theme="dark_nord").preferences(), True)}
    assert rows["theme"] == "dark nord"
    assert rows["show_footer"] == "on"
    assert rows["auto_select_mode"] == "none"


def test_apply_change_cycles_and_wraps() -> None:
    store = make_store()
    assert apply_settings_change(store, 0, 1, server_supported=True).theme is ThemeOption.DARK
    assert apply_settings_change(store, 0, -1, server_supported=True).theme is ThemeOption.LIGHT
    assert apply_settings_change(store, 0, -1, server_supported=True).theme is ThemeOption.DARK_MONO
    assert apply_settings_change(store, 2, 1, server_supported=True).stats_units is StatsUnits.BYTES


def test_mode_choices_exclude_server_when_unsupported() -> None:
    store = make_store(auto_select_mode="client")
    keys = visible_settings_keys(store.preferences(), True)
    cursor = keys.index("auto_select_mode")
    assert apply_settings_change(store, cursor, 1, server_supported=True).auto_select_mode is ModePreference.SERVER

    store = make_store(auto_select_mode="client")
    keys = visible_settings_keys(store.preferences(), False)
    cursor = keys.index("auto_connect")
    assert apply_settings_change(store, cursor, 1, server_supported=False).auto_connect is True


def test_handle_key_moves_cursor_and_reports_theme_change() -> None:
    store = make_store()
    cursor, changed = handle_settings_key(0, "down", store, server_supported=True)
    assert (cursor, changed) == (1, False)
    cursor, changed = handle_settings_key(0, "up", store, server_supported=True)
    assert (cursor, changed) == (0, False)

    cursor, changed = handle_settings_key(0, "enter", store, server_supported=True)
    assert changed
    assert store.preferences().theme is ThemeOption.DARK

    last = len(visible_settings_keys(store.preferences(), True)) - 1
    assert handle_settings_key(last, "down", store, server_supported=True)[0] == last
    assert handle_settings_key(0, "x", store, server_supported=True) == (0, False)


def test_cursor_clamps_when_rows_disappear() -> None:
    store = make_store(auto_select_mode="client")
    keys = visible_settings_keys(store.preferences(), True)
    cursor = keys.index("auto_select_mode")
    # client -> server hides the auto-connect row below the cursor.
    new_cursor, _ = handle_settings_key(cursor, "right", store, server_supported=True)
    assert store.preferences().auto_select_mode is ModePreference.SERVER
    assert new_cursor == cursor
    assert new_cursor < len(visible_settings_keys(store.preferences(), True))


def test_settings_view_marks_cursor() -> None:
    text = settings_view(make_store().preferences(), 1, True, PALETTES[ThemeOption.LIGHT]).plain
    lines = text.splitlines()
    assert lines[1].startswith("> Language")
    assert lines[0].startswith("  Theme")
