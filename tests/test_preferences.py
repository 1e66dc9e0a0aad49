from __future__ import annotations

import json
import logging
import threading
from pathlib import Path

import pytest

from tunnelui.preferences import (
    ModePreference,
    Preferences,
    PreferencesStore,
    StatsUnits,
    ThemeOption,
    load_preferences,
    save_preferences,
)


def test_defaults() -> None:
    prefs = Preferences()
    assert prefs.theme is ThemeOption.LIGHT
    assert prefs.language == "en"
    assert prefs.stats_units is StatsUnits.BIBYTES
    assert prefs.show_dataplane_stats and prefs.show_dataplane_graph and prefs.show_footer
    assert prefs.auto_select_mode is ModePreference.NONE
    assert prefs.auto_connect is False
    assert prefs.auto_select_client_config == ""


def test_invalid_values_sanitize_to_defaults() -> None:
    prefs = Preferences.from_payload(
        {
            "theme": "neon",
            "language": "xx",
            "stats_units": 3,
            "show_dataplane_stats": "yes",
            "show_footer": None,
            "auto_select_mode": "maybe",
            "auto_connect": 1,
            "auto_select_client_config": ["not", "a", "path"],
            "unknown": True,
        }
    )
    assert prefs == Preferences()


@pytest.mark.parametrize(
    ("stored", "expected"),
    [
        ("auto", ThemeOption.LIGHT),
        ("dark_midnight", ThemeOption.DARK_OCEAN),
        ("DARK_NORD", ThemeOption.DARK_NORD),
        (" dark ", ThemeOption.DARK),
    ],
)
def test_theme_names_are_normalised(stored: str, expected: ThemeOption) -> None:
    assert Preferences.from_payload({"theme": stored}).theme is expected


def test_non_mapping_payload_gives_defaults() -> None:
    assert Preferences.from_payload(["theme", "dark"]) == Preferences()


def test_load_missing_and_corrupt_files(tmp_path: Path, caplog) -> None:
    assert load_preferences(tmp_path / "missing.json") == Preferences()

    broken = tmp_path / "broken.json"
    broken.write_text("{not json", encoding="utf-8")
    with caplog.at_level(logging.WARNING):
        assert load_preferences(broken) == Preferences()
    assert "Failed to read UI preferences" in caplog.text


def test_save_then_load(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "tui.json"
    prefs = Preferences(theme=ThemeOption.DARK_MATRIX, auto_connect=True, auto_select_client_config="/x.json")
    save_preferences(path, prefs)

    document = json.loads(path.read_text(encoding="utf-8"))
    assert document["theme"] == "dark_matrix"
    assert load_preferences(path) == prefs


def test_store_update_replaces_snapshot_and_persists(tmp_path: Path) -> None:
    path = tmp_path / "tui.json"
    store = PreferencesStore(path=path)
    before = store.preferences()

    after = store.update(theme="dark", show_footer=False)

    assert before.theme is ThemeOption.LIGHT
    assert after.theme is ThemeOption.DARK
    assert store.preferences() is after
    assert load_preferences(path) == after


def test_store_update_sanitizes(tmp_path: Path) -> None:
    store = PreferencesStore(path=tmp_path / "tui.json")
    assert store.update(auto_select_mode="bogus").auto_select_mode is ModePreference.NONE


def test_store_persist_failure_is_not_fatal(tmp_path: Path, caplog) -> None:
    blocker = tmp_path / "file"
    blocker.write_text("", encoding="utf-8")
    store = PreferencesStore(path=blocker / "tui.json")

    with caplog.at_level(logging.WARNING):
        updated = store.update(theme="dark")

    assert updated.theme is ThemeOption.DARK
    assert store.preferences().theme is ThemeOption.DARK
    assert "preferences.persist_failed" in caplog.text


def test_store_load_and_reload(tmp_path: Path) -> None:
    path = tmp_path / "tui.json"
    save_preferences(path, Preferences(theme=ThemeOption.DARK))
    store = PreferencesStore.load(path)
    assert store.preferences().theme is ThemeOption.DARK

    save_preferences(path, Preferences(theme=ThemeOption.DARK_MONO))
    assert store.reload().theme is ThemeOption.DARK_MONO


def test_concurrent_updates_keep_every_change(tmp_path: Path) -> None:
    store = PreferencesStore()
    fields = ["show_dataplane_stats", "show_dataplane_graph", "show_footer", "auto_connect"]

    def flip(name: str) -> None:
        store.update(**{name: not getattr(Preferences(), name)})

    threads = [threading.Thread(target=flip, args=(name,)) for name in fields]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    prefs = store.preferences()
    for name in fields:
        assert getattr(prefs, name) is not getattr(Preferences(), name)
