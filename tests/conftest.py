from __future__ import annotations

from pathlib import Path

import pytest


@pytest.fixture(autouse=True)
def _isolate_home(tmp_path_factory, monkeypatch):
    """Force tests to use a temporary HOME/XDG dirs to avoid permission issues."""
    base = tmp_path_factory.mktemp("home")
    monkeypatch.setenv("HOME", str(base))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(base / ".config"))
    monkeypatch.setenv("XDG_STATE_HOME", str(base / ".local" / "state"))
    monkeypatch.setenv("XDG_DATA_HOME", str(base / ".local" / "share"))
    monkeypatch.setenv("XDG_CACHE_HOME", str(base / ".cache"))
    monkeypatch.setenv("TUNNELUI_UI_SETTINGS_PATH", str(base / "tunnelui" / "tui.json"))
    monkeypatch.setenv("TUNNELUI_CONFIG_DIR", str(base / "tunnelui" / "configs"))
    for name in ("TUNNELUI_LOG_DIR", "TUNNELUI_LOG_LEVEL", "TUNNELUI_LOG_STDERR", "TUNNELUI_LOG_JSON"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(Path, "home", lambda: base)
