"""Persisted UI preferences.

``Preferences`` is an immutable, always-sanitised snapshot. ``PreferencesStore``
hands out the current snapshot without locking and serialises writers; every
write replaces the whole snapshot and then persists it best-effort.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, ValidationError, ValidationInfo, field_validator

from tunnelui.log_utils import log_event
from tunnelui.paths import ui_settings_path

logger = logging.getLogger(__name__)


class ThemeOption(str, Enum):
    LIGHT = "light"
    DARK = "dark"
    DARK_HIGH_CONTRAST = "dark_high_contrast"
    DARK_MATRIX = "dark_matrix"
    DARK_OCEAN = "dark_ocean"
    DARK_NORD = "dark_nord"
    DARK_MONO = "dark_mono"


class StatsUnits(str, Enum):
    BYTES = "bytes"
    BIBYTES = "bibytes"


class ModePreference(str, Enum):
    NONE = "none"
    CLIENT = "client"
    SERVER = "server"


LANGUAGES = ("en",)

# Theme names written by earlier releases.
LEGACY_THEMES: Dict[str, ThemeOption] = {
    "auto": ThemeOption.LIGHT,
    "light_paper": ThemeOption.LIGHT,
    "light_solarized": ThemeOption.LIGHT,
    "light_github": ThemeOption.LIGHT,
    "dark_midnight": ThemeOption.DARK_OCEAN,
    "dark_ember": ThemeOption.DARK_HIGH_CONTRAST,
    "dark_violet": ThemeOption.DARK,
    "dark_forest": ThemeOption.DARK_MATRIX,
    "dark_graphite": ThemeOption.DARK_NORD,
    "dark_cyber": ThemeOption.DARK,
}


class Preferences(BaseModel):
    """Sanitised UI preferences. Invalid input falls back to defaults, never raises."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    theme: ThemeOption = ThemeOption.LIGHT
    language: str = "en"
    stats_units: StatsUnits = StatsUnits.BIBYTES
    show_dataplane_stats: bool = True
    show_dataplane_graph: bool = True
    show_footer: bool = True
    auto_select_mode: ModePreference = ModePreference.NONE
    auto_connect: bool = False
    auto_select_client_config: str = ""

    @field_validator("theme", mode="before")
    @classmethod
    def _sanitize_theme(cls, value: Any) -> ThemeOption:
        if isinstance(value, ThemeOption):
            return value
        name = str(value or "").strip().lower()
        if name in LEGACY_THEMES:
            return LEGACY_THEMES[name]
        try:
            return ThemeOption(name)
        except ValueError:
            return ThemeOption.LIGHT

    @field_validator("language", mode="before")
    @classmethod
    def _sanitize_language(cls, value: Any) -> str:
        name = str(value or "").strip().lower()
        return name if name in LANGUAGES else "en"

    @field_validator("stats_units", mode="before")
    @classmethod
    def _sanitize_units(cls, value: Any) -> StatsUnits:
        try:
            return StatsUnits(str(getattr(value, "value", value) or "").strip().lower())
        except ValueError:
            return StatsUnits.BIBYTES

    @field_validator("auto_select_mode", mode="before")
    @classmethod
    def _sanitize_mode(cls, value: Any) -> ModePreference:
        try:
            return ModePreference(str(getattr(value, "value", value) or "").strip().lower())
        except ValueError:
            return ModePreference.NONE

    @field_validator(
        "show_dataplane_stats",
        "show_dataplane_graph",
        "show_footer",
        "auto_connect",
        mode="before",
    )
    @classmethod
    def _sanitize_toggle(cls, value: Any, info: ValidationInfo) -> bool:
        if isinstance(value, bool):
            return value
        return bool(cls.model_fields[info.field_name].default)

    @field_validator("auto_select_client_config", mode="before")
    @classmethod
    def _sanitize_config_path(cls, value: Any) -> str:
        return value.strip() if isinstance(value, str) else ""

    @classmethod
    def from_payload(cls, payload: Any) -> "Preferences":
        """Build preferences from a decoded JSON document of any shape."""
        if not isinstance(payload, dict):
            return cls()
        try:
            return cls.model_validate(payload)
        except ValidationError:
            logger.warning("Discarding unreadable UI preferences", exc_info=True)
            return cls()

    def with_changes(self, **changes: Any) -> "Preferences":
        return Preferences.from_payload({**self.model_dump(), **changes})


def load_preferences(path: Path) -> Preferences:
    if not path.exists():
        return Preferences()
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        logger.warning("Failed to read UI preferences from %s; using defaults", path, exc_info=True)
        return Preferences()
    return Preferences.from_payload(payload)


def save_preferences(path: Path, prefs: Preferences) -> None:
    """Write ``prefs`` atomically (temp file then rename)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(path.name + ".tmp")
    tmp_path.write_text(json.dumps(prefs.model_dump(mode="json"), indent=2) + "\n", encoding="utf-8")
    os.replace(tmp_path, path)


class PreferencesStore:
    """Shared preferences handle passed by reference to every sub-model."""

    def __init__(self, initial: Preferences | None = None, *, path: Path | None = None) -> None:
        self._current = initial if initial is not None else Preferences()
        self._path = path
        self._write_lock = threading.Lock()

    @classmethod
    def load(cls, path: Path | None = None) -> "PreferencesStore":
        target = path if path is not None else ui_settings_path()
        return cls(load_preferences(target), path=target)

    @property
    def path(self) -> Optional[Path]:
        return self._path

    def preferences(self) -> Preferences:
        return self._current

    def update(self, **changes: Any) -> Preferences:
        """Apply ``changes`` to the current snapshot, then persist best-effort."""
        with self._write_lock:
            updated = self._current.with_changes(**changes)
            self._current = updated
            self._persist(updated)
        return updated

    def reload(self) -> Preferences:
        with self._write_lock:
            if self._path is not None:
                self._current = load_preferences(self._path)
            return self._current

    def save(self) -> None:
        with self._write_lock:
            self._persist(self._current)

    def _persist(self, prefs: Preferences) -> None:
        if self._path is None:
            return
        try:
            save_preferences(self._path, prefs)
        except OSError as exc:
            log_event(logger, "preferences.persist_failed", level=logging.WARNING, path=str(self._path), error=str(exc))
