"""Application directories (platformdirs) and environment overrides."""

from __future__ import annotations

import os
from pathlib import Path

from platformdirs import PlatformDirs

APP_NAME = "tunnelui"

UI_SETTINGS_PATH_ENV = "TUNNELUI_UI_SETTINGS_PATH"
CONFIG_DIR_ENV = "TUNNELUI_CONFIG_DIR"
UI_SETTINGS_FILE_NAME = "tui.json"


def _platform_dirs() -> PlatformDirs:
    return PlatformDirs(appname=APP_NAME, appauthor=False)


def ensure_dir(path: Path) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    return path


def config_dir() -> Path:
    return ensure_dir(Path(_platform_dirs().user_config_path))


def state_dir() -> Path:
    return ensure_dir(Path(_platform_dirs().user_state_path))


def cache_dir() -> Path:
    return ensure_dir(Path(_platform_dirs().user_cache_path))


def log_dir() -> Path:
    return ensure_dir(Path(_platform_dirs().user_log_path))


def ui_settings_path() -> Path:
    """Return the preferences file, honouring ``TUNNELUI_UI_SETTINGS_PATH``."""
    override = os.getenv(UI_SETTINGS_PATH_ENV, "").strip()
    if override:
        return Path(override)
    return config_dir() / UI_SETTINGS_FILE_NAME


def tunnel_config_dir() -> Path:
    """Root for stored client configurations and the server configuration."""
    override = os.getenv(CONFIG_DIR_ENV, "").strip()
    if override:
        return ensure_dir(Path(override))
    return config_dir()
