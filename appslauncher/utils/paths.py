import os
import platform
import tempfile
from pathlib import Path

APP_DIR_NAME = "AppsLauncher"
ENV_DATA_DIR = "APPSLAUNCHER_DATA_DIR"
DOWNLOADS_DIR_NAME = "apps-launcher-downloads"


def roaming_app_data_dir() -> Path:
    """Per-user, non-elevated application data root (APPDATA on Windows)."""
    if os.name == "nt":
        base = os.getenv("APPDATA") or str(Path.home())
        return Path(base)
    if platform.system() == "Darwin":
        return Path.home() / "Library" / "Application Support"
    return Path(os.getenv("XDG_DATA_HOME") or (Path.home() / ".local" / "share"))


def data_dir() -> Path:
    override = os.getenv(ENV_DATA_DIR, "").strip()
    if override:
        return Path(override)
    return roaming_app_data_dir() / APP_DIR_NAME


def log_dir() -> Path:
    return data_dir() / "logs"


def store_path() -> Path:
    return data_dir() / "apps-launcher-config.json"


def extraction_dir(identity: str) -> Path:
    return roaming_app_data_dir() / APP_DIR_NAME / identity


def downloads_temp_dir() -> Path:
    return Path(tempfile.gettempdir()) / DOWNLOADS_DIR_NAME


def default_install_directory() -> str:
    return str(Path.home() / APP_DIR_NAME)
