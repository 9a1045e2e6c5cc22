from __future__ import annotations

import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional

from ..utils.paths import default_install_directory

ENV_GITHUB_TOKEN = "GITHUB_TOKEN"
ENV_CATALOG = "APPSLAUNCHER_CATALOG"

DEFAULT_CHECK_UPDATE_INTERVAL = 3600
MIN_CHECK_UPDATE_INTERVAL = 60


@dataclass
class Settings:
    install_directory: str = field(default_factory=default_install_directory)
    auto_update: bool = True
    check_update_interval: int = DEFAULT_CHECK_UPDATE_INTERVAL  # seconds
    launch_on_startup: bool = False
    minimize_to_tray: bool = False
    theme: str = "system"

    def normalize(self) -> None:
        try:
            interval = int(self.check_update_interval)
        except (TypeError, ValueError):
            interval = DEFAULT_CHECK_UPDATE_INTERVAL
        self.check_update_interval = max(MIN_CHECK_UPDATE_INTERVAL, interval)
        if not self.install_directory:
            self.install_directory = default_install_directory()
        if self.theme not in ("system", "light", "dark"):
            self.theme = "system"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "Settings":
        known = {f.name for f in fields(cls)}
        settings = cls(**{k: v for k, v in (data or {}).items() if k in known})
        settings.normalize()
        return settings


def github_token() -> Optional[str]:
    token = os.getenv(ENV_GITHUB_TOKEN, "").strip()
    return token or None


def catalog_path() -> Path:
    override = os.getenv(ENV_CATALOG, "").strip()
    if override:
        return Path(override)
    return Path.cwd() / "public" / "apps.json"
