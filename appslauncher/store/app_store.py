from __future__ import annotations

import logging
import os
from typing import Any, Dict, Optional

from ..core.models import AppRecord, utc_now_iso
from ..core.settings import Settings
from .kv_store import KeyValueStore

logger = logging.getLogger(__name__)

APPS_KEY = "apps"
SETTINGS_KEY = "settings"
LAST_UPDATE_CHECK_KEY = "lastUpdateCheck"


class AppStore:
    """AppRecord, settings and update-check bookkeeping on a key-value store."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    # --------------------------
    # Apps
    # --------------------------
    def get_installed_app(self, identity: str) -> Optional[AppRecord]:
        data = self.store.get(f"{APPS_KEY}.{identity}")
        if not isinstance(data, dict):
            return None
        return AppRecord.from_dict(identity, data)

    def get_verified_app(self, identity: str) -> Optional[AppRecord]:
        """Record re-validated against the filesystem.

        A record pointing at a vanished executable is purged and reported as
        not installed.
        """
        record = self.get_installed_app(identity)
        if record is None:
            return None
        if record.executable_path and not os.path.isfile(record.executable_path):
            logger.warning(
                "Executable for %s no longer exists (%s), removing stale record",
                identity,
                record.executable_path,
            )
            self.remove_installed_app(identity)
            return None
        return record

    def set_installed_app(self, record: AppRecord) -> None:
        if not record.installed_date:
            record.installed_date = utc_now_iso()
        self.store.set(f"{APPS_KEY}.{record.identity}", record.to_dict())

    def remove_installed_app(self, identity: str) -> None:
        self.store.delete(f"{APPS_KEY}.{identity}")

    def update_last_launched(self, identity: str) -> None:
        record = self.get_installed_app(identity)
        if record is None:
            return
        record.last_launched = utc_now_iso()
        self.set_installed_app(record)

    def set_executable_path(self, identity: str, executable_path: str) -> Optional[AppRecord]:
        record = self.get_installed_app(identity)
        if record is None:
            return None
        record.executable_path = executable_path
        record.install_path = os.path.dirname(executable_path)
        self.set_installed_app(record)
        return record

    def is_app_installed(self, identity: str) -> bool:
        return self.get_installed_app(identity) is not None

    # --------------------------
    # Settings
    # --------------------------
    def get_settings(self) -> Settings:
        raw = self.store.get(SETTINGS_KEY)
        if not raw:
            settings = Settings()
            settings.normalize()
            self.store.set(SETTINGS_KEY, settings.to_dict())
            return settings
        return Settings.from_dict(raw)

    def update_settings(self, changes: Dict[str, Any]) -> Settings:
        merged = self.get_settings().to_dict()
        merged.update(changes)
        settings = Settings.from_dict(merged)
        self.store.set(SETTINGS_KEY, settings.to_dict())
        return settings

    # --------------------------
    # Update tracking
    # --------------------------
    def get_last_update_check(self) -> Optional[str]:
        return self.store.get(LAST_UPDATE_CHECK_KEY)

    def set_last_update_check(self) -> str:
        stamp = utc_now_iso()
        self.store.set(LAST_UPDATE_CHECK_KEY, stamp)
        return stamp
