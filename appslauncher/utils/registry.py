"""Installed-application registry access.

Enumerates the Windows uninstall keys (per-machine and per-user hives, native
and WOW64 views) and returns structured records. Other platforms get an empty
registry so the discovery engine runs unchanged.
"""

from __future__ import annotations

import logging
import os
from typing import Dict, List, Protocol, Tuple

from ..core.models import InstalledApplication

logger = logging.getLogger(__name__)

UNINSTALL_KEY = r"SOFTWARE\Microsoft\Windows\CurrentVersion\Uninstall"
WOW64_UNINSTALL_KEY = r"SOFTWARE\WOW6432Node\Microsoft\Windows\CurrentVersion\Uninstall"


class InstalledAppsRegistry(Protocol):
    def installed_applications(self) -> List[InstalledApplication]: ...


class NullRegistry:
    def installed_applications(self) -> List[InstalledApplication]:
        return []


class WindowsUninstallRegistry:
    VALUE_MAP = {
        "DisplayName": "display_name",
        "InstallLocation": "install_location",
        "DisplayIcon": "display_icon",
    }

    def __init__(self):
        import winreg

        self._winreg = winreg
        self._views: List[Tuple[int, str, int]] = [
            (winreg.HKEY_CURRENT_USER, UNINSTALL_KEY, winreg.KEY_WOW64_64KEY),
            (winreg.HKEY_CURRENT_USER, UNINSTALL_KEY, winreg.KEY_WOW64_32KEY),
            (winreg.HKEY_LOCAL_MACHINE, UNINSTALL_KEY, winreg.KEY_WOW64_64KEY),
            (winreg.HKEY_LOCAL_MACHINE, WOW64_UNINSTALL_KEY, winreg.KEY_WOW64_32KEY),
        ]

    def installed_applications(self) -> List[InstalledApplication]:
        winreg = self._winreg
        seen: Dict[Tuple[str, str], InstalledApplication] = {}
        for hive, path, view in self._views:
            # KEY_WOW64_* selects the registry view without elevation.
            try:
                base = winreg.OpenKey(hive, path, 0, winreg.KEY_READ | view)
            except OSError:
                continue
            with base:
                for idx in range(self._subkey_count(base)):
                    try:
                        sub_name = winreg.EnumKey(base, idx)
                        sub_key = winreg.OpenKey(base, sub_name)
                    except OSError:
                        continue
                    with sub_key:
                        values = self._read_values(sub_key)
                    if not values.get("display_name") and not values.get("install_location"):
                        continue
                    entry = InstalledApplication(**values)
                    seen.setdefault((entry.display_name, entry.install_location), entry)
        return list(seen.values())

    def _subkey_count(self, key) -> int:
        try:
            return self._winreg.QueryInfoKey(key)[0]
        except OSError:
            return 0

    def _read_values(self, handle) -> Dict[str, str]:
        values = {target: "" for target in self.VALUE_MAP.values()}
        for value_name, target in self.VALUE_MAP.items():
            try:
                value, _ = self._winreg.QueryValueEx(handle, value_name)
            except OSError:
                continue
            values[target] = str(value).strip()
        return values


def default_registry() -> InstalledAppsRegistry:
    if os.name != "nt":
        return NullRegistry()
    try:
        return WindowsUninstallRegistry()
    except ImportError:
        logger.warning("winreg unavailable, registry probing disabled")
        return NullRegistry()
