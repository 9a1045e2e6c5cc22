from __future__ import annotations

import logging
import os
import sys
import threading
from typing import Dict, Optional, Sequence

from ..core.errors import (
    AlreadyRunning,
    ExecutableMissing,
    LaunchError,
    LaunchFailed,
    NotInstalled,
)
from ..core.models import RunningProcessEntry, utc_now_iso
from ..store.app_store import AppStore
from ..utils.process import ProcessRunner, sanitized_environment

logger = logging.getLogger(__name__)

SUSPICIOUS_PATTERNS = ("setup", "install", "installer", "unins")


def validate_executable(executable_path: Optional[str]) -> bool:
    if not executable_path:
        return False
    return os.path.isfile(executable_path) and executable_path.lower().endswith(".exe")


def _file_browser_command(path: str) -> list[str]:
    if os.name == "nt":
        return ["explorer", path]
    if sys.platform == "darwin":
        return ["open", path]
    return ["xdg-open", path]


class LauncherService:
    """Starts installed apps as detached children and tracks them until exit."""

    def __init__(self, store: AppStore, runner: Optional[ProcessRunner] = None):
        self.store = store
        self.runner = runner or ProcessRunner()
        self._running: Dict[str, RunningProcessEntry] = {}
        self._lock = threading.Lock()

    def launch(self, identity: str, args: Sequence[str] = ()) -> RunningProcessEntry:
        record = self.store.get_installed_app(identity)
        if record is None:
            raise NotInstalled(f"App not installed: {identity}")
        executable = record.executable_path
        if not executable:
            raise ExecutableMissing(f"No executable recorded for {identity}")
        if not os.path.isfile(executable):
            raise ExecutableMissing(f"Executable not found: {executable}")

        file_name = os.path.basename(executable).lower()
        if any(pattern in file_name for pattern in SUSPICIOUS_PATTERNS):
            logger.warning("Executable name looks like an installer, launching anyway: %s", executable)

        with self._lock:
            if self._is_alive_locked(identity):
                raise AlreadyRunning(f"App already running: {identity}")
            try:
                proc = self.runner.spawn_detached(
                    [executable, *args],
                    cwd=os.path.dirname(executable),
                    env=sanitized_environment(),
                )
            except OSError as e:
                raise LaunchFailed(f"Failed to launch {identity}: {e}") from e
            entry = RunningProcessEntry(pid=proc.pid, start_time=utc_now_iso(), executable_path=executable)
            self._running[identity] = entry

        logger.info("Launched %s (pid %s): %s", identity, entry.pid, executable)
        watcher = threading.Thread(
            target=self._watch,
            args=(identity, entry, proc),
            name=f"watch-{identity}",
            daemon=True,
        )
        watcher.start()
        self.store.update_last_launched(identity)
        return entry

    def _watch(self, identity: str, entry: RunningProcessEntry, proc) -> None:
        try:
            code = proc.wait()
        except OSError as e:
            logger.warning("Lost track of %s (pid %s): %s", identity, entry.pid, e)
            code = None
        logger.info("App %s exited with code %s", identity, code)
        with self._lock:
            if self._running.get(identity) is entry:
                del self._running[identity]

    def _is_alive_locked(self, identity: str) -> bool:
        entry = self._running.get(identity)
        if entry is None:
            return False
        if not self.runner.pid_exists(entry.pid):
            del self._running[identity]
            return False
        return True

    def kill(self, identity: str) -> bool:
        with self._lock:
            entry = self._running.pop(identity, None)
        if entry is None:
            return False
        logger.info("Killing %s (pid %s)", identity, entry.pid)
        self.runner.terminate(entry.pid)
        return True

    def is_running(self, identity: str) -> bool:
        with self._lock:
            return self._is_alive_locked(identity)

    def get_running_process(self, identity: str) -> Optional[RunningProcessEntry]:
        with self._lock:
            return self._running.get(identity)

    def get_running_apps(self) -> Dict[str, RunningProcessEntry]:
        with self._lock:
            return dict(self._running)

    def validate_executable(self, executable_path: Optional[str]) -> bool:
        return validate_executable(executable_path)

    def open_app_folder(self, identity: str) -> None:
        record = self.store.get_installed_app(identity)
        if record is None or not record.install_path:
            raise NotInstalled(f"Install path unknown for {identity}")
        if not os.path.isdir(record.install_path):
            raise LaunchError(f"Install folder no longer exists: {record.install_path}")
        try:
            self.runner.spawn_detached(_file_browser_command(record.install_path))
        except OSError as e:
            raise LaunchFailed(f"Failed to open folder: {e}") from e
