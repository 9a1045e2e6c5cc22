"""Install and uninstall orchestration for downloaded release assets.

Installers are spawned silently and waited on; the executable is then found
by polling the locator, because installers commonly hand off to a child
process and exit before their files are in place.
"""

from __future__ import annotations

import logging
import os
import re
import shutil
import stat
import threading
import time
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Protocol, Set

from ..core.errors import (
    AlreadyInstalling,
    ExecutableNotFound,
    ExtractionFailed,
    InstallationFailed,
    NotInstalled,
    UnknownInstallerType,
)
from ..core.models import AppRecord, InstallResult, InstallState, InstallStatus
from ..store.app_store import AppStore
from ..utils.paths import extraction_dir
from ..utils.process import ProcessRunner
from ..utils.system_binaries import msiexec_path
from .locator import EXTRACT_POLL, INSTALL_POLL, ExecutableLocator

logger = logging.getLogger(__name__)

StatusCallback = Callable[[InstallStatus], None]

SETTLE_DELAY_SEC = 2.0
INSTALLER_KINDS = {".exe": "exe", ".msi": "msi", ".zip": "zip"}
# File name -> silent switch (NSIS: /S, Inno Setup: /SILENT)
UNINSTALLERS = (
    ("uninstall.exe", "/S"),
    ("unins000.exe", "/SILENT"),
    ("uninst.exe", "/S"),
)


@dataclass(frozen=True)
class InstallOptions:
    version: str
    app_name: str
    source_url: Optional[str] = None
    install_hint: str = ""


class ManualLocatePrompt(Protocol):
    def choose_executable(self, identity: str, app_name: str, default_dir: str) -> Optional[str]: ...


class NullManualPrompt:
    """Headless prompt: the user never picks anything."""

    def choose_executable(self, identity: str, app_name: str, default_dir: str) -> Optional[str]:
        logger.info("No interactive prompt available to locate %s", identity)
        return None


def installer_kind(installer_path: str) -> str:
    ext = os.path.splitext(installer_path)[1].lower()
    kind = INSTALLER_KINDS.get(ext)
    if kind is None:
        raise UnknownInstallerType(f"Unsupported installer type: {ext or installer_path}")
    return kind


def safe_extract(zip_ref: zipfile.ZipFile, extract_dir: str) -> None:
    """Extract ``zip_ref`` below ``extract_dir``, refusing entries that escape it."""
    base_path = Path(extract_dir).resolve()
    for member in zip_ref.infolist():
        normalized_name = member.filename.replace("\\", "/")
        member_path = Path(normalized_name)
        first_part = member_path.parts[0] if member_path.parts else ""
        if member_path.is_absolute() or normalized_name.startswith("/") or ".." in member_path.parts:
            raise ExtractionFailed(f"Unsafe ZIP entry detected: {member.filename}")
        if re.match(r"^[A-Za-z]:", first_part) or ":" in first_part:
            raise ExtractionFailed(f"Unsafe ZIP entry detected: {member.filename}")
        if (member.external_attr >> 16) & 0o170000 == stat.S_IFLNK:
            raise ExtractionFailed(f"Symlink in ZIP not allowed: {member.filename}")

        target = (base_path / normalized_name).resolve()
        if not target.is_relative_to(base_path):
            raise ExtractionFailed(f"Unsafe ZIP entry detected: {member.filename}")

        if member.is_dir():
            target.mkdir(parents=True, exist_ok=True)
            continue
        target.parent.mkdir(parents=True, exist_ok=True)
        with zip_ref.open(member, "r") as src, open(target, "wb") as dst:
            shutil.copyfileobj(src, dst)


def find_uninstaller(install_path: str) -> Optional[List[str]]:
    """Silent uninstall command for the first known uninstaller in ``install_path``."""
    if not install_path or not os.path.isdir(install_path):
        return None
    for name, switch in UNINSTALLERS:
        candidate = os.path.join(install_path, name)
        if os.path.isfile(candidate):
            return [candidate, switch]
    return None


class InstallOrchestrator:
    def __init__(
        self,
        store: AppStore,
        locator: ExecutableLocator,
        runner: Optional[ProcessRunner] = None,
        prompt: Optional[ManualLocatePrompt] = None,
        sleep: Callable[[float], None] = time.sleep,
        extraction_root: Callable[[str], Path] = extraction_dir,
    ):
        self.store = store
        self.locator = locator
        self.runner = runner or ProcessRunner()
        self.prompt = prompt or NullManualPrompt()
        self.sleep = sleep
        self.extraction_root = extraction_root
        self._busy: Set[str] = set()
        self._lock = threading.Lock()

    # --------------------------
    # Task bookkeeping
    # --------------------------
    def _acquire(self, identity: str) -> None:
        with self._lock:
            if identity in self._busy:
                raise AlreadyInstalling(f"Installation already in progress for {identity}")
            self._busy.add(identity)

    def _release(self, identity: str) -> None:
        with self._lock:
            self._busy.discard(identity)

    def is_installing(self, identity: str) -> bool:
        with self._lock:
            return identity in self._busy

    @staticmethod
    def _emitter(identity: str, on_status: Optional[StatusCallback]) -> Callable[[InstallState, str], None]:
        def emit(state: InstallState, message: str) -> None:
            logger.info("[%s] %s: %s", identity, state.value, message)
            if on_status:
                on_status(InstallStatus(identity=identity, state=state, message=message))

        return emit

    # --------------------------
    # Install
    # --------------------------
    def install(
        self,
        identity: str,
        installer_path: str,
        options: InstallOptions,
        on_status: Optional[StatusCallback] = None,
    ) -> InstallResult:
        kind = installer_kind(installer_path)
        self._acquire(identity)
        emit = self._emitter(identity, on_status)
        try:
            emit(InstallState.PREPARING, "Preparing installation...")
            if kind == "zip":
                result = self._install_zip(identity, installer_path, options, emit)
            else:
                result = self._install_package(identity, kind, installer_path, options, emit)
        except Exception as e:
            emit(InstallState.ERROR, str(e))
            raise
        finally:
            self._release(identity)
        return result

    def _install_package(self, identity, kind, installer_path, options, emit) -> InstallResult:
        if kind == "msi":
            command = [msiexec_path(), "/i", installer_path, "/quiet", "/norestart"]
        else:
            command = [installer_path, "/S"]

        emit(InstallState.INSTALLING, "Running installer...")
        try:
            exit_code = self.runner.run_and_wait(command)
        except OSError as e:
            raise InstallationFailed(f"Failed to start installer: {e}") from e
        if exit_code != 0:
            raise InstallationFailed(f"Installer exited with code {exit_code}")

        emit(InstallState.SEARCHING, "Searching for installed executable...")
        self.sleep(SETTLE_DELAY_SEC)
        try:
            executable = self.locator.locate_with_polling(
                identity,
                options.install_hint,
                options.app_name,
                options.source_url,
                max_attempts=INSTALL_POLL[0],
                delay=INSTALL_POLL[1],
            )
        except ExecutableNotFound:
            return self._manual_fallback(identity, options, options.install_hint, emit)
        return self._complete(identity, options, executable, emit)

    def _install_zip(self, identity, zip_path, options, emit) -> InstallResult:
        target = Path(self.extraction_root(identity))
        emit(InstallState.EXTRACTING, f"Extracting to {target}...")
        try:
            target.mkdir(parents=True, exist_ok=True)
            with zipfile.ZipFile(zip_path, "r") as zip_ref:
                safe_extract(zip_ref, str(target))
        except zipfile.BadZipFile as e:
            raise ExtractionFailed(f"Invalid ZIP archive: {e}") from e
        except OSError as e:
            raise ExtractionFailed(f"Extraction failed: {e}") from e

        emit(InstallState.SEARCHING, "Searching for extracted executable...")
        try:
            executable = self.locator.locate_with_polling(
                identity,
                str(target),
                options.app_name,
                options.source_url,
                max_attempts=EXTRACT_POLL[0],
                delay=EXTRACT_POLL[1],
                hint_only=True,
            )
        except ExecutableNotFound:
            return self._manual_fallback(identity, options, str(target), emit)
        return self._complete(identity, options, executable, emit)

    def _manual_fallback(self, identity, options, default_dir, emit) -> InstallResult:
        emit(InstallState.SEARCHING, "Executable not found, asking for manual selection...")
        chosen = self.prompt.choose_executable(identity, options.app_name, default_dir)
        if chosen:
            logger.info("User selected executable for %s: %s", identity, chosen)
            return self._complete(identity, options, chosen, emit)

        logger.warning("No executable selected for %s, recording install without one", identity)
        self.store.set_installed_app(AppRecord(
            identity=identity,
            installed_version=options.version,
            install_path=default_dir,
            executable_path=None,
        ))
        emit(InstallState.COMPLETED, "Installation completed (executable not selected)")
        return InstallResult(install_path=default_dir, executable_path=None)

    def _complete(self, identity, options, executable, emit) -> InstallResult:
        install_path = os.path.dirname(executable)
        self.store.set_installed_app(AppRecord(
            identity=identity,
            installed_version=options.version,
            install_path=install_path,
            executable_path=executable,
        ))
        emit(InstallState.COMPLETED, "Installation completed")
        return InstallResult(install_path=install_path, executable_path=executable)

    # --------------------------
    # Uninstall
    # --------------------------
    def uninstall(self, identity: str, on_status: Optional[StatusCallback] = None) -> None:
        record = self.store.get_installed_app(identity)
        if record is None:
            raise NotInstalled(f"App not installed: {identity}")

        self._acquire(identity)
        emit = self._emitter(identity, on_status)
        try:
            emit(InstallState.UNINSTALLING, "Uninstalling...")
            command = find_uninstaller(record.install_path)
            if command is None:
                logger.info("No uninstaller found in %s, removing record only", record.install_path)
            else:
                try:
                    exit_code = self.runner.run_and_wait(command, cwd=record.install_path)
                except OSError as e:
                    logger.error("Failed to run uninstaller %s: %s", command[0], e)
                else:
                    if exit_code != 0:
                        logger.warning("Uninstaller for %s exited with code %s", identity, exit_code)
            self.store.remove_installed_app(identity)
            emit(InstallState.COMPLETED, "Uninstalled")
        finally:
            self._release(identity)
