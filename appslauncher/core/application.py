"""Service wiring and the operations the front-ends call."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

from ..services.auto_detect import AutoDetectScanner
from ..services.downloads import DownloadManager
from ..services.installer import InstallOptions, InstallOrchestrator, ManualLocatePrompt
from ..services.launcher import LauncherService
from ..services.locator import ExecutableLocator
from ..services.releases import ReleaseResolver, compare_versions
from ..services.update_checker import UpdateChecker
from ..services.version_cache import VersionCache
from ..store.app_store import AppStore
from ..store.kv_store import JsonFileStore
from ..utils.paths import store_path
from ..utils.process import ProcessRunner
from ..utils.registry import default_registry
from .catalog import find_app, load_catalog
from .errors import AppsLauncherError, DownloadFailed, ExecutableMissing, NotInstalled, UpdateInterrupted
from .models import (
    AppDefinition,
    AppRecord,
    AvailableUpdate,
    DetectionReport,
    InstallResult,
    RunningProcessEntry,
    StartupProgress,
)
from .operation import Operation, run_in_background
from .settings import Settings, catalog_path, github_token

logger = logging.getLogger(__name__)

StartupSink = Callable[[StartupProgress], None]


class LauncherApplication:
    def __init__(
        self,
        catalog: List[AppDefinition],
        store: AppStore,
        resolver: ReleaseResolver,
        downloads: DownloadManager,
        locator: ExecutableLocator,
        runner: Optional[ProcessRunner] = None,
        prompt: Optional[ManualLocatePrompt] = None,
    ):
        runner = runner or ProcessRunner()
        self.catalog = catalog
        self.store = store
        self.resolver = resolver
        self.version_cache = VersionCache(resolver)
        self.downloads = downloads
        self.locator = locator
        self.installer = InstallOrchestrator(store, locator, runner=runner, prompt=prompt)
        self.scanner = AutoDetectScanner(store, locator)
        self.launcher = LauncherService(store, runner=runner)
        self.update_checker = UpdateChecker(store, resolver)

    @classmethod
    def create(
        cls,
        catalog_file: Optional[Path] = None,
        prompt: Optional[ManualLocatePrompt] = None,
    ) -> "LauncherApplication":
        catalog = load_catalog(catalog_file or catalog_path())
        store = AppStore(JsonFileStore(store_path()))
        return cls(
            catalog=catalog,
            store=store,
            resolver=ReleaseResolver(token=github_token()),
            downloads=DownloadManager(),
            locator=ExecutableLocator(default_registry()),
            prompt=prompt,
        )

    # --------------------------
    # Lifecycle
    # --------------------------
    def startup(self, sink: Optional[StartupSink] = None, periodic: bool = True) -> DetectionReport:
        """Start-of-process maintenance; ``periodic=False`` skips arming the update timer."""

        def phase(name: str, message: str) -> None:
            logger.info("Startup %s: %s", name, message)
            if sink:
                sink(StartupProgress(phase=name, message=message))

        phase("initializing", "Starting services...")
        settings = self.store.get_settings()
        if periodic and settings.auto_update:
            self.update_checker.start_periodic_check(lambda: self.catalog, settings.check_update_interval)

        phase("cleanup", "Removing old downloads...")
        removed = self.downloads.cleanup_old_temp_files()
        logger.info("Removed %s old temp file(s)", removed)

        phase("detecting", "Looking for installed apps...")
        report = self.scanner.scan(self.catalog)

        phase("complete", f"Ready ({len(report.detected)} app(s) detected)")
        return report

    def shutdown(self) -> None:
        self.update_checker.stop_periodic_check()
        for identity in self.downloads.get_active_downloads():
            self.downloads.cancel(identity)

    # --------------------------
    # Queries
    # --------------------------
    def app(self, identity: str) -> AppDefinition:
        return find_app(self.catalog, identity)

    def list_apps(self) -> List[Dict[str, Any]]:
        """Catalog entries merged with install state; stale records are purged on the way."""
        apps = []
        for app in self.catalog:
            record = self.store.get_verified_app(app.identity)
            latest = self.version_cache.get_latest_version(app.identity, app.source_url, app.fallback_version)
            installed_version = record.installed_version if record else None
            apps.append({
                "id": app.identity,
                "name": app.name,
                "source_url": app.source_url,
                "latest_version": latest,
                "installed": record is not None,
                "installed_version": installed_version,
                "executable_path": record.executable_path if record else None,
                "auto_detected": record.auto_detected if record else False,
                "update_available": bool(
                    record and latest and installed_version != "unknown"
                    and compare_versions(latest, installed_version) > 0
                ),
                "running": self.launcher.is_running(app.identity),
            })
        return apps

    # --------------------------
    # Install / update / uninstall
    # --------------------------
    def _download_and_install(self, app: AppDefinition, operation: Operation) -> InstallResult:
        info = self.resolver.get_app_release_info(app.source_url)
        if not info.download_url:
            raise DownloadFailed(f"No Windows installer found in the latest release of {app.name}")
        installer_path = self.downloads.download(app.identity, info.download_url, operation.emit)
        options = InstallOptions(
            version=info.version or app.fallback_version,
            app_name=app.name,
            source_url=app.source_url,
            install_hint=self.store.get_settings().install_directory,
        )
        result = self.installer.install(app.identity, installer_path, options, operation.emit)
        self.version_cache.clear_cache(app.identity)
        return result

    def install_app(self, identity: str) -> Operation:
        app = self.app(identity)
        return run_in_background(
            f"install-{identity}",
            lambda op: self._download_and_install(app, op),
            cancel=lambda: self.downloads.cancel(identity),
        )

    def uninstall_app(self, identity: str) -> Operation:
        self.app(identity)
        return run_in_background(
            f"uninstall-{identity}",
            lambda op: self.installer.uninstall(identity, op.emit),
        )

    def update_app(self, identity: str) -> Operation:
        app = self.app(identity)
        if not self.store.is_app_installed(identity):
            raise NotInstalled(f"App not installed: {identity}")

        def _update(op: Operation) -> InstallResult:
            self.installer.uninstall(identity, op.emit)
            try:
                return self._download_and_install(app, op)
            except AppsLauncherError as e:
                raise UpdateInterrupted(
                    f"{app.name} was uninstalled but the new version could not be installed "
                    f"({e}); it is now recorded as not installed"
                ) from e

        return run_in_background(
            f"update-{identity}",
            _update,
            cancel=lambda: self.downloads.cancel(identity),
        )

    def select_executable(self, identity: str, executable_path: str) -> AppRecord:
        if not Path(executable_path).is_file():
            raise ExecutableMissing(f"Executable not found: {executable_path}")
        record = self.store.set_executable_path(identity, executable_path)
        if record is None:
            raise NotInstalled(f"App not installed: {identity}")
        return record

    # --------------------------
    # Processes
    # --------------------------
    def launch_app(self, identity: str, args: Sequence[str] = ()) -> RunningProcessEntry:
        return self.launcher.launch(identity, args)

    def kill_app(self, identity: str) -> bool:
        return self.launcher.kill(identity)

    # --------------------------
    # Updates / settings
    # --------------------------
    def check_updates(self) -> List[AvailableUpdate]:
        return self.update_checker.check_for_updates(self.catalog)

    def update_settings(self, changes: Dict[str, Any]) -> Settings:
        previous = self.store.get_settings()
        settings = self.store.update_settings(changes)
        if settings.auto_update and not previous.auto_update:
            self.update_checker.start_periodic_check(lambda: self.catalog, settings.check_update_interval)
        elif previous.auto_update and not settings.auto_update:
            self.update_checker.stop_periodic_check()
        elif settings.check_update_interval != previous.check_update_interval:
            self.update_checker.set_interval(settings.check_update_interval)
        return settings
