from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional

from ..core.errors import AppsLauncherError
from ..core.models import AppDefinition, AvailableUpdate
from ..store.app_store import AppStore
from .releases import ReleaseResolver, compare_versions

logger = logging.getLogger(__name__)

MIN_INTERVAL_SEC = 60

CatalogProvider = Callable[[], Iterable[AppDefinition]]
UpdatesCallback = Callable[[List[AvailableUpdate]], None]


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        stamp = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.warning("Ignoring malformed update-check timestamp: %r", value)
        return None
    if stamp.tzinfo is None:
        stamp = stamp.replace(tzinfo=timezone.utc)
    return stamp


class UpdateChecker:
    """Compares installed versions with the latest releases, on demand or on a timer.

    Always asks the release source directly: the version cache may lag behind
    a fresh release by its TTL.
    """

    def __init__(self, store: AppStore, resolver: ReleaseResolver):
        self.store = store
        self.resolver = resolver
        self.interval: float = float(store.get_settings().check_update_interval)
        self._check_lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._stop = threading.Event()
        self._wake = threading.Event()

    @property
    def is_checking(self) -> bool:
        return self._check_lock.locked()

    # --------------------------
    # Checks
    # --------------------------
    def check_app_update(self, app: AppDefinition) -> Optional[AvailableUpdate]:
        record = self.store.get_verified_app(app.identity)
        if record is None:
            return None
        info = self.resolver.get_app_release_info(app.source_url)
        if compare_versions(info.version, record.installed_version) <= 0:
            return None
        logger.info("Update available for %s: %s -> %s", app.identity, record.installed_version, info.version)
        return AvailableUpdate(
            identity=app.identity,
            name=app.name,
            installed_version=record.installed_version,
            latest_version=info.version,
            download_url=info.download_url,
            release=info,
        )

    def check_for_updates(self, catalog: Iterable[AppDefinition]) -> List[AvailableUpdate]:
        if not self._check_lock.acquire(blocking=False):
            logger.info("Update check already in progress")
            return []
        updates: List[AvailableUpdate] = []
        try:
            for app in catalog:
                try:
                    update = self.check_app_update(app)
                except AppsLauncherError as e:
                    logger.warning("Update check failed for %s: %s", app.identity, e)
                    continue
                if update is not None:
                    updates.append(update)
            logger.info("Update check complete: %s update(s) available", len(updates))
        finally:
            self.store.set_last_update_check()
            self._check_lock.release()
        return updates

    def should_check_for_updates(self) -> bool:
        last_check = _parse_timestamp(self.store.get_last_update_check())
        if last_check is None:
            return True
        interval = self.store.get_settings().check_update_interval
        return datetime.now(timezone.utc) - last_check >= timedelta(seconds=interval)

    def get_update_stats(self) -> Dict[str, Any]:
        raw_last = self.store.get_last_update_check()
        settings = self.store.get_settings()
        last_check = _parse_timestamp(raw_last)
        next_check = None
        if last_check is not None:
            next_check = (last_check + timedelta(seconds=settings.check_update_interval)).isoformat()
        return {
            "last_check": raw_last,
            "check_interval": settings.check_update_interval,
            "auto_update": settings.auto_update,
            "is_checking": self.is_checking,
            "next_check": next_check,
        }

    # --------------------------
    # Periodic checks
    # --------------------------
    def start_periodic_check(
        self,
        catalog_provider: CatalogProvider,
        interval: Optional[float] = None,
        on_updates: Optional[UpdatesCallback] = None,
    ) -> None:
        self.stop_periodic_check()
        if interval is not None:
            self.interval = max(float(MIN_INTERVAL_SEC), float(interval))
        self._stop.clear()
        self._wake.clear()
        self._thread = threading.Thread(
            target=self._loop,
            args=(catalog_provider, on_updates),
            name="update-checker",
            daemon=True,
        )
        self._thread.start()
        logger.info("Periodic update check started (every %ss)", self.interval)

    def set_interval(self, interval: float) -> None:
        self.interval = max(float(MIN_INTERVAL_SEC), float(interval))
        logger.info("Update check interval set to %ss", self.interval)
        self._wake.set()

    def stop_periodic_check(self) -> None:
        thread = self._thread
        if thread is None:
            return
        self._stop.set()
        self._wake.set()
        if thread is not threading.current_thread():
            thread.join(timeout=5)
        self._thread = None
        logger.info("Periodic update check stopped")

    def _loop(self, catalog_provider: CatalogProvider, on_updates: Optional[UpdatesCallback]) -> None:
        self._run_scheduled(catalog_provider, on_updates)
        while not self._stop.is_set():
            self._wake.clear()
            rearmed = self._wake.wait(self.interval)
            if self._stop.is_set():
                return
            if rearmed:
                continue
            self._run_scheduled(catalog_provider, on_updates)

    def _run_scheduled(self, catalog_provider: CatalogProvider, on_updates: Optional[UpdatesCallback]) -> None:
        try:
            updates = self.check_for_updates(list(catalog_provider()))
            if updates and on_updates:
                on_updates(updates)
        except Exception:
            logger.exception("Scheduled update check failed")
