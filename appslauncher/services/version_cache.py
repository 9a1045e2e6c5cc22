from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Dict, List, Optional

from ..core.errors import AppsLauncherError
from ..core.models import CacheEntry
from .releases import ReleaseResolver

logger = logging.getLogger(__name__)

DEFAULT_TTL_SEC = 300.0
FALLBACK_TTL_SEC = 60.0


class VersionCache:
    """Time-bounded cache of latest versions in front of the release API.

    Concurrent lookups for the same identity are not de-duplicated; each one
    may hit the network and overwrite the entry.
    """

    def __init__(self, resolver: ReleaseResolver, clock: Callable[[], float] = time.monotonic):
        self.resolver = resolver
        self.clock = clock
        self.default_ttl = DEFAULT_TTL_SEC
        self._cache: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def get_latest_version(self, identity: str, source_url: str, fallback_version: str) -> str:
        now = self.clock()
        with self._lock:
            cached = self._cache.get(identity)

        if cached is not None and cached.is_fresh(now):
            logger.debug("Using cached version for %s: %s", identity, cached.version)
            return cached.version

        try:
            logger.info("Fetching latest version for %s", identity)
            info = self.resolver.get_app_release_info(source_url)
        except AppsLauncherError as e:
            logger.warning("Failed to fetch version for %s: %s", identity, e)
            if cached is not None:
                logger.info("Using expired cache for %s: %s", identity, cached.version)
                return cached.version
            return self._use_fallback(identity, fallback_version, now)

        if not info.version:
            logger.warning("Release for %s has no version, using fallback", identity)
            if cached is not None:
                return cached.version
            return self._use_fallback(identity, fallback_version, now)

        with self._lock:
            self._cache[identity] = CacheEntry(version=info.version, fetched_at=now, ttl=self.default_ttl)
        logger.info("Cached version for %s: %s", identity, info.version)
        return info.version

    def _use_fallback(self, identity: str, fallback_version: str, now: float) -> str:
        logger.info("Using fallback version for %s: %s", identity, fallback_version)
        with self._lock:
            self._cache[identity] = CacheEntry(version=fallback_version, fetched_at=now, ttl=FALLBACK_TTL_SEC)
        return fallback_version

    def get_cached_version(self, identity: str) -> Optional[str]:
        with self._lock:
            cached = self._cache.get(identity)
        return cached.version if cached else None

    def clear_cache(self, identity: Optional[str] = None) -> None:
        with self._lock:
            if identity:
                self._cache.pop(identity, None)
            else:
                self._cache.clear()

    def get_cache_stats(self) -> Dict[str, Any]:
        now = self.clock()
        with self._lock:
            items = list(self._cache.items())
        entries: List[Dict[str, Any]] = []
        for identity, entry in items:
            age = now - entry.fetched_at
            entries.append({
                "identity": identity,
                "version": entry.version,
                "age": age,
                "ttl": entry.ttl,
                "expired": not entry.is_fresh(now),
            })
        return {"total_entries": len(entries), "entries": entries}

    def set_default_ttl(self, ttl_seconds: float) -> None:
        self.default_ttl = float(ttl_seconds)
