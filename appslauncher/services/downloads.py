"""Streaming downloads of release assets into a per-user temp directory."""

from __future__ import annotations

import hashlib
import logging
import math
import os
import posixpath
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional
from urllib.parse import unquote, urljoin, urlparse

import requests  # type: ignore[import-untyped]

from ..core.errors import AlreadyDownloading, DownloadCancelled, DownloadFailed
from ..core.models import DownloadProgress
from ..utils.paths import downloads_temp_dir

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[DownloadProgress], None]

REDIRECT_STATUSES = {301, 302, 303, 307, 308}


@dataclass
class DownloadTask:
    identity: str
    destination: Path
    cancel_event: threading.Event = field(default_factory=threading.Event)
    response: Optional[requests.Response] = None


def _url_basename(url: str) -> str:
    name = posixpath.basename(unquote(urlparse(url).path))
    return name or "download.bin"


class DownloadManager:
    USER_AGENT = "Apps-Launcher"
    CONNECT_TIMEOUT_SEC = 10
    INACTIVITY_TIMEOUT_SEC = 30
    PROGRESS_INTERVAL_SEC = 0.2
    MAX_REDIRECTS = 10
    CHUNK_SIZE = 64 * 1024
    TEMP_MAX_AGE_SEC = 24 * 60 * 60

    def __init__(
        self,
        temp_dir: Optional[Path] = None,
        session: Optional[requests.Session] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._temp_dir = Path(temp_dir) if temp_dir else None
        self.session = session or requests.Session()
        self.clock = clock
        self._active: Dict[str, DownloadTask] = {}
        self._lock = threading.Lock()

    @property
    def temp_dir(self) -> Path:
        if self._temp_dir is None:
            self._temp_dir = downloads_temp_dir()
        self._temp_dir.mkdir(parents=True, exist_ok=True)
        return self._temp_dir

    def temp_file_path(self, url: str, file_name: Optional[str] = None) -> Path:
        url_hash = hashlib.md5(url.encode("utf-8")).hexdigest()[:8]
        return self.temp_dir / f"{url_hash}_{file_name or _url_basename(url)}"

    # --------------------------
    # Download
    # --------------------------
    def download(self, identity: str, url: str, on_progress: Optional[ProgressCallback] = None) -> str:
        destination = self.temp_file_path(url)
        with self._lock:
            if identity in self._active:
                raise AlreadyDownloading(f"Download already in progress for {identity}")
            task = DownloadTask(identity=identity, destination=destination)
            self._active[identity] = task

        logger.info("Downloading %s for %s into %s", url, identity, destination)
        try:
            return self._transfer(task, url, on_progress)
        finally:
            with self._lock:
                if self._active.get(identity) is task:
                    del self._active[identity]

    def _transfer(self, task: DownloadTask, url: str, on_progress: Optional[ProgressCallback]) -> str:
        current_url = url
        headers = {"User-Agent": self.USER_AGENT}
        for _hop in range(self.MAX_REDIRECTS + 1):
            if task.cancel_event.is_set():
                raise DownloadCancelled(f"Download cancelled for {task.identity}")
            try:
                response = self.session.get(
                    current_url,
                    headers=headers,
                    stream=True,
                    timeout=(self.CONNECT_TIMEOUT_SEC, self.INACTIVITY_TIMEOUT_SEC),
                    allow_redirects=False,
                )
            except requests.Timeout as e:
                self._remove_partial(task.destination)
                raise DownloadFailed("Download timeout") from e
            except requests.RequestException as e:
                self._remove_partial(task.destination)
                raise DownloadFailed(f"Download failed: {e}") from e

            with response:
                status = int(response.status_code)
                if status in REDIRECT_STATUSES:
                    location = response.headers.get("location")
                    self._remove_partial(task.destination)
                    if not location:
                        raise DownloadFailed(f"Redirect ({status}) without a location header")
                    current_url = urljoin(current_url, location)
                    logger.debug("Following redirect for %s to %s", task.identity, current_url)
                    continue
                if status != 200:
                    self._remove_partial(task.destination)
                    raise DownloadFailed(f"Download failed with status: {status}")
                task.response = response
                return self._stream_to_file(task, response, on_progress)
        self._remove_partial(task.destination)
        raise DownloadFailed(f"Too many redirects for {url}")

    def _stream_to_file(
        self,
        task: DownloadTask,
        response: requests.Response,
        on_progress: Optional[ProgressCallback],
    ) -> str:
        try:
            total = int(response.headers.get("content-length") or 0)
        except ValueError:
            total = 0
        received = 0
        started = self.clock()
        last_emit = started

        try:
            with open(task.destination, "wb") as f:
                for chunk in response.iter_content(chunk_size=self.CHUNK_SIZE):
                    if task.cancel_event.is_set():
                        raise DownloadCancelled(f"Download cancelled for {task.identity}")
                    if not chunk:
                        continue
                    f.write(chunk)
                    received += len(chunk)

                    now = self.clock()
                    if on_progress and now - last_emit >= self.PROGRESS_INTERVAL_SEC:
                        elapsed = max(now - started, 1e-6)
                        percent = (received / total * 100) if total else 0.0
                        on_progress(DownloadProgress(
                            identity=task.identity,
                            progress=round(percent, 2),
                            bytes_received=received,
                            bytes_total=total,
                            speed=int(round(received / elapsed)),
                        ))
                        last_emit = now
        except DownloadCancelled:
            self._remove_partial(task.destination)
            raise
        except Exception as e:
            self._remove_partial(task.destination)
            if task.cancel_event.is_set():
                raise DownloadCancelled(f"Download cancelled for {task.identity}") from e
            # urllib3 read timeouts mid-stream surface as ConnectionError
            if isinstance(e, requests.Timeout) or (
                isinstance(e, requests.ConnectionError) and "timed out" in str(e)
            ):
                raise DownloadFailed("Download timeout") from e
            if isinstance(e, (requests.RequestException, OSError)):
                raise DownloadFailed(f"Download failed: {e}") from e
            raise

        if on_progress:
            final_total = total or received
            on_progress(DownloadProgress(
                identity=task.identity,
                progress=100.0,
                bytes_received=final_total,
                bytes_total=final_total,
                speed=0,
            ))
        logger.info("Download finished for %s: %s (%s)", task.identity, task.destination, format_bytes(received))
        return str(task.destination)

    def _remove_partial(self, path: Path) -> None:
        if not path.exists():
            return
        try:
            path.unlink()
        except OSError as e:
            logger.warning("Failed to delete partial download %s: %s", path, e)

    # --------------------------
    # Control
    # --------------------------
    def cancel(self, identity: str) -> bool:
        """Signal the transfer to stop.

        The worker deletes the partial file and releases the identity when it
        unwinds, so a retry stays rejected until then.
        """
        with self._lock:
            task = self._active.get(identity)
        if task is None or task.cancel_event.is_set():
            return False

        task.cancel_event.set()
        if task.response is not None:
            try:
                task.response.close()
            except (OSError, requests.RequestException) as e:
                logger.debug("Closing cancelled transfer for %s failed: %s", identity, e)
        logger.info("Download cancelled for %s", identity)
        return True

    def is_download_active(self, identity: str) -> bool:
        with self._lock:
            return identity in self._active

    def get_active_downloads(self) -> List[str]:
        with self._lock:
            return list(self._active)

    def cleanup_old_temp_files(self, max_age_sec: Optional[float] = None) -> int:
        """Delete temp files older than ``max_age_sec`` (24 hours by default)."""
        max_age = self.TEMP_MAX_AGE_SEC if max_age_sec is None else max_age_sec
        removed = 0
        try:
            entries = list(os.scandir(self.temp_dir))
        except OSError as e:
            logger.error("Failed to list temp dir %s: %s", self._temp_dir, e)
            return 0

        now = time.time()
        for entry in entries:
            try:
                if not entry.is_file(follow_symlinks=False):
                    continue
                if now - entry.stat().st_mtime <= max_age:
                    continue
                os.remove(entry.path)
                removed += 1
                logger.info("Cleaned up old temp file: %s", entry.name)
            except OSError as e:
                logger.warning("Failed to delete temp file %s: %s", entry.name, e)
        return removed


def format_bytes(num_bytes: int) -> str:
    if num_bytes <= 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB"]
    index = min(int(math.floor(math.log(num_bytes, 1024))), len(units) - 1)
    return f"{round(num_bytes / (1024 ** index), 2):g} {units[index]}"


def format_speed(bytes_per_second: int) -> str:
    return f"{format_bytes(bytes_per_second)}/s"
