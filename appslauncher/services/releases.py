"""GitHub Releases lookup for catalog apps.

Turns a repository URL into the latest version plus the best Windows asset,
and owns the version comparator every "update available" decision uses.
"""

from __future__ import annotations

import logging
import re
import time
from typing import Any, Dict, List, Optional, Tuple

import requests  # type: ignore[import-untyped]

from ..core.errors import (
    InvalidSourceURL,
    MalformedResponse,
    NotFound,
    RateLimited,
    ReleaseSourceError,
    Timeout,
)
from ..core.models import ReleaseAsset, ReleaseInfo

logger = logging.getLogger(__name__)

_SOURCE_URL_RE = re.compile(r"^https?://[^/]+/([^/]+)/([^/?#]+)")
_LEADING_DIGITS_RE = re.compile(r"^\s*(\d+)")


def normalize_version(tag: str) -> str:
    return re.sub(r"^[vV]", "", (tag or "").strip())


def _numeric_parts(value: str) -> List[int]:
    parts = []
    for chunk in value.split("."):
        match = _LEADING_DIGITS_RE.match(chunk)
        parts.append(int(match.group(1)) if match else 0)
    return parts


def compare_versions(version1: str, version2: str) -> int:
    """Return -1, 0 or 1 as ``version1`` is lower, equal or higher.

    Dotted components are compared as integers (leading digits only, else 0)
    with missing trailing components taken as 0.
    """
    a = _numeric_parts(normalize_version(version1))
    b = _numeric_parts(normalize_version(version2))
    for i in range(max(len(a), len(b))):
        x = a[i] if i < len(a) else 0
        y = b[i] if i < len(b) else 0
        if x > y:
            return 1
        if x < y:
            return -1
    return 0


def parse_source_url(url: str) -> Tuple[str, str]:
    match = _SOURCE_URL_RE.match((url or "").strip())
    if not match:
        raise InvalidSourceURL(f"Invalid release source URL: {url!r}")
    owner, repo = match.group(1), match.group(2)
    if repo.endswith(".git"):
        repo = repo[: -len(".git")]
    if not owner or not repo:
        raise InvalidSourceURL(f"Invalid release source URL: {url!r}")
    return owner, repo


def repo_slug(url: Optional[str]) -> Optional[str]:
    if not url:
        return None
    try:
        return parse_source_url(url)[1]
    except InvalidSourceURL:
        return None


def filter_windows_assets(assets: Any) -> List[Dict[str, Any]]:
    if not isinstance(assets, list):
        return []
    result = []
    for asset in assets:
        if not isinstance(asset, dict):
            continue
        name = str(asset.get("name", "")).lower()
        if name.endswith(".exe") or name.endswith(".msi") or (name.endswith(".zip") and "win" in name):
            result.append(asset)
    return result


def best_windows_asset(assets: Any) -> Optional[Dict[str, Any]]:
    """Installer priority: .exe, then .msi, then a Windows .zip."""
    windows_assets = filter_windows_assets(assets)
    if not windows_assets:
        return None
    for suffix in (".exe", ".msi"):
        for asset in windows_assets:
            if str(asset.get("name", "")).lower().endswith(suffix):
                return asset
    return windows_assets[0]


class ReleaseResolver:
    API_ROOT = "https://api.github.com"
    USER_AGENT = "Apps-Launcher"
    REQUEST_TIMEOUT_SEC = 10
    NETWORK_RETRY_ATTEMPTS = 2
    NETWORK_RETRY_BASE_DELAY_SEC = 0.5
    NETWORK_RETRY_MAX_DELAY_SEC = 2.0

    def __init__(self, token: Optional[str] = None, session: Optional[requests.Session] = None):
        self.token = token
        self.session = session or requests.Session()
        if token:
            logger.info("GitHub token configured (authenticated rate limit)")
        else:
            logger.info("No GitHub token configured (anonymous rate limit)")

    def _headers(self) -> Dict[str, str]:
        headers = {
            "User-Agent": self.USER_AGENT,
            "Accept": "application/vnd.github.v3+json",
        }
        if self.token:
            headers["Authorization"] = f"token {self.token}"
        return headers

    def _request_json(self, path: str) -> Any:
        url = f"{self.API_ROOT}{path}"
        attempts = max(1, int(self.NETWORK_RETRY_ATTEMPTS))
        last_error: Optional[Exception] = None
        for attempt in range(1, attempts + 1):
            try:
                response = self.session.get(url, headers=self._headers(), timeout=self.REQUEST_TIMEOUT_SEC)
            except requests.Timeout as e:
                raise Timeout(f"GitHub API request timeout: {url}") from e
            except requests.RequestException as e:
                last_error = e
            else:
                status = int(response.status_code)
                if status == 200:
                    try:
                        return response.json()
                    except ValueError as e:
                        raise MalformedResponse(f"Failed to parse GitHub response: {e}") from e
                if status == 404:
                    raise NotFound(f"GitHub repository or release not found: {path}")
                if status == 403:
                    raise RateLimited("GitHub API rate limit exceeded. Please try again later.")
                if status != 429 and status < 500:
                    raise ReleaseSourceError(f"GitHub API error: {status}")
                last_error = ReleaseSourceError(f"GitHub API error: {status}")

            if attempt >= attempts:
                break
            sleep_seconds = min(
                self.NETWORK_RETRY_MAX_DELAY_SEC,
                self.NETWORK_RETRY_BASE_DELAY_SEC * (2 ** (attempt - 1)),
            )
            logger.warning(
                "GitHub request failed (attempt %s/%s): %s. Retrying in %.2fs",
                attempt,
                attempts,
                last_error,
                sleep_seconds,
            )
            time.sleep(sleep_seconds)
        raise ReleaseSourceError(f"GitHub API request failed: {last_error}")

    # --------------------------
    # Releases
    # --------------------------
    def get_latest_release(self, owner: str, repo: str) -> Dict[str, Any]:
        release = self._request_json(f"/repos/{owner}/{repo}/releases/latest")
        if not isinstance(release, dict):
            raise MalformedResponse("Latest release payload is not an object")
        return release

    def get_releases(self, owner: str, repo: str, per_page: int = 10) -> List[Dict[str, Any]]:
        releases = self._request_json(f"/repos/{owner}/{repo}/releases?per_page={per_page}")
        if not isinstance(releases, list):
            raise MalformedResponse("Release list payload is not an array")
        return releases

    def get_release_by_tag(self, owner: str, repo: str, tag: str) -> Dict[str, Any]:
        release = self._request_json(f"/repos/{owner}/{repo}/releases/tags/{tag}")
        if not isinstance(release, dict):
            raise MalformedResponse("Release payload is not an object")
        return release

    def release_info(self, release: Dict[str, Any]) -> ReleaseInfo:
        tag = release.get("tag_name")
        if not isinstance(tag, str):
            raise MalformedResponse("Release has no tag_name")
        assets = filter_windows_assets(release.get("assets"))
        best = best_windows_asset(assets)
        return ReleaseInfo(
            version=normalize_version(tag),
            download_url=best.get("browser_download_url") if best else None,
            assets=[
                ReleaseAsset(
                    name=str(a.get("name", "")),
                    download_url=str(a.get("browser_download_url", "")),
                    size=int(a.get("size") or 0),
                )
                for a in assets
            ],
            name=str(release.get("name") or ""),
            notes=str(release.get("body") or ""),
            published_at=str(release.get("published_at") or ""),
            html_url=str(release.get("html_url") or ""),
        )

    def get_app_release_info(self, source_url: str) -> ReleaseInfo:
        owner, repo = parse_source_url(source_url)
        try:
            release = self.get_latest_release(owner, repo)
        except ReleaseSourceError as e:
            logger.error("Failed to fetch latest release for %s/%s: %s", owner, repo, e)
            raise
        info = self.release_info(release)
        if info.download_url is None:
            logger.warning("No Windows asset in latest release of %s/%s", owner, repo)
        return info
