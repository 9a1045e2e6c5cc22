from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class AppDefinition:
    identity: str
    name: str
    source_url: str
    fallback_version: str = ""
    extra: Dict[str, Any] = field(default_factory=dict, compare=False)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AppDefinition":
        identity = str(data.get("id") or "").strip()
        if not identity:
            raise ValueError("Catalog entry without an 'id'")
        known = {"id", "name", "version", "downloadUrl", "changelogUrl"}
        return cls(
            identity=identity,
            name=str(data.get("name") or identity),
            source_url=str(data.get("downloadUrl") or data.get("changelogUrl") or ""),
            fallback_version=str(data.get("version") or ""),
            extra={k: v for k, v in data.items() if k not in known},
        )


@dataclass(frozen=True)
class ReleaseAsset:
    name: str
    download_url: str
    size: int = 0


@dataclass(frozen=True)
class ReleaseInfo:
    version: str
    download_url: Optional[str]
    assets: List[ReleaseAsset]
    name: str = ""
    notes: str = ""
    published_at: str = ""
    html_url: str = ""


@dataclass
class CacheEntry:
    version: str
    fetched_at: float
    ttl: float

    def is_fresh(self, now: float) -> bool:
        return now - self.fetched_at < self.ttl


@dataclass
class AppRecord:
    identity: str
    installed_version: str
    install_path: str
    executable_path: Optional[str] = None
    installed_date: str = field(default_factory=utc_now_iso)
    last_launched: Optional[str] = None
    auto_detected: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.identity,
            "installedVersion": self.installed_version,
            "installPath": self.install_path,
            "executablePath": self.executable_path,
            "installedDate": self.installed_date,
            "lastLaunched": self.last_launched,
            "autoDetected": self.auto_detected,
        }

    @classmethod
    def from_dict(cls, identity: str, data: Dict[str, Any]) -> "AppRecord":
        return cls(
            identity=str(data.get("id") or identity),
            installed_version=str(data.get("installedVersion") or "unknown"),
            install_path=str(data.get("installPath") or ""),
            executable_path=data.get("executablePath") or None,
            installed_date=str(data.get("installedDate") or utc_now_iso()),
            last_launched=data.get("lastLaunched") or None,
            auto_detected=bool(data.get("autoDetected", False)),
        )


@dataclass(frozen=True)
class RunningProcessEntry:
    pid: int
    start_time: str
    executable_path: str


@dataclass(frozen=True)
class InstalledApplication:
    """One uninstall-key entry from the OS installed-application registry."""

    display_name: str
    install_location: str = ""
    display_icon: str = ""


# --------------------------
# Progress / status events
# --------------------------
@dataclass(frozen=True)
class DownloadProgress:
    identity: str
    progress: float
    bytes_received: int
    bytes_total: int
    speed: int


class InstallState(str, Enum):
    IDLE = "idle"
    PREPARING = "preparing"
    INSTALLING = "installing"
    EXTRACTING = "extracting"
    SEARCHING = "searching"
    UNINSTALLING = "uninstalling"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass(frozen=True)
class InstallStatus:
    identity: str
    state: InstallState
    message: str


@dataclass(frozen=True)
class StartupProgress:
    phase: str
    message: str


@dataclass(frozen=True)
class InstallResult:
    install_path: str
    executable_path: Optional[str]


@dataclass(frozen=True)
class AvailableUpdate:
    identity: str
    name: str
    installed_version: str
    latest_version: str
    download_url: Optional[str]
    release: Optional[ReleaseInfo] = None


@dataclass
class DetectedApp:
    identity: str
    name: str
    executable_path: str
    found_with_name: str


@dataclass
class DetectionReport:
    detected: List[DetectedApp] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    errors: List[Dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
