"""Post-install executable discovery.

Search order: the OS installed-application registry, a shallow probe of the
usual install roots, a bounded recursive probe of the same directories. The
first hit wins; an exhausted search raises ``ExecutableNotFound`` after
logging every directory it looked at.
"""

from __future__ import annotations

import logging
import os
import time
from typing import Callable, Iterator, List, Optional, Sequence

from ..core.errors import ExecutableNotFound
from ..utils.registry import InstalledAppsRegistry, NullRegistry
from .releases import repo_slug

logger = logging.getLogger(__name__)

INSTALLER_NOISE = ("setup", "install", "unins", "updater", "launcher")
MAX_RECURSION_DEPTH = 3

# (max_attempts, delay_sec)
INSTALL_POLL = (10, 3.0)
EXTRACT_POLL = (5, 0.5)


def default_search_roots() -> List[str]:
    """Well-known install roots, skipping variables that are not set."""
    env = os.environ
    local = env.get("LOCALAPPDATA", "")
    roots = [
        env.get("ProgramFiles", r"C:\Program Files"),
        env.get("ProgramFiles(x86)", r"C:\Program Files (x86)"),
        local,
        env.get("APPDATA", ""),
        os.path.join(local, "Programs") if local else "",
    ]
    return [r for r in roots if r]


def _normalize(name: str) -> str:
    return "".join(name.lower().split())


def _is_exe(name: str) -> bool:
    return name.lower().endswith(".exe")


def _clean_icon_path(icon: str) -> str:
    path = icon.strip().strip('"')
    # DisplayIcon may carry a resource index: "C:\App\app.exe,0"
    head, sep, tail = path.rpartition(",")
    if sep and tail.strip().lstrip("-").isdigit():
        path = head
    return path.strip().strip('"')


def _list_executables(directory: str) -> List[str]:
    try:
        with os.scandir(directory) as it:
            return sorted(e.name for e in it if _is_exe(e.name) and e.is_file())
    except OSError as e:
        logger.debug("Cannot list %s: %s", directory, e)
        return []


def iter_executables(directory: str, max_depth: int = MAX_RECURSION_DEPTH, _depth: int = 0) -> Iterator[str]:
    """Depth-first walk yielding ``.exe`` paths lazily, at most ``max_depth`` levels down."""
    if _depth > max_depth:
        return
    try:
        with os.scandir(directory) as it:
            entries = sorted(it, key=lambda e: e.name)
    except OSError as e:
        logger.warning("Cannot read directory %s: %s", directory, e)
        return
    for entry in entries:
        try:
            if entry.is_dir(follow_symlinks=False):
                yield from iter_executables(entry.path, max_depth, _depth + 1)
            elif _is_exe(entry.name) and entry.is_file():
                yield entry.path
        except OSError:
            continue


def choose_executable(executables: Sequence[str], app_name: str) -> Optional[str]:
    """Pick from one directory listing: name match, then non-installer, then anything."""
    if not executables:
        return None
    wanted = _normalize(app_name or "")
    if wanted:
        for name in executables:
            stem = _normalize(name)[: -len(".exe")]
            if stem == wanted or wanted in stem:
                return name
    for name in executables:
        lower = name.lower()
        if not any(noise in lower for noise in INSTALLER_NOISE):
            return name
    logger.warning("No ideal executable found, using fallback: %s", executables[0])
    return executables[0]


class ExecutableLocator:
    def __init__(
        self,
        registry: Optional[InstalledAppsRegistry] = None,
        roots: Optional[Sequence[str]] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.registry = registry or NullRegistry()
        self._roots = list(roots) if roots is not None else None
        self.sleep = sleep

    @property
    def roots(self) -> List[str]:
        if self._roots is None:
            return default_search_roots()
        return list(self._roots)

    @staticmethod
    def candidate_names(identity: str, app_name: str, source_url: Optional[str] = None) -> List[str]:
        names: List[str] = []
        for name in (app_name, repo_slug(source_url), identity):
            if name and name not in names:
                names.append(name)
        return names

    def search_directories(self, install_hint: str, names: Sequence[str], hint_only: bool = False) -> List[str]:
        roots = [install_hint] if install_hint else []
        if not hint_only:
            roots.extend(self.roots)
        directories: List[str] = []
        for name in names:
            for root in roots:
                candidate = os.path.join(root, name)
                if candidate not in directories:
                    directories.append(candidate)
        if install_hint and install_hint not in directories:
            directories.append(install_hint)
        return directories

    # --------------------------
    # Phases
    # --------------------------
    def find_in_registry(self, names: Sequence[str]) -> Optional[str]:
        wanted = [n.lower() for n in names if n]
        try:
            entries = self.registry.installed_applications()
        except OSError as e:
            logger.warning("Registry search failed: %s", e)
            return None

        for entry in entries:
            display = entry.display_name.lower()
            if not display:
                continue
            if not any(w in display or display in w for w in wanted):
                continue
            logger.info("Registry match: %s", entry.display_name)

            if entry.display_icon:
                icon = _clean_icon_path(entry.display_icon)
                if _is_exe(icon) and os.path.isfile(icon):
                    return icon
            if entry.install_location and os.path.isdir(entry.install_location):
                executables = _list_executables(entry.install_location)
                if executables:
                    return os.path.join(entry.install_location, executables[0])
        return None

    def _shallow_probe(self, directories: Sequence[str], app_name: str) -> Optional[str]:
        for directory in directories:
            if not os.path.isdir(directory):
                continue
            logger.debug("Checking directory: %s", directory)
            chosen = choose_executable(_list_executables(directory), app_name)
            if chosen:
                return os.path.join(directory, chosen)
        return None

    def _recursive_probe(self, directories: Sequence[str]) -> Optional[str]:
        for directory in directories:
            if not os.path.isdir(directory):
                continue
            logger.debug("Searching recursively in: %s", directory)
            found = next(iter_executables(directory), None)
            if found:
                return found
        return None

    def _log_exhausted(self, identity: str, app_name: str, install_hint: str, directories: Sequence[str]) -> None:
        logger.error(
            "Executable not found after exhaustive search (id=%s, name=%s, hint=%s)",
            identity,
            app_name,
            install_hint,
        )
        for directory in directories:
            if not os.path.isdir(directory):
                logger.error("  %s: does not exist", directory)
                continue
            try:
                listing = sorted(os.listdir(directory))
            except OSError as e:
                logger.error("  %s: error %s", directory, e)
                continue
            logger.error("  %s: [%s]", directory, ", ".join(listing))

    # --------------------------
    # Public API
    # --------------------------
    def locate(
        self,
        identity: str,
        install_hint: str,
        app_name: str,
        source_url: Optional[str] = None,
        *,
        hint_only: bool = False,
    ) -> str:
        names = self.candidate_names(identity, app_name, source_url)
        logger.info("Searching executable for %s, names=%s, hint=%s", identity, names, install_hint)

        if not hint_only:
            found = self.find_in_registry(names)
            if found:
                logger.info("Found executable in registry: %s", found)
                return found

        directories = self.search_directories(install_hint, names, hint_only)
        found = self._shallow_probe(directories, app_name or identity)
        if found:
            logger.info("Found executable: %s", found)
            return found

        found = self._recursive_probe(directories)
        if found:
            logger.info("Found executable (recursive): %s", found)
            return found

        self._log_exhausted(identity, app_name, install_hint, directories)
        raise ExecutableNotFound(f"Executable not found for {identity}")

    def locate_with_polling(
        self,
        identity: str,
        install_hint: str,
        app_name: str,
        source_url: Optional[str] = None,
        *,
        max_attempts: int = INSTALL_POLL[0],
        delay: float = INSTALL_POLL[1],
        hint_only: bool = False,
    ) -> str:
        attempts = max(1, int(max_attempts))
        for attempt in range(1, attempts + 1):
            try:
                return self.locate(identity, install_hint, app_name, source_url, hint_only=hint_only)
            except ExecutableNotFound:
                if attempt >= attempts:
                    logger.error("Failed to find executable for %s after %s attempts", identity, attempts)
                    raise
                logger.info("Executable for %s not found yet (attempt %s/%s), retrying in %.1fs", identity, attempt, attempts, delay)
                self.sleep(delay)
        raise ExecutableNotFound(f"Executable not found for {identity}")
