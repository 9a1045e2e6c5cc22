from __future__ import annotations

import logging
import os
import re
from typing import Iterable, List, Optional

from ..core.errors import ExecutableNotFound
from ..core.models import AppDefinition, AppRecord, DetectedApp, DetectionReport
from ..store.app_store import AppStore
from .locator import ExecutableLocator

logger = logging.getLogger(__name__)

_PARENTHESIZED_RE = re.compile(r"\s*\([^)]*\)")
_DASH_SPLIT_RE = re.compile("\\s*[-\u2013\u2014]\\s*")


def generate_name_variations(app_name: str) -> List[str]:
    """Display-name spellings an installer may have used for its folder.

    "App (Beta) - Tools" -> ["App (Beta) - Tools", "App - Tools", "App (Beta)", "App"]
    """
    name = (app_name or "").strip()
    if not name:
        return []
    variations = [name]
    candidates = (
        _PARENTHESIZED_RE.sub("", name).strip(),
        _DASH_SPLIT_RE.split(name)[0].strip(),
        name.split()[0].strip(),
    )
    for candidate in candidates:
        if candidate and candidate not in variations:
            variations.append(candidate)
    logger.debug("Name variations for %r: %s", app_name, variations)
    return variations


class AutoDetectScanner:
    """Adopts catalog apps that are already installed on the machine."""

    def __init__(self, store: AppStore, locator: ExecutableLocator):
        self.store = store
        self.locator = locator

    def scan(self, catalog: Iterable[AppDefinition]) -> DetectionReport:
        logger.info("Starting automatic app detection scan")
        report = DetectionReport()
        for app in catalog:
            record = self.store.get_verified_app(app.identity)
            if record is not None:
                if record.executable_path:
                    report.skipped.append(app.identity)
                    continue
                logger.info("Record for %s has no executable, re-detecting", app.identity)
                self.store.remove_installed_app(app.identity)

            try:
                detected = self.scan_single(app)
            except OSError as e:
                logger.error("Error while detecting %s: %s", app.identity, e)
                report.errors.append({"id": app.identity, "name": app.name, "error": str(e)})
                continue
            if detected is not None:
                report.detected.append(detected)

        logger.info(
            "Detection scan complete: %s detected, %s skipped, %s errors",
            len(report.detected),
            len(report.skipped),
            len(report.errors),
        )
        return report

    def scan_single(self, app: AppDefinition) -> Optional[DetectedApp]:
        """Search for one app by name variations and record it when found."""
        for variation in generate_name_variations(app.name):
            try:
                executable = self.locator.locate(app.identity, "", variation)
            except ExecutableNotFound:
                continue

            logger.info("Found %s using %r at %s", app.name, variation, executable)
            self.store.set_installed_app(AppRecord(
                identity=app.identity,
                installed_version=app.fallback_version or "unknown",
                install_path=os.path.dirname(executable),
                executable_path=executable,
                auto_detected=True,
            ))
            return DetectedApp(
                identity=app.identity,
                name=app.name,
                executable_path=executable,
                found_with_name=variation,
            )
        logger.debug("%s not found on this system", app.name)
        return None
