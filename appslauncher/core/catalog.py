import json
import logging
from pathlib import Path
from typing import List, Optional

from .errors import UnknownApp
from .models import AppDefinition

logger = logging.getLogger(__name__)


def load_catalog(path: Path) -> List[AppDefinition]:
    """Read the ordered app catalog (``apps.json``)."""
    with open(path, "r", encoding="utf-8") as fh:
        payload = json.load(fh)
    if not isinstance(payload, list):
        raise ValueError(f"App catalog must be a JSON list: {path}")

    apps: List[AppDefinition] = []
    seen: set[str] = set()
    for index, item in enumerate(payload):
        if not isinstance(item, dict):
            logger.warning("Skipping catalog entry %s: not an object", index)
            continue
        try:
            app = AppDefinition.from_dict(item)
        except ValueError as e:
            logger.warning("Skipping catalog entry %s: %s", index, e)
            continue
        if app.identity in seen:
            logger.warning("Duplicate catalog id %s ignored", app.identity)
            continue
        seen.add(app.identity)
        apps.append(app)
    return apps


def find_app(catalog: List[AppDefinition], identity: str) -> AppDefinition:
    match: Optional[AppDefinition] = next((a for a in catalog if a.identity == identity), None)
    if match is None:
        raise UnknownApp(f"App not found in catalog: {identity}")
    return match
