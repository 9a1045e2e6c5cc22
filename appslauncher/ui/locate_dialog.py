import logging
import os
from typing import Optional

from PyQt6.QtCore import QThread
from PyQt6.QtWidgets import QApplication, QFileDialog, QWidget

logger = logging.getLogger(__name__)

EXECUTABLE_FILTER = "Executable Files (*.exe);;All Files (*)"


class QtManualLocatePrompt:
    """Asks the user to point at an app's executable when discovery gives up."""

    def __init__(self, parent: Optional[QWidget] = None):
        self.parent = parent

    def choose_executable(self, identity: str, app_name: str, default_dir: str) -> Optional[str]:
        app = QApplication.instance()
        if app is None:
            logger.warning("No QApplication running, cannot ask for the %s executable", identity)
            return None
        if app.thread() != QThread.currentThread():
            logger.warning("File dialog requested off the GUI thread for %s, skipping", identity)
            return None
        start_dir = default_dir if default_dir and os.path.isdir(default_dir) else ""
        path, _ = QFileDialog.getOpenFileName(
            self.parent,
            f"Select the {app_name} executable",
            start_dir,
            EXECUTABLE_FILTER,
        )
        if not path:
            logger.info("Executable selection cancelled for %s", identity)
            return None
        return os.path.normpath(path)
