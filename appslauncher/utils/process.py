import logging
import os
import subprocess
from typing import Iterable, Mapping, Optional, Sequence

import psutil

logger = logging.getLogger(__name__)

# Variables the launcher process may carry (Electron shells, Qt plugin
# lookup, PyInstaller bootloader state) that break GUI toolkits in children.
LAUNCHER_ENV_VARS = (
    "ELECTRON_RUN_AS_NODE",
    "ELECTRON_NO_ATTACH_CONSOLE",
    "ELECTRON_NO_ASAR",
    "QT_PLUGIN_PATH",
    "QT_QPA_PLATFORM_PLUGIN_PATH",
    "QML2_IMPORT_PATH",
    "_MEIPASS2",
    "_PYI_APPLICATION_HOME_DIR",
    "_PYI_ARCHIVE_FILE",
    "_PYI_PARENT_PROCESS_LEVEL",
)


def sanitized_environment(
    base: Optional[Mapping[str, str]] = None,
    strip: Iterable[str] = LAUNCHER_ENV_VARS,
) -> dict[str, str]:
    env = dict(os.environ if base is None else base)
    stripped = {name.upper() for name in strip}
    for key in list(env):
        if key.upper() in stripped:
            del env[key]
    return env


def _detached_popen_kwargs() -> dict:
    if os.name == "nt":
        flags = subprocess.DETACHED_PROCESS | subprocess.CREATE_NEW_PROCESS_GROUP
        return {"creationflags": flags, "close_fds": True}
    return {"start_new_session": True, "close_fds": True}


class ProcessRunner:
    """Thin OS capability around child processes."""

    def run_and_wait(self, command: Sequence[str], cwd: Optional[str] = None) -> int:
        logger.info("Running %s", subprocess.list2cmdline(list(command)))
        completed = subprocess.run(
            list(command),
            cwd=cwd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            check=False,
        )
        return completed.returncode

    def spawn_detached(
        self,
        command: Sequence[str],
        cwd: Optional[str] = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> subprocess.Popen:
        return subprocess.Popen(
            list(command),
            cwd=cwd,
            env=dict(env) if env is not None else None,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            shell=False,
            **_detached_popen_kwargs(),
        )

    def terminate(self, pid: int) -> bool:
        try:
            psutil.Process(pid).terminate()
            return True
        except (psutil.NoSuchProcess, psutil.AccessDenied) as e:
            logger.warning("Could not terminate pid %s: %s", pid, e)
            return False

    def pid_exists(self, pid: int) -> bool:
        return psutil.pid_exists(pid)
