import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Optional

from .core.application import LauncherApplication
from .core.errors import AppsLauncherError
from .core.models import DownloadProgress, InstallStatus, StartupProgress
from .core.operation import Operation
from .services.downloads import format_bytes, format_speed
from .utils.logger import configure_logging

logger = logging.getLogger(__name__)


def _print_event(event: Any) -> None:
    if isinstance(event, DownloadProgress):
        total = format_bytes(event.bytes_total) if event.bytes_total else "?"
        print(f"  {event.progress:6.2f}%  {format_bytes(event.bytes_received)} / {total}  {format_speed(event.speed)}")
    elif isinstance(event, InstallStatus):
        print(f"  [{event.state.value}] {event.message}")
    elif isinstance(event, StartupProgress):
        print(f"[{event.phase}] {event.message}")


def _wait(operation: Operation) -> Any:
    operation.subscribe(_print_event)
    try:
        return operation.result()
    except KeyboardInterrupt:
        if operation.cancel():
            print("Cancelled.")
        raise


def _pick_executable(launcher: LauncherApplication, identity: str, default_dir: str) -> None:
    from PyQt6.QtWidgets import QApplication

    from .ui.locate_dialog import QtManualLocatePrompt

    qt_app = QApplication.instance() or QApplication(sys.argv[:1])
    chosen = QtManualLocatePrompt().choose_executable(identity, launcher.app(identity).name, default_dir)
    qt_app.processEvents()
    if chosen:
        record = launcher.select_executable(identity, chosen)
        print(f"Executable set to {record.executable_path}")


def _cmd_list(launcher: LauncherApplication, args) -> int:
    for entry in launcher.list_apps():
        state = "not installed"
        if entry["installed"]:
            state = f"installed {entry['installed_version']}"
            if entry["update_available"]:
                state += " (update available)"
            if entry["running"]:
                state += " [running]"
        print(f"{entry['id']:<24} {entry['name']:<32} latest {entry['latest_version'] or '?':<12} {state}")
    return 0


def _cmd_install(launcher: LauncherApplication, args) -> int:
    op = launcher.update_app(args.app) if args.command == "update" else launcher.install_app(args.app)
    result = _wait(op)
    if result.executable_path:
        print(f"Installed {args.app}: {result.executable_path}")
    else:
        print(f"Installed {args.app}, but no executable was found in {result.install_path}")
        if args.pick:
            _pick_executable(launcher, args.app, result.install_path)
    return 0


def _cmd_uninstall(launcher: LauncherApplication, args) -> int:
    _wait(launcher.uninstall_app(args.app))
    print(f"Uninstalled {args.app}")
    return 0


def _cmd_launch(launcher: LauncherApplication, args) -> int:
    entry = launcher.launch_app(args.app, args.args)
    print(f"Started {args.app} (pid {entry.pid})")
    return 0


def _cmd_check_updates(launcher: LauncherApplication, args) -> int:
    updates = launcher.check_updates()
    if not updates:
        print("All apps are up to date.")
    for update in updates:
        print(f"{update.identity}: {update.installed_version} -> {update.latest_version}")
    return 0


def _cmd_scan(launcher: LauncherApplication, args) -> int:
    report = launcher.scanner.scan(launcher.catalog)
    for app in report.detected:
        print(f"Detected {app.name}: {app.executable_path}")
    for failure in report.errors:
        print(f"Error for {failure['id']}: {failure['error']}")
    print(f"{len(report.detected)} detected, {len(report.skipped)} already known, {len(report.errors)} errors")
    return 0


def _cmd_cleanup(launcher: LauncherApplication, args) -> int:
    removed = launcher.downloads.cleanup_old_temp_files(args.max_age_hours * 3600)
    print(f"Removed {removed} old download(s)")
    return 0


# These run their own maintenance step
STANDALONE_COMMANDS = {"scan", "cleanup"}

COMMANDS = {
    "list": _cmd_list,
    "install": _cmd_install,
    "update": _cmd_install,
    "uninstall": _cmd_uninstall,
    "launch": _cmd_launch,
    "check-updates": _cmd_check_updates,
    "scan": _cmd_scan,
    "cleanup": _cmd_cleanup,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="appslauncher", description="Install, update and launch GitHub-released apps")
    parser.add_argument("--debug", action="store_true", help="verbose console and file logging")
    parser.add_argument("--catalog", type=Path, default=None, help="path to apps.json")
    parser.add_argument("--no-startup", action="store_true", help="skip old-download cleanup and auto-detection")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("list", help="show catalog apps and their state")
    for name in ("install", "update"):
        p = sub.add_parser(name, help=f"{name} an app from its latest release")
        p.add_argument("app")
        p.add_argument("--pick", action="store_true", help="ask for the executable if it cannot be found")
    p = sub.add_parser("uninstall", help="run the app's uninstaller and forget it")
    p.add_argument("app")
    p = sub.add_parser("launch", help="start an installed app")
    p.add_argument("app")
    p.add_argument("args", nargs=argparse.REMAINDER)
    sub.add_parser("check-updates", help="compare installed versions with the latest releases")
    sub.add_parser("scan", help="adopt catalog apps that are already installed")
    p = sub.add_parser("cleanup", help="delete old downloads")
    p.add_argument("--max-age-hours", type=float, default=24.0)
    return parser


def main(argv: Optional[list] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.debug)

    try:
        launcher = LauncherApplication.create(catalog_file=args.catalog)
    except (OSError, ValueError) as e:
        print(f"Failed to load app catalog: {e}", file=sys.stderr)
        return 2

    try:
        if not args.no_startup and args.command not in STANDALONE_COMMANDS:
            launcher.startup(periodic=False)
        return COMMANDS[args.command](launcher, args)
    except AppsLauncherError as e:
        logger.error("%s failed: %s", args.command, e)
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130
    finally:
        launcher.shutdown()


if __name__ == "__main__":
    sys.exit(main())
