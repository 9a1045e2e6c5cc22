import pytest

from appslauncher.core.models import AppDefinition
from appslauncher.services.auto_detect import AutoDetectScanner, generate_name_variations
from appslauncher.services.locator import ExecutableLocator
from appslauncher.utils.registry import NullRegistry


def _app(identity, name, version="2.7.9"):
    return AppDefinition(identity=identity, name=name, source_url=f"https://github.com/owner/{identity}", fallback_version=version)


def test_generate_name_variations():
    assert generate_name_variations("App (Beta) - Tools") == ["App (Beta) - Tools", "App - Tools", "App (Beta)", "App"]
    assert generate_name_variations("Editor – Portable") == ["Editor – Portable", "Editor"]
    assert generate_name_variations("Obsidian") == ["Obsidian"]
    assert generate_name_variations("") == []


@pytest.fixture
def scanner(app_store, tmp_path):
    locator = ExecutableLocator(NullRegistry(), roots=[str(tmp_path / "Programs")])
    return AutoDetectScanner(app_store, locator)


def test_scan_adopts_installed_apps(scanner, app_store, make_exe):
    exe = make_exe("Programs", "KeePassXC", "KeePassXC.exe")
    catalog = [_app("keepassxc", "KeePassXC (Portable)"), _app("missing", "Not Installed Anywhere")]

    report = scanner.scan(catalog)

    assert [d.identity for d in report.detected] == ["keepassxc"]
    assert report.detected[0].found_with_name == "KeePassXC"
    assert report.errors == []
    record = app_store.get_installed_app("keepassxc")
    assert record.auto_detected is True
    assert record.installed_version == "2.7.9"
    assert record.executable_path == str(exe)
    assert record.install_path == str(exe.parent)
    assert app_store.get_installed_app("missing") is None


def test_scan_skips_verified_records(scanner, make_exe, installed):
    exe = make_exe("Programs", "Tool", "Tool.exe")
    installed("tool", exe)

    report = scanner.scan([_app("tool", "Tool")])

    assert report.skipped == ["tool"]
    assert report.detected == []


def test_scan_retries_record_without_executable(scanner, app_store, make_exe, installed):
    exe = make_exe("Programs", "Tool", "Tool.exe")
    installed("tool", None, install_path="somewhere")

    report = scanner.scan([_app("tool", "Tool", version="")])

    assert [d.identity for d in report.detected] == ["tool"]
    record = app_store.get_installed_app("tool")
    assert record.executable_path == str(exe)
    assert record.installed_version == "unknown"


def test_scan_records_unexpected_os_errors(app_store):
    class BrokenLocator:
        def locate(self, *args, **kwargs):
            raise PermissionError("access denied")

    report = AutoDetectScanner(app_store, BrokenLocator()).scan([_app("tool", "Tool")])

    assert report.detected == []
    assert report.errors == [{"id": "tool", "name": "Tool", "error": "access denied"}]


if __name__ == "__main__":
    raise SystemExit(pytest.main([__file__]))
