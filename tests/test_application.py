import pytest

from appslauncher.core.application import LauncherApplication
from appslauncher.core.errors import ExecutableMissing, NotFound, NotInstalled, UnknownApp, UpdateInterrupted
from appslauncher.core.models import AppDefinition, AppRecord, DownloadProgress, ReleaseInfo
from appslauncher.services.locator import ExecutableLocator
from appslauncher.utils.registry import NullRegistry

SOURCE = "https://github.com/owner/myapp"


class FakeResolver:
    def __init__(self, version="2.0.0"):
        self.version = version
        self.error = None

    def get_app_release_info(self, source_url):
        if self.error is not None:
            raise self.error
        return ReleaseInfo(version=self.version, download_url=f"{source_url}/MyApp-Setup.exe", assets=[])


class FakeDownloads:
    def __init__(self, tmp_path):
        self.tmp_path = tmp_path
        self.downloaded = []
        self.cleaned = 0

    def download(self, identity, url, on_progress=None):
        self.downloaded.append(url)
        if on_progress:
            on_progress(DownloadProgress(identity=identity, progress=100.0, bytes_received=1, bytes_total=1, speed=0))
        return str(self.tmp_path / "abcd1234_MyApp-Setup.exe")

    def cleanup_old_temp_files(self, max_age_sec=None):
        self.cleaned += 1
        return 0

    def get_active_downloads(self):
        return []

    def cancel(self, identity):
        return False


class FakeRunner:
    def __init__(self, on_run=None):
        self.on_run = on_run
        self.commands = []

    def run_and_wait(self, command, cwd=None):
        self.commands.append(list(command))
        if self.on_run:
            self.on_run(command)
        return 0

    def pid_exists(self, pid):
        return False


@pytest.fixture
def build(app_store, tmp_path):
    def _build(runner=None, resolver=None, catalog=None):
        app_store.update_settings({"install_directory": str(tmp_path / "Apps"), "auto_update": False})
        app = LauncherApplication(
            catalog=catalog or [AppDefinition(identity="myapp", name="MyApp", source_url=SOURCE, fallback_version="1.0.0")],
            store=app_store,
            resolver=resolver or FakeResolver(),
            downloads=FakeDownloads(tmp_path),
            locator=ExecutableLocator(NullRegistry(), roots=[], sleep=lambda _s: None),
            runner=runner or FakeRunner(),
        )
        app.installer.sleep = lambda _s: None
        return app

    return _build


def test_install_app_downloads_installs_and_records(build, app_store, make_exe):
    runner = FakeRunner(on_run=lambda _cmd: make_exe("Apps", "MyApp", "MyApp.exe"))
    app = build(runner=runner)

    result = app.install_app("myapp").result(timeout=10)

    assert result.executable_path.endswith("MyApp.exe")
    assert app.downloads.downloaded == [f"{SOURCE}/MyApp-Setup.exe"]
    assert runner.commands[0][1] == "/S"
    assert app_store.get_installed_app("myapp").installed_version == "2.0.0"


def test_install_unknown_app(build):
    with pytest.raises(UnknownApp):
        build().install_app("ghost")


def test_update_failure_after_uninstall_is_update_interrupted(build, app_store, make_exe):
    exe = make_exe("Apps", "MyApp", "MyApp.exe")
    app_store.set_installed_app(AppRecord(identity="myapp", installed_version="1.0.0", install_path=str(exe.parent), executable_path=str(exe)))
    resolver = FakeResolver()
    resolver.error = NotFound("release vanished")
    app = build(resolver=resolver)

    op = app.update_app("myapp")

    with pytest.raises(UpdateInterrupted, match="not installed"):
        op.result(timeout=10)
    assert isinstance(op.exception().__cause__, NotFound)
    assert app_store.get_installed_app("myapp") is None


def test_update_requires_installed_app(build):
    with pytest.raises(NotInstalled):
        build().update_app("myapp")


def test_list_apps_merges_state_and_purges_stale_records(build, app_store, tmp_path):
    app_store.set_installed_app(AppRecord(identity="stale", installed_version="1.0.0", install_path="", executable_path=str(tmp_path / "gone.exe")))
    app_store.set_installed_app(AppRecord(identity="myapp", installed_version="1.5.0", install_path=str(tmp_path)))
    catalog = [
        AppDefinition(identity="myapp", name="MyApp", source_url=SOURCE, fallback_version="1.0.0"),
        AppDefinition(identity="stale", name="Stale", source_url="https://github.com/owner/stale"),
    ]
    app = build(catalog=catalog)

    listing = {entry["id"]: entry for entry in app.list_apps()}

    assert listing["myapp"]["installed"] is True
    assert listing["myapp"]["latest_version"] == "2.0.0"
    assert listing["myapp"]["update_available"] is True
    assert listing["myapp"]["running"] is False
    assert listing["stale"]["installed"] is False
    assert app_store.get_installed_app("stale") is None


def test_startup_reports_phases(build):
    app = build()
    phases = []

    report = app.startup(phases.append)

    assert [p.phase for p in phases] == ["initializing", "cleanup", "detecting", "complete"]
    assert app.downloads.cleaned == 1
    assert report.detected == []
    app.shutdown()


def test_startup_without_periodic_check_leaves_timer_idle(build, app_store):
    app = build()
    app_store.update_settings({"auto_update": True})

    app.startup(periodic=False)

    assert app.update_checker._thread is None
    assert app.downloads.cleaned == 1


def test_select_executable(build, app_store, make_exe, tmp_path):
    app = build()
    app_store.set_installed_app(AppRecord(identity="myapp", installed_version="1.0.0", install_path=str(tmp_path)))
    exe = make_exe("Picked", "MyApp.exe")

    record = app.select_executable("myapp", str(exe))

    assert record.executable_path == str(exe)
    assert record.install_path == str(exe.parent)
    with pytest.raises(ExecutableMissing):
        app.select_executable("myapp", str(tmp_path / "missing.exe"))
    with pytest.raises(NotInstalled):
        app.select_executable("ghost", str(exe))


def test_update_settings_rearms_periodic_check(build, app_store):
    app = build()
    try:
        app.update_settings({"auto_update": True})
        assert app.update_checker._thread is not None
        app.update_settings({"check_update_interval": 7200})
        assert app.update_checker.interval == 7200
        app.update_settings({"auto_update": False})
        assert app.update_checker._thread is None
    finally:
        app.shutdown()


if __name__ == "__main__":
    raise SystemExit(pytest.main([__file__]))
