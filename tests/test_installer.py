import threading
import zipfile

import pytest

import appslauncher.services.installer as installer_mod
from appslauncher.core.errors import (
    AlreadyInstalling,
    ExtractionFailed,
    InstallationFailed,
    NotInstalled,
    UnknownInstallerType,
)
from appslauncher.core.models import InstallState
from appslauncher.services.installer import (
    InstallOptions,
    InstallOrchestrator,
    find_uninstaller,
    installer_kind,
    safe_extract,
)
from appslauncher.services.locator import ExecutableLocator
from appslauncher.utils.registry import NullRegistry


class FakeRunner:
    def __init__(self, exit_code=0, on_run=None):
        self.exit_code = exit_code
        self.on_run = on_run
        self.commands = []

    def run_and_wait(self, command, cwd=None):
        self.commands.append(list(command))
        if self.on_run:
            self.on_run(command)
        return self.exit_code


class FakePrompt:
    def __init__(self, answer=None):
        self.answer = answer
        self.asked = []

    def choose_executable(self, identity, app_name, default_dir):
        self.asked.append((identity, app_name, default_dir))
        return self.answer


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def make_orchestrator(app_store, sleeps, tmp_path):
    def _make(runner=None, prompt=None):
        locator = ExecutableLocator(NullRegistry(), roots=[], sleep=sleeps.append)
        return InstallOrchestrator(
            app_store,
            locator,
            runner=runner or FakeRunner(),
            prompt=prompt,
            sleep=sleeps.append,
            extraction_root=lambda identity: tmp_path / "extracted" / identity,
        )

    return _make


def _options(hint):
    return InstallOptions(version="1.2.0", app_name="MyApp", source_url="https://github.com/owner/myapp", install_hint=str(hint))


def test_installer_kind():
    assert installer_kind("C:/tmp/App-Setup.EXE") == "exe"
    assert installer_kind("app.msi") == "msi"
    assert installer_kind("app-win.zip") == "zip"
    with pytest.raises(UnknownInstallerType):
        installer_kind("app.dmg")


def test_exe_install_runs_silently_and_records_executable(tmp_path, app_store, make_orchestrator, sleeps, make_exe):
    hint = tmp_path / "AppsLauncher"
    runner = FakeRunner(on_run=lambda _cmd: make_exe("AppsLauncher", "MyApp", "MyApp.exe"))
    orchestrator = make_orchestrator(runner=runner)
    events = []

    result = orchestrator.install("myapp", "/tmp/abcd1234_MyApp-Setup.exe", _options(hint), events.append)

    exe = hint / "MyApp" / "MyApp.exe"
    assert runner.commands == [["/tmp/abcd1234_MyApp-Setup.exe", "/S"]]
    assert result.executable_path == str(exe)
    assert result.install_path == str(exe.parent)
    assert sleeps == [installer_mod.SETTLE_DELAY_SEC]
    record = app_store.get_installed_app("myapp")
    assert record.installed_version == "1.2.0"
    assert record.executable_path == str(exe)
    assert record.install_path == str(exe.parent)
    assert [e.state for e in events] == [
        InstallState.PREPARING,
        InstallState.INSTALLING,
        InstallState.SEARCHING,
        InstallState.COMPLETED,
    ]
    assert not orchestrator.is_installing("myapp")


def test_msi_install_uses_msiexec(tmp_path, make_orchestrator, make_exe, monkeypatch):
    monkeypatch.setattr(installer_mod, "msiexec_path", lambda: "msiexec")
    runner = FakeRunner(on_run=lambda _cmd: make_exe("AppsLauncher", "MyApp", "MyApp.exe"))
    orchestrator = make_orchestrator(runner=runner)

    orchestrator.install("myapp", "C:/tmp/MyApp.msi", _options(tmp_path / "AppsLauncher"))

    assert runner.commands == [["msiexec", "/i", "C:/tmp/MyApp.msi", "/quiet", "/norestart"]]


def test_nonzero_exit_fails_and_releases_lock(tmp_path, app_store, make_orchestrator):
    orchestrator = make_orchestrator(runner=FakeRunner(exit_code=2))
    events = []

    with pytest.raises(InstallationFailed, match="code 2"):
        orchestrator.install("myapp", "setup.exe", _options(tmp_path), events.append)

    assert events[-1].state is InstallState.ERROR
    assert not orchestrator.is_installing("myapp")
    assert app_store.get_installed_app("myapp") is None


def test_spawn_failure_is_installation_failed(tmp_path, make_orchestrator):
    def boom(_cmd):
        raise FileNotFoundError("no such installer")

    orchestrator = make_orchestrator(runner=FakeRunner(on_run=boom))
    with pytest.raises(InstallationFailed):
        orchestrator.install("myapp", "setup.exe", _options(tmp_path))
    assert not orchestrator.is_installing("myapp")


def test_unknown_type_does_not_take_the_lock(tmp_path, make_orchestrator):
    orchestrator = make_orchestrator()
    with pytest.raises(UnknownInstallerType):
        orchestrator.install("myapp", "app.tar.gz", _options(tmp_path))
    assert not orchestrator.is_installing("myapp")


def test_concurrent_install_is_rejected(tmp_path, make_orchestrator, make_exe):
    started, release = threading.Event(), threading.Event()

    def slow_installer(_cmd):
        started.set()
        release.wait(5)
        make_exe("AppsLauncher", "MyApp", "MyApp.exe")

    orchestrator = make_orchestrator(runner=FakeRunner(on_run=slow_installer))
    options = _options(tmp_path / "AppsLauncher")
    results = []
    worker = threading.Thread(target=lambda: results.append(orchestrator.install("myapp", "setup.exe", options)))
    worker.start()
    assert started.wait(5)

    assert orchestrator.is_installing("myapp")
    with pytest.raises(AlreadyInstalling):
        orchestrator.install("myapp", "setup.exe", options)

    release.set()
    worker.join(5)
    assert results and results[0].executable_path
    assert not orchestrator.is_installing("myapp")


def test_zip_install_extracts_and_finds_executable(tmp_path, app_store, make_orchestrator, sleeps):
    zip_path = tmp_path / "MyApp-win.zip"
    with zipfile.ZipFile(zip_path, "w") as zf:
        zf.writestr("MyApp-1.2.0/MyApp.exe", "MZ")
        zf.writestr("MyApp-1.2.0/resources/data.bin", "x")
    orchestrator = make_orchestrator()
    events = []

    result = orchestrator.install("myapp", str(zip_path), _options(tmp_path / "unused-hint"), events.append)

    expected = tmp_path / "extracted" / "myapp" / "MyApp-1.2.0" / "MyApp.exe"
    assert result.executable_path == str(expected)
    assert result.install_path == str(expected.parent)
    assert len(sleeps) < 5
    assert InstallState.EXTRACTING in [e.state for e in events]
    assert app_store.get_installed_app("myapp").executable_path == str(expected)


def test_bad_zip_is_extraction_failed(tmp_path, make_orchestrator):
    zip_path = tmp_path / "broken.zip"
    zip_path.write_bytes(b"not a zip")
    orchestrator = make_orchestrator()
    with pytest.raises(ExtractionFailed):
        orchestrator.install("myapp", str(zip_path), _options(tmp_path))
    assert not orchestrator.is_installing("myapp")


def test_safe_extract_rejects_path_traversal(tmp_path):
    zip_path = tmp_path / "evil.zip"
    with zipfile.ZipFile(zip_path, "w") as zf:
        zf.writestr("../escape.txt", "owned")

    with zipfile.ZipFile(zip_path, "r") as zf:
        with pytest.raises(ExtractionFailed):
            safe_extract(zf, str(tmp_path / "out"))
    assert not (tmp_path / "escape.txt").exists()


def test_safe_extract_rejects_windows_drive_letter(tmp_path):
    zip_path = tmp_path / "driveletter.zip"
    with zipfile.ZipFile(zip_path, "w") as zf:
        zf.writestr("C:evil.txt", "owned")

    with zipfile.ZipFile(zip_path, "r") as zf:
        with pytest.raises(ExtractionFailed):
            safe_extract(zf, str(tmp_path / "out_drive"))


def test_safe_extract_rejects_symlink_entry(tmp_path):
    zip_path = tmp_path / "symlink.zip"
    info = zipfile.ZipInfo("link")
    info.create_system = 3
    info.external_attr = (0o120777 << 16)
    with zipfile.ZipFile(zip_path, "w") as zf:
        zf.writestr(info, "target")

    with zipfile.ZipFile(zip_path, "r") as zf:
        with pytest.raises(ExtractionFailed):
            safe_extract(zf, str(tmp_path / "out_symlink"))


def test_manual_selection_after_exhausted_search(tmp_path, app_store, make_orchestrator, sleeps, make_exe):
    chosen = make_exe("Somewhere", "Else", "RealApp.exe")
    prompt = FakePrompt(answer=str(chosen))
    orchestrator = make_orchestrator(prompt=prompt)
    hint = tmp_path / "AppsLauncher"

    result = orchestrator.install("myapp", "setup.exe", _options(hint))

    assert prompt.asked == [("myapp", "MyApp", str(hint))]
    assert result.executable_path == str(chosen)
    assert app_store.get_installed_app("myapp").install_path == str(chosen.parent)
    assert sleeps == [installer_mod.SETTLE_DELAY_SEC] + [3.0] * 9


def test_cancelled_manual_selection_records_install_without_executable(tmp_path, app_store, make_orchestrator):
    orchestrator = make_orchestrator(prompt=FakePrompt(answer=None))
    hint = tmp_path / "AppsLauncher"

    result = orchestrator.install("myapp", "setup.exe", _options(hint))

    assert result.executable_path is None
    record = app_store.get_installed_app("myapp")
    assert record.executable_path is None
    assert record.install_path == str(hint)
    assert record.installed_version == "1.2.0"


@pytest.mark.parametrize("name,switch", [("uninstall.exe", "/S"), ("unins000.exe", "/SILENT"), ("uninst.exe", "/S")])
def test_find_uninstaller(tmp_path, make_exe, name, switch):
    exe = make_exe("app", name)
    assert find_uninstaller(str(tmp_path / "app")) == [str(exe), switch]


def test_find_uninstaller_none(tmp_path):
    assert find_uninstaller(str(tmp_path)) is None
    assert find_uninstaller("") is None


def test_uninstall_runs_uninstaller_and_removes_record(tmp_path, app_store, make_orchestrator, make_exe, installed):
    exe = make_exe("app", "MyApp.exe")
    uninstaller = make_exe("app", "unins000.exe")
    installed("myapp", exe)
    runner = FakeRunner()
    orchestrator = make_orchestrator(runner=runner)
    events = []

    orchestrator.uninstall("myapp", events.append)

    assert runner.commands == [[str(uninstaller), "/SILENT"]]
    assert app_store.get_installed_app("myapp") is None
    assert [e.state for e in events] == [InstallState.UNINSTALLING, InstallState.COMPLETED]


def test_uninstall_removes_record_even_when_uninstaller_fails(tmp_path, app_store, make_orchestrator, make_exe, installed):
    exe = make_exe("app", "MyApp.exe")
    make_exe("app", "uninstall.exe")
    installed("myapp", exe)
    orchestrator = make_orchestrator(runner=FakeRunner(exit_code=1))

    orchestrator.uninstall("myapp")

    assert app_store.get_installed_app("myapp") is None


def test_uninstall_without_record(make_orchestrator):
    with pytest.raises(NotInstalled):
        make_orchestrator().uninstall("ghost")


if __name__ == "__main__":
    raise SystemExit(pytest.main([__file__]))
