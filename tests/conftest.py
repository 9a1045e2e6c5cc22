import pytest

from appslauncher.core.models import AppRecord
from appslauncher.store.app_store import AppStore
from appslauncher.store.kv_store import JsonFileStore


@pytest.fixture
def app_store(tmp_path):
    return AppStore(JsonFileStore(tmp_path / "apps-launcher-config.json"))


@pytest.fixture
def make_exe(tmp_path):
    def _make(*parts):
        path = tmp_path.joinpath(*parts)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"MZ")
        return path

    return _make


@pytest.fixture
def installed(app_store):
    def _install(identity, executable_path=None, version="1.0.0", install_path=""):
        record = AppRecord(
            identity=identity,
            installed_version=version,
            install_path=install_path or (str(executable_path.parent) if executable_path else ""),
            executable_path=str(executable_path) if executable_path else None,
        )
        app_store.set_installed_app(record)
        return record

    return _install
