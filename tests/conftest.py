import pytest
from fastapi.testclient import TestClient

from media_transfer.app.adapters.io.environment import MiB, ServerSettings
from media_transfer.app.main import create_app


@pytest.fixture
def service_root(tmp_path):
    root = tmp_path / "service"
    root.mkdir()
    (root / "index.html").write_text("<h1>upload</h1>", encoding="utf-8")
    return root


@pytest.fixture
def settings(service_root):
    return ServerSettings(
        service_root=str(service_root),
        max_file_size=1 * MiB,
        max_field_size=8 * 1024,
    )


@pytest.fixture
def client(settings):
    with TestClient(create_app(settings)) as c:
        yield c
