import pytest
from fastapi.testclient import TestClient
from songbook.app import create_app
from songbook.config import Settings


@pytest.fixture
def settings(tmp_path):
    (tmp_path / "web").mkdir()
    return Settings(web_root=tmp_path / "web", data_root=tmp_path / "data", port=8080)


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def admin_key(client):
    return client.app.state.context.keys.administrator_key
