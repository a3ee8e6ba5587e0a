import importlib

import fakeredis
import pytest
from fastapi.testclient import TestClient

import badminton.storage as storage


@pytest.fixture(autouse=True)
def use_sqlite(tmp_path, monkeypatch):
    monkeypatch.setattr(storage, "DB_FILE", tmp_path / "badminton.db")
    monkeypatch.setattr(storage, "DATABASE_URL", "")
    monkeypatch.setattr(storage, "IS_PG", False)
    monkeypatch.setattr(storage, "_redis", None)
    yield


@pytest.fixture
def fake_redis(monkeypatch):
    server = fakeredis.FakeRedis()
    monkeypatch.setattr(storage, "_redis", server)
    yield server
    server.flushall()


@pytest.fixture
def client():
    api = importlib.import_module("badminton.api")
    return TestClient(api.app)
