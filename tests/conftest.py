from __future__ import annotations

import mongomock
import pytest
from fastapi.testclient import TestClient

import database
from client import DearlyClient
from events import EventBus
from main import app


@pytest.fixture
def mongo_db(monkeypatch: pytest.MonkeyPatch):
    db = mongomock.MongoClient()["dearly_test"]
    monkeypatch.setattr(database, "db", db)
    yield db


@pytest.fixture
def http(mongo_db) -> TestClient:
    with TestClient(app) as client:
        yield client


@pytest.fixture
def api(http: TestClient) -> DearlyClient:
    # TestClient is an httpx.Client, so requests go through the real routes.
    return DearlyClient(http=http)


@pytest.fixture
def bus() -> EventBus:
    return EventBus()
