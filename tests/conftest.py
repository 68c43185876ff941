from datetime import datetime

import mongomock
import pytest
from fastapi.testclient import TestClient

import database
import main


@pytest.fixture
def mongo(monkeypatch):
    """Swap the real collections for in-memory ones"""
    mock_db = mongomock.MongoClient()["time_tracker_test"]
    monkeypatch.setattr(database, "db", mock_db)
    monkeypatch.setattr(database, "sessions_collection", mock_db["time_sessions"])
    monkeypatch.setattr(database, "tasks_collection", mock_db["tasks"])
    return mock_db


@pytest.fixture
def client(mongo):
    return TestClient(main.app)


@pytest.fixture
def now():
    return datetime(2026, 3, 18, 15, 30, 0)


