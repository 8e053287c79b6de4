from datetime import datetime

import mongomock
import pytest
from fastapi.testclient import TestClient

from config import Settings
from database import Database
from main import create_app, get_now


@pytest.fixture
def now():
    return datetime(2026, 10, 15, 12, 0)


@pytest.fixture
def db():
    database = Database(mongomock.MongoClient(), "finance_test")
    database.ensure_indexes()
    return database


@pytest.fixture
def app(db, now):
    app = create_app(database=db, settings=Settings())
    app.dependency_overrides[get_now] = lambda: now
    return app


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c
