# tests/conftest.py
import os

# Must be set before worksmart is imported: the engine is built at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("LOG_LEVEL", "WARNING")

from datetime import date, datetime, timezone

import pytest
from fastapi.testclient import TestClient

from worksmart import models  # noqa: F401
from worksmart.clock import FixedClock, get_clock
from worksmart.config import get_settings
from worksmart.database import Base, SessionLocal, engine
from worksmart.main import app
from worksmart.schemas import ClientRecord

TODAY = date(2024, 6, 1)
NOW = datetime(2024, 6, 1, 9, 30, tzinfo=timezone.utc)


@pytest.fixture
def today():
    return TODAY


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def fixed_clock():
    return FixedClock(NOW, TODAY)


@pytest.fixture
def make_client():
    """Build an in-memory client snapshot; only the name is required."""
    def _make(**fields):
        fields.setdefault("name", "Jane Doe")
        return ClientRecord(**fields)
    return _make


@pytest.fixture
def db_session():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def api(fixed_clock):
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    app.dependency_overrides[get_clock] = lambda: fixed_clock
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def override_settings():
    """Swap individual settings for the duration of one test."""
    def _override(**changes):
        patched = get_settings().model_copy(update=changes)
        app.dependency_overrides[get_settings] = lambda: patched
        return patched
    return _override


@pytest.fixture
def headers():
    def _headers(role="Professional Counselor", identity="counsellor-01"):
        return {"X-Staff-Role": role, "X-Staff-Identity": identity}
    return _headers
