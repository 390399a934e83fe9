import os

# Point the app at SQLite before drying.config builds its settings
os.environ["DATABASE_URL"] = "sqlite://"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from drying.config import settings
from drying.database import Base, get_db
import drying.models  # noqa: F401
from drying.main import app


@pytest.fixture(autouse=True)
def reset_rate_settings(monkeypatch):
    """Tests start with no rates configured unless they ask for them."""
    monkeypatch.setattr(settings, "fallback_electricity_rate", None)
    monkeypatch.setattr(settings, "depreciation_per_hour", None)
    monkeypatch.setattr(settings, "maintenance_per_hour", 0.0)
    monkeypatch.setattr(settings, "labor_per_hour", 0.0)
    monkeypatch.setattr(settings, "reconciliation_tolerance_kwh", 0.01)
    monkeypatch.setattr(settings, "schedule_timezone", "Africa/Dar_es_Salaam")


@pytest.fixture
def configured_rates(monkeypatch):
    monkeypatch.setattr(settings, "depreciation_per_hour", 6000.0)
    monkeypatch.setattr(settings, "fallback_electricity_rate", 356.25)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()
