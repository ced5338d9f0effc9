"""
Pytest configuration and shared fixtures.

Unit tests build engine records directly; integration tests run the store
and the HTTP API against throwaway SQLite databases seeded with the
starter catalog.
"""
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database.db import configure_sqlite, get_db, maybe_seed
from database.models import Base
from main import app


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Pure engine tests")
    config.addinivalue_line("markers", "integration: Tests that touch a database")


def pytest_collection_modifyitems(config, items):
    """Mark tests based on their location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)


@pytest.fixture
def now() -> datetime:
    """Fixed clock for deterministic day arithmetic."""
    return datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


# ─────────────────────────────────────────────
# Database fixtures
# ─────────────────────────────────────────────

def _seeded_factory(engine) -> sessionmaker:
    configure_sqlite(engine)
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)
    with factory() as db:
        maybe_seed(db)
        db.commit()
    return factory


@pytest.fixture
def session_factory(tmp_path):
    """File-backed SQLite, so separate sessions get separate connections."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'skilltrack_test.db'}",
        connect_args={"check_same_thread": False},
    )
    yield _seeded_factory(engine)
    engine.dispose()


@pytest.fixture
def client():
    """TestClient over an in-memory database. The lifespan hook is not run."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    factory = _seeded_factory(engine)

    def override_get_db():
        db = factory()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()
    engine.dispose()
