"""Shared fixtures: in-memory SQLite per test, store and API client."""

from datetime import date

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.db import models
from app.db.database import Base, get_db
from app.db.store import ProfileStore
from app.main import app

DAY = date(2026, 3, 7)


@pytest.fixture
def db():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def store(db):
    return ProfileStore(db)


@pytest.fixture
def client(db):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def make_profile(store, user_id="u1", today=DAY, **fields):
    """Create a profile and force any counters the test needs."""
    store.create_profile(user_id, today=today, username=user_id)
    if fields:
        row = store.db.query(models.Profile).filter(models.Profile.user_id == user_id).one()
        for name, value in fields.items():
            setattr(row, name, value)
        store.db.commit()
    return store.read_profile(user_id)


def grant_count(store, key_prefix=""):
    query = store.db.query(models.GrantRecord)
    if key_prefix:
        query = query.filter(models.GrantRecord.idempotency_key.startswith(key_prefix))
    return query.count()
