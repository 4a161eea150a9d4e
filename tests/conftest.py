from __future__ import annotations

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import venue_booking.models  # noqa: F401
from venue_booking.core.admission_lock import VenueLockRegistry
from venue_booking.core.deps import get_db
from venue_booking.db.base import Base
from venue_booking.main import app
from venue_booking.services.availability_service import AvailabilityResolver
from venue_booking.services.booking_service import BookingAdmissionService

from helpers import InMemoryStorage


@pytest.fixture
def storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture
def resolver(storage: InMemoryStorage) -> AvailabilityResolver:
    return AvailabilityResolver(storage)


@pytest.fixture
def service(storage: InMemoryStorage) -> BookingAdmissionService:
    return BookingAdmissionService(storage, locks=VenueLockRegistry(), lock_timeout=1.0)


@pytest.fixture
def engine():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(engine):
    TestingSession = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    db = TestingSession()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def client(engine):
    TestingSession = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

    def _get_db():
        db = TestingSession()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _get_db
    try:
        with TestClient(app) as c:
            yield c
    finally:
        app.dependency_overrides.clear()
