"""Shared pytest fixtures: in-memory database and record builders."""

from datetime import date

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import crud
import database


@pytest.fixture
def engine():
    """In-memory SQLite engine shared across threads."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    database.init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_vehicle(db):
    def _make(name="Test Car", **fields):
        return crud.create_vehicle(db, {"name": name, **fields})
    return _make


@pytest.fixture
def add_service(db):
    def _add(vehicle_id, odometer, when=date(2023, 6, 1), cost=0.0):
        return crud.create_service_record(db, {
            "vehicle_id": vehicle_id, "date": when, "odometer": odometer, "cost": cost,
        })
    return _add


@pytest.fixture
def add_fuel(db):
    def _add(vehicle_id, odometer, when=date(2023, 6, 1), liters=0.0, price_per_liter=0.0):
        return crud.create_fuel_log(db, {
            "vehicle_id": vehicle_id, "date": when, "odometer": odometer,
            "liters": liters, "price_per_liter": price_per_liter,
        })
    return _add


@pytest.fixture
def add_reminder(db):
    def _add(vehicle_id, title="Oil Change", **fields):
        return crud.create_reminder(db, {"vehicle_id": vehicle_id, "title": title, **fields})
    return _add
