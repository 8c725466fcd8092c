"""
Shared test fixtures.

Every test gets its own file-backed SQLite database under ``tmp_path`` so
that the BEGIN IMMEDIATE serialization is exercised for real, including from
several threads at once.
"""

from __future__ import annotations

from decimal import Decimal
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session

import courtbook.db as db_mod
from courtbook.db import build_engine, create_db_and_tables, get_session
from courtbook.main import app
from courtbook.models import Coach, Court, CourtType, Equipment, EquipmentType
from courtbook.settings import settings

# ── Fixtures ───────────────────────────────────────────────────────────────


@pytest.fixture(autouse=True)
def _club_in_utc(monkeypatch):
    monkeypatch.setattr(settings, "timezone", "UTC")
    monkeypatch.setattr(settings, "booking_reference_prefix", "BK")


@pytest.fixture()
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'test.db'}", busy_timeout=30)
    create_db_and_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session(engine):
    with Session(engine, expire_on_commit=False) as session:
        yield session


@pytest.fixture()
def catalog(session) -> SimpleNamespace:
    """Two courts, a coach, and two equipment types with small stock."""
    indoor = Court(name="Court 1", type=CourtType.indoor, base_price=Decimal("15.00"))
    outdoor = Court(name="Court 2", type=CourtType.outdoor, base_price=Decimal("10.00"))
    closed = Court(
        name="Court 3", type=CourtType.outdoor, base_price=Decimal("10.00"), is_active=False
    )
    coach = Coach(name="Alex Smith", specialization="Beginners", hourly_rate=Decimal("30.00"))
    racket = Equipment(
        name="Pro Racket",
        type=EquipmentType.racket,
        price_per_session=Decimal("5.00"),
        total_quantity=4,
        available_quantity=4,
    )
    shoes = Equipment(
        name="Court Shoes",
        type=EquipmentType.shoes,
        price_per_session=Decimal("3.50"),
        total_quantity=1,
        available_quantity=1,
    )
    session.add_all([indoor, outdoor, closed, coach, racket, shoes])
    session.commit()
    return SimpleNamespace(
        indoor=indoor, outdoor=outdoor, closed=closed, coach=coach, racket=racket, shoes=shoes
    )


@pytest.fixture()
def client(engine, monkeypatch) -> TestClient:
    """
    FastAPI TestClient bound to the per-test database.

    The lifespan still runs, so the module-level engine is pointed at the
    test database as well.
    """
    monkeypatch.setattr(db_mod, "engine", engine)

    def _session_override():
        with Session(engine) as s:
            yield s

    app.dependency_overrides[get_session] = _session_override

    with TestClient(app, raise_server_exceptions=False) as tc:
        yield tc

    app.dependency_overrides.clear()


@pytest.fixture()
def booking_payload(catalog):
    def _payload(**overrides) -> dict:
        payload = {
            "user_id": "u-1",
            "user_name": "Jamie",
            "user_email": "jamie@example.com",
            "court_id": catalog.indoor.id,
            "start_time": "2026-10-19T18:30:00Z",
            "end_time": "2026-10-19T19:30:00Z",
        }
        payload.update(overrides)
        return payload

    return _payload
