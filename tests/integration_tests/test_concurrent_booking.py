"""
Races between independent sessions.

Each worker thread owns its own Session on the shared file database and
starts its transaction at the same barrier, so both requests are in flight
together. The database must let exactly one of them win.
"""

from __future__ import annotations

import threading
from itertools import combinations

from sqlmodel import Session, select

from courtbook.models import Booking, BookingEquipment, BookingStatus, Equipment
from courtbook.services.bookings import create_booking
from courtbook.services.errors import BookingError, ConflictError
from courtbook.services.validation import EquipmentItem
from courtbook.time_utils import overlaps
from tests.helpers import MONDAY, at


def _race(engine, requests):
    barrier = threading.Barrier(len(requests))
    outcomes = [None] * len(requests)

    def worker(index, kwargs):
        with Session(engine) as session:
            barrier.wait()
            try:
                outcomes[index] = create_booking(session, **kwargs)
            except BookingError as exc:
                outcomes[index] = exc

    threads = [
        threading.Thread(target=worker, args=(i, kwargs)) for i, kwargs in enumerate(requests)
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)
    return outcomes


def _request(user_id, court_id, start, end, **extra):
    return dict(
        user_id=user_id,
        user_name=user_id,
        user_email=f"{user_id}@example.com",
        court_id=court_id,
        start=start,
        end=end,
        **extra,
    )


def _confirmed(session):
    return session.exec(
        select(Booking).where(Booking.status == BookingStatus.confirmed)
    ).all()


class TestConcurrentBooking:
    def test_same_court_same_interval(self, engine, session, catalog):
        court_id = catalog.indoor.id
        outcomes = _race(
            engine,
            [
                _request("ana", court_id, at(MONDAY, 10), at(MONDAY, 11)),
                _request("ben", court_id, at(MONDAY, 10), at(MONDAY, 11)),
            ],
        )
        winners = [o for o in outcomes if not isinstance(o, BookingError)]
        losers = [o for o in outcomes if isinstance(o, BookingError)]
        assert len(winners) == 1
        assert len(losers) == 1
        assert isinstance(losers[0], ConflictError)

        confirmed = _confirmed(session)
        assert len(confirmed) == 1
        assert confirmed[0].id == winners[0].booking_id

    def test_last_unit_of_equipment(self, engine, session, catalog):
        shoes = catalog.shoes.id
        outcomes = _race(
            engine,
            [
                _request("ana", catalog.indoor.id, at(MONDAY, 10), at(MONDAY, 11),
                         equipment_items=[EquipmentItem(shoes, 1)]),
                _request("ben", catalog.outdoor.id, at(MONDAY, 10, 30), at(MONDAY, 11, 30),
                         equipment_items=[EquipmentItem(shoes, 1)]),
            ],
        )
        assert sum(not isinstance(o, BookingError) for o in outcomes) == 1
        assert any(isinstance(o, ConflictError) for o in outcomes)

        held = session.exec(select(BookingEquipment).where(BookingEquipment.equipment_id == shoes)).all()
        assert sum(line.quantity for line in held) == 1
        counter = session.exec(
            select(Equipment).where(Equipment.id == shoes).execution_options(populate_existing=True)
        ).one()
        assert counter.available_quantity == 0

    def test_many_overlapping_requests_never_overlap(self, engine, session, catalog):
        court_id = catalog.indoor.id
        requests = [
            _request(f"user-{i}", court_id, at(MONDAY, 9 + i // 2, 30 * (i % 2)),
                     at(MONDAY, 10 + i // 2, 30 * (i % 2)))
            for i in range(6)
        ]
        outcomes = _race(engine, requests)
        assert any(not isinstance(o, BookingError) for o in outcomes)
        assert all(
            isinstance(o, ConflictError) for o in outcomes if isinstance(o, BookingError)
        )

        confirmed = _confirmed(session)
        for a, b in combinations(confirmed, 2):
            assert not overlaps(a.start_time, a.end_time, b.start_time, b.end_time)
