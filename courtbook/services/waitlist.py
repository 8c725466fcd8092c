from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from courtbook.models import (
    Booking,
    BookingStatus,
    Coach,
    Court,
    WaitlistEntry,
    WaitlistStatus,
)
from courtbook.services.errors import (
    BookingError,
    ConflictError,
    InternalError,
    NotFoundError,
    ValidationError,
)
from courtbook.services.validation import normalize_interval, require_fields
from courtbook.time_utils import utcnow

logger = logging.getLogger(__name__)

OPEN_STATUSES = (WaitlistStatus.active, WaitlistStatus.notified)


@dataclass(frozen=True)
class WaitlistTicket:
    waitlist_id: int
    position: int


def _target(court_id: int, start: datetime, end: datetime, coach_id: Optional[int]):
    coach_clause = (
        WaitlistEntry.coach_id.is_(None)
        if coach_id is None
        else WaitlistEntry.coach_id == coach_id
    )
    return (
        WaitlistEntry.court_id == court_id,
        WaitlistEntry.start_time == start,
        WaitlistEntry.end_time == end,
        coach_clause,
    )


def promote_waitlist(
    session: Session,
    court_id: int,
    start: datetime,
    end: datetime,
    coach_id: Optional[int] = None,
) -> Optional[WaitlistEntry]:
    """Flag the first active entry queued for a slot that has just been freed.

    ``start``/``end`` are stored (naive UTC) instants and must match the entry
    exactly. No booking is made on the user's behalf.
    """
    try:
        entry = session.exec(
            select(WaitlistEntry)
            .where(*_target(court_id, start, end, coach_id))
            .where(WaitlistEntry.status == WaitlistStatus.active)
            .order_by(WaitlistEntry.position, WaitlistEntry.id)
            .limit(1)
            .with_for_update()
        ).first()
        if entry is None:
            session.rollback()
            return None
        entry.status = WaitlistStatus.notified
        entry.notified_at = utcnow()
        session.add(entry)
        entry_id, user_name, position = entry.id, entry.user_name, entry.position
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        logger.exception("Waitlist promotion failed for court %s", court_id)
        raise InternalError("Failed to promote waitlist") from exc

    logger.info(
        "Waitlist entry %s notified: %s (position %s) for court %s at %s",
        entry_id,
        user_name,
        position,
        court_id,
        start.isoformat(),
    )
    return entry


def mark_waitlist_booked(
    session: Session,
    user_id: str,
    court_id: int,
    start: datetime,
    end: datetime,
    coach_id: Optional[int] = None,
) -> int:
    """Close the user's open entries for a target they have now booked.

    Runs inside the caller's transaction and does not commit.
    """
    entries = session.exec(
        select(WaitlistEntry)
        .where(*_target(court_id, start, end, coach_id))
        .where(WaitlistEntry.user_id == user_id, WaitlistEntry.status.in_(OPEN_STATUSES))
    ).all()
    for entry in entries:
        entry.status = WaitlistStatus.booked
        session.add(entry)
    return len(entries)


def join_waitlist(
    session: Session,
    user_id: str,
    user_name: str,
    user_email: str,
    court_id: int,
    start: datetime,
    end: datetime,
    coach_id: Optional[int] = None,
) -> WaitlistTicket:
    require_fields(
        user_id=user_id, user_name=user_name, user_email=user_email, court_id=court_id
    )
    start_utc, end_utc = normalize_interval(start, end)

    try:
        # Serializes joins for the court so positions cannot collide.
        court = session.exec(select(Court).where(Court.id == court_id).with_for_update()).first()
        if not court:
            raise NotFoundError(f"Court {court_id} not found")
        if coach_id is not None and not session.get(Coach, coach_id):
            raise NotFoundError(f"Coach {coach_id} not found")

        occupied = session.exec(
            select(Booking.id)
            .where(
                Booking.court_id == court_id,
                Booking.start_time == start_utc,
                Booking.end_time == end_utc,
                Booking.status == BookingStatus.confirmed,
            )
            .limit(1)
        ).first()
        if occupied is None:
            overlapping = session.exec(
                select(Booking.id)
                .where(
                    Booking.court_id == court_id,
                    Booking.start_time < end_utc,
                    Booking.end_time > start_utc,
                    Booking.status == BookingStatus.confirmed,
                )
                .limit(1)
            ).first()
            if overlapping is not None:
                raise ConflictError(
                    "Slot overlaps an existing booking; only exactly booked slots can be waitlisted"
                )
            raise ValidationError("Slot is not booked, you can book directly")

        target = _target(court_id, start_utc, end_utc, coach_id)
        duplicate = session.exec(
            select(WaitlistEntry.id)
            .where(*target)
            .where(WaitlistEntry.user_id == user_id, WaitlistEntry.status.in_(OPEN_STATUSES))
            .limit(1)
        ).first()
        if duplicate is not None:
            raise ConflictError("Already on waitlist for this slot")

        # Monotonic per target: equals active count + 1 until someone leaves the queue.
        last_position = session.exec(
            select(func.coalesce(func.max(WaitlistEntry.position), 0)).where(*target)
        ).one()
        entry = WaitlistEntry(
            user_id=user_id,
            user_name=user_name,
            user_email=user_email,
            court_id=court_id,
            coach_id=coach_id,
            start_time=start_utc,
            end_time=end_utc,
            position=int(last_position or 0) + 1,
            status=WaitlistStatus.active,
        )
        session.add(entry)
        session.flush()
        ticket = WaitlistTicket(waitlist_id=entry.id, position=entry.position)
        session.commit()
    except BookingError:
        session.rollback()
        raise
    except SQLAlchemyError as exc:
        session.rollback()
        logger.exception("Joining waitlist failed for court %s", court_id)
        raise InternalError("Failed to add to waitlist") from exc

    logger.info(
        "User %s joined waitlist for court %s at position %s", user_id, court_id, ticket.position
    )
    return ticket


def leave_waitlist(session: Session, waitlist_id: int) -> WaitlistEntry:
    try:
        entry = session.exec(
            select(WaitlistEntry)
            .where(WaitlistEntry.id == waitlist_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).first()
        if not entry:
            raise NotFoundError(f"Waitlist entry {waitlist_id} not found")
        if entry.status not in OPEN_STATUSES:
            raise ConflictError(f"Waitlist entry is {entry.status.value}")
        entry.status = WaitlistStatus.cancelled
        session.add(entry)
        session.commit()
    except BookingError:
        session.rollback()
        raise
    except SQLAlchemyError as exc:
        session.rollback()
        logger.exception("Leaving waitlist entry %s failed", waitlist_id)
        raise InternalError("Failed to leave waitlist") from exc

    session.refresh(entry)
    return entry
