from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from courtbook.models import (
    Booking,
    BookingEquipment,
    BookingStatus,
    Coach,
    Court,
    Equipment,
    PaymentStatus,
    booking_reference,
)
from courtbook.services.availability import evaluate_availability, resolve_catalog
from courtbook.services.errors import (
    BookingError,
    ConflictError,
    InternalError,
    NotFoundError,
)
from courtbook.services.pricing import PricingPolicy, price_for
from courtbook.services.validation import (
    EquipmentItem,
    normalize_equipment_items,
    normalize_interval,
    require_fields,
)
from courtbook.services.waitlist import mark_waitlist_booked, promote_waitlist
from courtbook.settings import settings
from courtbook.time_utils import utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BookingConfirmation:
    booking_id: int
    booking_reference: str
    total_price: Decimal
    start_time: datetime
    end_time: datetime


def reference_for(booking_id: int) -> str:
    return booking_reference(booking_id, settings.booking_reference_prefix)


def _lock_resources(
    session: Session, court_id: int, coach_id: Optional[int], equipment_ids: Sequence[int]
) -> None:
    """Row-lock the contended catalog rows in a fixed order: court, coach, equipment by id.

    A no-op on SQLite, where the engine already opened the transaction with
    BEGIN IMMEDIATE. Loaded rows replace whatever the session already holds.
    """
    fresh = {"populate_existing": True}
    session.exec(
        select(Court).where(Court.id == court_id).with_for_update().execution_options(**fresh)
    ).first()
    if coach_id is not None:
        session.exec(
            select(Coach).where(Coach.id == coach_id).with_for_update().execution_options(**fresh)
        ).first()
    if equipment_ids:
        session.exec(
            select(Equipment)
            .where(Equipment.id.in_(sorted(equipment_ids)))
            .order_by(Equipment.id)
            .with_for_update()
            .execution_options(**fresh)
        ).all()


def create_booking(
    session: Session,
    user_id: str,
    user_name: str,
    user_email: str,
    court_id: int,
    start: datetime,
    end: datetime,
    coach_id: Optional[int] = None,
    equipment_items: Optional[Sequence[EquipmentItem]] = None,
    policy: Optional[PricingPolicy] = None,
) -> BookingConfirmation:
    """Allocate court, coach and equipment for [start, end) in one transaction.

    Either the confirmed booking, its equipment rows and the inventory
    decrements are all committed, or nothing is.
    """
    require_fields(
        user_id=user_id, user_name=user_name, user_email=user_email, court_id=court_id
    )
    start_utc, end_utc = normalize_interval(start, end)
    items = normalize_equipment_items(equipment_items)
    policy = policy or PricingPolicy.from_settings()

    try:
        _lock_resources(session, court_id, coach_id, [i.equipment_id for i in items])
        court, coach, equipment = resolve_catalog(session, court_id, coach_id, items)

        availability = evaluate_availability(
            session, court, coach, equipment, start_utc, end_utc
        )
        if not availability.available:
            raise ConflictError(f"Slot no longer available: {availability.reason}")

        price = price_for(court, coach, equipment, start_utc, end_utc, policy)
        now = utcnow()
        booking = Booking(
            user_id=user_id,
            user_name=user_name,
            user_email=user_email,
            court_id=court.id,
            coach_id=coach.id if coach else None,
            start_time=start_utc,
            end_time=end_utc,
            duration_hours=price.duration_hours,
            court_price=price.court_price,
            coach_price=price.coach_price,
            equipment_price=price.equipment_total,
            total_price=price.total_price,
            status=BookingStatus.confirmed,
            payment_status=PaymentStatus.pending,
            created_at=now,
            updated_at=now,
        )
        session.add(booking)
        session.flush()
        booking_id = booking.id

        for row, quantity in equipment:
            session.add(
                BookingEquipment(booking_id=booking_id, equipment_id=row.id, quantity=quantity)
            )
            row.available_quantity = max(0, row.available_quantity - quantity)
            session.add(row)

        mark_waitlist_booked(
            session, user_id, court.id, start_utc, end_utc, coach.id if coach else None
        )
        session.commit()
    except BookingError:
        session.rollback()
        raise
    except SQLAlchemyError as exc:
        session.rollback()
        logger.exception("Booking creation failed for court %s", court_id)
        raise InternalError("Failed to create booking") from exc

    reference = reference_for(booking_id)
    logger.info(
        "Booking %s confirmed for user %s on court %s (%s - %s)",
        reference,
        user_id,
        court_id,
        start_utc.isoformat(),
        end_utc.isoformat(),
    )
    return BookingConfirmation(
        booking_id=booking_id,
        booking_reference=reference,
        total_price=price.total_price,
        start_time=start_utc,
        end_time=end_utc,
    )


def _lock_booking(session: Session, booking_id: int) -> Optional[Booking]:
    return session.exec(
        select(Booking)
        .where(Booking.id == booking_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).first()


def _restore_equipment(session: Session, booking_id: int) -> None:
    rows = session.exec(
        select(BookingEquipment).where(BookingEquipment.booking_id == booking_id)
    ).all()
    if not rows:
        return
    stock = {
        e.id: e
        for e in session.exec(
            select(Equipment)
            .where(Equipment.id.in_(sorted({r.equipment_id for r in rows})))
            .order_by(Equipment.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).all()
    }
    for row in rows:
        item = stock.get(row.equipment_id)
        if item is None:
            continue
        item.available_quantity = min(item.total_quantity, item.available_quantity + row.quantity)
        session.add(item)


def cancel_booking(session: Session, booking_id: int) -> Booking:
    try:
        booking = _lock_booking(session, booking_id)
        if not booking:
            raise NotFoundError(f"Booking {booking_id} not found")
        if booking.status == BookingStatus.cancelled:
            raise ConflictError("Booking already cancelled")
        if booking.status != BookingStatus.confirmed:
            raise ConflictError(f"Booking is {booking.status.value} and cannot be cancelled")

        booking.status = BookingStatus.cancelled
        booking.payment_status = PaymentStatus.refunded
        booking.updated_at = utcnow()
        session.add(booking)
        _restore_equipment(session, booking.id)
        freed = (booking.court_id, booking.start_time, booking.end_time, booking.coach_id)
        session.commit()
    except BookingError:
        session.rollback()
        raise
    except SQLAlchemyError as exc:
        session.rollback()
        logger.exception("Cancelling booking %s failed", booking_id)
        raise InternalError("Failed to cancel booking") from exc

    logger.info("Booking %s cancelled", reference_for(booking_id))

    court_id, start_time, end_time, coach_id = freed
    try:
        promote_waitlist(session, court_id, start_time, end_time, coach_id)
    except InternalError:
        logger.warning("Waitlist promotion after cancelling booking %s failed", booking_id)

    session.refresh(booking)
    return booking


def complete_booking(session: Session, booking_id: int) -> Booking:
    try:
        booking = _lock_booking(session, booking_id)
        if not booking:
            raise NotFoundError(f"Booking {booking_id} not found")
        if booking.status != BookingStatus.confirmed:
            raise ConflictError(f"Booking is {booking.status.value} and cannot be completed")
        booking.status = BookingStatus.completed
        booking.updated_at = utcnow()
        session.add(booking)
        _restore_equipment(session, booking.id)
        session.commit()
    except BookingError:
        session.rollback()
        raise
    except SQLAlchemyError as exc:
        session.rollback()
        logger.exception("Completing booking %s failed", booking_id)
        raise InternalError("Failed to complete booking") from exc

    session.refresh(booking)
    return booking


@dataclass
class BookingDetails:
    booking: Booking
    reference: str
    court: Court
    coach: Optional[Coach] = None
    equipment: List[Tuple[Equipment, int]] = field(default_factory=list)


def _by_id(rows: Iterable) -> dict:
    return {row.id: row for row in rows}


def list_user_bookings(session: Session, user_id: str) -> List[BookingDetails]:
    bookings = session.exec(
        select(Booking).where(Booking.user_id == user_id).order_by(Booking.start_time.desc())
    ).all()
    if not bookings:
        return []

    booking_ids = [b.id for b in bookings]
    courts = _by_id(
        session.exec(select(Court).where(Court.id.in_({b.court_id for b in bookings}))).all()
    )
    coach_ids = {b.coach_id for b in bookings if b.coach_id is not None}
    coaches = (
        _by_id(session.exec(select(Coach).where(Coach.id.in_(coach_ids))).all())
        if coach_ids
        else {}
    )
    lines = session.exec(
        select(BookingEquipment, Equipment)
        .join(Equipment, Equipment.id == BookingEquipment.equipment_id)
        .where(BookingEquipment.booking_id.in_(booking_ids))
        .order_by(BookingEquipment.id)
    ).all()
    equipment_by_booking: dict = {}
    for line, item in lines:
        equipment_by_booking.setdefault(line.booking_id, []).append((item, line.quantity))

    return [
        BookingDetails(
            booking=b,
            reference=reference_for(b.id),
            court=courts[b.court_id],
            coach=coaches.get(b.coach_id) if b.coach_id is not None else None,
            equipment=equipment_by_booking.get(b.id, []),
        )
        for b in bookings
    ]
