from __future__ import annotations

import logging
from decimal import Decimal
from typing import List, Optional

from sqlmodel import Session, select

from courtbook.models import (
    Coach,
    CoachAvailability,
    Court,
    CourtType,
    Equipment,
    EquipmentType,
)
from courtbook.services.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)


def list_courts(session: Session, active_only: bool = False) -> List[Court]:
    query = select(Court)
    if active_only:
        query = query.where(Court.is_active == True)  # noqa: E712
    return session.exec(query.order_by(Court.id)).all()


def list_coaches(session: Session, active_only: bool = False) -> List[Coach]:
    query = select(Coach)
    if active_only:
        query = query.where(Coach.is_active == True)  # noqa: E712
    return session.exec(query.order_by(Coach.name)).all()


def list_equipment(session: Session) -> List[Equipment]:
    return session.exec(select(Equipment).order_by(Equipment.id)).all()


def _check_price(name: str, value: Optional[Decimal]) -> None:
    if value is not None and value < 0:
        raise ValidationError(f"{name} must not be negative")


def create_court(
    session: Session,
    name: str,
    type: CourtType,
    base_price: Decimal = Decimal("10.00"),
    description: Optional[str] = None,
    is_active: bool = True,
) -> Court:
    _check_price("base_price", base_price)
    court = Court(
        name=name, type=type, base_price=base_price, description=description, is_active=is_active
    )
    session.add(court)
    session.commit()
    session.refresh(court)
    logger.info("Court %s created (%s)", court.id, court.name)
    return court


def update_court(session: Session, court_id: int, **changes) -> Court:
    court = session.get(Court, court_id)
    if not court:
        raise NotFoundError(f"Court {court_id} not found")
    _check_price("base_price", changes.get("base_price"))
    for key, value in changes.items():
        if value is not None:
            setattr(court, key, value)
    session.add(court)
    session.commit()
    session.refresh(court)
    return court


def create_equipment(
    session: Session,
    name: str,
    type: EquipmentType,
    total_quantity: int,
    price_per_session: Decimal = Decimal("5.00"),
) -> Equipment:
    if total_quantity < 0:
        raise ValidationError("total_quantity must not be negative")
    _check_price("price_per_session", price_per_session)
    item = Equipment(
        name=name,
        type=type,
        price_per_session=price_per_session,
        total_quantity=total_quantity,
        available_quantity=total_quantity,
    )
    session.add(item)
    session.commit()
    session.refresh(item)
    logger.info("Equipment %s created (%s x%s)", item.id, item.name, item.total_quantity)
    return item


def update_equipment(
    session: Session,
    equipment_id: int,
    name: Optional[str] = None,
    type: Optional[EquipmentType] = None,
    price_per_session: Optional[Decimal] = None,
    total_quantity: Optional[int] = None,
) -> Equipment:
    """Edit an equipment row; a new total shifts the display counter by the same delta."""
    item = session.get(Equipment, equipment_id)
    if not item:
        raise NotFoundError(f"Equipment {equipment_id} not found")
    _check_price("price_per_session", price_per_session)
    if total_quantity is not None and total_quantity < 0:
        raise ValidationError("total_quantity must not be negative")
    if name is not None:
        item.name = name
    if type is not None:
        item.type = type
    if price_per_session is not None:
        item.price_per_session = price_per_session
    if total_quantity is not None:
        delta = total_quantity - item.total_quantity
        item.total_quantity = total_quantity
        item.available_quantity = min(total_quantity, max(0, item.available_quantity + delta))
    session.add(item)
    session.commit()
    session.refresh(item)
    return item


def create_coach(
    session: Session,
    name: str,
    specialization: Optional[str] = None,
    hourly_rate: Decimal = Decimal("20.00"),
    is_active: bool = True,
) -> Coach:
    _check_price("hourly_rate", hourly_rate)
    coach = Coach(
        name=name, specialization=specialization, hourly_rate=hourly_rate, is_active=is_active
    )
    session.add(coach)
    session.commit()
    session.refresh(coach)
    logger.info("Coach %s created (%s)", coach.id, coach.name)
    return coach


def add_coach_window(
    session: Session,
    coach_id: int,
    weekday: int,
    start_minute: int,
    end_minute: int,
    is_recurring: bool = True,
) -> CoachAvailability:
    if not session.get(Coach, coach_id):
        raise NotFoundError(f"Coach {coach_id} not found")
    if not 0 <= weekday <= 6:
        raise ValidationError("weekday must be between 0 (Monday) and 6 (Sunday)")
    if not 0 <= start_minute < end_minute <= 24 * 60:
        raise ValidationError("Invalid availability window")
    window = CoachAvailability(
        coach_id=coach_id,
        weekday=weekday,
        start_minute=start_minute,
        end_minute=end_minute,
        is_recurring=is_recurring,
    )
    session.add(window)
    session.commit()
    session.refresh(window)
    return window


def list_coach_windows(session: Session) -> dict:
    """Weekly windows keyed by coach id, ordered by weekday then start."""
    windows = session.exec(
        select(CoachAvailability).order_by(
            CoachAvailability.weekday, CoachAvailability.start_minute
        )
    ).all()
    grouped: dict = {}
    for window in windows:
        grouped.setdefault(window.coach_id, []).append(window)
    return grouped
