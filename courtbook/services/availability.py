from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date as date_type
from datetime import datetime, time, timedelta
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import func
from sqlmodel import Session, select

from courtbook.models import (
    Booking,
    BookingEquipment,
    BookingStatus,
    Coach,
    CoachAvailability,
    Court,
    CourtType,
    Equipment,
)
from courtbook.services.errors import NotFoundError, ValidationError
from courtbook.services.validation import (
    EquipmentItem,
    normalize_equipment_items,
    normalize_interval,
)
from courtbook.settings import settings
from courtbook.time_utils import (
    club_zone,
    local_day_bounds,
    minute_to_hm,
    overlaps,
    to_utc,
    weekday_label,
)


@dataclass(frozen=True)
class AvailabilityResult:
    available: bool
    reason: Optional[str] = None


AVAILABLE = AvailabilityResult(available=True)


def _overlapping(start: datetime, end: datetime):
    return (
        Booking.status == BookingStatus.confirmed,
        Booking.start_time < end,
        Booking.end_time > start,
    )


def find_court_conflict(
    session: Session, court_id: int, start: datetime, end: datetime
) -> Optional[Booking]:
    return session.exec(
        select(Booking).where(Booking.court_id == court_id, *_overlapping(start, end)).limit(1)
    ).first()


def find_coach_conflict(
    session: Session, coach_id: int, start: datetime, end: datetime
) -> Optional[Booking]:
    return session.exec(
        select(Booking).where(Booking.coach_id == coach_id, *_overlapping(start, end)).limit(1)
    ).first()


def booked_equipment_quantity(
    session: Session, equipment_id: int, start: datetime, end: datetime
) -> int:
    """Units of one equipment held by confirmed bookings overlapping [start, end)."""
    total = session.exec(
        select(func.coalesce(func.sum(BookingEquipment.quantity), 0))
        .select_from(BookingEquipment)
        .join(Booking, Booking.id == BookingEquipment.booking_id)
        .where(BookingEquipment.equipment_id == equipment_id, *_overlapping(start, end))
    ).one()
    return int(total or 0)


def evaluate_availability(
    session: Session,
    court: Court,
    coach: Optional[Coach],
    equipment: Iterable[Tuple[Equipment, int]],
    start: datetime,
    end: datetime,
) -> AvailabilityResult:
    """Run the checks against already-resolved rows, stopping at the first failure."""
    if not court.is_active:
        return AvailabilityResult(False, f"Court {court.name} is not active")
    if find_court_conflict(session, court.id, start, end):
        return AvailabilityResult(False, f"{court.name} is already booked for this slot")

    if coach is not None:
        if not coach.is_active:
            return AvailabilityResult(False, f"Coach {coach.name} is not active")
        if find_coach_conflict(session, coach.id, start, end):
            return AvailabilityResult(False, f"Coach {coach.name} is already booked for this slot")

    for item, requested in equipment:
        booked = booked_equipment_quantity(session, item.id, start, end)
        remaining = item.total_quantity - booked
        if requested > remaining:
            return AvailabilityResult(
                False, f"Only {max(remaining, 0)} {item.name}(s) available, {requested} requested"
            )
    return AVAILABLE


def resolve_catalog(
    session: Session,
    court_id: int,
    coach_id: Optional[int],
    items: Sequence[EquipmentItem],
) -> Tuple[Court, Optional[Coach], List[Tuple[Equipment, int]]]:
    court = session.get(Court, court_id)
    if not court:
        raise NotFoundError(f"Court {court_id} not found")
    coach = None
    if coach_id is not None:
        coach = session.get(Coach, coach_id)
        if not coach:
            raise NotFoundError(f"Coach {coach_id} not found")
    equipment: List[Tuple[Equipment, int]] = []
    for item in items:
        row = session.get(Equipment, item.equipment_id)
        if not row:
            raise NotFoundError(f"Equipment {item.equipment_id} not found")
        equipment.append((row, item.quantity))
    return court, coach, equipment


def check_availability(
    session: Session,
    court_id: int,
    start: datetime,
    end: datetime,
    coach_id: Optional[int] = None,
    equipment_items: Optional[Sequence[EquipmentItem]] = None,
) -> AvailabilityResult:
    if court_id is None:
        raise ValidationError("Missing required fields: court_id")
    start_utc, end_utc = normalize_interval(start, end)
    items = normalize_equipment_items(equipment_items)
    court, coach, equipment = resolve_catalog(session, court_id, coach_id, items)
    return evaluate_availability(session, court, coach, equipment, start_utc, end_utc)


@dataclass(frozen=True)
class Slot:
    start_time: datetime
    end_time: datetime
    hour: int
    label: str
    is_available: bool


@dataclass
class CourtSlots:
    court: Court
    slots: List[Slot] = field(default_factory=list)


def daily_slots(
    session: Session,
    day: date_type,
    court_type: Optional[CourtType] = None,
    coach_id: Optional[int] = None,
) -> List[CourtSlots]:
    """Hourly grid for every active court on one local day."""
    zone = club_zone()
    day_start, day_end = local_day_bounds(day, zone)

    query = select(Court).where(Court.is_active == True)  # noqa: E712
    if court_type is not None:
        query = query.where(Court.type == court_type)
    courts = session.exec(query.order_by(Court.id)).all()
    if not courts:
        return []

    bookings = session.exec(
        select(Booking).where(
            Booking.court_id.in_([c.id for c in courts]), *_overlapping(day_start, day_end)
        )
    ).all()
    by_court: Dict[int, List[Booking]] = {}
    for booking in bookings:
        by_court.setdefault(booking.court_id, []).append(booking)

    coach_bookings: List[Booking] = []
    if coach_id is not None:
        coach_bookings = session.exec(
            select(Booking).where(Booking.coach_id == coach_id, *_overlapping(day_start, day_end))
        ).all()

    result: List[CourtSlots] = []
    for court in courts:
        entry = CourtSlots(court=court)
        taken = by_court.get(court.id, [])
        for hour in range(settings.slot_day_start_hour, settings.slot_day_end_hour):
            local_start = datetime.combine(day, time(hour), tzinfo=zone)
            slot_start = to_utc(local_start)
            slot_end = to_utc(local_start + timedelta(hours=1))
            busy = any(overlaps(slot_start, slot_end, b.start_time, b.end_time) for b in taken)
            if not busy and coach_bookings:
                busy = any(
                    overlaps(slot_start, slot_end, b.start_time, b.end_time)
                    for b in coach_bookings
                )
            entry.slots.append(
                Slot(
                    start_time=slot_start,
                    end_time=slot_end,
                    hour=hour,
                    label=f"{minute_to_hm(hour * 60)} - {minute_to_hm((hour + 1) * 60)}",
                    is_available=not busy,
                )
            )
        result.append(entry)
    return result


@dataclass(frozen=True)
class EquipmentStock:
    equipment: Equipment
    booked_quantity: int
    available_quantity: int


def equipment_availability(
    session: Session, start: datetime, end: datetime
) -> List[EquipmentStock]:
    start_utc, end_utc = normalize_interval(start, end)
    stock: List[EquipmentStock] = []
    for item in session.exec(select(Equipment).order_by(Equipment.id)).all():
        booked = booked_equipment_quantity(session, item.id, start_utc, end_utc)
        stock.append(
            EquipmentStock(
                equipment=item,
                booked_quantity=booked,
                available_quantity=max(0, item.total_quantity - booked),
            )
        )
    return stock


@dataclass(frozen=True)
class CoachWindow:
    start_hm: str
    end_hm: str


@dataclass
class CoachDay:
    coach: Coach
    day_label: str
    windows: List[CoachWindow] = field(default_factory=list)

    @property
    def is_available_today(self) -> bool:
        return bool(self.windows)


def coach_availability(session: Session, day: date_type) -> List[CoachDay]:
    weekday = day.weekday()
    coaches = session.exec(
        select(Coach).where(Coach.is_active == True).order_by(Coach.name)  # noqa: E712
    ).all()
    rules = session.exec(
        select(CoachAvailability)
        .where(CoachAvailability.weekday == weekday)
        .order_by(CoachAvailability.start_minute)
    ).all()
    windows: Dict[int, List[CoachWindow]] = {}
    for rule in rules:
        windows.setdefault(rule.coach_id, []).append(
            CoachWindow(start_hm=minute_to_hm(rule.start_minute), end_hm=minute_to_hm(rule.end_minute))
        )
    return [
        CoachDay(coach=c, day_label=weekday_label(weekday), windows=windows.get(c.id, []))
        for c in coaches
    ]
