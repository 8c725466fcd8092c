from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional, Sequence, Tuple

from sqlmodel import Session

from courtbook.models import Coach, Court, CourtType, Equipment
from courtbook.services.errors import NotFoundError, ValidationError
from courtbook.services.validation import (
    EquipmentItem,
    normalize_equipment_items,
    normalize_interval,
)
from courtbook.settings import Settings, settings
from courtbook.time_utils import club_zone, to_local

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0")
_MICROSECONDS_PER_HOUR = Decimal(3_600_000_000)


def money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def as_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


@dataclass(frozen=True)
class PricingPolicy:
    indoor_multiplier: Decimal = Decimal("1.2")
    peak_multiplier: Decimal = Decimal("1.5")
    weekend_multiplier: Decimal = Decimal("1.3")
    peak_start_hour: int = 18
    peak_end_hour: int = 21
    timezone: str = "UTC"

    @classmethod
    def from_settings(cls, config: Settings = settings) -> "PricingPolicy":
        return cls(
            indoor_multiplier=config.indoor_multiplier,
            peak_multiplier=config.peak_multiplier,
            weekend_multiplier=config.weekend_multiplier,
            peak_start_hour=config.peak_start_hour,
            peak_end_hour=config.peak_end_hour,
            timezone=config.timezone,
        )


@dataclass(frozen=True)
class PriceBreakdown:
    court_price: Decimal
    coach_price: Decimal
    equipment_total: Decimal
    total_price: Decimal
    duration_hours: Decimal


def duration_in_hours(start: datetime, end: datetime) -> Decimal:
    hours = Decimal((end - start) // timedelta(microseconds=1)) / _MICROSECONDS_PER_HOUR
    if hours <= 0:
        raise ValidationError("Invalid time slot: duration must be positive")
    return hours


def price_for(
    court: Court,
    coach: Optional[Coach],
    equipment: Iterable[Tuple[Equipment, int]],
    start: datetime,
    end: datetime,
    policy: PricingPolicy,
) -> PriceBreakdown:
    """Price an interval from already-loaded catalog rows.

    ``start`` and ``end`` are naive UTC instants. Peak and weekend surcharges
    look at the start instant in the policy's timezone and apply to the court
    price only, in the order indoor, peak, weekend.
    """
    hours = duration_in_hours(start, end)
    local_start = to_local(start, club_zone(policy.timezone))

    court_price = as_decimal(court.base_price) * hours
    if court.type == CourtType.indoor:
        court_price *= policy.indoor_multiplier
    if policy.peak_start_hour <= local_start.hour < policy.peak_end_hour:
        court_price *= policy.peak_multiplier
    if local_start.weekday() >= 5:
        court_price *= policy.weekend_multiplier

    coach_price = as_decimal(coach.hourly_rate) * hours if coach is not None else ZERO
    equipment_total = sum(
        (as_decimal(item.price_per_session) * quantity for item, quantity in equipment), ZERO
    )

    court_price = money(court_price)
    coach_price = money(coach_price)
    equipment_total = money(equipment_total)
    return PriceBreakdown(
        court_price=court_price,
        coach_price=coach_price,
        equipment_total=equipment_total,
        total_price=court_price + coach_price + equipment_total,
        duration_hours=money(hours),
    )


def calculate_price(
    session: Session,
    court_id: int,
    start: datetime,
    end: datetime,
    coach_id: Optional[int] = None,
    equipment_items: Optional[Sequence[EquipmentItem]] = None,
    policy: Optional[PricingPolicy] = None,
) -> PriceBreakdown:
    """Price preview. Equipment ids that do not resolve contribute nothing."""
    if court_id is None:
        raise ValidationError("Missing required fields: court_id")
    start_utc, end_utc = normalize_interval(start, end)
    items = normalize_equipment_items(equipment_items)

    court = session.get(Court, court_id)
    if not court:
        raise NotFoundError(f"Court {court_id} not found")
    coach = None
    if coach_id is not None:
        coach = session.get(Coach, coach_id)
        if not coach:
            raise NotFoundError(f"Coach {coach_id} not found")

    equipment = []
    for item in items:
        row = session.get(Equipment, item.equipment_id)
        if row is None:
            logger.debug("Skipping unknown equipment %s in price preview", item.equipment_id)
            continue
        equipment.append((row, item.quantity))

    return price_for(
        court, coach, equipment, start_utc, end_utc, policy or PricingPolicy.from_settings()
    )
