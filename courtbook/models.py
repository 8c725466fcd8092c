from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel

from courtbook.time_utils import utcnow


class CourtType(str, Enum):
    indoor = "indoor"
    outdoor = "outdoor"


class EquipmentType(str, Enum):
    racket = "racket"
    shoes = "shoes"
    other = "other"


class BookingStatus(str, Enum):
    confirmed = "confirmed"
    cancelled = "cancelled"
    completed = "completed"


class PaymentStatus(str, Enum):
    pending = "pending"
    paid = "paid"
    refunded = "refunded"


class WaitlistStatus(str, Enum):
    active = "active"
    notified = "notified"
    cancelled = "cancelled"
    booked = "booked"


class Court(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True)
    type: CourtType = Field(index=True)
    base_price: Decimal = Field(default=Decimal("10.00"), max_digits=10, decimal_places=2)
    description: Optional[str] = None
    is_active: bool = Field(default=True, index=True)


class Coach(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True)
    specialization: Optional[str] = None
    hourly_rate: Decimal = Field(default=Decimal("20.00"), max_digits=10, decimal_places=2)
    is_active: bool = Field(default=True, index=True)


class CoachAvailability(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    coach_id: int = Field(foreign_key="coach.id", index=True)
    weekday: int = Field(index=True)
    start_minute: int
    end_minute: int
    is_recurring: bool = True


class Equipment(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True)
    type: EquipmentType = Field(index=True)
    price_per_session: Decimal = Field(
        default=Decimal("5.00"), max_digits=10, decimal_places=2
    )
    total_quantity: int
    # Display counter only; allocation is authorized against live booking sums.
    available_quantity: int


class Booking(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    user_name: str
    user_email: str
    court_id: int = Field(foreign_key="court.id", index=True)
    coach_id: Optional[int] = Field(default=None, foreign_key="coach.id", index=True)
    start_time: datetime = Field(sa_type=DateTime(timezone=False), index=True)
    end_time: datetime = Field(sa_type=DateTime(timezone=False), index=True)
    duration_hours: Decimal = Field(max_digits=6, decimal_places=2)
    court_price: Decimal = Field(max_digits=10, decimal_places=2)
    coach_price: Decimal = Field(default=Decimal("0.00"), max_digits=10, decimal_places=2)
    equipment_price: Decimal = Field(
        default=Decimal("0.00"), max_digits=10, decimal_places=2
    )
    total_price: Decimal = Field(max_digits=10, decimal_places=2)
    status: BookingStatus = Field(default=BookingStatus.confirmed, index=True)
    payment_status: PaymentStatus = Field(default=PaymentStatus.pending)
    created_at: datetime = Field(
        default_factory=utcnow, sa_type=DateTime(timezone=False), index=True
    )
    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=False))


class BookingEquipment(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    booking_id: int = Field(foreign_key="booking.id", index=True)
    equipment_id: int = Field(foreign_key="equipment.id", index=True)
    quantity: int = 1


class WaitlistEntry(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    user_name: str
    user_email: str
    court_id: int = Field(foreign_key="court.id", index=True)
    coach_id: Optional[int] = Field(default=None, foreign_key="coach.id", index=True)
    start_time: datetime = Field(sa_type=DateTime(timezone=False), index=True)
    end_time: datetime = Field(sa_type=DateTime(timezone=False))
    position: int
    status: WaitlistStatus = Field(default=WaitlistStatus.active, index=True)
    notified_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=False))
    created_at: datetime = Field(
        default_factory=utcnow, sa_type=DateTime(timezone=False), index=True
    )


def booking_reference(booking_id: int, prefix: str = "BK") -> str:
    return f"{prefix}{booking_id:06d}"
