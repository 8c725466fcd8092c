from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel

from courtbook.models import CourtType, EquipmentType
from courtbook.services.validation import EquipmentItem


class EquipmentItemIn(BaseModel):
    equipment_id: int
    quantity: int = 1


class SlotRequest(BaseModel):
    # Optional so that missing fields reach the service layer and come back as 400.
    court_id: Optional[int] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    coach_id: Optional[int] = None
    equipment_items: List[EquipmentItemIn] = []

    def to_items(self) -> List[EquipmentItem]:
        return [
            EquipmentItem(equipment_id=i.equipment_id, quantity=i.quantity)
            for i in self.equipment_items
        ]


class BookingRequest(SlotRequest):
    user_id: Optional[str] = None
    user_name: Optional[str] = None
    user_email: Optional[str] = None


class WaitlistRequest(BaseModel):
    user_id: Optional[str] = None
    user_name: Optional[str] = None
    user_email: Optional[str] = None
    court_id: Optional[int] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    coach_id: Optional[int] = None


class CourtIn(BaseModel):
    name: str
    type: CourtType
    base_price: Decimal = Decimal("10.00")
    description: Optional[str] = None
    is_active: bool = True


class CourtUpdate(BaseModel):
    name: Optional[str] = None
    type: Optional[CourtType] = None
    base_price: Optional[Decimal] = None
    description: Optional[str] = None
    is_active: Optional[bool] = None


class EquipmentIn(BaseModel):
    name: str
    type: EquipmentType
    total_quantity: int
    price_per_session: Decimal = Decimal("5.00")


class EquipmentUpdate(BaseModel):
    name: Optional[str] = None
    type: Optional[EquipmentType] = None
    total_quantity: Optional[int] = None
    price_per_session: Optional[Decimal] = None


class CoachIn(BaseModel):
    name: str
    specialization: Optional[str] = None
    hourly_rate: Decimal = Decimal("20.00")
    is_active: bool = True


class CoachWindowIn(BaseModel):
    weekday: int
    start_hm: str
    end_hm: str
    is_recurring: bool = True
