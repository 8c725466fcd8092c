from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from courtbook.services.errors import ValidationError
from courtbook.time_utils import to_utc


@dataclass(frozen=True)
class EquipmentItem:
    equipment_id: int
    quantity: int = 1


def require_fields(**fields) -> None:
    missing = [name for name, value in fields.items() if value is None or value == ""]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")


def normalize_interval(
    start: Optional[datetime], end: Optional[datetime]
) -> Tuple[datetime, datetime]:
    require_fields(start_time=start, end_time=end)
    if not isinstance(start, datetime) or not isinstance(end, datetime):
        raise ValidationError("Invalid time slot")
    start_utc = to_utc(start)
    end_utc = to_utc(end)
    if end_utc <= start_utc:
        raise ValidationError("Invalid time slot: end must be after start")
    return start_utc, end_utc


def normalize_equipment_items(
    items: Optional[Iterable[EquipmentItem]],
) -> List[EquipmentItem]:
    """Validate quantities and merge repeated ids, keeping ids in ascending order."""
    merged: Dict[int, int] = {}
    for item in items or ():
        if item.equipment_id is None:
            raise ValidationError("Missing equipment_id")
        if item.quantity is None or item.quantity < 1:
            raise ValidationError(
                f"Invalid quantity {item.quantity} for equipment {item.equipment_id}"
            )
        merged[item.equipment_id] = merged.get(item.equipment_id, 0) + item.quantity
    return [EquipmentItem(equipment_id=eid, quantity=qty) for eid, qty in sorted(merged.items())]
