from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from starlette.responses import JSONResponse
from sqlmodel import Session

from courtbook.db import create_db_and_tables, get_session
from courtbook.log import configure_logging
from courtbook.models import (
    Booking,
    Coach,
    CoachAvailability,
    Court,
    CourtType,
    Equipment,
    WaitlistEntry,
)
from courtbook.schemas import (
    BookingRequest,
    CoachIn,
    CoachWindowIn,
    CourtIn,
    CourtUpdate,
    EquipmentIn,
    EquipmentUpdate,
    SlotRequest,
    WaitlistRequest,
)
from courtbook.services import catalog
from courtbook.services.availability import (
    check_availability,
    coach_availability,
    daily_slots,
    equipment_availability,
)
from courtbook.services.bookings import (
    cancel_booking,
    complete_booking,
    create_booking,
    list_user_bookings,
    reference_for,
)
from courtbook.services.errors import BookingError
from courtbook.services.pricing import calculate_price
from courtbook.services.waitlist import join_waitlist, leave_waitlist
from courtbook.settings import settings
from courtbook.time_utils import as_utc, hm_to_minute, minute_to_hm, parse_ymd, utcnow


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.log_level)
    create_db_and_tables()
    yield


app = FastAPI(title="Court Booking API", lifespan=lifespan)


@app.exception_handler(BookingError)
def booking_error_handler(request: Request, exc: BookingError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(RequestValidationError)
def request_validation_handler(request: Request, exc: RequestValidationError):
    fields = sorted({".".join(str(p) for p in err["loc"][1:]) for err in exc.errors()})
    return JSONResponse(
        status_code=400, content={"detail": f"Invalid request: {', '.join(fields)}"}
    )


def _parse_day(value: str):
    try:
        return parse_ymd(value)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid date format")


def court_out(court: Court) -> dict:
    return {
        "id": court.id,
        "name": court.name,
        "type": court.type,
        "base_price": court.base_price,
        "description": court.description,
        "is_active": court.is_active,
    }


def coach_out(coach: Coach) -> dict:
    return {
        "id": coach.id,
        "name": coach.name,
        "specialization": coach.specialization,
        "hourly_rate": coach.hourly_rate,
        "is_active": coach.is_active,
    }


def equipment_out(item: Equipment) -> dict:
    return {
        "id": item.id,
        "name": item.name,
        "type": item.type,
        "price_per_session": item.price_per_session,
        "total_quantity": item.total_quantity,
        "available_quantity": item.available_quantity,
    }


def window_out(window: CoachAvailability) -> dict:
    return {
        "id": window.id,
        "coach_id": window.coach_id,
        "weekday": window.weekday,
        "start_time": minute_to_hm(window.start_minute),
        "end_time": minute_to_hm(window.end_minute),
        "is_recurring": window.is_recurring,
    }


def booking_out(booking: Booking) -> dict:
    return {
        "id": booking.id,
        "booking_reference": reference_for(booking.id),
        "status": booking.status,
        "payment_status": booking.payment_status,
    }


def waitlist_out(entry: WaitlistEntry) -> dict:
    return {
        "id": entry.id,
        "position": entry.position,
        "status": entry.status,
        "notified_at": as_utc(entry.notified_at) if entry.notified_at else None,
    }


@app.get("/health")
def health():
    return {"ok": True, "timestamp": as_utc(utcnow()), "service": "Court Booking API"}


@app.get("/api/courts")
def api_list_courts(
    court_type: Optional[CourtType] = None,
    session: Session = Depends(get_session),
):
    courts = catalog.list_courts(session, active_only=True)
    if court_type is not None:
        courts = [c for c in courts if c.type == court_type]
    return [court_out(c) for c in courts]


@app.get("/api/coaches")
def api_list_coaches(session: Session = Depends(get_session)):
    return [coach_out(c) for c in catalog.list_coaches(session, active_only=True)]


@app.get("/api/equipment")
def api_list_equipment(session: Session = Depends(get_session)):
    return [equipment_out(e) for e in catalog.list_equipment(session)]


@app.post("/api/availability/check")
def api_check_availability(body: SlotRequest, session: Session = Depends(get_session)):
    result = check_availability(
        session=session,
        court_id=body.court_id,
        start=body.start_time,
        end=body.end_time,
        coach_id=body.coach_id,
        equipment_items=body.to_items(),
    )
    return {"available": result.available, "reason": result.reason}


@app.get("/api/availability/slots/{date}")
def api_daily_slots(
    date: str,
    court_type: Optional[CourtType] = None,
    coach_id: Optional[int] = None,
    session: Session = Depends(get_session),
):
    day = _parse_day(date)
    grid = daily_slots(session=session, day=day, court_type=court_type, coach_id=coach_id)
    return {
        "date": day.isoformat(),
        "court_availability": [
            {
                "court_id": entry.court.id,
                "court_name": entry.court.name,
                "court_type": entry.court.type,
                "slots": [
                    {
                        "start_time": as_utc(s.start_time),
                        "end_time": as_utc(s.end_time),
                        "hour": s.hour,
                        "formatted_time": s.label,
                        "is_available": s.is_available,
                    }
                    for s in entry.slots
                ],
            }
            for entry in grid
        ],
    }


@app.get("/api/availability/equipment")
def api_equipment_availability(
    start: datetime = Query(...),
    end: datetime = Query(...),
    session: Session = Depends(get_session),
):
    stock = equipment_availability(session=session, start=start, end=end)
    return {
        "start_time": start,
        "end_time": end,
        "equipment": [
            {
                **equipment_out(s.equipment),
                "booked_quantity": s.booked_quantity,
                "available_quantity": s.available_quantity,
            }
            for s in stock
        ],
    }


@app.get("/api/availability/coaches/{date}")
def api_coach_availability(date: str, session: Session = Depends(get_session)):
    day = _parse_day(date)
    days = coach_availability(session=session, day=day)
    return {
        "date": day.isoformat(),
        "day_of_week": day.weekday(),
        "coaches": [
            {
                **coach_out(d.coach),
                "day": d.day_label,
                "is_available_today": d.is_available_today,
                "availability": [
                    {"start_time": w.start_hm, "end_time": w.end_hm} for w in d.windows
                ],
            }
            for d in days
        ],
    }


@app.post("/api/pricing/simulate")
def api_simulate_price(body: SlotRequest, session: Session = Depends(get_session)):
    price = calculate_price(
        session=session,
        court_id=body.court_id,
        start=body.start_time,
        end=body.end_time,
        coach_id=body.coach_id,
        equipment_items=body.to_items(),
    )
    return {
        "court_price": price.court_price,
        "coach_price": price.coach_price,
        "equipment_total": price.equipment_total,
        "total_price": price.total_price,
        "duration_hours": price.duration_hours,
    }


@app.post("/api/bookings", status_code=201)
def api_create_booking(body: BookingRequest, session: Session = Depends(get_session)):
    confirmation = create_booking(
        session=session,
        user_id=body.user_id,
        user_name=body.user_name,
        user_email=body.user_email,
        court_id=body.court_id,
        start=body.start_time,
        end=body.end_time,
        coach_id=body.coach_id,
        equipment_items=body.to_items(),
    )
    return {
        "message": "Booking created successfully",
        "booking": {
            "id": confirmation.booking_id,
            "booking_reference": confirmation.booking_reference,
            "total_price": confirmation.total_price,
            "start_time": as_utc(confirmation.start_time),
            "end_time": as_utc(confirmation.end_time),
        },
    }


@app.get("/api/bookings/user/{user_id}")
def api_user_bookings(user_id: str, session: Session = Depends(get_session)):
    return [
        {
            "id": d.booking.id,
            "booking_reference": d.reference,
            "user_id": d.booking.user_id,
            "user_name": d.booking.user_name,
            "user_email": d.booking.user_email,
            "court": court_out(d.court),
            "coach": coach_out(d.coach) if d.coach else None,
            "start_time": as_utc(d.booking.start_time),
            "end_time": as_utc(d.booking.end_time),
            "duration_hours": d.booking.duration_hours,
            "court_price": d.booking.court_price,
            "coach_price": d.booking.coach_price,
            "equipment_price": d.booking.equipment_price,
            "total_price": d.booking.total_price,
            "status": d.booking.status,
            "payment_status": d.booking.payment_status,
            "created_at": as_utc(d.booking.created_at),
            "equipment_items": [
                {
                    "id": item.id,
                    "name": item.name,
                    "type": item.type,
                    "price_per_session": item.price_per_session,
                    "quantity": quantity,
                }
                for item, quantity in d.equipment
            ],
        }
        for d in list_user_bookings(session=session, user_id=user_id)
    ]


@app.post("/api/bookings/{booking_id}/cancel")
def api_cancel_booking(booking_id: int, session: Session = Depends(get_session)):
    booking = cancel_booking(session=session, booking_id=booking_id)
    return {"message": "Booking cancelled successfully", "booking": booking_out(booking)}


@app.post("/api/bookings/{booking_id}/complete")
def api_complete_booking(booking_id: int, session: Session = Depends(get_session)):
    booking = complete_booking(session=session, booking_id=booking_id)
    return {"booking": booking_out(booking)}


@app.post("/api/waitlist", status_code=201)
def api_join_waitlist(body: WaitlistRequest, session: Session = Depends(get_session)):
    ticket = join_waitlist(
        session=session,
        user_id=body.user_id,
        user_name=body.user_name,
        user_email=body.user_email,
        court_id=body.court_id,
        start=body.start_time,
        end=body.end_time,
        coach_id=body.coach_id,
    )
    return {
        "message": "Added to waitlist",
        "waitlist": {"id": ticket.waitlist_id, "position": ticket.position},
    }


@app.post("/api/waitlist/{waitlist_id}/leave")
def api_leave_waitlist(waitlist_id: int, session: Session = Depends(get_session)):
    return {"waitlist": waitlist_out(leave_waitlist(session=session, waitlist_id=waitlist_id))}


@app.get("/api/admin/courts")
def admin_list_courts(session: Session = Depends(get_session)):
    return [court_out(c) for c in catalog.list_courts(session)]


@app.post("/api/admin/courts", status_code=201)
def admin_create_court(body: CourtIn, session: Session = Depends(get_session)):
    return court_out(catalog.create_court(session, **body.model_dump()))


@app.put("/api/admin/courts/{court_id}")
def admin_update_court(
    court_id: int, body: CourtUpdate, session: Session = Depends(get_session)
):
    return court_out(catalog.update_court(session, court_id, **body.model_dump(exclude_unset=True)))


@app.get("/api/admin/equipment")
def admin_list_equipment(session: Session = Depends(get_session)):
    return [equipment_out(e) for e in catalog.list_equipment(session)]


@app.post("/api/admin/equipment", status_code=201)
def admin_create_equipment(body: EquipmentIn, session: Session = Depends(get_session)):
    return equipment_out(catalog.create_equipment(session, **body.model_dump()))


@app.put("/api/admin/equipment/{equipment_id}")
def admin_update_equipment(
    equipment_id: int, body: EquipmentUpdate, session: Session = Depends(get_session)
):
    return equipment_out(
        catalog.update_equipment(session, equipment_id, **body.model_dump(exclude_unset=True))
    )


@app.get("/api/admin/coaches")
def admin_list_coaches(session: Session = Depends(get_session)):
    windows = catalog.list_coach_windows(session)
    return [
        {**coach_out(c), "availability": [window_out(w) for w in windows.get(c.id, [])]}
        for c in catalog.list_coaches(session)
    ]


@app.post("/api/admin/coaches", status_code=201)
def admin_create_coach(body: CoachIn, session: Session = Depends(get_session)):
    return coach_out(catalog.create_coach(session, **body.model_dump()))


@app.post("/api/admin/coaches/{coach_id}/availability", status_code=201)
def admin_add_coach_window(
    coach_id: int, body: CoachWindowIn, session: Session = Depends(get_session)
):
    try:
        start_minute = hm_to_minute(body.start_hm)
        end_minute = hm_to_minute(body.end_hm)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid time format, expected HH:MM")
    window = catalog.add_coach_window(
        session,
        coach_id=coach_id,
        weekday=body.weekday,
        start_minute=start_minute,
        end_minute=end_minute,
        is_recurring=body.is_recurring,
    )
    return window_out(window)
