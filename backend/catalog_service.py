import csv
import io
from datetime import datetime
from typing import Dict, List, Optional, Set

from openpyxl import Workbook
from sqlalchemy.orm import Session, joinedload

from errors import NotFoundError
from models import Accommodation, Event, Registration, Team, TeamRegistration, User
from registration_rules import count_capacity_units, is_registration_open, is_solo_event
from schemas import (
    AccommodationResponse,
    AdminRegistrationRow,
    EventCatalogResponse,
    EventSummary,
    TeamSizeInfo,
)
from time_utils import ensure_timezone, now_tz

EXPORT_HEADERS = [
    "Registration ID",
    "Registered At",
    "Event ID",
    "Event",
    "Student ID",
    "Name",
    "Email",
    "Phone",
    "Batch",
    "Year",
    "Paid",
    "Payment State",
    "Attendance",
    "Food Preference",
    "Accommodation",
    "Team State",
    "Team ID",
    "Team Name",
    "Team Code",
    "Team Lead",
    "Team Lead Email",
]


def _duration_days(start: Optional[datetime], end: Optional[datetime]) -> Optional[int]:
    if not start or not end:
        return None
    return (ensure_timezone(end).date() - ensure_timezone(start).date()).days


def event_summary(
    db: Session,
    event: Event,
    now: Optional[datetime] = None,
    registered_event_ids: Optional[Set[int]] = None,
) -> EventSummary:
    current = now or now_tz()
    count = count_capacity_units(db, event)
    max_regs = int(event.max_registrations or 0)
    return EventSummary(
        id=event.id,
        name=event.event_name,
        description=event.event_description,
        image=event.event_image,
        venue=event.venue,
        event_start_time=event.event_start_time,
        event_end_time=event.event_end_time,
        reg_start_time=event.reg_start_time,
        reg_end_time=event.reg_end_time,
        duration_days=_duration_days(event.event_start_time, event.event_end_time),
        reg_open=is_registration_open(event, current),
        is_registration_full=max_regs > 0 and count >= max_regs,
        fee=float(event.fee_amount or 0),
        whatsapp=event.whatsapp_link,
        food=bool(event.food),
        team=TeamSizeInfo(min=event.min_team_size, max=event.max_team_size),
        event_type="solo" if is_solo_event(event) else "team",
        team_name_required=bool(event.team_name_required),
        status=event.status.value,
        registrations_count=count,
        max_registrations=event.max_registrations,
        is_registered=None if registered_event_ids is None else event.id in registered_event_ids,
    )


def _category(event: Event, now: datetime) -> str:
    start = ensure_timezone(event.event_start_time) if event.event_start_time else None
    end = ensure_timezone(event.event_end_time) if event.event_end_time else None
    if start is None or now < start:
        return "upcoming"
    if end is None or now <= end:
        return "ongoing"
    return "past"


def _registered_event_ids(db: Session, user_id: Optional[int]) -> Optional[Set[int]]:
    if user_id is None:
        return None
    rows = db.query(Registration.event_id).filter(Registration.student_id == user_id).all()
    return {row[0] for row in rows}


def list_events(
    db: Session,
    user_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> EventCatalogResponse:
    """Group events into upcoming, ongoing and past.

    Events without a start time are upcoming; events without an end time stay
    ongoing once started. With a ``user_id`` each summary also says whether
    that user holds a registration for it.
    """
    current = now or now_tz()
    registered = _registered_event_ids(db, user_id)
    events = db.query(Event).order_by(Event.event_start_time.asc(), Event.id.asc()).all()
    grouped: Dict[str, List[EventSummary]] = {"upcoming": [], "ongoing": [], "past": []}
    for event in events:
        grouped[_category(event, current)].append(event_summary(db, event, current, registered))
    return EventCatalogResponse(**grouped)


def get_event(db: Session, event_id: int, user_id: Optional[int] = None) -> EventSummary:
    event = db.query(Event).filter(Event.id == event_id).first()
    if not event:
        raise NotFoundError("Event not found")
    return event_summary(db, event, registered_event_ids=_registered_event_ids(db, user_id))


def list_accommodations(db: Session) -> List[AccommodationResponse]:
    rows = db.query(Accommodation).order_by(Accommodation.name.asc()).all()
    return [AccommodationResponse.model_validate(row) for row in rows]


def registration_rows(db: Session, event_id: Optional[int] = None) -> List[AdminRegistrationRow]:
    query = (
        db.query(Registration)
        .options(
            joinedload(Registration.student),
            joinedload(Registration.event),
            joinedload(Registration.accommodation),
            joinedload(Registration.payment),
            joinedload(Registration.team_link).joinedload(TeamRegistration.team).joinedload(Team.lead),
        )
    )
    if event_id is not None:
        query = query.filter(Registration.event_id == event_id)
    registrations = query.order_by(Registration.timestamp.desc(), Registration.id.desc()).all()

    rows = []
    for registration in registrations:
        student: User = registration.student
        team: Optional[Team] = registration.team_link.team if registration.team_link else None
        lead: Optional[User] = team.lead if team else None
        rows.append(
            AdminRegistrationRow(
                registration_id=registration.id,
                timestamp=registration.timestamp,
                event_id=registration.event_id,
                event_name=registration.event.event_name,
                student_id=student.id,
                student_name=student.name,
                student_email=student.email,
                student_phone=student.phone_number,
                batch=student.batch,
                year=student.year,
                payment_status=bool(registration.payment_status),
                payment_state=registration.payment.status.value if registration.payment else None,
                attendance_status=registration.attendance_status.value,
                food_preference=registration.food_preference,
                accommodation=registration.accommodation.name if registration.accommodation else None,
                team_state=registration.team_state.value if registration.team_state else None,
                team_id=team.id if team else None,
                team_name=team.team_name if team else registration.requested_team_name,
                team_code=team.team_code if team else None,
                team_lead_name=lead.name if lead else None,
                team_lead_email=lead.email if lead else None,
            )
        )
    return rows


def _export_values(row: AdminRegistrationRow) -> list:
    return [
        row.registration_id,
        row.timestamp.isoformat() if row.timestamp else "",
        row.event_id,
        row.event_name,
        row.student_id,
        row.student_name,
        row.student_email,
        row.student_phone or "",
        row.batch or "",
        row.year or "",
        "Yes" if row.payment_status else "No",
        row.payment_state.value if row.payment_state else "",
        row.attendance_status.value,
        row.food_preference,
        row.accommodation or "",
        row.team_state.value if row.team_state else "",
        row.team_id or "",
        row.team_name or "",
        row.team_code or "",
        row.team_lead_name or "",
        row.team_lead_email or "",
    ]


def export_to_csv(rows: List[AdminRegistrationRow]) -> bytes:
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(EXPORT_HEADERS)
    writer.writerows(_export_values(row) for row in rows)
    return output.getvalue().encode("utf-8")


def export_to_xlsx(rows: List[AdminRegistrationRow]) -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = "Registrations"
    ws.append(EXPORT_HEADERS)
    for row in rows:
        ws.append(_export_values(row))
    out = io.BytesIO()
    wb.save(out)
    out.seek(0)
    return out.read()
