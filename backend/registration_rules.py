import random
import re
import string
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import and_, func
from sqlalchemy.orm import Session

from errors import InfrastructureFailure, NotFoundError, StateConflict, ValidationFailure
from models import (
    Accommodation,
    Event,
    EventStatus,
    Registration,
    Team,
    TeamRegistration,
    TeamState,
    User,
)
from time_utils import ensure_timezone, now_tz

TEAM_CODE_LENGTH = 6
TEAM_CODE_RE = re.compile(r"^[A-Z0-9]{6}$")
TEAM_CODE_MAX_ATTEMPTS = 10
TEAM_NAME_MAX_LENGTH = 100
TEAM_NAME_RE = re.compile(r"^[\w\s\-()'.&]+$")
DEFAULT_FOOD_PREFERENCE = "No food"


def is_solo_event(event: Event) -> bool:
    return int(event.max_team_size) == 1


def is_free_event(event: Event) -> bool:
    return float(event.fee_amount or 0) <= 0


def lock_event(db: Session, event_id: int) -> Event:
    event = db.query(Event).filter(Event.id == event_id).with_for_update().first()
    if not event:
        raise NotFoundError("Event not found")
    return event


def ensure_event_configuration(event: Event) -> None:
    min_size = int(event.min_team_size or 0)
    max_size = int(event.max_team_size or 0)
    if min_size < 1 or max_size < 1 or min_size > max_size:
        raise StateConflict("Invalid event configuration")


def ensure_event_open(event: Event, now: Optional[datetime] = None) -> None:
    if event.status != EventStatus.ACTIVE:
        raise StateConflict("Event is not active")
    current = now or now_tz()
    if event.reg_start_time and current < ensure_timezone(event.reg_start_time):
        raise StateConflict("Registration has not started yet")
    if event.reg_end_time and current > ensure_timezone(event.reg_end_time):
        raise StateConflict("Registration has ended")


def is_registration_open(event: Event, now: Optional[datetime] = None) -> bool:
    try:
        ensure_event_open(event, now)
    except StateConflict:
        return False
    return True


def get_accommodation(db: Session, accommodation_id: Optional[int]) -> Optional[Accommodation]:
    if accommodation_id is None:
        return None
    row = db.query(Accommodation).filter(Accommodation.id == accommodation_id).first()
    if not row:
        raise NotFoundError("Accommodation not found")
    return row


def accommodation_payload(accommodation: Optional[Accommodation]) -> Optional[dict]:
    if not accommodation:
        return None
    return {"id": accommodation.id, "name": accommodation.name}


def clean_food_preference(value: Optional[str]) -> str:
    return str(value or "").strip() or DEFAULT_FOOD_PREFERENCE


def normalize_team_code(value: Optional[str]) -> str:
    return str(value or "").strip().upper()


def ensure_team_code_format(code: str) -> None:
    if not TEAM_CODE_RE.match(code):
        raise ValidationFailure("Invalid team code format. Must be 6 alphanumeric characters.")


def make_team_code() -> str:
    return "".join(random.choices(string.ascii_uppercase + string.digits, k=TEAM_CODE_LENGTH))


def next_team_code(db: Session, event_id: int) -> str:
    for _ in range(TEAM_CODE_MAX_ATTEMPTS):
        candidate = make_team_code()
        clash = db.query(Team.id).filter(Team.event_id == event_id, Team.team_code == candidate).first()
        if not clash:
            return candidate
    raise InfrastructureFailure(
        f"Unable to generate unique team code after {TEAM_CODE_MAX_ATTEMPTS} attempts"
    )


def clean_team_name(value: Optional[str]) -> str:
    name = re.sub(r"\s+", " ", str(value or "")).strip()
    if not name or len(name) > TEAM_NAME_MAX_LENGTH:
        raise ValidationFailure(f"Team name must be between 1 and {TEAM_NAME_MAX_LENGTH} characters")
    if not TEAM_NAME_RE.match(name):
        raise ValidationFailure("Team name contains invalid characters")
    return name


def _reserved_name_query(db: Session, event_id: int, exclude_registration_id: Optional[int]):
    query = db.query(Registration.requested_team_name).filter(
        Registration.event_id == event_id,
        Registration.team_state == TeamState.UNPAID_NO_TEAM,
        Registration.requested_team_name.isnot(None),
    )
    if exclude_registration_id is not None:
        query = query.filter(Registration.id != exclude_registration_id)
    return query


def team_name_taken(
    db: Session,
    event_id: int,
    name: str,
    exclude_registration_id: Optional[int] = None,
) -> bool:
    lowered = name.lower()
    existing = (
        db.query(Team.id)
        .filter(Team.event_id == event_id, func.lower(Team.team_name) == lowered)
        .with_for_update()
        .first()
    )
    if existing:
        return True
    reserved = (
        _reserved_name_query(db, event_id, exclude_registration_id)
        .filter(func.lower(Registration.requested_team_name) == lowered)
        .first()
    )
    return reserved is not None


def default_team_base_name(user_name: str) -> str:
    return f"{str(user_name or '').strip()}'s Team"


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def generate_unique_team_name(
    db: Session,
    event_id: int,
    base_name: str,
    exclude_registration_id: Optional[int] = None,
) -> str:
    """Pick ``base_name`` or ``"base_name (N)"`` with N one past the highest suffix in use.

    Taken names include materialized teams and names reserved by leads who
    have not paid yet. Two concurrent callers can compute the same name; the
    unique index on ``(event_id, lower(team_name))`` makes the loser abort
    and rerun its transaction.
    """
    base = re.sub(r"\s+", " ", base_name).strip()[: TEAM_NAME_MAX_LENGTH - 7].strip()
    lowered = base.lower()
    pattern = f"{_escape_like(lowered)} (%)"

    team_names = [
        row[0]
        for row in db.query(Team.team_name)
        .filter(
            Team.event_id == event_id,
            (func.lower(Team.team_name) == lowered)
            | func.lower(Team.team_name).like(pattern, escape="\\"),
        )
        .with_for_update()
        .all()
    ]
    reserved_names = [
        row[0]
        for row in _reserved_name_query(db, event_id, exclude_registration_id)
        .filter(
            (func.lower(Registration.requested_team_name) == lowered)
            | func.lower(Registration.requested_team_name).like(pattern, escape="\\")
        )
        .all()
    ]

    suffix_re = re.compile(rf"^{re.escape(lowered)} \((\d+)\)$")
    base_taken = False
    max_suffix = 0
    for name in team_names + reserved_names:
        candidate = str(name or "").lower()
        if candidate == lowered:
            base_taken = True
            continue
        match = suffix_re.match(candidate)
        if match:
            max_suffix = max(max_suffix, int(match.group(1)))

    if not base_taken and max_suffix == 0:
        return base
    return f"{base} ({max_suffix + 1})"


def count_capacity_units(db: Session, event: Event) -> int:
    if is_solo_event(event):
        return (
            db.query(func.count(Registration.id))
            .filter(Registration.event_id == event.id, Registration.payment_status == True)  # noqa: E712
            .scalar()
            or 0
        )
    return (
        db.query(func.count(Team.id))
        .join(
            Registration,
            and_(
                Registration.event_id == Team.event_id,
                Registration.student_id == Team.team_lead_id,
            ),
        )
        .filter(Team.event_id == event.id, Registration.payment_status == True)  # noqa: E712
        .scalar()
        or 0
    )


def ensure_capacity_available(db: Session, event: Event) -> None:
    if not event.max_registrations:
        return
    if count_capacity_units(db, event) >= int(event.max_registrations):
        raise StateConflict("Event registration is full")


def count_team_members(db: Session, team_id: int) -> int:
    return (
        db.query(func.count(TeamRegistration.registration_id))
        .filter(TeamRegistration.team_id == team_id)
        .scalar()
        or 0
    )


def load_team_roster(db: Session, team: Team) -> List[Tuple[TeamRegistration, Registration, User]]:
    return (
        db.query(TeamRegistration, Registration, User)
        .join(Registration, TeamRegistration.registration_id == Registration.id)
        .join(User, Registration.student_id == User.id)
        .filter(TeamRegistration.team_id == team.id)
        .order_by(TeamRegistration.joined_at.asc(), Registration.id.asc())
        .all()
    )


def create_team(db: Session, event: Event, lead_registration: Registration, team_name: str) -> Team:
    team = Team(
        event_id=event.id,
        team_name=team_name,
        team_code=next_team_code(db, event.id),
        team_lead_id=lead_registration.student_id,
    )
    db.add(team)
    db.flush()
    db.add(TeamRegistration(registration_id=lead_registration.id, team_id=team.id))
    lead_registration.team_state = TeamState.PAID_TEAM_ACTIVE
    lead_registration.requested_team_name = None
    db.flush()
    return team
