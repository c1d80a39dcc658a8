import logging
from typing import Callable, List, Optional, Tuple

from sqlalchemy.orm import Session

from database import run_serializable
from errors import NotFoundError, StateConflict, ValidationFailure
from models import Event, Registration, Team, TeamRegistration, TeamState, User
from notifications import RegistrationNotice, build_notice
from registration_rules import (
    accommodation_payload,
    clean_food_preference,
    clean_team_name,
    count_team_members,
    create_team,
    default_team_base_name,
    ensure_capacity_available,
    ensure_event_configuration,
    ensure_event_open,
    ensure_team_code_format,
    generate_unique_team_name,
    get_accommodation,
    is_free_event,
    is_solo_event,
    load_team_roster,
    lock_event,
    normalize_team_code,
    team_name_taken,
)
from schemas import (
    JoinResult,
    RegistrationResult,
    RegistrationStatusResponse,
    TeamInfo,
    TeamMemberInfo,
)

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], Session]


def _event_type(event: Event) -> str:
    return "solo" if is_solo_event(event) else "team"


def _state_value(registration: Registration) -> Optional[str]:
    return registration.team_state.value if registration.team_state else None


def _registration_team(registration: Registration) -> Optional[Team]:
    return registration.team_link.team if registration.team_link else None


def build_team_info(db: Session, event: Event, team: Team, user_id: int) -> TeamInfo:
    current = count_team_members(db, team.id)
    return TeamInfo(
        team_id=team.id,
        team_name=team.team_name,
        team_code=team.team_code,
        is_team_lead=team.team_lead_id == user_id,
        current_members=current,
        max_members=event.max_team_size,
        min_members=event.min_team_size,
        team_is_full=current >= int(event.max_team_size),
    )


def _registration_result(
    db: Session,
    event: Event,
    registration: Registration,
    resumed: bool = False,
) -> RegistrationResult:
    team = _registration_team(registration)
    return RegistrationResult(
        registration_id=registration.id,
        event_id=event.id,
        event_name=event.event_name,
        event_type=_event_type(event),
        fee_amount=float(event.fee_amount or 0),
        payment_required=not is_free_event(event),
        payment_status=bool(registration.payment_status),
        team_state=_state_value(registration),
        team_name=team.team_name if team else registration.requested_team_name,
        team_id=team.id if team else None,
        team_code=team.team_code if team else None,
        is_team_lead=not is_solo_event(event) and (team is None or team.team_lead_id == registration.student_id),
        current_members=count_team_members(db, team.id) if team else None,
        max_members=event.max_team_size,
        min_members=event.min_team_size,
        accommodation=accommodation_payload(registration.accommodation),
        food_preference=registration.food_preference,
        timestamp=registration.timestamp,
        resumed=resumed,
    )


def _lock_existing_registration(db: Session, user_id: int, event_id: int) -> Optional[Registration]:
    return (
        db.query(Registration)
        .filter(Registration.student_id == user_id, Registration.event_id == event_id)
        .with_for_update()
        .first()
    )


def _resolve_team_name(db: Session, event: Event, user_name: str, team_name: Optional[str]) -> str:
    if team_name:
        name = clean_team_name(team_name)
        if team_name_taken(db, event.id, name):
            raise StateConflict("Team name already exists. Please choose a different name.", status_code=409)
        return name
    if event.team_name_required:
        raise ValidationFailure("Team name is required for this event")
    return generate_unique_team_name(db, event.id, default_team_base_name(user_name))


def register(
    session_factory: SessionFactory,
    user_id: int,
    user_name: str,
    event_id: int,
    team_name: Optional[str] = None,
    accommodation_id: Optional[int] = None,
    food_pref: Optional[str] = None,
) -> Tuple[RegistrationResult, List[RegistrationNotice]]:
    """Register a user for an event, choosing the solo or team path.

    Paid team events do not get a team yet: the lead's registration is
    tagged ``unpaid_no_team`` and keeps the resolved team name until payment
    verification materializes the team. A pending unpaid registration is
    returned as-is (``resumed=True``) so the caller can resume payment.

    Returns the result and the confirmation notices to send after commit.
    """
    display_name = str(user_name or "").strip()
    if not display_name:
        raise ValidationFailure("User name is required")

    def work(db: Session):
        event = lock_event(db, event_id)
        ensure_event_configuration(event)
        ensure_event_open(event)
        if team_name and is_solo_event(event):
            raise ValidationFailure("Team name is not allowed for solo events")

        existing = _lock_existing_registration(db, user_id, event.id)
        if existing:
            if not existing.payment_status:
                return _registration_result(db, event, existing, resumed=True), []
            raise StateConflict("You are already registered for this event", status_code=409)

        ensure_capacity_available(db, event)
        accommodation = get_accommodation(db, accommodation_id)
        free = is_free_event(event)

        registration = Registration(
            student_id=user_id,
            event_id=event.id,
            payment_status=free,
            accommodation_id=accommodation.id if accommodation else None,
            food_preference=clean_food_preference(food_pref),
        )
        team = None
        if is_solo_event(event):
            db.add(registration)
            db.flush()
        else:
            final_name = _resolve_team_name(db, event, display_name, team_name)
            if free:
                db.add(registration)
                db.flush()
                team = create_team(db, event, registration, final_name)
            else:
                registration.team_state = TeamState.UNPAID_NO_TEAM
                registration.requested_team_name = final_name
                db.add(registration)
                db.flush()

        db.refresh(registration)
        result = _registration_result(db, event, registration)
        notices = []
        if free:
            user = db.get(User, user_id)
            if user:
                notices.append(build_notice(user, event, registration, team))
        return result, notices

    result, notices = run_serializable(session_factory, work)
    if result.resumed:
        logger.info("Resumed pending registration %s for user %s", result.registration_id, user_id)
    else:
        logger.info(
            "Registered user %s for event %s (registration %s, %s)",
            user_id,
            event_id,
            result.registration_id,
            result.event_type.value,
        )
    return result, notices


def join_team(
    session_factory: SessionFactory,
    user_id: int,
    user_name: str,
    event_id: int,
    team_code: str,
    accommodation_id: Optional[int] = None,
    food_pref: Optional[str] = None,
) -> Tuple[JoinResult, List[RegistrationNotice]]:
    code = normalize_team_code(team_code)
    ensure_team_code_format(code)

    def work(db: Session):
        team = (
            db.query(Team)
            .filter(Team.team_code == code, Team.event_id == event_id)
            .with_for_update()
            .first()
        )
        if not team:
            raise NotFoundError("Team not found with this code for the specified event")

        event = db.query(Event).filter(Event.id == team.event_id).first()
        if is_solo_event(event):
            raise StateConflict("Cannot join team for solo events")
        ensure_event_open(event)

        if _lock_existing_registration(db, user_id, event.id):
            raise StateConflict("You are already registered for this event", status_code=409)
        if team.team_lead_id == user_id:
            raise StateConflict("You cannot join your own team")

        lead_registration = (
            db.query(Registration)
            .filter(Registration.student_id == team.team_lead_id, Registration.event_id == event.id)
            .first()
        )
        if not lead_registration or not lead_registration.payment_status:
            raise StateConflict("This team is not active yet. The team lead must complete payment first.")

        member_links = (
            db.query(TeamRegistration)
            .filter(TeamRegistration.team_id == team.id)
            .with_for_update()
            .all()
        )
        if len(member_links) >= int(event.max_team_size):
            raise StateConflict("Team is already full")

        accommodation = get_accommodation(db, accommodation_id)
        registration = Registration(
            student_id=user_id,
            event_id=event.id,
            payment_status=True,
            team_state=TeamState.PAID_TEAM_ACTIVE,
            accommodation_id=accommodation.id if accommodation else None,
            food_preference=clean_food_preference(food_pref),
        )
        db.add(registration)
        db.flush()
        db.add(TeamRegistration(registration_id=registration.id, team_id=team.id))
        db.flush()
        db.refresh(registration)

        roster = load_team_roster(db, team)
        lead = db.get(User, team.team_lead_id)
        current_members = len(roster)
        result = JoinResult(
            registration_id=registration.id,
            event_id=event.id,
            event_name=event.event_name,
            team_id=team.id,
            team_name=team.team_name,
            team_code=team.team_code,
            team_lead=TeamMemberInfo(id=team.team_lead_id, name=lead.name if lead else ""),
            team_members=[
                TeamMemberInfo(id=member.id, name=member.name)
                for _, _, member in roster
                if member.id != team.team_lead_id
            ],
            current_members=current_members,
            max_members=event.max_team_size,
            min_members=event.min_team_size,
            team_is_full=current_members >= int(event.max_team_size),
            fee_amount=float(event.fee_amount or 0),
            accommodation=accommodation_payload(registration.accommodation),
            food_preference=registration.food_preference,
            timestamp=registration.timestamp,
        )
        joiner = db.get(User, user_id)
        notices = [build_notice(joiner, event, registration, team)] if joiner else []
        return result, notices

    result, notices = run_serializable(session_factory, work)
    logger.info(
        "User %s (%s) joined team %s for event %s (%s/%s members)",
        user_id,
        user_name,
        result.team_id,
        result.event_id,
        result.current_members,
        result.max_members,
    )
    return result, notices


def registration_status(db: Session, user_id: int, event_id: int) -> RegistrationStatusResponse:
    row = (
        db.query(Registration, Event)
        .join(Event, Registration.event_id == Event.id)
        .filter(Registration.student_id == user_id, Registration.event_id == event_id)
        .first()
    )
    if not row:
        return RegistrationStatusResponse(is_registered=False)

    registration, event = row
    team = _registration_team(registration)
    return RegistrationStatusResponse(
        is_registered=True,
        registration_id=registration.id,
        event_name=event.event_name,
        event_type=_event_type(event),
        timestamp=registration.timestamp,
        payment_status=bool(registration.payment_status),
        attendance_status=registration.attendance_status.value,
        fee_amount=float(event.fee_amount or 0),
        payment_required=not is_free_event(event),
        team_state=_state_value(registration),
        pending_team_name=registration.requested_team_name if team is None else None,
        team_info=build_team_info(db, event, team, user_id) if team else None,
    )
