import logging

from sqlalchemy.orm import Session, joinedload

from errors import NotFoundError, StateConflict
from models import AttendanceStatus, Registration, TeamRegistration, User
from schemas import AttendanceDetails, AttendanceMarkResult

logger = logging.getLogger(__name__)


def attendance_details(db: Session, registration_id: int) -> AttendanceDetails:
    """What the check-in desk sees after scanning a registration code."""
    registration = (
        db.query(Registration)
        .options(
            joinedload(Registration.student).joinedload(User.department),
            joinedload(Registration.event),
            joinedload(Registration.team_link).joinedload(TeamRegistration.team),
        )
        .filter(Registration.id == registration_id)
        .first()
    )
    if not registration:
        raise NotFoundError("Registration not found")

    student = registration.student
    team = registration.team_link.team if registration.team_link else None
    return AttendanceDetails(
        registration_id=registration.id,
        user_id=student.id,
        name=student.name,
        email=student.email,
        phone=student.phone_number,
        department=student.department.department_name if student.department else None,
        event_id=registration.event_id,
        event=registration.event.event_name,
        team=team.team_name if team else None,
        food=registration.food_preference,
        payment_status=bool(registration.payment_status),
        present=registration.attendance_status == AttendanceStatus.PRESENT,
    )


def mark_present(db: Session, registration_id: int, admin_id: int) -> AttendanceMarkResult:
    registration = (
        db.query(Registration)
        .filter(Registration.id == registration_id)
        .with_for_update()
        .first()
    )
    if not registration:
        raise NotFoundError("Registration not found")
    if not registration.payment_status:
        raise StateConflict("Payment pending for this registration")

    already_present = registration.attendance_status == AttendanceStatus.PRESENT
    if not already_present:
        registration.attendance_status = AttendanceStatus.PRESENT
        db.commit()
        logger.info("Admin %s marked registration %s present", admin_id, registration_id)
    return AttendanceMarkResult(
        registration_id=registration_id,
        attendance_status=AttendanceStatus.PRESENT.value,
        already_present=already_present,
    )
