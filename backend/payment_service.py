import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, List, Tuple

from sqlalchemy.orm import Session

from database import run_serializable
from errors import NotFoundError, SecurityFailure, StateConflict
from models import Event, Payment, PaymentStatus, Registration, TeamState, User
from notifications import RegistrationNotice, build_notice
from payment_gateway import RazorpayGateway
from registration_rules import (
    create_team,
    default_team_base_name,
    ensure_capacity_available,
    generate_unique_team_name,
    is_free_event,
    is_solo_event,
    load_team_roster,
    lock_event,
    team_name_taken,
)
from registration_service import build_team_info
from schemas import (
    OrderHandle,
    PaymentDetails,
    PaymentStatusResponse,
    TeamMemberInfo,
    VerifiedResult,
)

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], Session]


def amount_in_minor_units(fee) -> int:
    return int((Decimal(str(fee)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _lock_owned_registration(db: Session, user_id: int, registration_id: int) -> Registration:
    registration = (
        db.query(Registration)
        .filter(Registration.id == registration_id, Registration.student_id == user_id)
        .with_for_update()
        .first()
    )
    if not registration:
        raise NotFoundError("Registration not found")
    return registration


def initiate(
    session_factory: SessionFactory,
    gateway: RazorpayGateway,
    user_id: int,
    registration_id: int,
) -> OrderHandle:
    """Create a gateway order for an unpaid registration.

    Runs as a single attempt: once the external order exists, rerunning the
    transaction would create a second one.
    """

    def work(db: Session) -> OrderHandle:
        registration = _lock_owned_registration(db, user_id, registration_id)
        event = lock_event(db, registration.event_id)
        if is_free_event(event):
            raise StateConflict("This event is free. No payment required.")
        if registration.payment_status:
            raise StateConflict("Payment already completed for this registration")

        team = registration.team_link.team if registration.team_link else None
        if team and team.team_lead_id != user_id:
            raise StateConflict("Only the team lead can pay for this team", status_code=403)

        ensure_capacity_available(db, event)

        user = db.get(User, user_id)
        amount = float(event.fee_amount)
        currency = gateway.currency
        order_id = gateway.create_order(
            amount_minor_units=amount_in_minor_units(event.fee_amount),
            currency=currency,
            receipt=f"reg_{registration.id}",
            notes={
                "registration_id": str(registration.id),
                "event_id": str(event.id),
                "user_id": str(user_id),
                "event_name": event.event_name,
            },
        )

        payment = db.query(Payment).filter(Payment.registration_id == registration.id).with_for_update().first()
        if payment:
            payment.razorpay_order_id = order_id
            payment.razorpay_payment_id = None
            payment.razorpay_signature = None
            payment.amount = event.fee_amount
            payment.status = PaymentStatus.PENDING
        else:
            db.add(
                Payment(
                    registration_id=registration.id,
                    razorpay_order_id=order_id,
                    amount=event.fee_amount,
                    status=PaymentStatus.PENDING,
                )
            )
        db.flush()

        return OrderHandle(
            order_id=order_id,
            amount=amount,
            currency=currency,
            key_id=gateway.key_id or None,
            registration_id=registration.id,
            event_name=event.event_name,
            user_name=user.name if user else "",
            user_email=user.email if user else "",
        )

    handle = run_serializable(session_factory, work, attempts=1)
    logger.info("Payment order %s created for registration %s", handle.order_id, registration_id)
    return handle


def _materialize_team(db: Session, event: Event, registration: Registration, display_name: str):
    if registration.team_link:
        team = registration.team_link.team
        registration.team_state = TeamState.PAID_TEAM_ACTIVE
        registration.requested_team_name = None
        return team

    requested = registration.requested_team_name
    if requested and not team_name_taken(db, event.id, requested, exclude_registration_id=registration.id):
        name = requested
    else:
        name = generate_unique_team_name(
            db,
            event.id,
            requested or default_team_base_name(display_name),
            exclude_registration_id=registration.id,
        )
        if requested:
            logger.info(
                "Team name %r was taken before payment cleared; using %r for registration %s",
                requested,
                name,
                registration.id,
            )
    return create_team(db, event, registration, name)


def verify(
    session_factory: SessionFactory,
    gateway: RazorpayGateway,
    user_id: int,
    order_ref: str,
    payment_ref: str,
    signature: str,
) -> Tuple[VerifiedResult, List[RegistrationNotice]]:
    """Check the gateway signature and activate the registration.

    For team events this is the point where the team row is created from the
    name the lead reserved at registration. If the event filled up while the
    lead was paying, the payment is recorded as failed (the payment id is kept
    so it can be refunded) and the caller gets "Event registration is full".
    """

    def work(db: Session):
        row = (
            db.query(Payment, Registration)
            .join(Registration, Payment.registration_id == Registration.id)
            .filter(Payment.razorpay_order_id == order_ref, Registration.student_id == user_id)
            .with_for_update(of=Payment)
            .first()
        )
        if not row:
            raise NotFoundError("Payment record not found")
        payment, registration = row

        if payment.status == PaymentStatus.COMPLETED or registration.payment_status:
            raise StateConflict("Payment already verified")
        if payment.status != PaymentStatus.PENDING:
            raise StateConflict("Payment is no longer pending. Please initiate a new payment.")

        if not gateway.verify_signature(order_ref, payment_ref, signature):
            raise SecurityFailure("Invalid payment signature")

        event = lock_event(db, registration.event_id)
        payment.razorpay_payment_id = payment_ref
        payment.razorpay_signature = signature
        try:
            ensure_capacity_available(db, event)
        except StateConflict:
            payment.status = PaymentStatus.FAILED
            db.flush()
            return None, []

        payment.status = PaymentStatus.COMPLETED
        registration.payment_status = True
        user = db.get(User, user_id)

        team = None
        members: List[TeamMemberInfo] = []
        notices: List[RegistrationNotice] = []
        amount = float(payment.amount)
        if is_solo_event(event):
            db.flush()
            notices.append(build_notice(user, event, registration, amount_paid=amount))
        else:
            team = _materialize_team(db, event, registration, user.name if user else "")
            db.flush()
            for _, member_registration, member in load_team_roster(db, team):
                members.append(TeamMemberInfo(id=member.id, name=member.name))
                notices.append(
                    build_notice(
                        member,
                        event,
                        member_registration,
                        team,
                        amount_paid=amount if member.id == user_id else None,
                    )
                )

        result = VerifiedResult(
            registration_id=registration.id,
            event_id=event.id,
            event_name=event.event_name,
            event_type="solo" if is_solo_event(event) else "team",
            amount=amount,
            payment_id=payment_ref,
            payment_status=True,
            team_state=registration.team_state.value if registration.team_state else None,
            team_info=build_team_info(db, event, team, user_id) if team else None,
            team_members=members,
        )
        return result, notices

    result, notices = run_serializable(session_factory, work)
    if result is None:
        logger.error(
            "Event full at verification; payment %s for order %s marked failed and needs a manual refund",
            payment_ref,
            order_ref,
        )
        raise StateConflict("Event registration is full")
    logger.info(
        "Payment %s verified for registration %s (event %s)",
        payment_ref,
        result.registration_id,
        result.event_id,
    )
    return result, notices


def payment_status(db: Session, user_id: int, registration_id: int) -> PaymentStatusResponse:
    row = (
        db.query(Registration, Event)
        .join(Event, Registration.event_id == Event.id)
        .filter(Registration.id == registration_id, Registration.student_id == user_id)
        .first()
    )
    if not row:
        raise NotFoundError("Registration not found")
    registration, event = row

    payment = registration.payment
    details = None
    if payment:
        details = PaymentDetails(
            payment_id=payment.id,
            razorpay_order_id=payment.razorpay_order_id,
            razorpay_payment_id=payment.razorpay_payment_id,
            amount=float(payment.amount),
            status=payment.status.value,
            created_at=payment.created_at,
            updated_at=payment.updated_at,
        )
    return PaymentStatusResponse(
        registration_id=registration.id,
        event_name=event.event_name,
        fee_amount=float(event.fee_amount or 0),
        payment_required=not is_free_event(event),
        payment_status=bool(registration.payment_status),
        payment_details=details,
    )
