import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

from email_templates import build_registration_confirmation_email
from emailer import send_email
from models import Event, Registration, Team, User

logger = logging.getLogger(__name__)


@dataclass
class RegistrationNotice:
    to_email: str
    name: str
    event_name: str
    event_type: str
    venue: Optional[str] = None
    event_start_time: Optional[datetime] = None
    whatsapp_link: Optional[str] = None
    team_name: Optional[str] = None
    team_code: Optional[str] = None
    is_team_lead: bool = False
    accommodation: Optional[str] = None
    food_preference: Optional[str] = None
    amount_paid: Optional[float] = None


def build_notice(
    user: User,
    event: Event,
    registration: Registration,
    team: Optional[Team] = None,
    amount_paid: Optional[float] = None,
) -> RegistrationNotice:
    return RegistrationNotice(
        to_email=user.email,
        name=user.name,
        event_name=event.event_name,
        event_type="solo" if int(event.max_team_size) == 1 else "team",
        venue=event.venue,
        event_start_time=event.event_start_time,
        whatsapp_link=event.whatsapp_link,
        team_name=team.team_name if team else None,
        team_code=team.team_code if team else None,
        is_team_lead=bool(team and team.team_lead_id == user.id),
        accommodation=registration.accommodation.name if registration.accommodation else None,
        food_preference=registration.food_preference,
        amount_paid=amount_paid,
    )


def dispatch_notices(notices: Iterable[RegistrationNotice]) -> None:
    """Send confirmation emails after commit. Failures are logged and never raised."""
    for notice in notices:
        if not notice.to_email:
            continue
        try:
            subject, html, text = build_registration_confirmation_email(notice)
            message_id = send_email(notice.to_email, subject, html, text)
            logger.info("Registration confirmation sent to %s (%s)", notice.to_email, message_id)
        except Exception as exc:
            logger.warning("Registration confirmation to %s failed: %s", notice.to_email, exc)
