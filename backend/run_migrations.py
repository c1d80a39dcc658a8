from __future__ import annotations

import argparse
import logging
import sys
from typing import Dict

from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session

from database import DATABASE_URL, Base, SessionLocal, engine
from models import Event, Registration, TeamRegistration, TeamState

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create the registration schema.")
    parser.add_argument(
        "--drop-first",
        action="store_true",
        help="Drop every registration table before creating it again. Destroys data.",
    )
    parser.add_argument(
        "--yes",
        action="store_true",
        help="Confirm --drop-first without prompting.",
    )
    return parser.parse_args(argv)


def _redacted_url(url: str) -> str:
    return make_url(url).render_as_string(hide_password=True)


def backfill_team_states(db: Session) -> Dict[str, int]:
    """Tag team-event registrations that carry no team state yet.

    Rows written before the tag existed (teams were created at registration
    time, paid or not) are classified from their team link and payment flag.
    Solo registrations stay untagged.
    """
    counts = {state.value: 0 for state in TeamState}
    rows = (
        db.query(Registration, TeamRegistration)
        .join(Event, Registration.event_id == Event.id)
        .outerjoin(TeamRegistration, TeamRegistration.registration_id == Registration.id)
        .filter(Registration.team_state.is_(None), Event.max_team_size > 1)
        .all()
    )
    for registration, link in rows:
        if registration.payment_status:
            if not link:
                # paid but never linked; nothing to infer a team from
                logger.warning("Registration %s is paid but has no team", registration.id)
                continue
            state = TeamState.PAID_TEAM_ACTIVE
        elif link:
            state = TeamState.UNPAID_EXISTING
        else:
            state = TeamState.UNPAID_NO_TEAM
        registration.team_state = state
        counts[state.value] += 1
    db.commit()
    return counts


def main(argv=None) -> int:
    args = parse_args(argv)
    target = _redacted_url(DATABASE_URL)

    if args.drop_first:
        if not args.yes:
            logger.error("Refusing to drop tables on %s without --yes.", target)
            return 2
        logger.warning("Dropping all registration tables on %s", target)
        Base.metadata.drop_all(bind=engine)

    logger.info("Creating registration schema on %s", target)
    Base.metadata.create_all(bind=engine)
    logger.info("Schema ready: %s", ", ".join(sorted(Base.metadata.tables)))

    db = SessionLocal()
    try:
        counts = backfill_team_states(db)
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
    logger.info("Team states backfilled: %s", counts)
    return 0


if __name__ == "__main__":
    sys.exit(main())
