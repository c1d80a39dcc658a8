from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from database import SessionLocal, _load_database_url, is_transaction_conflict, run_serializable
from errors import ConcurrencyConflict, StateConflict, ValidationFailure
from models import Event, EventStatus, Registration, Team, TeamState
from registration_rules import (
    TEAM_CODE_RE,
    clean_team_name,
    count_capacity_units,
    ensure_event_open,
    ensure_team_code_format,
    generate_unique_team_name,
    make_team_code,
    normalize_team_code,
)
from time_utils import now_tz


class FakeDriverError(Exception):
    def __init__(self, message, pgcode=None):
        super().__init__(message)
        self.pgcode = pgcode


def _db_error(pgcode, message="could not serialize access"):
    return OperationalError("UPDATE events SET id = id", {}, FakeDriverError(message, pgcode))


def test_team_code_normalization_and_format():
    assert normalize_team_code("  ab12cd ") == "AB12CD"
    assert normalize_team_code(None) == ""
    ensure_team_code_format("AB12CD")
    for bad in ("AB12C", "AB12CDE", "AB-12C", ""):
        with pytest.raises(ValidationFailure):
            ensure_team_code_format(bad)


def test_generated_team_codes_match_format():
    codes = {make_team_code() for _ in range(50)}
    assert all(TEAM_CODE_RE.match(code) for code in codes)


def test_clean_team_name():
    assert clean_team_name("  Team   Rocket ") == "Team Rocket"
    assert clean_team_name("R&D (core) - A.I.'s") == "R&D (core) - A.I.'s"
    with pytest.raises(ValidationFailure):
        clean_team_name("   ")
    with pytest.raises(ValidationFailure):
        clean_team_name("a" * 101)
    with pytest.raises(ValidationFailure):
        clean_team_name("drop;table")


def test_generate_unique_team_name_uses_highest_suffix(db, make_event, make_user):
    event = make_event(max_team_size=4)
    lead = make_user()
    db.add_all(
        [
            Team(event_id=event.id, team_name="Noah's Team", team_code="AAAAA1", team_lead_id=lead.id),
            Team(event_id=event.id, team_name="Noah's Team (3)", team_code="AAAAA2", team_lead_id=lead.id),
            Team(event_id=event.id, team_name="Noah's Teammates", team_code="AAAAA3", team_lead_id=lead.id),
        ]
    )
    db.commit()

    assert generate_unique_team_name(db, event.id, "Noah's Team") == "Noah's Team (4)"
    assert generate_unique_team_name(db, event.id, "Mia's Team") == "Mia's Team"


def test_generate_unique_team_name_counts_reservations_and_escapes_like(db, make_event, make_user):
    event = make_event(max_team_size=4, fee_amount=Decimal("100"))
    user = make_user()
    pending = Registration(
        student_id=user.id,
        event_id=event.id,
        payment_status=False,
        team_state=TeamState.UNPAID_NO_TEAM,
        requested_team_name="100%_Club",
    )
    db.add(pending)
    db.commit()

    assert generate_unique_team_name(db, event.id, "100%_Club") == "100%_Club (1)"
    assert generate_unique_team_name(db, event.id, "100%_Club", exclude_registration_id=pending.id) == "100%_Club"
    assert generate_unique_team_name(db, event.id, "100xxClub") == "100xxClub"


def test_ensure_event_open_uses_registration_window():
    now = now_tz()
    event = Event(
        event_name="Window",
        status=EventStatus.ACTIVE,
        reg_start_time=now - timedelta(hours=1),
        reg_end_time=now + timedelta(hours=1),
        min_team_size=1,
        max_team_size=1,
    )

    ensure_event_open(event, now)
    with pytest.raises(StateConflict, match="Registration has ended"):
        ensure_event_open(event, now + timedelta(hours=2))
    with pytest.raises(StateConflict, match="Registration has not started yet"):
        ensure_event_open(event, now - timedelta(hours=2))


def test_registration_window_may_be_a_single_instant(make_event):
    instant = now_tz()
    event = make_event(reg_start_time=instant, reg_end_time=instant)

    ensure_event_open(event, instant)
    with pytest.raises(StateConflict, match="Registration has ended"):
        ensure_event_open(event, instant + timedelta(seconds=1))


def test_team_capacity_counts_only_paid_leads(db, make_event, make_user):
    event = make_event(max_team_size=3, fee_amount=Decimal("100"))
    paid_lead = make_user()
    unpaid_lead = make_user()
    db.add_all(
        [
            Registration(student_id=paid_lead.id, event_id=event.id, payment_status=True, team_state=TeamState.PAID_TEAM_ACTIVE),
            Registration(student_id=unpaid_lead.id, event_id=event.id, payment_status=False, team_state=TeamState.UNPAID_EXISTING),
            Team(event_id=event.id, team_name="Paid", team_code="PAID01", team_lead_id=paid_lead.id),
            Team(event_id=event.id, team_name="Unpaid", team_code="UNPD01", team_lead_id=unpaid_lead.id),
        ]
    )
    db.commit()

    assert count_capacity_units(db, event) == 1


def test_database_url_is_required(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)

    with pytest.raises(RuntimeError, match="DATABASE_URL is required"):
        _load_database_url()


def test_conflict_classification():
    assert is_transaction_conflict(_db_error("40001"))
    assert is_transaction_conflict(_db_error("40P01", "deadlock detected"))
    assert is_transaction_conflict(_db_error("55P03", "lock timeout"))
    assert is_transaction_conflict(_db_error(None, "database is locked"))
    assert is_transaction_conflict(IntegrityError("INSERT", {}, FakeDriverError("duplicate key", "23505")))
    assert not is_transaction_conflict(_db_error("42P01", "relation does not exist"))
    assert not is_transaction_conflict(ValueError("nope"))


def test_run_serializable_retries_conflicts():
    calls = []

    def work(db):
        calls.append(1)
        if len(calls) < 3:
            raise _db_error("40001")
        return "committed"

    assert run_serializable(SessionLocal, work, attempts=3) == "committed"
    assert len(calls) == 3


def test_run_serializable_surfaces_retryable_conflict():
    calls = []

    def work(db):
        calls.append(1)
        raise _db_error("40001")

    with pytest.raises(ConcurrencyConflict) as excinfo:
        run_serializable(SessionLocal, work, attempts=2)
    assert excinfo.value.retryable is True
    assert excinfo.value.status_code == 409
    assert len(calls) == 2


def test_run_serializable_does_not_retry_domain_or_unrelated_errors():
    calls = []

    def rejected(db):
        calls.append(1)
        raise StateConflict("Team is already full")

    with pytest.raises(StateConflict):
        run_serializable(SessionLocal, rejected, attempts=3)
    assert len(calls) == 1

    def broken(db):
        calls.append(1)
        raise _db_error("42P01", "relation does not exist")

    with pytest.raises(OperationalError):
        run_serializable(SessionLocal, broken, attempts=3)
    assert len(calls) == 2


def test_run_serializable_rolls_back_failed_attempt(db, make_user, make_event):
    event = make_event()
    user = make_user()

    def work(session):
        session.add(Registration(student_id=user.id, event_id=event.id, payment_status=True))
        session.flush()
        raise StateConflict("nope")

    with pytest.raises(StateConflict):
        run_serializable(SessionLocal, work)
    assert db.query(Registration).count() == 0
