#!/usr/bin/env python3
import logging
import os
from datetime import timedelta
from decimal import Decimal

from dotenv import load_dotenv
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from auth import get_password_hash
from database import Base
from models import Accommodation, Department, Event, EventStatus, ExecomMember, ExecomPosition, User, UserRole
from time_utils import now_tz

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

MOCK_PASSWORD = 'event12345'


def load_db_url() -> str:
    load_dotenv('backend/.env')
    db_url = os.environ.get('DATABASE_URL')
    if not db_url:
        raise RuntimeError('DATABASE_URL missing in backend/.env')
    return db_url


def make_session():
    engine = create_engine(load_db_url(), pool_pre_ping=True)
    Base.metadata.create_all(bind=engine)
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    return SessionLocal()


def ensure_user(db, email: str, name: str, role: UserRole = UserRole.STUDENT, batch: str = '2022') -> User:
    row = db.query(User).filter(User.email == email).first()
    if row:
        if not row.name:
            row.name = name
        if not row.hashed_password:
            row.hashed_password = get_password_hash(MOCK_PASSWORD)
        db.flush()
        return row
    row = User(
        name=name,
        email=email,
        role=role,
        hashed_password=get_password_hash(MOCK_PASSWORD),
        batch=batch,
        year=3,
        college='TKM College of Engineering',
    )
    db.add(row)
    db.flush()
    return row


def ensure_accommodation(db, name: str) -> Accommodation:
    row = db.query(Accommodation).filter(Accommodation.name == name).first()
    if row:
        return row
    row = Accommodation(name=name)
    db.add(row)
    db.flush()
    return row


def ensure_department(db, name: str) -> Department:
    row = db.query(Department).filter(Department.department_name == name).first()
    if row:
        return row
    row = Department(department_name=name)
    db.add(row)
    db.flush()
    return row


def ensure_execom_member(db, name: str, title: str, priority: int, academic_year: int, batch: str) -> ExecomMember:
    position = db.query(ExecomPosition).filter(ExecomPosition.title == title).first()
    if not position:
        position = ExecomPosition(title=title, priority=priority)
        db.add(position)
        db.flush()
    row = db.query(ExecomMember).filter(ExecomMember.name == name, ExecomMember.academic_year == academic_year).first()
    if not row:
        row = ExecomMember(name=name, academic_year=academic_year)
        db.add(row)
    row.position_id = position.id
    row.batch = batch
    db.flush()
    return row


def ensure_event(db, name: str, **fields) -> Event:
    row = db.query(Event).filter(Event.event_name == name).first()
    if not row:
        row = Event(event_name=name)
        db.add(row)
    for key, value in fields.items():
        setattr(row, key, value)
    db.flush()
    return row


def main():
    db = make_session()
    now = now_tz()
    try:
        users = [
            ensure_user(db, 'admin@example.com', 'Portal Admin', role=UserRole.ADMIN),
            ensure_user(db, 'asha@example.com', 'Asha Menon'),
            ensure_user(db, 'rahul@example.com', 'Rahul Nair'),
            ensure_user(db, 'fathima@example.com', 'Fathima K'),
            ensure_user(db, 'joel@example.com', 'Joel Thomas'),
        ]
        departments = [
            ensure_department(db, 'Computer Science'),
            ensure_department(db, 'Electronics'),
            ensure_department(db, 'Mechanical'),
        ]
        for user in users[1:]:
            if user.department_id is None:
                user.department_id = departments[0].id
        execom = [
            ensure_execom_member(db, 'Meera Pillai', 'Core-Chairperson', 0, 2025, '2022'),
            ensure_execom_member(db, 'Arjun Das', 'Technical-Head', 1, 2025, '2022'),
            ensure_execom_member(db, 'Nila George', 'Technical-Member', 2, 2025, '2023'),
        ]
        accommodations = [
            ensure_accommodation(db, 'Day scholar'),
            ensure_accommodation(db, 'Boys hostel'),
            ensure_accommodation(db, 'Girls hostel'),
        ]

        common = dict(
            venue='Main Block Seminar Hall',
            status=EventStatus.ACTIVE,
            reg_start_time=now - timedelta(days=2),
            reg_end_time=now + timedelta(days=10),
            event_start_time=now + timedelta(days=12),
            event_end_time=now + timedelta(days=12, hours=6),
        )
        events = [
            ensure_event(
                db,
                'Intro to Git',
                event_description='Hands-on version control workshop.',
                fee_amount=Decimal('0'),
                min_team_size=1,
                max_team_size=1,
                max_registrations=120,
                team_name_required=False,
                **common,
            ),
            ensure_event(
                db,
                'Code Sprint',
                event_description='Solo competitive programming round.',
                fee_amount=Decimal('100'),
                min_team_size=1,
                max_team_size=1,
                max_registrations=80,
                team_name_required=False,
                **common,
            ),
            ensure_event(
                db,
                'Design Jam',
                event_description='Free team UI/UX challenge.',
                fee_amount=Decimal('0'),
                min_team_size=2,
                max_team_size=3,
                max_registrations=20,
                team_name_required=False,
                **common,
            ),
            ensure_event(
                db,
                'Hackathon',
                event_description='24 hour team hackathon.',
                fee_amount=Decimal('500'),
                min_team_size=2,
                max_team_size=4,
                max_registrations=10,
                team_name_required=True,
                food=True,
                whatsapp_link='https://chat.whatsapp.com/example',
                **common,
            ),
        ]

        db.commit()

        logger.info('Seeded/updated registration mock data:')
        logger.info('  - users: %s', [user.email for user in users])
        logger.info('  - accommodations: %s', [row.name for row in accommodations])
        logger.info('  - departments: %s', [row.department_name for row in departments])
        logger.info('  - execom: %s', [row.name for row in execom])
        logger.info('  - events: %s', [event.event_name for event in events])
        logger.info('  - credentials for mock users: password=%s', MOCK_PASSWORD)
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == '__main__':
    main()
