from sqlalchemy import Column, Integer, String, Boolean, DateTime, Numeric, Enum as SQLEnum, ForeignKey, Text, CheckConstraint, UniqueConstraint, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from database import Base
import enum


class UserRole(enum.Enum):
    STUDENT = "student"
    ADMIN = "admin"
    MASTER = "master"


class EventStatus(enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class AttendanceStatus(enum.Enum):
    PRESENT = "present"
    ABSENT = "absent"


class PaymentStatus(enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class TeamState(enum.Enum):
    # lead of a paid team event, team not materialized until payment clears
    UNPAID_NO_TEAM = "unpaid_no_team"
    # linked to a team row before payment; only rows created by eager team creation
    UNPAID_EXISTING = "unpaid_existing"
    PAID_TEAM_ACTIVE = "paid_team_active"


class Department(Base):
    __tablename__ = "departments"

    id = Column(Integer, primary_key=True, index=True)
    department_name = Column(String(255), unique=True, nullable=False)


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    role = Column(SQLEnum(UserRole), default=UserRole.STUDENT, nullable=False)
    hashed_password = Column(String(255), nullable=False)
    phone_number = Column(String(50), nullable=True)
    batch = Column(String(10), nullable=True)
    year = Column(Integer, nullable=True)
    department_id = Column(Integer, ForeignKey("departments.id", ondelete="SET NULL"), nullable=True)
    college = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    department = relationship("Department")


class Accommodation(Base):
    __tablename__ = "accommodations"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)


class Event(Base):
    __tablename__ = "events"
    __table_args__ = (
        CheckConstraint(
            "min_team_size > 0 AND max_team_size > 0 AND min_team_size <= max_team_size",
            name="check_team_sizes",
        ),
        CheckConstraint(
            "reg_start_time IS NULL OR reg_end_time IS NULL OR reg_start_time <= reg_end_time",
            name="check_registration_times",
        ),
        CheckConstraint(
            "event_start_time IS NULL OR event_end_time IS NULL OR event_start_time < event_end_time",
            name="check_event_times",
        ),
        CheckConstraint(
            "NOT (max_team_size = 1 AND team_name_required)",
            name="check_solo_event_no_team_name",
        ),
        CheckConstraint("fee_amount >= 0", name="check_fee_amount"),
        Index("idx_events_status_reg_time", "status", "reg_start_time", "reg_end_time"),
    )

    id = Column(Integer, primary_key=True, index=True)
    event_name = Column(String(255), nullable=False)
    event_description = Column(Text, nullable=True)
    event_image = Column(String(255), nullable=True)
    venue = Column(String(255), nullable=True)
    whatsapp_link = Column(String(500), nullable=True)
    food = Column(Boolean, default=False, nullable=False)
    reg_start_time = Column(DateTime(timezone=True), nullable=True)
    reg_end_time = Column(DateTime(timezone=True), nullable=True)
    event_start_time = Column(DateTime(timezone=True), nullable=True)
    event_end_time = Column(DateTime(timezone=True), nullable=True)
    fee_amount = Column(Numeric(10, 2), default=0, nullable=False)
    status = Column(SQLEnum(EventStatus), default=EventStatus.ACTIVE, nullable=False)
    max_registrations = Column(Integer, nullable=True)
    team_name_required = Column(Boolean, default=False, nullable=False)
    min_team_size = Column(Integer, default=1, nullable=False)
    max_team_size = Column(Integer, default=1, nullable=False)


class Registration(Base):
    __tablename__ = "registrations"
    __table_args__ = (
        UniqueConstraint("student_id", "event_id", name="uq_registrations_student_event"),
        Index("idx_registrations_event_student", "event_id", "student_id"),
    )

    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False)
    payment_status = Column(Boolean, default=False, nullable=False)
    team_state = Column(SQLEnum(TeamState), nullable=True)  # NULL for solo registrations
    requested_team_name = Column(String(100), nullable=True)
    accommodation_id = Column(Integer, ForeignKey("accommodations.id", ondelete="SET NULL"), nullable=True)
    food_preference = Column(Text, default="No food", nullable=False)
    attendance_status = Column(SQLEnum(AttendanceStatus), default=AttendanceStatus.ABSENT, nullable=False)
    certificate = Column(String(255), nullable=True)
    timestamp = Column(DateTime(timezone=True), server_default=func.now())

    student = relationship("User")
    event = relationship("Event")
    accommodation = relationship("Accommodation")
    team_link = relationship("TeamRegistration", back_populates="registration", uselist=False)
    payment = relationship("Payment", back_populates="registration", uselist=False)


class Team(Base):
    __tablename__ = "teams"
    __table_args__ = (
        UniqueConstraint("event_id", "team_code", name="uq_teams_event_code"),
        CheckConstraint("length(trim(team_name)) BETWEEN 1 AND 100", name="check_team_name_length"),
    )

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False)
    team_name = Column(String(100), nullable=False)
    team_code = Column(String(6), nullable=False)
    team_lead_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    event = relationship("Event")
    lead = relationship("User")
    members = relationship("TeamRegistration", back_populates="team")


class TeamRegistration(Base):
    __tablename__ = "team_registrations"

    registration_id = Column(Integer, ForeignKey("registrations.id", ondelete="CASCADE"), primary_key=True)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True)
    joined_at = Column(DateTime(timezone=True), server_default=func.now())

    registration = relationship("Registration", back_populates="team_link")
    team = relationship("Team", back_populates="members")


Index("idx_teams_event_team_name_unique", Team.event_id, func.lower(Team.team_name), unique=True)


class Payment(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    registration_id = Column(Integer, ForeignKey("registrations.id", ondelete="CASCADE"), unique=True, nullable=False)
    razorpay_order_id = Column(String(255), index=True, nullable=False)
    razorpay_payment_id = Column(String(255), nullable=True)
    razorpay_signature = Column(String(255), nullable=True)
    amount = Column(Numeric(10, 2), nullable=False)
    status = Column(SQLEnum(PaymentStatus), default=PaymentStatus.PENDING, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    registration = relationship("Registration", back_populates="payment")


class ExecomPosition(Base):
    __tablename__ = "execom_positions"

    id = Column(Integer, primary_key=True, index=True)
    # "<team>-<role>", e.g. "Technical-Head"
    title = Column(String(255), unique=True, nullable=False)
    priority = Column(Integer, nullable=True)


class ExecomMember(Base):
    __tablename__ = "execom"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    year = Column(Integer, nullable=True)
    academic_year = Column(Integer, nullable=True, index=True)
    batch = Column(String(10), nullable=True)
    position_id = Column(Integer, ForeignKey("execom_positions.id", ondelete="SET NULL"), nullable=True)
    upload_image = Column(String(255), nullable=True)
    social_link = Column(String(255), nullable=True)

    position = relationship("ExecomPosition")
