from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from typing import Dict, Optional, List
from enum import Enum
from datetime import datetime


class EventTypeEnum(str, Enum):
    SOLO = "solo"
    TEAM = "team"


class EventStatusEnum(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class TeamStateEnum(str, Enum):
    UNPAID_NO_TEAM = "unpaid_no_team"
    UNPAID_EXISTING = "unpaid_existing"
    PAID_TEAM_ACTIVE = "paid_team_active"


class PaymentStatusEnum(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class AttendanceStatusEnum(str, Enum):
    PRESENT = "present"
    ABSENT = "absent"


# Requests

class RegistrationRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    event_id: int = Field(..., ge=1)
    team_name: Optional[str] = Field(None, max_length=255)
    accommodation_id: Optional[int] = Field(None, ge=1)
    food_pref: Optional[str] = Field(None, max_length=100)

    @field_validator("team_name", "food_pref", mode="before")
    @classmethod
    def blank_to_none(cls, value):
        if value is None:
            return None
        value = str(value).strip()
        return value or None


class JoinTeamRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    event_id: int = Field(..., ge=1)
    team_code: str = Field(..., min_length=1, max_length=32)
    accommodation_id: Optional[int] = Field(None, ge=1)
    food_pref: Optional[str] = Field(None, max_length=100)


class PaymentInitiateRequest(BaseModel):
    registration_id: int = Field(..., ge=1)


class PaymentVerifyRequest(BaseModel):
    order_ref: str = Field(..., min_length=1, validation_alias=AliasChoices("order_ref", "razorpay_order_id"))
    payment_ref: str = Field(..., min_length=1, validation_alias=AliasChoices("payment_ref", "razorpay_payment_id"))
    signature: str = Field(..., min_length=1, validation_alias=AliasChoices("signature", "razorpay_signature"))


class AttendanceRequest(BaseModel):
    registration_id: int = Field(..., ge=1, validation_alias=AliasChoices("registration_id", "regId"))


# Responses

class AccommodationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str


class TeamMemberInfo(BaseModel):
    id: int
    name: str


class TeamInfo(BaseModel):
    team_id: int
    team_name: str
    team_code: str
    is_team_lead: bool
    current_members: int
    max_members: int
    min_members: int
    team_is_full: bool


class RegistrationResult(BaseModel):
    registration_id: int
    event_id: int
    event_name: str
    event_type: EventTypeEnum
    fee_amount: float
    payment_required: bool
    payment_status: bool
    team_state: Optional[TeamStateEnum] = None
    team_name: Optional[str] = None
    team_id: Optional[int] = None
    team_code: Optional[str] = None
    is_team_lead: bool = False
    current_members: Optional[int] = None
    max_members: int
    min_members: int
    accommodation: Optional[AccommodationResponse] = None
    food_preference: str
    timestamp: Optional[datetime] = None
    resumed: bool = False


class JoinResult(BaseModel):
    registration_id: int
    event_id: int
    event_name: str
    event_type: EventTypeEnum = EventTypeEnum.TEAM
    team_id: int
    team_name: str
    team_code: str
    team_lead: TeamMemberInfo
    is_team_lead: bool = False
    team_members: List[TeamMemberInfo] = Field(default_factory=list)
    current_members: int
    max_members: int
    min_members: int
    team_is_full: bool
    fee_amount: float
    payment_required: bool = False
    payment_status: bool = True
    accommodation: Optional[AccommodationResponse] = None
    food_preference: str
    timestamp: Optional[datetime] = None


class RegistrationStatusResponse(BaseModel):
    is_registered: bool
    registration_id: Optional[int] = None
    event_name: Optional[str] = None
    event_type: Optional[EventTypeEnum] = None
    timestamp: Optional[datetime] = None
    payment_status: Optional[bool] = None
    attendance_status: Optional[AttendanceStatusEnum] = None
    fee_amount: Optional[float] = None
    payment_required: Optional[bool] = None
    team_state: Optional[TeamStateEnum] = None
    pending_team_name: Optional[str] = None
    team_info: Optional[TeamInfo] = None


class OrderHandle(BaseModel):
    order_id: str
    amount: float
    currency: str
    key_id: Optional[str] = None
    registration_id: int
    event_name: str
    user_name: str
    user_email: str


class VerifiedResult(BaseModel):
    registration_id: int
    event_id: int
    event_name: str
    event_type: EventTypeEnum
    amount: float
    payment_id: str
    payment_status: bool = True
    team_state: Optional[TeamStateEnum] = None
    team_info: Optional[TeamInfo] = None
    team_members: List[TeamMemberInfo] = Field(default_factory=list)


class PaymentDetails(BaseModel):
    payment_id: int
    razorpay_order_id: str
    razorpay_payment_id: Optional[str] = None
    amount: float
    status: PaymentStatusEnum
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class PaymentStatusResponse(BaseModel):
    registration_id: int
    event_name: str
    fee_amount: float
    payment_required: bool
    payment_status: bool
    payment_details: Optional[PaymentDetails] = None


class TeamSizeInfo(BaseModel):
    min: int
    max: int


class EventSummary(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    image: Optional[str] = None
    venue: Optional[str] = None
    event_start_time: Optional[datetime] = None
    event_end_time: Optional[datetime] = None
    reg_start_time: Optional[datetime] = None
    reg_end_time: Optional[datetime] = None
    duration_days: Optional[int] = None
    reg_open: bool
    is_registration_full: bool
    fee: float
    whatsapp: Optional[str] = None
    food: bool = False
    team: TeamSizeInfo
    event_type: EventTypeEnum
    team_name_required: bool = False
    status: EventStatusEnum
    registrations_count: int
    max_registrations: Optional[int] = None
    is_registered: Optional[bool] = None


class EventCatalogResponse(BaseModel):
    upcoming: List[EventSummary] = Field(default_factory=list)
    ongoing: List[EventSummary] = Field(default_factory=list)
    past: List[EventSummary] = Field(default_factory=list)


class AdminRegistrationRow(BaseModel):
    registration_id: int
    timestamp: Optional[datetime] = None
    event_id: int
    event_name: str
    student_id: int
    student_name: str
    student_email: str
    student_phone: Optional[str] = None
    batch: Optional[str] = None
    year: Optional[int] = None
    payment_status: bool
    payment_state: Optional[PaymentStatusEnum] = None
    attendance_status: AttendanceStatusEnum
    food_preference: str
    accommodation: Optional[str] = None
    team_state: Optional[TeamStateEnum] = None
    team_id: Optional[int] = None
    team_name: Optional[str] = None
    team_code: Optional[str] = None
    team_lead_name: Optional[str] = None
    team_lead_email: Optional[str] = None


class AttendanceDetails(BaseModel):
    registration_id: int
    user_id: int
    name: str
    email: str
    phone: Optional[str] = None
    department: Optional[str] = None
    event_id: int
    event: str
    team: Optional[str] = None
    food: Optional[str] = None
    payment_status: bool
    present: bool


class AttendanceMarkResult(BaseModel):
    success: bool = True
    registration_id: int
    attendance_status: AttendanceStatusEnum
    already_present: bool = False


class DepartmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    department_name: str


class ExecomYearsResponse(BaseModel):
    years: List[int] = Field(default_factory=list)


class ExecomMemberInfo(BaseModel):
    name: str
    batch: Optional[str] = None
    upload_image: Optional[str] = None
    social_link: Optional[str] = None
    role: str


class ExecomDirectoryResponse(BaseModel):
    academic_year: int
    teams: Dict[str, List[ExecomMemberInfo]] = Field(default_factory=dict)
