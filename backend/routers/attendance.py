from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from attendance_service import attendance_details, mark_present
from database import get_db
from models import User
from schemas import AttendanceDetails, AttendanceMarkResult, AttendanceRequest
from security import require_admin

router = APIRouter()


@router.post("/attendance/scan", response_model=AttendanceDetails)
def scan_attendance(
    payload: AttendanceRequest,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return attendance_details(db, payload.registration_id)


@router.post("/attendance/mark", response_model=AttendanceMarkResult)
def mark_attendance(
    payload: AttendanceRequest,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return mark_present(db, payload.registration_id, admin.id)
