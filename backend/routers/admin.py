import io
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from catalog_service import export_to_csv, export_to_xlsx, registration_rows
from database import get_db
from models import User
from schemas import AdminRegistrationRow
from security import require_admin

router = APIRouter()
logger = logging.getLogger(__name__)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@router.get("/admin/registrations", response_model=List[AdminRegistrationRow])
def admin_registrations(
    event_id: Optional[int] = Query(None, ge=1),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return registration_rows(db, event_id=event_id)


@router.get("/admin/registrations/export")
def export_registrations(
    format: str = Query("csv", pattern="^(csv|xlsx)$"),
    event_id: Optional[int] = Query(None, ge=1),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    rows = registration_rows(db, event_id=event_id)
    suffix = f"_event_{event_id}" if event_id else ""
    logger.info("Admin %s exported %s registrations as %s", admin.id, len(rows), format)
    if format == "xlsx":
        content = export_to_xlsx(rows)
        filename = f"registrations{suffix}.xlsx"
        media_type = XLSX_MEDIA_TYPE
    else:
        content = export_to_csv(rows)
        filename = f"registrations{suffix}.csv"
        media_type = "text/csv"
    return StreamingResponse(io.BytesIO(content), media_type=media_type, headers={"Content-Disposition": f"attachment; filename={filename}"})
