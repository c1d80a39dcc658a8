from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from catalog_service import get_event, list_accommodations, list_events
from database import get_db
from models import User
from schemas import AccommodationResponse, EventCatalogResponse, EventSummary
from security import get_optional_user

router = APIRouter()


@router.get("/events", response_model=EventCatalogResponse)
def events_catalog(
    user: Optional[User] = Depends(get_optional_user),
    db: Session = Depends(get_db),
):
    return list_events(db, user_id=user.id if user else None)


@router.get("/events/{event_id}", response_model=EventSummary)
def event_detail(
    event_id: int,
    user: Optional[User] = Depends(get_optional_user),
    db: Session = Depends(get_db),
):
    return get_event(db, event_id, user_id=user.id if user else None)


@router.get("/accommodations", response_model=List[AccommodationResponse])
def accommodations(db: Session = Depends(get_db)):
    return list_accommodations(db)
