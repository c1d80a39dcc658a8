from fastapi import APIRouter, BackgroundTasks, Depends, Response, status
from sqlalchemy.orm import Session

from database import get_db, get_session_factory
from models import User
from notifications import dispatch_notices
from registration_service import join_team, register, registration_status
from schemas import (
    JoinResult,
    JoinTeamRequest,
    RegistrationRequest,
    RegistrationResult,
    RegistrationStatusResponse,
)
from security import require_user

router = APIRouter()


@router.post("/registrations", response_model=RegistrationResult, status_code=status.HTTP_201_CREATED)
def create_registration(
    payload: RegistrationRequest,
    response: Response,
    background_tasks: BackgroundTasks,
    user: User = Depends(require_user),
    session_factory=Depends(get_session_factory),
):
    result, notices = register(
        session_factory,
        user_id=user.id,
        user_name=user.name,
        event_id=payload.event_id,
        team_name=payload.team_name,
        accommodation_id=payload.accommodation_id,
        food_pref=payload.food_pref,
    )
    if result.resumed:
        response.status_code = status.HTTP_200_OK
    if notices:
        background_tasks.add_task(dispatch_notices, notices)
    return result


@router.post("/registrations/join-team", response_model=JoinResult, status_code=status.HTTP_201_CREATED)
def join_team_by_code(
    payload: JoinTeamRequest,
    background_tasks: BackgroundTasks,
    user: User = Depends(require_user),
    session_factory=Depends(get_session_factory),
):
    result, notices = join_team(
        session_factory,
        user_id=user.id,
        user_name=user.name,
        event_id=payload.event_id,
        team_code=payload.team_code,
        accommodation_id=payload.accommodation_id,
        food_pref=payload.food_pref,
    )
    if notices:
        background_tasks.add_task(dispatch_notices, notices)
    return result


@router.get("/registrations/status/{event_id}", response_model=RegistrationStatusResponse, response_model_exclude_none=True)
def get_registration_status(
    event_id: int,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    return registration_status(db, user.id, event_id)
