from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy.orm import Session

from database import get_db, get_session_factory
from models import User
from notifications import dispatch_notices
from payment_gateway import get_payment_gateway
from payment_service import initiate, payment_status, verify
from schemas import (
    OrderHandle,
    PaymentInitiateRequest,
    PaymentStatusResponse,
    PaymentVerifyRequest,
    VerifiedResult,
)
from security import require_user

router = APIRouter()


@router.post("/payment/initiate", response_model=OrderHandle)
def initiate_payment(
    payload: PaymentInitiateRequest,
    user: User = Depends(require_user),
    session_factory=Depends(get_session_factory),
    gateway=Depends(get_payment_gateway),
):
    return initiate(session_factory, gateway, user.id, payload.registration_id)


@router.post("/payment/verify", response_model=VerifiedResult)
def verify_payment(
    payload: PaymentVerifyRequest,
    background_tasks: BackgroundTasks,
    user: User = Depends(require_user),
    session_factory=Depends(get_session_factory),
    gateway=Depends(get_payment_gateway),
):
    result, notices = verify(
        session_factory,
        gateway,
        user.id,
        order_ref=payload.order_ref,
        payment_ref=payload.payment_ref,
        signature=payload.signature,
    )
    if notices:
        background_tasks.add_task(dispatch_notices, notices)
    return result


@router.get("/payment/status/{registration_id}", response_model=PaymentStatusResponse)
def get_payment_status(
    registration_id: int,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    return payment_status(db, user.id, registration_id)
