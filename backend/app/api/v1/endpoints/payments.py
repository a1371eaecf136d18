"""
Payments API

Violation fees recorded at return time, and their settlement through PayPal.
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from app.core.database import get_db
from app.models.user import User
from app.modules.auth.dependencies import get_current_user, require_librarian, require_reader
from app.schemas.payment import (
    PaymentResponse,
    PaymentRecordBrief,
    PayPalCreateResponse,
    PayPalCaptureRequest,
    PayPalCaptureResponse,
)
from app.services.payment_service import payment_service
from app.utils.pagination import PaginationParams, pagination_params
from app.utils.responses import success_response, parse_id

router = APIRouter()


@router.get("")
async def list_payments(
    params: PaginationParams = Depends(pagination_params),
    is_paid: Optional[bool] = Query(None),
    current_user: User = Depends(require_librarian),
    db: AsyncSession = Depends(get_db)
):
    """All payments, searchable by policy or reader (librarian)"""
    payments, pagination = await payment_service.list_payments(db, params, is_paid)
    return success_response({
        "payments": [PaymentResponse.model_validate(p) for p in payments],
        "pagination": pagination,
    })


@router.get("/my")
async def list_my_payments(
    params: PaginationParams = Depends(pagination_params),
    is_paid: Optional[bool] = Query(None),
    current_user: User = Depends(require_reader),
    db: AsyncSession = Depends(get_db)
):
    payments, pagination = await payment_service.list_mine(db, current_user.id, params, is_paid)
    return success_response({
        "payments": [PaymentResponse.model_validate(p) for p in payments],
        "pagination": pagination,
    })


@router.get("/{payment_id}")
async def get_payment(
    payment_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    payment = await payment_service.get_for_actor(db, parse_id(payment_id, "payment id"), current_user)
    return success_response(PaymentResponse.model_validate(payment))


@router.post("/{payment_id}/paypal/create")
async def create_paypal_order(
    payment_id: int,
    current_user: User = Depends(require_reader),
    db: AsyncSession = Depends(get_db)
):
    """Open a PayPal order for an unpaid violation"""
    order = await payment_service.create_paypal_order(db, parse_id(payment_id, "payment id"), current_user)
    return success_response(PayPalCreateResponse(**order))


@router.post("/{payment_id}/paypal/capture")
async def capture_paypal_order(
    payment_id: int,
    data: PayPalCaptureRequest,
    current_user: User = Depends(require_reader),
    db: AsyncSession = Depends(get_db)
):
    """Capture an approved PayPal order and mark the payment paid"""
    payment, record = await payment_service.capture_paypal_order(
        db, parse_id(payment_id, "payment id"), data.order_id, current_user
    )
    return success_response(
        PayPalCaptureResponse(
            payment=PaymentResponse.model_validate(payment),
            borrow_record=PaymentRecordBrief.model_validate(record),
            paypal_order_id=data.order_id,
        ),
        message="Payment completed successfully",
    )
