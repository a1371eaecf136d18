from pydantic import BaseModel, Field
from typing import Optional
from datetime import date, datetime

from app.models.payment import PolicyUnit
from app.schemas.auth import UserBrief


class PolicyCreate(BaseModel):
    id: str = Field(..., min_length=1, max_length=50, pattern=r"^[A-Z0-9_]+$")
    name: str = Field(..., min_length=1, max_length=255)
    amount: float = Field(..., ge=0)
    unit: PolicyUnit = PolicyUnit.FIXED


class PolicyUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    amount: Optional[float] = Field(None, ge=0)
    unit: Optional[PolicyUnit] = None


class PolicyResponse(BaseModel):
    id: str
    name: str
    amount: float
    unit: PolicyUnit
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PaymentRecordBrief(BaseModel):
    id: int
    user_id: int
    borrow_date: date
    return_date: date
    actual_return_date: Optional[date] = None
    user: Optional[UserBrief] = None

    class Config:
        from_attributes = True


class PaymentResponse(BaseModel):
    id: int
    policy_id: str
    borrow_record_id: int
    amount: float
    is_paid: bool
    paid_at: Optional[datetime] = None
    due_date: Optional[date] = None
    created_at: datetime
    policy: Optional[PolicyResponse] = None
    borrow_record: Optional[PaymentRecordBrief] = None

    class Config:
        from_attributes = True


class PayPalCreateResponse(BaseModel):
    order_id: str
    client_id: str


class PayPalCaptureRequest(BaseModel):
    order_id: str = Field(..., min_length=1)


class PayPalCaptureResponse(BaseModel):
    payment: PaymentResponse
    borrow_record: PaymentRecordBrief
    paypal_order_id: str
