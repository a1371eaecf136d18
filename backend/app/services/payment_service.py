"""
Payment Service - fee policies and violation payments

Handles:
- Policy CRUD (string-coded, soft deleted)
- Payment listing for librarians and readers
- PayPal checkout: order creation and capture settlement
"""

from datetime import date, datetime
from typing import Optional, List, Tuple, Dict, Any

from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from app.core.logging_config import logger
from app.models.borrow import BorrowRecord
from app.models.payment import Policy, Payment
from app.models.user import User
from app.modules.auth.dependencies import is_staff
from app.schemas.payment import PolicyCreate, PolicyUpdate
from app.services.paypal_service import paypal_service, payment_reference, order_reference, order_amount_usd
from app.utils.pagination import PaginationParams, paginate

# Live exchange rates can drift between order creation and capture
PAYPAL_AMOUNT_TOLERANCE = 0.02


class PolicyService:
    """Service for fee policies"""

    async def list_policies(
        self, db: AsyncSession, params: PaginationParams
    ) -> Tuple[List[Policy], Dict[str, int]]:
        query = select(Policy).where(Policy.is_deleted == False)  # noqa: E712
        if params.search:
            pattern = f"%{params.search}%"
            query = query.where(or_(Policy.id.ilike(pattern), Policy.name.ilike(pattern)))
        return await paginate(db, query.order_by(Policy.id), params)

    async def list_all(self, db: AsyncSession) -> List[Policy]:
        result = await db.execute(
            select(Policy).where(Policy.is_deleted == False).order_by(Policy.id)  # noqa: E712
        )
        return list(result.scalars().all())

    async def get_policy(self, db: AsyncSession, policy_id: str) -> Policy:
        policy = await db.get(Policy, policy_id)
        if not policy or policy.is_deleted:
            raise NotFoundError("Policy not found")
        return policy

    async def create_policy(self, db: AsyncSession, data: PolicyCreate) -> Policy:
        existing = await db.get(Policy, data.id)
        if existing and not existing.is_deleted:
            raise ConflictError(f"Policy '{data.id}' already exists", code="POLICY_EXISTS")

        if existing:
            # Re-creating a soft-deleted code revives it with the new values
            existing.name = data.name
            existing.amount = data.amount
            existing.unit = data.unit
            existing.is_deleted = False
            policy = existing
        else:
            policy = Policy(**data.model_dump())
            db.add(policy)

        await db.commit()
        await db.refresh(policy)
        logger.info(f"[Payments] Created policy {policy.id}")
        return policy

    async def update_policy(self, db: AsyncSession, policy_id: str, data: PolicyUpdate) -> Policy:
        policy = await self.get_policy(db, policy_id)
        for field, value in data.model_dump(exclude_unset=True).items():
            if value is not None:
                setattr(policy, field, value)
        await db.commit()
        await db.refresh(policy)
        return policy

    async def delete_policy(self, db: AsyncSession, policy_id: str) -> None:
        policy = await self.get_policy(db, policy_id)
        policy.is_deleted = True
        await db.commit()
        logger.info(f"[Payments] Soft-deleted policy {policy_id}")


class PaymentService:
    """Service for violation payments"""

    async def _load(self, db: AsyncSession, payment_id: int) -> Optional[Payment]:
        result = await db.execute(
            select(Payment).where(Payment.id == payment_id).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_payment(self, db: AsyncSession, payment_id: int) -> Payment:
        payment = await self._load(db, payment_id)
        if not payment or payment.is_deleted:
            raise NotFoundError("Payment not found")
        return payment

    async def get_for_actor(self, db: AsyncSession, payment_id: int, actor: User) -> Payment:
        payment = await self.get_payment(db, payment_id)
        if not is_staff(actor) and payment.borrow_record.user_id != actor.id:
            raise ForbiddenError("You do not have access to this payment")
        return payment

    async def validate_ownership(self, db: AsyncSession, payment_id: int, user: User) -> Payment:
        """Payment must exist, belong to the user through its loan, and be unpaid"""
        payment = await self.get_payment(db, payment_id)
        if not payment.borrow_record or payment.borrow_record.user_id != user.id:
            raise ValidationError("This payment does not belong to you")
        if payment.is_paid:
            raise ValidationError("This payment has already been paid")
        return payment

    async def list_payments(
        self,
        db: AsyncSession,
        params: PaginationParams,
        is_paid: Optional[bool] = None,
    ) -> Tuple[List[Payment], Dict[str, int]]:
        query = (
            select(Payment)
            .join(Policy, Policy.id == Payment.policy_id)
            .join(BorrowRecord, BorrowRecord.id == Payment.borrow_record_id)
            .join(User, User.id == BorrowRecord.user_id)
            .where(Payment.is_deleted == False)  # noqa: E712
        )
        if is_paid is not None:
            query = query.where(Payment.is_paid == is_paid)
        if params.search:
            pattern = f"%{params.search}%"
            query = query.where(or_(
                Payment.policy_id.ilike(pattern),
                Policy.name.ilike(pattern),
                User.full_name.ilike(pattern),
                User.email.ilike(pattern),
            ))
        return await paginate(db, query.order_by(Payment.created_at.desc(), Payment.id.desc()), params)

    async def list_mine(
        self,
        db: AsyncSession,
        user_id: int,
        params: PaginationParams,
        is_paid: Optional[bool] = None,
    ) -> Tuple[List[Payment], Dict[str, int]]:
        query = (
            select(Payment)
            .join(BorrowRecord, BorrowRecord.id == Payment.borrow_record_id)
            .where(BorrowRecord.user_id == user_id, Payment.is_deleted == False)  # noqa: E712
        )
        if is_paid is not None:
            query = query.where(Payment.is_paid == is_paid)
        return await paginate(db, query.order_by(Payment.created_at.desc(), Payment.id.desc()), params)

    async def create_paypal_order(self, db: AsyncSession, payment_id: int, user: User) -> Dict[str, Any]:
        payment = await self.validate_ownership(db, payment_id, user)
        if not paypal_service.is_configured():
            raise ValidationError("PayPal is not configured", code="PAYPAL_NOT_CONFIGURED")

        order = await paypal_service.create_order(payment.id, payment.policy_id, payment.amount)
        order_id = order.get("id")
        if not order_id:
            raise ValidationError("PayPal did not return an order id")

        logger.info(f"[Payments] PayPal order {order_id} created for payment {payment.id} by user {user.id}")
        return {"order_id": order_id, "client_id": settings.PAYPAL_CLIENT_ID}

    def _check_paypal_order(
        self, order: Dict[str, Any], payment: Payment, expected_usd: float, order_id: str
    ) -> None:
        reference = order_reference(order)
        if reference != payment_reference(payment.id):
            logger.warning(f"[Payments] PayPal order {order_id} references {reference}, not payment {payment.id}")
            raise ValidationError("PayPal order does not belong to this payment", code="PAYPAL_ORDER_MISMATCH")

        paid = order_amount_usd(order)
        if paid is None or paid < expected_usd - max(0.01, expected_usd * PAYPAL_AMOUNT_TOLERANCE):
            logger.warning(f"[Payments] PayPal order {order_id} pays {paid} USD, payment {payment.id} needs {expected_usd}")
            raise ValidationError("PayPal order amount does not match this payment", code="PAYPAL_AMOUNT_MISMATCH")

    async def capture_paypal_order(
        self, db: AsyncSession, payment_id: int, order_id: str, user: User
    ) -> Tuple[Payment, BorrowRecord]:
        """
        Capture the PayPal order, then mark the payment paid in one commit.

        The order must have been created for this payment and for its amount;
        it is checked before capturing and the capture result is checked again.
        """
        payment = await self.validate_ownership(db, payment_id, user)
        expected_usd = await paypal_service.vnd_to_usd(payment.amount)

        order = await paypal_service.get_order(order_id)
        self._check_paypal_order(order, payment, expected_usd, order_id)
        captured = await paypal_service.capture_order(order_id)
        self._check_paypal_order(captured, payment, expected_usd, order_id)

        payment.is_paid = True
        payment.paid_at = datetime.utcnow()
        record = payment.borrow_record
        if record.actual_return_date is None:
            record.actual_return_date = date.today()
        await db.commit()

        logger.info(f"[Payments] Payment {payment_id} settled via PayPal order {order_id}")
        payment = await self.get_payment(db, payment_id)
        return payment, payment.borrow_record


# Singleton instances
policy_service = PolicyService()
payment_service = PaymentService()
