"""
API Tests for fee policies, payments and PayPal checkout
"""
import pytest
from datetime import date, timedelta
from unittest.mock import patch, AsyncMock, MagicMock
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import PaymentGatewayError
from app.models.borrow import BorrowRecord, BorrowStatus
from app.models.payment import Payment
from app.models.user import User


@pytest.fixture
def payment_factory(db_session: AsyncSession, policies):
    """Unpaid violation on a fresh loan of the given reader"""
    async def create(reader: User, policy_id: str = "DAMAGED_BOOK", amount: float = 150000, returned: bool = True) -> Payment:
        record = BorrowRecord(
            user_id=reader.id,
            borrow_date=date.today() - timedelta(days=10),
            return_date=date.today() - timedelta(days=3),
            actual_return_date=date.today() if returned else None,
            status=BorrowStatus.RETURNED if returned else BorrowStatus.BORROWED,
        )
        db_session.add(record)
        await db_session.flush()
        payment = Payment(
            policy_id=policy_id,
            borrow_record_id=record.id,
            amount=amount,
            is_paid=False,
            due_date=date.today() + timedelta(days=3),
        )
        db_session.add(payment)
        await db_session.commit()
        await db_session.refresh(payment)
        return payment
    return create


def paypal_order(reference: str, value: str = "6.25", captured: bool = False) -> dict:
    """PayPal order JSON as returned by GET /orders/{id} or by the capture call"""
    amount = {"currency_code": "USD", "value": value}
    unit = {"reference_id": reference}
    if captured:
        unit["payments"] = {"captures": [{"id": "CAPTURE-1", "status": "COMPLETED", "amount": amount}]}
    else:
        unit["amount"] = amount
    return {"id": "ORDER-123", "status": "COMPLETED" if captured else "APPROVED", "purchase_units": [unit]}


def mock_paypal(configured: bool = True, payment_id: int = 0, value: str = "6.25") -> MagicMock:
    reference = f"PAYMENT-{payment_id}"
    paypal = MagicMock()
    paypal.is_configured.return_value = configured
    paypal.vnd_to_usd = AsyncMock(return_value=6.25)
    paypal.create_order = AsyncMock(return_value={"id": "ORDER-123", "status": "CREATED"})
    paypal.get_order = AsyncMock(return_value=paypal_order(reference, value))
    paypal.capture_order = AsyncMock(return_value=paypal_order(reference, value, captured=True))
    return paypal


class TestPolicies:
    """/api/v1/policies"""

    @pytest.mark.asyncio
    async def test_seeded_policies_listed(self, client: AsyncClient, reader_headers: dict, policies):
        response = await client.get("/api/v1/policies/all", headers=reader_headers)

        ids = [p["id"] for p in response.json()["data"]["policies"]]
        assert ids == sorted(["LOST_BOOK", "DAMAGED_BOOK", "WORN_BOOK", "LATE_RETURN", "LATE_PAYMENT"])

    @pytest.mark.asyncio
    async def test_create_update_delete(self, client: AsyncClient, librarian_headers: dict):
        created = await client.post(
            "/api/v1/policies",
            headers=librarian_headers,
            json={"id": "LOST_CARD", "name": "Lost library card", "amount": 20000},
        )
        assert created.status_code == 201
        assert created.json()["data"]["unit"] == "FIXED"

        updated = await client.put(
            "/api/v1/policies/LOST_CARD",
            headers=librarian_headers,
            json={"amount": 25000},
        )
        assert updated.json()["data"]["amount"] == 25000

        deleted = await client.delete("/api/v1/policies/LOST_CARD", headers=librarian_headers)
        assert deleted.status_code == 200

        missing = await client.get("/api/v1/policies/LOST_CARD", headers=librarian_headers)
        assert missing.status_code == 404

    @pytest.mark.asyncio
    async def test_duplicate_policy(self, client: AsyncClient, librarian_headers: dict, policies):
        response = await client.post(
            "/api/v1/policies",
            headers=librarian_headers,
            json={"id": "LOST_BOOK", "name": "Lost", "amount": 100},
        )

        assert response.status_code == 409
        assert response.json()["code"] == "POLICY_EXISTS"

    @pytest.mark.asyncio
    async def test_policy_code_format(self, client: AsyncClient, librarian_headers: dict):
        response = await client.post(
            "/api/v1/policies",
            headers=librarian_headers,
            json={"id": "lost book", "name": "Lost", "amount": 100},
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_reader_cannot_manage(self, client: AsyncClient, reader_headers: dict):
        response = await client.post(
            "/api/v1/policies",
            headers=reader_headers,
            json={"id": "NEW_FEE", "name": "New fee", "amount": 100},
        )

        assert response.status_code == 403


class TestPayments:
    """/api/v1/payments"""

    @pytest.mark.asyncio
    async def test_reader_sees_own_payments(
        self, client: AsyncClient, reader_headers: dict, reader_user: User, other_reader: User, payment_factory
    ):
        mine = await payment_factory(reader_user)
        await payment_factory(other_reader)

        response = await client.get("/api/v1/payments/my", headers=reader_headers)

        assert [p["id"] for p in response.json()["data"]["payments"]] == [mine.id]

    @pytest.mark.asyncio
    async def test_librarian_filters_and_searches(
        self, client: AsyncClient, librarian_headers: dict, reader_user: User, payment_factory
    ):
        await payment_factory(reader_user, policy_id="WORN_BOOK", amount=75000)
        await payment_factory(reader_user, policy_id="LATE_RETURN", amount=20000)

        response = await client.get(
            "/api/v1/payments",
            headers=librarian_headers,
            params={"search": "worn", "is_paid": "false"},
        )

        payments = response.json()["data"]["payments"]
        assert [p["policy_id"] for p in payments] == ["WORN_BOOK"]
        assert payments[0]["borrow_record"]["user"]["id"] == reader_user.id

    @pytest.mark.asyncio
    async def test_other_reader_cannot_view(
        self, client: AsyncClient, other_reader_headers: dict, reader_user: User, payment_factory
    ):
        payment = await payment_factory(reader_user)

        response = await client.get(f"/api/v1/payments/{payment.id}", headers=other_reader_headers)

        assert response.status_code == 403


class TestPayPal:
    """PayPal order creation and capture"""

    @pytest.mark.asyncio
    async def test_create_order(
        self, client: AsyncClient, reader_headers: dict, reader_user: User, payment_factory, monkeypatch
    ):
        from app.core.config import settings
        monkeypatch.setattr(settings, "PAYPAL_CLIENT_ID", "test-client-id")
        payment = await payment_factory(reader_user)
        paypal = mock_paypal()

        with patch("app.services.payment_service.paypal_service", paypal):
            response = await client.post(f"/api/v1/payments/{payment.id}/paypal/create", headers=reader_headers)

        assert response.status_code == 200
        assert response.json()["data"] == {"order_id": "ORDER-123", "client_id": "test-client-id"}
        paypal.create_order.assert_awaited_once_with(payment.id, "DAMAGED_BOOK", 150000)

    @pytest.mark.asyncio
    async def test_not_configured(self, client: AsyncClient, reader_headers: dict, reader_user: User, payment_factory):
        payment = await payment_factory(reader_user)

        with patch("app.services.payment_service.paypal_service", mock_paypal(configured=False)):
            response = await client.post(f"/api/v1/payments/{payment.id}/paypal/create", headers=reader_headers)

        assert response.status_code == 400
        assert response.json()["code"] == "PAYPAL_NOT_CONFIGURED"

    @pytest.mark.asyncio
    async def test_someone_elses_payment(
        self, client: AsyncClient, other_reader_headers: dict, reader_user: User, payment_factory
    ):
        payment = await payment_factory(reader_user)

        with patch("app.services.payment_service.paypal_service", mock_paypal()):
            response = await client.post(f"/api/v1/payments/{payment.id}/paypal/create", headers=other_reader_headers)

        assert response.status_code == 400
        assert response.json()["error"] == "This payment does not belong to you"

    @pytest.mark.asyncio
    async def test_capture_marks_paid(self, client: AsyncClient, reader_headers: dict, reader_user: User, payment_factory):
        payment = await payment_factory(reader_user, returned=False)
        paypal = mock_paypal(payment_id=payment.id)

        with patch("app.services.payment_service.paypal_service", paypal):
            response = await client.post(
                f"/api/v1/payments/{payment.id}/paypal/capture",
                headers=reader_headers,
                json={"order_id": "ORDER-123"},
            )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["payment"]["is_paid"] is True
        assert data["payment"]["paid_at"] is not None
        assert data["borrow_record"]["actual_return_date"] == date.today().isoformat()
        assert data["paypal_order_id"] == "ORDER-123"
        paypal.get_order.assert_awaited_once_with("ORDER-123")
        paypal.capture_order.assert_awaited_once_with("ORDER-123")

        again = await client.post(
            f"/api/v1/payments/{payment.id}/paypal/capture",
            headers=reader_headers,
            json={"order_id": "ORDER-123"},
        )
        assert again.status_code == 400
        assert again.json()["error"] == "This payment has already been paid"

    @pytest.mark.asyncio
    async def test_capture_failure_leaves_payment_unpaid(
        self, client: AsyncClient, reader_headers: dict, reader_user: User, payment_factory
    ):
        payment = await payment_factory(reader_user)
        paypal = mock_paypal(payment_id=payment.id)
        paypal.capture_order.side_effect = PaymentGatewayError("Payment not completed (status: DECLINED)")

        with patch("app.services.payment_service.paypal_service", paypal):
            response = await client.post(
                f"/api/v1/payments/{payment.id}/paypal/capture",
                headers=reader_headers,
                json={"order_id": "ORDER-123"},
            )

        assert response.status_code == 400
        assert response.json()["code"] == "PAYMENT_GATEWAY_ERROR"

        fetched = await client.get(f"/api/v1/payments/{payment.id}", headers=reader_headers)
        assert fetched.json()["data"]["is_paid"] is False

    @pytest.mark.asyncio
    async def test_capture_rejects_order_for_another_payment(
        self, client: AsyncClient, reader_headers: dict, reader_user: User, payment_factory
    ):
        cheap = await payment_factory(reader_user, policy_id="WORN_BOOK", amount=10000)
        expensive = await payment_factory(reader_user, policy_id="LOST_BOOK", amount=300000)
        paypal = mock_paypal(payment_id=cheap.id, value="0.42")

        with patch("app.services.payment_service.paypal_service", paypal):
            response = await client.post(
                f"/api/v1/payments/{expensive.id}/paypal/capture",
                headers=reader_headers,
                json={"order_id": "ORDER-123"},
            )

        assert response.status_code == 400
        assert response.json()["code"] == "PAYPAL_ORDER_MISMATCH"
        paypal.capture_order.assert_not_awaited()

        fetched = await client.get(f"/api/v1/payments/{expensive.id}", headers=reader_headers)
        assert fetched.json()["data"]["is_paid"] is False

    @pytest.mark.asyncio
    async def test_capture_rejects_short_amount(
        self, client: AsyncClient, reader_headers: dict, reader_user: User, payment_factory
    ):
        payment = await payment_factory(reader_user)
        paypal = mock_paypal(payment_id=payment.id, value="0.42")

        with patch("app.services.payment_service.paypal_service", paypal):
            response = await client.post(
                f"/api/v1/payments/{payment.id}/paypal/capture",
                headers=reader_headers,
                json={"order_id": "ORDER-123"},
            )

        assert response.status_code == 400
        assert response.json()["code"] == "PAYPAL_AMOUNT_MISMATCH"
        paypal.capture_order.assert_not_awaited()
