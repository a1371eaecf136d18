"""
Unit Tests for the PayPal client
"""
import json
import pytest
import httpx
from unittest.mock import patch

from app.core.config import settings
from app.core.exceptions import PaymentGatewayError, ValidationError
from app.services.paypal_service import PayPalService, order_amount_usd, order_reference

RealAsyncClient = httpx.AsyncClient


def paypal_api(capture_status: str = "COMPLETED", token_status: int = 200):
    """Route requests to canned PayPal responses and record what was sent"""
    sent = []

    def handler(request: httpx.Request) -> httpx.Response:
        sent.append(request)
        path = request.url.path
        if path == "/v1/oauth2/token":
            if token_status != 200:
                return httpx.Response(token_status, json={"error": "invalid_client"})
            return httpx.Response(200, json={"access_token": "A21AA-token", "expires_in": 32400})
        if path == "/v2/checkout/orders":
            return httpx.Response(201, json={"id": "ORDER-1", "status": "CREATED"})
        if path == "/v2/checkout/orders/ORDER-1" and request.method == "GET":
            return httpx.Response(200, json={
                "id": "ORDER-1",
                "status": "APPROVED",
                "purchase_units": [{"reference_id": "PAYMENT-7", "amount": {"currency_code": "USD", "value": "6.25"}}],
            })
        if path == "/v2/checkout/orders/ORDER-1/capture":
            return httpx.Response(201, json={"id": "ORDER-1", "status": capture_status})
        return httpx.Response(404)

    def client(**kwargs):
        return RealAsyncClient(transport=httpx.MockTransport(handler), **kwargs)

    return client, sent


@pytest.fixture
def configured(monkeypatch):
    monkeypatch.setattr(settings, "PAYPAL_CLIENT_ID", "client-id")
    monkeypatch.setattr(settings, "PAYPAL_CLIENT_SECRET", "client-secret")
    monkeypatch.setattr(settings, "USE_LIVE_EXCHANGE_RATE", False)
    monkeypatch.setattr(settings, "VND_PER_USD_FALLBACK", 24000)


class TestConversion:

    @pytest.mark.asyncio
    async def test_fallback_rate(self, configured):
        assert await PayPalService().vnd_to_usd(150000) == 6.25

    @pytest.mark.asyncio
    async def test_rounds_to_cents(self, configured):
        assert await PayPalService().vnd_to_usd(10000) == 0.42


class TestOrders:

    @pytest.mark.asyncio
    async def test_not_configured(self, monkeypatch):
        monkeypatch.setattr(settings, "PAYPAL_CLIENT_ID", "")

        with pytest.raises(ValidationError) as exc:
            await PayPalService().create_order(1, "LOST_BOOK", 150000)

        assert exc.value.code == "PAYPAL_NOT_CONFIGURED"

    @pytest.mark.asyncio
    async def test_create_order_in_usd(self, configured):
        client, sent = paypal_api()

        with patch("httpx.AsyncClient", side_effect=client):
            order = await PayPalService().create_order(7, "DAMAGED_BOOK", 150000)

        assert order["id"] == "ORDER-1"
        token_request, order_request = sent
        assert token_request.headers["authorization"].startswith("Basic ")
        assert order_request.headers["authorization"] == "Bearer A21AA-token"

        body = json.loads(order_request.content)
        assert body["intent"] == "CAPTURE"
        unit = body["purchase_units"][0]
        assert unit["reference_id"] == "PAYMENT-7"
        assert unit["amount"] == {"currency_code": "USD", "value": "6.25"}
        assert "/my-violations/7?paypal=success" in body["application_context"]["return_url"]

    @pytest.mark.asyncio
    async def test_capture_completed(self, configured):
        client, sent = paypal_api()

        with patch("httpx.AsyncClient", side_effect=client):
            result = await PayPalService().capture_order("ORDER-1")

        assert result["status"] == "COMPLETED"
        assert sent[-1].url.path == "/v2/checkout/orders/ORDER-1/capture"

    @pytest.mark.asyncio
    async def test_capture_not_completed(self, configured):
        client, _ = paypal_api(capture_status="PENDING")

        with patch("httpx.AsyncClient", side_effect=client):
            with pytest.raises(PaymentGatewayError, match="PENDING"):
                await PayPalService().capture_order("ORDER-1")

    @pytest.mark.asyncio
    async def test_rejected_credentials(self, configured):
        client, _ = paypal_api(token_status=401)

        with patch("httpx.AsyncClient", side_effect=client):
            with pytest.raises(PaymentGatewayError, match="authenticate"):
                await PayPalService().capture_order("ORDER-1")

    @pytest.mark.asyncio
    async def test_get_order(self, configured):
        client, sent = paypal_api()

        with patch("httpx.AsyncClient", side_effect=client):
            order = await PayPalService().get_order("ORDER-1")

        assert order_reference(order) == "PAYMENT-7"
        assert order_amount_usd(order) == 6.25
        assert sent[-1].method == "GET"

    @pytest.mark.asyncio
    async def test_unknown_order(self, configured):
        client, _ = paypal_api()

        with patch("httpx.AsyncClient", side_effect=client):
            with pytest.raises(PaymentGatewayError, match="Failed to fetch PayPal order"):
                await PayPalService().get_order("ORDER-404")


class TestOrderFields:

    def test_captured_amount_wins(self):
        order = {"purchase_units": [{
            "reference_id": "PAYMENT-3",
            "amount": {"currency_code": "USD", "value": "9.99"},
            "payments": {"captures": [{"amount": {"currency_code": "USD", "value": "6.25"}}]},
        }]}

        assert order_reference(order) == "PAYMENT-3"
        assert order_amount_usd(order) == 6.25

    def test_other_currency(self):
        order = {"purchase_units": [{"amount": {"currency_code": "EUR", "value": "6.25"}}]}

        assert order_amount_usd(order) is None

    def test_empty_order(self):
        assert order_reference({}) is None
        assert order_amount_usd({}) is None
