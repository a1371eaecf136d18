"""
PayPal Service - Orders v2 client over httpx

Fees are stored in VND; PayPal orders are placed in USD using either a live
exchange rate or the configured fallback rate.
"""

from typing import Optional, Dict, Any

import httpx

from app.core.config import settings
from app.core.exceptions import PaymentGatewayError, ValidationError
from app.core.logging_config import logger


class PayPalService:
    """Thin async client for the PayPal REST API"""

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout or settings.PAYPAL_TIMEOUT

    @property
    def base_url(self) -> str:
        return settings.PAYPAL_BASE_URL.rstrip("/")

    def is_configured(self) -> bool:
        return bool(settings.PAYPAL_CLIENT_ID and settings.PAYPAL_CLIENT_SECRET)

    def _ensure_configured(self):
        if not self.is_configured():
            raise ValidationError("PayPal is not configured", code="PAYPAL_NOT_CONFIGURED")

    async def get_exchange_rate(self) -> float:
        """VND per USD"""
        if not settings.USE_LIVE_EXCHANGE_RATE:
            return settings.VND_PER_USD_FALLBACK

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            try:
                response = await client.get(settings.EXCHANGE_RATE_API_URL)
                response.raise_for_status()
                rate = response.json().get("rates", {}).get("VND")
                if rate:
                    return float(rate)
                logger.warning("[PayPal] Exchange rate response missing VND, using fallback")
            except Exception as e:
                logger.error(f"[PayPal] Failed to fetch exchange rate, using fallback: {e}")
        return settings.VND_PER_USD_FALLBACK

    async def vnd_to_usd(self, amount_vnd: float) -> float:
        rate = await self.get_exchange_rate()
        return round(amount_vnd / rate, 2)

    async def get_access_token(self) -> str:
        """Client-credentials OAuth token"""
        self._ensure_configured()
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            try:
                response = await client.post(
                    f"{self.base_url}/v1/oauth2/token",
                    data={"grant_type": "client_credentials"},
                    auth=(settings.PAYPAL_CLIENT_ID, settings.PAYPAL_CLIENT_SECRET),
                    headers={"Accept": "application/json"},
                )
                response.raise_for_status()
                return response.json()["access_token"]
            except httpx.HTTPStatusError as e:
                logger.error(f"[PayPal] Token request failed: {e.response.status_code} - {e.response.text}")
                raise PaymentGatewayError("Failed to authenticate with PayPal")
            except (httpx.HTTPError, KeyError) as e:
                logger.error(f"[PayPal] Token request error: {e}")
                raise PaymentGatewayError("Failed to authenticate with PayPal")

    async def _orders_request(
        self, method: str, path: str, failure: str, json: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        token = await self.get_access_token()
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            try:
                response = await client.request(
                    method,
                    f"{self.base_url}/v2/checkout/orders{path}",
                    json=json,
                    headers={"Authorization": f"Bearer {token}", "Content-Type": "application/json"},
                )
                response.raise_for_status()
                return response.json()
            except httpx.HTTPStatusError as e:
                logger.error(f"[PayPal] {failure}: {e.response.status_code} - {e.response.text}")
                raise PaymentGatewayError(failure)
            except httpx.HTTPError as e:
                logger.error(f"[PayPal] {failure}: {e}")
                raise PaymentGatewayError(failure)

    async def create_order(self, payment_id: int, policy_id: str, amount_vnd: float) -> Dict[str, Any]:
        """Create a CAPTURE order for a fee. Returns the PayPal order JSON."""
        self._ensure_configured()
        amount_usd = await self.vnd_to_usd(amount_vnd)
        if amount_usd <= 0:
            raise ValidationError("Payment amount is too small to charge")

        order = {
            "intent": "CAPTURE",
            "purchase_units": [{
                "reference_id": payment_reference(payment_id),
                "description": f"Payment for violation: {policy_id}",
                "amount": {"currency_code": "USD", "value": f"{amount_usd:.2f}"},
            }],
            "application_context": {
                "brand_name": settings.PAYPAL_BRAND_NAME,
                "landing_page": "NO_PREFERENCE",
                "user_action": "PAY_NOW",
                "return_url": settings.get_frontend_url(f"/my-violations/{payment_id}?paypal=success"),
                "cancel_url": settings.get_frontend_url(f"/my-violations/{payment_id}?paypal=cancel"),
            },
        }

        result = await self._orders_request("POST", "", "Failed to create PayPal order", json=order)
        logger.info(f"[PayPal] Created order {result.get('id')} for payment {payment_id} ({amount_usd} USD)")
        return result

    async def get_order(self, order_id: str) -> Dict[str, Any]:
        """Order details, used to check what an order pays for before capturing it"""
        self._ensure_configured()
        return await self._orders_request("GET", f"/{order_id}", "Failed to fetch PayPal order")

    async def capture_order(self, order_id: str) -> Dict[str, Any]:
        """Capture an approved order. The capture must come back COMPLETED."""
        self._ensure_configured()
        result = await self._orders_request("POST", f"/{order_id}/capture", "Failed to capture PayPal order")

        if result.get("status") != "COMPLETED":
            logger.warning(f"[PayPal] Order {order_id} capture status {result.get('status')}")
            raise PaymentGatewayError(f"Payment not completed (status: {result.get('status')})")

        logger.info(f"[PayPal] Captured order {order_id}")
        return result


def payment_reference(payment_id: int) -> str:
    return f"PAYMENT-{payment_id}"


def order_reference(order: Dict[str, Any]) -> Optional[str]:
    units = order.get("purchase_units") or [{}]
    return units[0].get("reference_id")


def order_amount_usd(order: Dict[str, Any]) -> Optional[float]:
    """USD value of an order, or of its first capture once captured"""
    unit = (order.get("purchase_units") or [{}])[0]
    captures = (unit.get("payments") or {}).get("captures") or []
    amount = captures[0].get("amount") if captures else unit.get("amount")
    if not amount or amount.get("currency_code") != "USD":
        return None
    try:
        return float(amount.get("value"))
    except (TypeError, ValueError):
        return None


# Singleton instance
paypal_service = PayPalService()
