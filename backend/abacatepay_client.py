"""
AbacatePay client singleton for PIX charges.

Endpoints used:
    POST /pixQrCode/create    — new PIX QR code (brCode + base64 PNG)
    GET  /pixQrCode/check     — current status: PENDING | PAID | EXPIRED
    POST /pixQrCode/simulate  — mark a dev-mode charge as paid

Every response is an envelope {"data": {...}, "error": null | "..."}; the
client returns `data` and raises PaymentProviderError otherwise.
"""
import logging
from typing import Optional

import httpx

from config import settings
from domain.errors import PaymentProviderError

logger = logging.getLogger(__name__)


class AbacatePayClient:
    """Singleton AbacatePay API client."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(AbacatePayClient, cls).__new__(cls)
            cls._instance._transport = None
        return cls._instance

    @property
    def configured(self) -> bool:
        return bool(settings.abacatepay_api_key)

    def use_transport(self, transport: Optional[httpx.AsyncBaseTransport]) -> None:
        """Route requests through `transport` (httpx.MockTransport in tests)."""
        self._transport = transport

    def _headers(self) -> dict:
        if not settings.abacatepay_api_key:
            logger.error("ABACATEPAY_API_KEY is not configured!")
            raise PaymentProviderError("Payment provider not configured")
        return {
            "Authorization": f"Bearer {settings.abacatepay_api_key}",
            "Accept": "application/json",
        }

    async def _request(self, method: str, path: str, **kwargs) -> dict:
        headers = self._headers()
        try:
            async with httpx.AsyncClient(
                base_url=settings.abacatepay_api_url,
                timeout=settings.abacatepay_timeout_seconds,
                transport=self._transport,
            ) as client:
                response = await client.request(method, path, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"AbacatePay {method} {path} failed: {e}")
            raise PaymentProviderError("Payment provider unreachable")

        if response.is_error:
            logger.error(
                f"AbacatePay API error on {path}: status={response.status_code} body={response.text[:500]}"
            )
            raise PaymentProviderError(
                "Payment provider rejected the request",
                details={"status": response.status_code},
            )

        try:
            body = response.json()
        except ValueError:
            logger.error(f"AbacatePay returned non-JSON body on {path}")
            raise PaymentProviderError("Invalid response from payment provider")

        if not isinstance(body, dict):
            raise PaymentProviderError("Invalid response from payment provider")

        if body.get("error"):
            logger.error(f"AbacatePay error payload on {path}: {body['error']}")
            raise PaymentProviderError(
                "Payment provider returned an error",
                details={"provider_error": body["error"]},
            )
        return body.get("data") or {}

    async def create_pix_qr_code(
        self,
        *,
        amount_cents: int,
        description: str,
        expires_in: Optional[int] = None,
        customer: Optional[dict] = None,
        metadata: Optional[dict] = None,
        return_url: Optional[str] = None,
        completion_url: Optional[str] = None,
    ) -> dict:
        """
        Create a PIX QR code.

        Args:
            amount_cents: Charge amount in centavos
            description: Shown to the payer in their banking app (max 140 chars)
            expires_in: Seconds until the QR code expires
            customer: {name, cellphone, email, taxId}; all four are required by AbacatePay
            metadata: Free-form string map echoed back in webhooks

        Returns:
            dict: {id, amount, status, devMode, brCode, brCodeBase64, expiresAt, ...}
        """
        payload = {
            "amount": amount_cents,
            "description": description[:140],
            "returnUrl": return_url or settings.webhook_url,
            "completionUrl": completion_url or settings.webhook_url,
        }
        if expires_in:
            payload["expiresIn"] = expires_in
        if customer:
            payload["customer"] = customer
        if metadata:
            payload["metadata"] = {k: str(v) for k, v in metadata.items()}

        data = await self._request("POST", "/pixQrCode/create", json=payload)
        if not data.get("id") or not data.get("brCode"):
            raise PaymentProviderError("Payment provider response is missing the PIX code")

        logger.info(f"  💳 PIX QR code created: {data['id']} ({amount_cents} centavos)")
        return data

    async def check_pix_status(self, pix_id: str) -> dict:
        """Return {id, status, amount} for a PIX QR code."""
        return await self._request("GET", "/pixQrCode/check", params={"id": pix_id})

    async def simulate_pix_payment(self, pix_id: str) -> dict:
        """Dev mode only: AbacatePay marks the charge as PAID."""
        data = await self._request("POST", "/pixQrCode/simulate", json={"id": pix_id})
        logger.info(f"  🎮 Simulated PIX payment: {pix_id}")
        return data


# Global client instance
abacatepay_client = AbacatePayClient()
