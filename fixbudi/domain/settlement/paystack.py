"""
Paystack Integration Service.

Initializes hosted checkout transactions for repair payments. Payment
outcomes arrive asynchronously through the Paystack webhook.

API Docs: https://paystack.com/docs/api/transaction/
"""

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from ...config import COURIER_TIMEOUT_SECONDS, PAYSTACK_API_URL, PAYSTACK_SECRET_KEY
from ...errors import UpstreamProviderError

logger = logging.getLogger(__name__)

PROVIDER_NAME = "Paystack"


@dataclass
class CheckoutSession:
    reference: str
    authorization_url: str
    access_code: Optional[str] = None


class PaystackService:
    """Service for Paystack transaction initialization"""

    def __init__(
        self,
        secret_key: Optional[str] = PAYSTACK_SECRET_KEY,
        base_url: str = PAYSTACK_API_URL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = COURIER_TIMEOUT_SECONDS,
    ):
        self.secret_key = secret_key
        self.base_url = base_url.rstrip("/")
        self.transport = transport
        self.timeout = timeout

        if not self.secret_key:
            logger.warning("PAYSTACK_SECRET_KEY not set; repair payments will fail until configured")

    async def initialize_transaction(
        self,
        email: str,
        amount_minor: int,
        reference: str,
        currency: str,
        callback_url: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> CheckoutSession:
        """Create a hosted checkout; amount is in the currency's lowest unit (kobo)"""
        if not self.secret_key:
            raise UpstreamProviderError(PROVIDER_NAME, "initialize_transaction", kind="unauthorized")

        payload = {
            "email": email,
            "amount": amount_minor,
            "reference": reference,
            "currency": currency,
            "metadata": metadata or {},
        }
        if callback_url:
            payload["callback_url"] = callback_url

        try:
            async with httpx.AsyncClient(transport=self.transport, timeout=self.timeout) as client:
                response = await client.post(
                    f"{self.base_url}/transaction/initialize",
                    json=payload,
                    headers={"Authorization": f"Bearer {self.secret_key}"},
                )
        except httpx.TimeoutException as e:
            logger.error(f"❌ Paystack initialize timed out for {reference}: {e}")
            raise UpstreamProviderError(PROVIDER_NAME, "initialize_transaction", kind="timeout") from e
        except httpx.HTTPError as e:
            logger.error(f"❌ Paystack initialize failed for {reference}: {e}")
            raise UpstreamProviderError(PROVIDER_NAME, "initialize_transaction") from e

        if response.status_code >= 400:
            logger.error(
                f"❌ Paystack initialize returned HTTP {response.status_code} for {reference}: {response.text[:500]}"
            )
            raise UpstreamProviderError.from_status(PROVIDER_NAME, "initialize_transaction", response.status_code)

        body = response.json()
        data = body.get("data") or {}
        if not body.get("status") or not data.get("authorization_url"):
            logger.error(f"❌ Paystack initialize returned no checkout URL for {reference}: {body}")
            raise UpstreamProviderError(PROVIDER_NAME, "initialize_transaction")

        logger.info(f"✅ Paystack checkout initialized: {data.get('reference', reference)}")
        return CheckoutSession(
            reference=data.get("reference", reference),
            authorization_url=data["authorization_url"],
            access_code=data.get("access_code"),
        )
