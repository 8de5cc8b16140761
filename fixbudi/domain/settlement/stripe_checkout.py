"""
Stripe Checkout Service.

Creates hosted checkout sessions for customers paying in currencies
Paystack does not settle. The session id is the payment reference; the
outcome arrives through the Stripe webhook.

API Docs: https://docs.stripe.com/api/checkout/sessions/create
"""

import logging
from typing import Optional

import httpx

from ...config import COURIER_TIMEOUT_SECONDS, STRIPE_API_URL, STRIPE_SECRET_KEY
from ...errors import UpstreamProviderError
from .paystack import CheckoutSession

logger = logging.getLogger(__name__)

PROVIDER_NAME = "Stripe"


class StripeCheckoutService:
    """Service for Stripe checkout session creation"""

    def __init__(
        self,
        secret_key: Optional[str] = STRIPE_SECRET_KEY,
        base_url: str = STRIPE_API_URL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = COURIER_TIMEOUT_SECONDS,
    ):
        self.secret_key = secret_key
        self.base_url = base_url.rstrip("/")
        self.transport = transport
        self.timeout = timeout

        if not self.secret_key:
            logger.warning("STRIPE_SECRET_KEY not set; international repair payments will fail until configured")

    async def create_checkout_session(
        self,
        email: str,
        amount_minor: int,
        currency: str,
        product_name: str,
        success_url: str,
        cancel_url: str,
        metadata: Optional[dict] = None,
    ) -> CheckoutSession:
        """One-item payment session; Stripe takes form-encoded bodies with bracketed keys"""
        if not self.secret_key:
            raise UpstreamProviderError(PROVIDER_NAME, "create_checkout_session", kind="unauthorized")

        form = {
            "mode": "payment",
            "customer_email": email,
            "success_url": success_url,
            "cancel_url": cancel_url,
            "line_items[0][quantity]": "1",
            "line_items[0][price_data][currency]": currency.lower(),
            "line_items[0][price_data][unit_amount]": str(amount_minor),
            "line_items[0][price_data][product_data][name]": product_name,
        }
        for key, value in (metadata or {}).items():
            form[f"metadata[{key}]"] = str(value)

        try:
            async with httpx.AsyncClient(transport=self.transport, timeout=self.timeout) as client:
                response = await client.post(
                    f"{self.base_url}/checkout/sessions",
                    data=form,
                    headers={"Authorization": f"Bearer {self.secret_key}"},
                )
        except httpx.TimeoutException as e:
            logger.error(f"❌ Stripe checkout session timed out: {e}")
            raise UpstreamProviderError(PROVIDER_NAME, "create_checkout_session", kind="timeout") from e
        except httpx.HTTPError as e:
            logger.error(f"❌ Stripe checkout session failed: {e}")
            raise UpstreamProviderError(PROVIDER_NAME, "create_checkout_session") from e

        if response.status_code >= 400:
            logger.error(f"❌ Stripe returned HTTP {response.status_code}: {response.text[:500]}")
            raise UpstreamProviderError.from_status(PROVIDER_NAME, "create_checkout_session", response.status_code)

        body = response.json()
        if not body.get("id") or not body.get("url"):
            logger.error(f"❌ Stripe returned no checkout URL: {body}")
            raise UpstreamProviderError(PROVIDER_NAME, "create_checkout_session")

        logger.info(f"✅ Stripe checkout session created: {body['id']}")
        return CheckoutSession(reference=body["id"], authorization_url=body["url"])
