"""
Courier and payment webhook endpoints

The signature is checked against the raw body before the payload is parsed;
a request that fails verification never reaches the reconciler.
"""

import json
import logging
from dataclasses import asdict
from typing import Callable

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from ...config import PAYSTACK_SECRET_KEY, STRIPE_WEBHOOK_SECRET
from ...database import get_db
from ...webhook_security import (
    PAYSTACK_SIGNATURE_HEADER,
    STRIPE_SIGNATURE_HEADER,
    verify_paystack_signature,
    verify_stripe_signature,
)
from ..deliveries.couriers import CourierAdapter, get_courier
from .reconciler import WebhookReconciler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


def get_courier_factory() -> Callable[[str], CourierAdapter]:
    return get_courier


def get_paystack_secret() -> str:
    return PAYSTACK_SECRET_KEY


def get_stripe_webhook_secret() -> str:
    return STRIPE_WEBHOOK_SECRET


def get_reconciler(db: Session = Depends(get_db)) -> WebhookReconciler:
    return WebhookReconciler(db)


def _parse_json(body: bytes) -> dict:
    try:
        payload = json.loads(body.decode("utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError):
        logger.error("❌ Invalid JSON payload")
        raise HTTPException(status_code=400, detail="Invalid JSON") from None
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Invalid JSON")
    return payload


@router.post("/couriers/{provider}")
async def handle_courier_webhook(
    provider: str,
    request: Request,
    courier_factory: Callable[[str], CourierAdapter] = Depends(get_courier_factory),
    reconciler: WebhookReconciler = Depends(get_reconciler),
):
    """Status updates from Terminal Africa and SendStack, keyed by the courier's order id"""
    courier = courier_factory(provider)
    body = await request.body()
    courier.verify_signature(body, request.headers)

    try:
        payload = _parse_json(body)
        event = courier.parse_webhook(payload)
        result = reconciler.reconcile_courier_event(courier.name, event)
        return {"received": True, **asdict(result)}

    except HTTPException:
        raise
    except Exception as e:
        reconciler.db.rollback()
        logger.error(f"❌ {courier.display_name} webhook processing error: {str(e)}")
        raise HTTPException(status_code=500, detail="Webhook processing failed")


@router.post("/payments/paystack")
async def handle_paystack_webhook(
    request: Request,
    secret: str = Depends(get_paystack_secret),
    reconciler: WebhookReconciler = Depends(get_reconciler),
):
    body = await request.body()
    verify_paystack_signature(secret, body, request.headers.get(PAYSTACK_SIGNATURE_HEADER))

    try:
        payload = _parse_json(body)
        event_type = payload.get("event")
        logger.info(f"📥 Received Paystack webhook: {event_type}")
        result = reconciler.reconcile_payment_event("paystack", event_type, payload.get("data") or {})
        return {"received": True, **asdict(result)}

    except HTTPException:
        raise
    except Exception as e:
        reconciler.db.rollback()
        logger.error(f"❌ Paystack webhook processing error: {str(e)}")
        raise HTTPException(status_code=500, detail="Webhook processing failed")


@router.post("/payments/stripe")
async def handle_stripe_webhook(
    request: Request,
    secret: str = Depends(get_stripe_webhook_secret),
    reconciler: WebhookReconciler = Depends(get_reconciler),
):
    """Checkout and payment intent events for international card payments"""
    body = await request.body()
    verify_stripe_signature(secret, body, request.headers.get(STRIPE_SIGNATURE_HEADER))

    try:
        payload = _parse_json(body)
        event_type = payload.get("type")
        logger.info(f"📥 Received Stripe webhook: {event_type}")
        data = (payload.get("data") or {}).get("object") or {}
        result = reconciler.reconcile_payment_event("stripe", event_type, data)
        return {"received": True, **asdict(result)}

    except HTTPException:
        raise
    except Exception as e:
        reconciler.db.rollback()
        logger.error(f"❌ Stripe webhook processing error: {str(e)}")
        raise HTTPException(status_code=500, detail="Webhook processing failed")
