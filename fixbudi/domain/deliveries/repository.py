"""Delivery repository - Database operations for courier legs"""

from typing import Optional

from sqlalchemy.orm import Session

from ...enums import TERMINAL_DELIVERY_STATUSES, DeliveryStatus
from ...models_delivery import DeliveryCommission, DeliveryRequest, DeliveryStatusHistory


class DeliveryRepository:
    """Repository for delivery request database operations"""

    @staticmethod
    def get_delivery(db: Session, delivery_id: int) -> Optional[DeliveryRequest]:
        return db.query(DeliveryRequest).filter(DeliveryRequest.id == delivery_id).first()

    @staticmethod
    def get_by_provider_order(db: Session, provider: str, provider_order_id: str) -> Optional[DeliveryRequest]:
        return (
            db.query(DeliveryRequest)
            .filter(DeliveryRequest.provider == provider, DeliveryRequest.provider_order_id == provider_order_id)
            .first()
        )

    @staticmethod
    def get_active_leg(db: Session, job_id: int, delivery_type: str) -> Optional[DeliveryRequest]:
        """A pickup or return leg that has not reached a terminal status"""
        # Delivered legs also count, the appliance already moved on that leg
        closed = [s.value for s in TERMINAL_DELIVERY_STATUSES if s != DeliveryStatus.DELIVERED]
        return (
            db.query(DeliveryRequest)
            .filter(
                DeliveryRequest.repair_job_id == job_id,
                DeliveryRequest.delivery_type == delivery_type,
                DeliveryRequest.delivery_status.notin_(closed),
            )
            .first()
        )

    @staticmethod
    def get_job_deliveries(db: Session, job_id: int) -> list[DeliveryRequest]:
        return (
            db.query(DeliveryRequest)
            .filter(DeliveryRequest.repair_job_id == job_id)
            .order_by(DeliveryRequest.created_at.desc(), DeliveryRequest.id.desc())
            .all()
        )

    @staticmethod
    def get_status_history(db: Session, delivery_id: int) -> list[DeliveryStatusHistory]:
        return (
            db.query(DeliveryStatusHistory)
            .filter(DeliveryStatusHistory.delivery_request_id == delivery_id)
            .order_by(DeliveryStatusHistory.id.asc())
            .all()
        )

    @staticmethod
    def get_commission(db: Session, delivery_id: int) -> Optional[DeliveryCommission]:
        return db.query(DeliveryCommission).filter(DeliveryCommission.delivery_request_id == delivery_id).first()

    @staticmethod
    def add_history(
        db: Session,
        delivery_id: int,
        status: str,
        provider_status: Optional[str] = None,
        location: Optional[dict] = None,
        notes: Optional[str] = None,
    ) -> DeliveryStatusHistory:
        entry = DeliveryStatusHistory(
            delivery_request_id=delivery_id,
            status=status,
            provider_status=provider_status,
            location=location,
            notes=notes,
        )
        db.add(entry)
        return entry
