"""Settlement repository - Payouts and repair payments"""

from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ...models_payment import Payment, Payout


class SettlementRepository:
    """Repository for payout and payment database operations"""

    @staticmethod
    def get_payout(db: Session, payout_id: int) -> Optional[Payout]:
        return db.query(Payout).filter(Payout.id == payout_id).first()

    @staticmethod
    def get_payout_by_job(db: Session, job_id: int) -> Optional[Payout]:
        return db.query(Payout).filter(Payout.repair_job_id == job_id).first()

    @staticmethod
    def list_payouts(db: Session, status: Optional[str] = None) -> list[Payout]:
        query = db.query(Payout)
        if status:
            query = query.filter(Payout.payout_status == status)
        return query.order_by(Payout.created_at.desc(), Payout.id.desc()).all()

    @staticmethod
    def get_center_payouts(db: Session, center_id: int) -> list[Payout]:
        return (
            db.query(Payout)
            .filter(Payout.repair_center_id == center_id)
            .order_by(Payout.created_at.desc(), Payout.id.desc())
            .all()
        )

    @staticmethod
    def get_center_totals(db: Session, center_id: int) -> list[tuple]:
        """(status, count, gross, commission, net) per payout status"""
        return (
            db.query(
                Payout.payout_status,
                func.count(Payout.id),
                func.coalesce(func.sum(Payout.gross_amount), 0),
                func.coalesce(func.sum(Payout.commission_amount), 0),
                func.coalesce(func.sum(Payout.net_amount), 0),
            )
            .filter(Payout.repair_center_id == center_id)
            .group_by(Payout.payout_status)
            .all()
        )

    @staticmethod
    def create_payout(db: Session, **payout_data) -> Payout:
        payout = Payout(**payout_data)
        db.add(payout)
        db.flush()
        return payout

    @staticmethod
    def create_payment(db: Session, **payment_data) -> Payment:
        payment = Payment(**payment_data)
        db.add(payment)
        db.flush()
        return payment
