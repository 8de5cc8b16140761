"""Bank account repository"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models_payment import BankAccount


class BankAccountRepository:
    """Repository for repair center payout accounts"""

    @staticmethod
    def get_active_account(db: Session, center_id: int) -> Optional[BankAccount]:
        """The payout destination for a center; inactive accounts are kept for history only"""
        return (
            db.query(BankAccount)
            .filter(BankAccount.repair_center_id == center_id, BankAccount.is_active == True)  # noqa: E712
            .first()
        )

    @staticmethod
    def create_account(db: Session, **account_data) -> BankAccount:
        account = BankAccount(**account_data)
        db.add(account)
        db.flush()
        return account
