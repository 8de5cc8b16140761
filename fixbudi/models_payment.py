from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, Numeric, String, Text, text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base
from .enums import PaymentStatus, PayoutStatus


class Payment(Base):
    """Customer payment for a repair job, settled through a checkout provider"""

    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    repair_job_id = Column(Integer, ForeignKey("repair_jobs.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    provider = Column(String(20), nullable=False)  # paystack, stripe
    provider_reference = Column(String(255), unique=True, index=True, nullable=False)  # Checkout session / transaction reference
    transaction_id = Column(String(255), nullable=True, index=True)  # Payment intent / provider transaction id
    checkout_url = Column(String(500), nullable=True)

    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(10), default="NGN", nullable=False)
    payment_status = Column(String(20), default=PaymentStatus.PENDING.value, nullable=False)

    payment_date = Column(DateTime, nullable=True)  # First successful confirmation
    webhook_received_at = Column(DateTime, nullable=True)
    failure_reason = Column(Text, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    repair_job = relationship("RepairJob")


class BankAccount(Base):
    """Payout destination for a repair center"""

    __tablename__ = "bank_accounts"

    id = Column(Integer, primary_key=True, index=True)
    repair_center_id = Column(Integer, ForeignKey("repair_centers.id"), nullable=False, index=True)

    bank_name = Column(String(255), nullable=False)
    account_number = Column(String(500), nullable=False)  # Fernet token when an encryption key is configured
    account_number_last4 = Column(String(4), nullable=False)
    account_name = Column(String(255), nullable=False)

    whitelisted_at = Column(DateTime, nullable=True)
    last_updated_at = Column(DateTime, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    repair_center = relationship("RepairCenter")

    # At most one active payout account per center, enforced at write time
    __table_args__ = (
        Index(
            "uq_bank_accounts_active_center",
            "repair_center_id",
            unique=True,
            sqlite_where=text("is_active = 1"),
            postgresql_where=text("is_active"),
        ),
    )

    @property
    def masked_account_number(self) -> str:
        return f"****{self.account_number_last4}"


class Payout(Base):
    """Settlement owed to a repair center for one completed job"""

    __tablename__ = "payouts"

    id = Column(Integer, primary_key=True, index=True)
    repair_center_id = Column(Integer, ForeignKey("repair_centers.id"), nullable=False, index=True)
    repair_job_id = Column(Integer, ForeignKey("repair_jobs.id"), nullable=False, unique=True)
    payment_id = Column(Integer, ForeignKey("payments.id"), nullable=True)

    # Amounts
    gross_amount = Column(Numeric(12, 2), nullable=False)
    commission_amount = Column(Numeric(12, 2), nullable=False)
    net_amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(10), default="NGN", nullable=False)

    payout_status = Column(String(20), default=PayoutStatus.PENDING.value, nullable=False, index=True)

    # Payout method
    payout_method = Column(String(50), nullable=True)  # bank_transfer, etc.
    payout_reference = Column(String(255), nullable=True)  # External payout reference
    payout_date = Column(DateTime, nullable=True)
    settlement_period = Column(String(10), nullable=True)  # ISO year-week, e.g. 2024-W07
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    repair_center = relationship("RepairCenter")
    repair_job = relationship("RepairJob")
    payment = relationship("Payment")
