from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base
from .enums import CashPaymentStatus, DeliveryStatus


class DeliveryRequest(Base):
    """One courier leg (pickup or return) of a repair job"""

    __tablename__ = "delivery_requests"
    __table_args__ = (UniqueConstraint("provider", "provider_order_id", name="uq_delivery_provider_order"),)

    id = Column(Integer, primary_key=True, index=True)
    repair_job_id = Column(Integer, ForeignKey("repair_jobs.id"), nullable=False, index=True)
    delivery_type = Column(String(20), nullable=False)  # pickup, return

    # Courier
    provider = Column(String(50), nullable=False)  # terminal_africa, sendstack
    provider_order_id = Column(String(255), nullable=False, index=True)
    tracking_url = Column(String(500), nullable=True)
    provider_response = Column(JSON, nullable=True)

    # Route
    pickup_address = Column(String(500), nullable=False)
    pickup_contact_name = Column(String(255), nullable=True)
    pickup_contact_phone = Column(String(50), nullable=True)
    delivery_address = Column(String(500), nullable=False)
    delivery_contact_name = Column(String(255), nullable=True)
    delivery_contact_phone = Column(String(50), nullable=True)

    # Money
    estimated_cost = Column(Numeric(12, 2), nullable=True)
    actual_cost = Column(Numeric(12, 2), nullable=True)
    app_delivery_commission = Column(Numeric(12, 2), nullable=True)
    currency = Column(String(10), default="NGN", nullable=False)

    delivery_status = Column(String(20), default=DeliveryStatus.PENDING.value, nullable=False, index=True)
    cash_payment_status = Column(String(30), default=CashPaymentStatus.PENDING.value, nullable=False)
    cash_payment_confirmed_at = Column(DateTime, nullable=True)
    cash_payment_confirmed_by = Column(String(50), nullable=True)  # driver, customer, repair_center

    # Timing
    scheduled_pickup_time = Column(DateTime, nullable=True)
    estimated_delivery_time = Column(DateTime, nullable=True)
    actual_pickup_time = Column(DateTime, nullable=True)
    actual_delivery_time = Column(DateTime, nullable=True)

    # Driver
    driver_name = Column(String(255), nullable=True)
    driver_phone = Column(String(50), nullable=True)
    vehicle_details = Column(String(255), nullable=True)

    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    repair_job = relationship("RepairJob")
    status_history = relationship(
        "DeliveryStatusHistory", back_populates="delivery_request", order_by="DeliveryStatusHistory.id"
    )


class DeliveryStatusHistory(Base):
    """Append-only record of every courier event received for a delivery"""

    __tablename__ = "delivery_status_history"

    id = Column(Integer, primary_key=True, index=True)
    delivery_request_id = Column(Integer, ForeignKey("delivery_requests.id"), nullable=False, index=True)
    status = Column(String(20), nullable=False)
    provider_status = Column(String(50), nullable=True)  # Raw status string from the courier
    location = Column(JSON, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    delivery_request = relationship("DeliveryRequest", back_populates="status_history")


class DeliveryCommission(Base):
    __tablename__ = "delivery_commissions"

    id = Column(Integer, primary_key=True, index=True)
    delivery_request_id = Column(Integer, ForeignKey("delivery_requests.id"), nullable=False, unique=True)
    repair_job_id = Column(Integer, ForeignKey("repair_jobs.id"), nullable=False, index=True)
    delivery_cost = Column(Numeric(12, 2), nullable=False)
    commission_amount = Column(Numeric(12, 2), nullable=False)
    commission_rate = Column(Numeric(5, 4), nullable=False)
    currency = Column(String(10), default="NGN", nullable=False)
    status = Column(String(20), default="pending", nullable=False)  # pending, settled
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
