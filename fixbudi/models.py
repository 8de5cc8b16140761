from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base
from .enums import JobStatus


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    external_uid = Column(String(255), unique=True, index=True, nullable=False)  # Subject from the auth provider
    email = Column(String(255), unique=True, index=True, nullable=False)
    full_name = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    roles = relationship("UserRole", back_populates="user")


class UserRole(Base):
    __tablename__ = "user_roles"
    __table_args__ = (UniqueConstraint("user_id", "role", name="uq_user_roles_user_role"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    role = Column(String(20), nullable=False)  # admin, moderator, user

    user = relationship("User", back_populates="roles")


class RepairCenter(Base):
    __tablename__ = "repair_centers"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)  # Registered business name, must match payout account name
    email = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    address = Column(String(500), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    staff = relationship("RepairCenterStaff", back_populates="repair_center")
    jobs = relationship("RepairJob", back_populates="repair_center")


class RepairCenterStaff(Base):
    __tablename__ = "repair_center_staff"
    __table_args__ = (UniqueConstraint("repair_center_id", "user_id", name="uq_center_staff"),)

    id = Column(Integer, primary_key=True, index=True)
    repair_center_id = Column(Integer, ForeignKey("repair_centers.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    role = Column(String(50), default="staff")  # owner, staff
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    repair_center = relationship("RepairCenter", back_populates="staff")
    user = relationship("User")


class RepairJob(Base):
    """One customer appliance repair engagement, tracked end-to-end"""

    __tablename__ = "repair_jobs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)  # Customer
    repair_center_id = Column(Integer, ForeignKey("repair_centers.id"), nullable=False, index=True)

    # Customer contact snapshot (used for courier legs and notifications)
    customer_name = Column(String(255), nullable=False)
    customer_email = Column(String(255), nullable=False)
    customer_phone = Column(String(50), nullable=False)
    pickup_address = Column(String(500), nullable=False)

    # Appliance
    appliance_type = Column(String(100), nullable=False)
    appliance_brand = Column(String(100), nullable=True)
    appliance_model = Column(String(100), nullable=True)
    issue_description = Column(Text, nullable=False)

    # Pricing
    quoted_cost = Column(Numeric(12, 2), nullable=True)
    quote_notes = Column(Text, nullable=True)
    quote_provided_at = Column(DateTime, nullable=True)
    quote_accepted_at = Column(DateTime, nullable=True)
    final_cost = Column(Numeric(12, 2), nullable=True)  # Authoritative for settlement once approved
    currency = Column(String(10), default="NGN", nullable=False)

    job_status = Column(String(32), default=JobStatus.REQUESTED.value, nullable=False, index=True)

    # Cost adjustment (single outstanding proposal per job)
    proposed_final_cost = Column(Numeric(12, 2), nullable=True)
    cost_adjustment_reason = Column(Text, nullable=True)
    cost_adjustment_approved = Column(Boolean, nullable=True)  # None while pending
    cost_adjustment_requested_at = Column(DateTime, nullable=True)
    cost_adjustment_resolved_at = Column(DateTime, nullable=True)

    # Dual confirmation
    device_returned_confirmed = Column(Boolean, default=False, nullable=False)
    device_returned_confirmed_at = Column(DateTime, nullable=True)
    repair_satisfaction_confirmed = Column(Boolean, default=False, nullable=False)
    repair_satisfaction_confirmed_at = Column(DateTime, nullable=True)
    satisfaction_rating = Column(Integer, nullable=True)
    satisfaction_feedback = Column(Text, nullable=True)
    customer_confirmed = Column(Boolean, default=False, nullable=False)
    completion_date = Column(DateTime, nullable=True)

    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    customer = relationship("User")
    repair_center = relationship("RepairCenter", back_populates="jobs")
    status_history = relationship(
        "JobStatusHistory", back_populates="repair_job", order_by="JobStatusHistory.id"
    )

    @property
    def has_pending_adjustment(self) -> bool:
        return self.cost_adjustment_requested_at is not None and self.cost_adjustment_approved is None

    @property
    def settlement_cost(self):
        """Repair cost the payout is computed from"""
        if self.final_cost is not None:
            return self.final_cost
        return self.quoted_cost


class JobStatusHistory(Base):
    """Append-only audit trail of job status transitions"""

    __tablename__ = "job_status_history"

    id = Column(Integer, primary_key=True, index=True)
    repair_job_id = Column(Integer, ForeignKey("repair_jobs.id"), nullable=False, index=True)
    from_status = Column(String(32), nullable=True)
    to_status = Column(String(32), nullable=False)
    cause = Column(String(32), nullable=False)
    actor_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    note = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    repair_job = relationship("RepairJob", back_populates="status_history")


class CompletionFeedbackNotification(Base):
    """Read-model notifications for admins and center staff about customer confirmations"""

    __tablename__ = "completion_feedback_notifications"

    id = Column(Integer, primary_key=True, index=True)
    repair_job_id = Column(Integer, ForeignKey("repair_jobs.id"), nullable=False, index=True)
    notification_type = Column(String(50), nullable=False)
    sent_to = Column(String(20), nullable=False)  # admin, repair_center
    recipient_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    notification_data = Column(JSON, nullable=True)
    is_read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
