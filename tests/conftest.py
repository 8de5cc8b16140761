"""
Shared fixtures for FixBudi tests

Every test gets a fresh in-memory SQLite database with the full schema, a
notification dispatcher that records emails instead of sending them, and a
factory for the users, centers and jobs the workflows need.
"""

from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from fixbudi import models_delivery, models_payment  # noqa: F401
from fixbudi.database import Base
from fixbudi.enums import JobStatus
from fixbudi.models import RepairCenter, RepairCenterStaff, RepairJob, User, UserRole
from fixbudi.models_payment import BankAccount, Payment
from fixbudi.services.notification_service import NotificationDispatcher


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


class EmailRecorder:
    """Stands in for the Resend sender and keeps every message"""

    def __init__(self):
        self.sent = []

    async def __call__(self, to, subject, html_content, from_address=None):
        self.sent.append({"to": to, "subject": subject, "html": html_content})
        return {"id": f"test-{len(self.sent)}"}

    def recipients(self):
        return [message["to"] for message in self.sent]


@pytest.fixture
def emails():
    return EmailRecorder()


@pytest.fixture
def notifier(emails):
    return NotificationDispatcher(sender=emails)


class Factory:
    def __init__(self, db):
        self.db = db
        self._seq = 0

    def _next(self) -> int:
        self._seq += 1
        return self._seq

    def user(self, email=None, roles=(), full_name="Test User", phone="+2348000000000") -> User:
        n = self._next()
        user = User(
            external_uid=f"uid-{n}",
            email=email or f"user{n}@example.com",
            full_name=full_name,
            phone=phone,
        )
        self.db.add(user)
        self.db.flush()
        for role in roles:
            self.db.add(UserRole(user_id=user.id, role=role))
        self.db.commit()
        self.db.refresh(user)
        return user

    def admin(self, email=None) -> User:
        return self.user(email=email, roles=("admin",), full_name="Platform Admin")

    def center(self, name="Kola Repairs Ltd", email=None, address="12 Allen Avenue, Ikeja, Lagos") -> RepairCenter:
        n = self._next()
        center = RepairCenter(
            name=name,
            email=email or f"center{n}@example.com",
            phone="+2348011111111",
            address=address,
        )
        self.db.add(center)
        self.db.commit()
        self.db.refresh(center)
        return center

    def staff(self, center: RepairCenter, email=None) -> User:
        user = self.user(email=email, full_name="Center Technician")
        self.db.add(RepairCenterStaff(repair_center_id=center.id, user_id=user.id, role="owner"))
        self.db.commit()
        return user

    def job(
        self,
        customer: User,
        center: RepairCenter,
        status=JobStatus.REQUESTED,
        quoted_cost=None,
        final_cost=None,
        currency="NGN",
        **fields,
    ) -> RepairJob:
        job = RepairJob(
            user_id=customer.id,
            repair_center_id=center.id,
            customer_name=customer.full_name or "Customer",
            customer_email=customer.email,
            customer_phone=customer.phone or "+2348000000000",
            pickup_address="5 Admiralty Way, Lekki, Lagos",
            appliance_type="Washing Machine",
            appliance_brand="LG",
            issue_description="Drum does not spin",
            quoted_cost=Decimal(str(quoted_cost)) if quoted_cost is not None else None,
            final_cost=Decimal(str(final_cost)) if final_cost is not None else None,
            currency=currency,
            job_status=JobStatus(status).value,
            **fields,
        )
        self.db.add(job)
        self.db.commit()
        self.db.refresh(job)
        return job

    def completed_payment(self, job: RepairJob, amount=None) -> Payment:
        n = self._next()
        payment = Payment(
            repair_job_id=job.id,
            user_id=job.user_id,
            provider="paystack",
            provider_reference=f"FXB-{job.id}-paid{n}",
            amount=Decimal(str(amount or job.settlement_cost or 0)),
            currency=job.currency,
            payment_status="completed",
            payment_date=datetime.utcnow(),
        )
        self.db.add(payment)
        self.db.commit()
        self.db.refresh(payment)
        return payment

    def bank_account(self, center: RepairCenter, last_updated_at=None, whitelisted=True, active=True) -> BankAccount:
        moment = last_updated_at or datetime.utcnow()
        account = BankAccount(
            repair_center_id=center.id,
            bank_name="GTBank",
            account_number="0123456789",
            account_number_last4="6789",
            account_name=center.name,
            whitelisted_at=moment if whitelisted else None,
            last_updated_at=moment,
            is_active=active,
        )
        self.db.add(account)
        self.db.commit()
        self.db.refresh(account)
        return account


@pytest.fixture
def factory(db):
    return Factory(db)


@pytest.fixture
def customer(factory):
    return factory.user(email="ada@example.com", full_name="Ada Obi", phone="+2348033333333")


@pytest.fixture
def center(factory):
    return factory.center(email="hello@kolarepairs.ng")


@pytest.fixture
def technician(factory, center):
    return factory.staff(center, email="tech@kolarepairs.ng")


@pytest.fixture
def admin(factory):
    return factory.admin(email="admin@fixbudi.com")


@pytest.fixture
def file_engine(tmp_path):
    """On-disk database so separate sessions get separate connections"""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'fixbudi.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def sessions(file_engine):
    """Two sessions standing in for two concurrent requests"""
    SessionPair = sessionmaker(autocommit=False, autoflush=False, bind=file_engine)
    first, second = SessionPair(), SessionPair()
    try:
        yield first, second
    finally:
        first.close()
        second.close()


@pytest.fixture
def file_factory(sessions):
    return Factory(sessions[0])
