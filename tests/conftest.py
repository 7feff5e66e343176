"""
Shared fixtures.

Every test runs against the in-memory backend; nothing touches the network.
"""

from datetime import date, timedelta
from decimal import Decimal

import pytest

from finledger.audit import AuditLogger
from finledger.config import LedgerSettings
from finledger.models import Goal, Liability, LiabilityType
from finledger.reconciliation import LedgerReconciler
from finledger.services.storage import InMemoryAuditStorage, InMemoryLedgerStorage


@pytest.fixture
def settings():
    return LedgerSettings()


@pytest.fixture
def storage():
    return InMemoryLedgerStorage()


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage):
    return AuditLogger(storage=audit_storage)


@pytest.fixture
def reconciler(storage, audit_logger, settings):
    return LedgerReconciler(storage, audit_logger=audit_logger, settings=settings)


def make_goal(
    current: str = "0",
    target: str = "500",
    title: str = "Vacation",
    category: str = "Travel",
) -> Goal:
    return Goal(
        title=title,
        target_amount=Decimal(target),
        current_amount=Decimal(current),
        target_date=date.today() + timedelta(days=365),
        category=category,
    )


def make_liability(
    remaining: str = "1000",
    total: str = "1000",
    name: str = "Car loan",
    type: LiabilityType = LiabilityType.LOAN,
    interest_rate: str = "0",
    monthly_payment: str = "100",
) -> Liability:
    return Liability(
        name=name,
        type=type,
        total_amount=Decimal(total),
        remaining_amount=Decimal(remaining),
        interest_rate=Decimal(interest_rate),
        monthly_payment=Decimal(monthly_payment),
        due_date=date.today() + timedelta(days=30),
        start_date=date.today(),
    )
