"""Shared test fixtures and factories.

Provides:
- Environment defaults (must be set before any app import)
- Snapshot factories (make_snapshot, make_existing_loan)
- Loan factories driving the lifecycle (make_pending_loan, make_active_loan)
- A TestClient fixture over the application
"""

from __future__ import annotations

import os

# Environment defaults; Settings are read when app modules are imported.
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from datetime import date
from decimal import Decimal
from typing import Any

import pytest
from fastapi.testclient import TestClient

from app.main import app
from app.schemas.loan import (
    DisbursementMethod,
    EligibilitySnapshot,
    ExistingLoanSnapshot,
    Loan,
    LoanStatus,
    LoanType,
)
from app.services import loan_lifecycle
from app.services.loan_policies import LoanPolicyTable


AS_OF = date(2025, 1, 1)
FIRST_DUE = date(2025, 1, 15)


def make_snapshot(**overrides: Any) -> EligibilitySnapshot:
    defaults = dict(
        employee_id="EMP-100",
        basic_salary=Decimal("6000"),
        allowances_total=Decimal("2000"),
        hire_date=date(2020, 1, 1),
        employment_status="active",
    )
    defaults.update(overrides)
    return EligibilitySnapshot(**defaults)


def make_existing_loan(**overrides: Any) -> ExistingLoanSnapshot:
    defaults = dict(
        loan_id="LN-OLD",
        status=LoanStatus.ACTIVE,
        remaining_balance=Decimal("5000"),
        installment_amount=Decimal("800"),
        max_late_days=0,
    )
    defaults.update(overrides)
    return ExistingLoanSnapshot(**defaults)


def make_pending_loan(
    amount: Decimal | int = Decimal("10000"),
    installments: int = 3,
    *,
    loan_type: LoanType = LoanType.PERSONAL,
    first_due_date: date = FIRST_DUE,
    **overrides: Any,
) -> Loan:
    options = dict(as_of_date=AS_OF, loan_id="LN-1")
    options.update(overrides)
    return loan_lifecycle.create_loan(
        make_snapshot(),
        loan_type,
        amount,
        installments,
        first_due_date,
        **options,
    )


def make_active_loan(
    amount: Decimal | int = Decimal("10000"),
    installments: int = 3,
    **overrides: Any,
) -> Loan:
    loan = make_pending_loan(amount, installments, **overrides)
    loan = loan_lifecycle.approve_loan(loan, on=date(2025, 1, 2))
    return loan_lifecycle.disburse_loan(loan, DisbursementMethod.BANK_TRANSFER, on=date(2025, 1, 5))


@pytest.fixture
def policy_table() -> LoanPolicyTable:
    return LoanPolicyTable()


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)
