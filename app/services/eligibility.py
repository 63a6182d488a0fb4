from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Iterable

from app.schemas.loan import (
    OPEN_LOAN_STATUSES,
    EligibilityCheck,
    EligibilityCheckId,
    EligibilityReport,
    EligibilitySnapshot,
    ExistingLoanSnapshot,
    LoanStatus,
)
from app.services.loan_policies import LoanPolicyTable, build_policy_table

ZERO = Decimal("0")


def _days_of_service(snapshot: EligibilitySnapshot, as_of_date: date) -> int | None:
    if snapshot.hire_date is None:
        return None
    return (as_of_date - snapshot.hire_date).days


def evaluate_loan_eligibility(
    snapshot: EligibilitySnapshot,
    existing_loans: Iterable[ExistingLoanSnapshot],
    requested_amount: Decimal,
    *,
    as_of_date: date | None = None,
    policy_table: LoanPolicyTable | None = None,
) -> EligibilityReport:
    """Run every eligibility check and report each one.

    Checks never short-circuit: the report always holds all six results
    with the values they were judged on.
    """
    policy = policy_table or build_policy_table()
    effective_date = as_of_date or date.today()
    loans = list(existing_loans)
    open_loans = [loan for loan in loans if loan.status in OPEN_LOAN_STATUSES]
    requested = Decimal(requested_amount or 0)
    gross_salary = snapshot.gross_salary
    checks: list[EligibilityCheck] = []

    days_of_service = _days_of_service(snapshot, effective_date)
    checks.append(
        EligibilityCheck(
            check_id=EligibilityCheckId.TENURE,
            passed=days_of_service is not None and days_of_service >= policy.min_service_days,
            requirement=policy.min_service_days,
            actual_value=days_of_service,
        )
    )

    employment_status = (snapshot.employment_status or "").strip().lower()
    checks.append(
        EligibilityCheck(
            check_id=EligibilityCheckId.EMPLOYMENT_STATUS,
            passed=employment_status == policy.active_employment_status,
            requirement=policy.active_employment_status,
            actual_value=employment_status or None,
        )
    )

    credit_limit = gross_salary * policy.credit_limit_multiplier
    total_outstanding = sum((loan.remaining_balance for loan in open_loans), ZERO)
    available_credit = max(ZERO, credit_limit - total_outstanding)
    checks.append(
        EligibilityCheck(
            check_id=EligibilityCheckId.CREDIT_LIMIT,
            passed=requested <= available_credit,
            requirement=available_credit,
            actual_value=requested,
        )
    )

    max_monthly_installment = gross_salary * policy.max_installment_percentage / Decimal("100")
    existing_deductions = sum((loan.installment_amount for loan in open_loans), ZERO)
    available_capacity = max(ZERO, max_monthly_installment - existing_deductions)
    checks.append(
        EligibilityCheck(
            check_id=EligibilityCheckId.INSTALLMENT_CAPACITY,
            passed=available_capacity > 0,
            requirement=max_monthly_installment,
            actual_value=available_capacity,
        )
    )

    worst_late_days = max((loan.max_late_days for loan in loans), default=0)
    checks.append(
        EligibilityCheck(
            check_id=EligibilityCheckId.PAYMENT_HISTORY,
            passed=worst_late_days <= policy.overdue_threshold_days,
            requirement=policy.overdue_threshold_days,
            actual_value=worst_late_days,
        )
    )

    active_count = sum(1 for loan in loans if loan.status == LoanStatus.ACTIVE)
    checks.append(
        EligibilityCheck(
            check_id=EligibilityCheckId.ACTIVE_LOAN_LIMIT,
            passed=active_count < policy.max_active_loans,
            requirement=policy.max_active_loans,
            actual_value=active_count,
        )
    )

    return EligibilityReport(
        as_of_date=effective_date,
        eligible=all(check.passed for check in checks),
        checks=checks,
        ineligibility_reasons=[check.check_id for check in checks if not check.passed],
        requested_amount=requested,
        gross_salary=gross_salary,
        credit_limit=credit_limit,
        total_outstanding=total_outstanding,
        available_credit=available_credit,
        max_monthly_installment=max_monthly_installment,
        existing_deductions=existing_deductions,
        available_installment_capacity=available_capacity,
        active_loan_count=active_count,
        days_of_service=days_of_service,
    )
