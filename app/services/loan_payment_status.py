from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Iterable

from app.schemas.loan import (
    ExistingLoanSnapshot,
    Installment,
    InstallmentStatus,
    Loan,
    LoanPaymentStatus,
    LoanStatus,
    OverdueInstallment,
)
from app.services.loan_policies import LoanPolicyTable, build_policy_table


OPEN_INSTALLMENT_STATUSES = frozenset({InstallmentStatus.PENDING, InstallmentStatus.PARTIAL})
COLLECTIBLE_LOAN_STATUSES = frozenset({LoanStatus.ACTIVE, LoanStatus.DEFAULTED})


def _open_installments(loan: Loan) -> list[Installment]:
    return sorted(
        (
            item
            for item in loan.installments
            if item.status in OPEN_INSTALLMENT_STATUSES and item.amount_due > 0
        ),
        key=lambda item: item.number,
    )


def _overdue_for_loan(loan: Loan, as_of_date: date, default_after_days: int) -> list[OverdueInstallment]:
    if loan.status not in COLLECTIBLE_LOAN_STATUSES:
        return []
    overdue: list[OverdueInstallment] = []
    for installment in _open_installments(loan):
        if installment.due_date >= as_of_date:
            continue
        days_overdue = (as_of_date - installment.due_date).days
        overdue.append(
            OverdueInstallment(
                loan_id=loan.loan_id,
                employee_id=loan.employee_id,
                loan_type=loan.loan_type,
                installment_number=installment.number,
                due_date=installment.due_date,
                amount=installment.principal_amount + installment.interest_amount,
                paid_amount=installment.paid_amount,
                outstanding_amount=installment.amount_due,
                days_overdue=days_overdue,
                default_candidate=days_overdue > default_after_days,
            )
        )
    return overdue


def compute_payment_status(
    loan: Loan,
    as_of_date: date | None = None,
    *,
    policy_table: LoanPolicyTable | None = None,
) -> LoanPaymentStatus:
    table = policy_table or build_policy_table()
    effective_date = as_of_date or date.today()
    open_items = _open_installments(loan) if loan.status in COLLECTIBLE_LOAN_STATUSES else []
    overdue = _overdue_for_loan(loan, effective_date, table.default_after_days)
    return LoanPaymentStatus(
        loan_id=loan.loan_id,
        status=loan.status,
        as_of_date=effective_date,
        next_installment=open_items[0] if open_items else None,
        overdue_installments=overdue,
        overdue_amount=sum((item.outstanding_amount for item in overdue), Decimal("0")),
        remaining_balance=loan.balance.remaining_balance,
        completion_percentage=loan.balance.completion_percentage,
        performance=loan.performance,
    )


def find_overdue_installments(
    loans: Iterable[Loan],
    as_of_date: date | None = None,
    *,
    policy_table: LoanPolicyTable | None = None,
) -> list[OverdueInstallment]:
    """Overdue installments across loans, most overdue first."""
    table = policy_table or build_policy_table()
    effective_date = as_of_date or date.today()
    overdue: list[OverdueInstallment] = []
    for loan in loans:
        overdue.extend(_overdue_for_loan(loan, effective_date, table.default_after_days))
    overdue.sort(key=lambda item: (-item.days_overdue, item.loan_id, item.installment_number))
    return overdue


def existing_loan_snapshot(loan: Loan, as_of_date: date | None = None) -> ExistingLoanSnapshot:
    """Summarize a stored loan the way the eligibility checks consume it.

    ``max_late_days`` covers both recorded lateness on paid installments and
    how long any still-open installment has been outstanding.
    """
    effective_date = as_of_date or date.today()
    late_days = [item.late_days or 0 for item in loan.installments]
    if loan.status in COLLECTIBLE_LOAN_STATUSES:
        late_days.extend(
            (effective_date - item.due_date).days
            for item in _open_installments(loan)
            if item.due_date < effective_date
        )
    return ExistingLoanSnapshot(
        loan_id=loan.loan_id,
        status=loan.status,
        remaining_balance=loan.balance.remaining_balance,
        installment_amount=loan.repayment.installment_amount,
        max_late_days=max(late_days, default=0),
    )
