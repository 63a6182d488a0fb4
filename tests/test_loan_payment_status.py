from datetime import date
from decimal import Decimal

from conftest import make_active_loan, make_pending_loan

from app.schemas.loan import LoanStatus
from app.services import loan_lifecycle
from app.services.loan_payment_status import (
    compute_payment_status,
    existing_loan_snapshot,
    find_overdue_installments,
)
from app.services.loan_policies import LoanPolicyTable


def test_status_for_unpaid_loan_lists_overdue_installments():
    status = compute_payment_status(make_active_loan(), date(2025, 2, 20))
    assert status.next_installment.number == 1
    assert [(item.installment_number, item.days_overdue) for item in status.overdue_installments] == [
        (1, 36),
        (2, 5),
    ]
    assert status.overdue_amount == Decimal("6668")
    assert status.remaining_balance == Decimal("10000")
    assert not any(item.default_candidate for item in status.overdue_installments)


def test_status_after_partial_payment_uses_outstanding_amount():
    loan = loan_lifecycle.apply_payment(make_active_loan(), Decimal("5000"), payment_date=date(2025, 1, 10))
    status = compute_payment_status(loan, date(2025, 2, 20))
    assert status.next_installment.number == 2
    assert len(status.overdue_installments) == 1
    overdue = status.overdue_installments[0]
    assert overdue.paid_amount == Decimal("1666")
    assert overdue.outstanding_amount == Decimal("1668")
    assert status.completion_percentage == 50


def test_status_for_completed_loan_has_nothing_due():
    done = loan_lifecycle.apply_payment(make_active_loan(), Decimal("10000"), payment_date=date(2025, 1, 10))
    status = compute_payment_status(done, date(2025, 6, 1))
    assert status.status == LoanStatus.COMPLETED
    assert status.next_installment is None
    assert status.overdue_installments == []


def test_overdue_across_loans_sorted_most_overdue_first():
    loan_a = make_active_loan(loan_id="LN-A")
    loan_b = make_active_loan(loan_id="LN-B", first_due_date=date(2025, 3, 15))
    pending = make_pending_loan(loan_id="LN-P")

    overdue = find_overdue_installments([loan_b, pending, loan_a], date(2025, 6, 1))

    assert [(item.loan_id, item.installment_number, item.days_overdue) for item in overdue] == [
        ("LN-A", 1, 137),
        ("LN-A", 2, 106),
        ("LN-A", 3, 78),
        ("LN-B", 1, 78),
        ("LN-B", 2, 47),
        ("LN-B", 3, 17),
    ]
    assert [item.default_candidate for item in overdue] == [True, True, False, False, False, False]


def test_default_threshold_comes_from_policy():
    overdue = find_overdue_installments(
        [make_active_loan()], date(2025, 2, 20), policy_table=LoanPolicyTable(default_after_days=30)
    )
    assert [item.default_candidate for item in overdue] == [True, False]


def test_existing_loan_snapshot_reports_worst_lateness():
    loan = loan_lifecycle.apply_payment(make_active_loan(), Decimal("3334"), payment_date=date(2025, 1, 20))
    snapshot = existing_loan_snapshot(loan, date(2025, 3, 1))
    assert snapshot.loan_id == "LN-1"
    assert snapshot.status == LoanStatus.ACTIVE
    assert snapshot.remaining_balance == Decimal("6666")
    assert snapshot.installment_amount == Decimal("3334")
    assert snapshot.max_late_days == 14
