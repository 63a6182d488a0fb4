from datetime import date
from decimal import Decimal

from conftest import make_existing_loan, make_snapshot

from app.schemas.loan import EligibilityCheckId, EligibilitySnapshot, LoanStatus
from app.services import eligibility
from app.services.loan_policies import LoanPolicyTable

AS_OF = date(2025, 1, 1)


def _checks(report) -> dict:
    return {check.check_id: check for check in report.checks}


def test_eligible_when_requirements_met():
    report = eligibility.evaluate_loan_eligibility(make_snapshot(), [], Decimal("10000"), as_of_date=AS_OF)
    assert report.eligible is True
    assert report.ineligibility_reasons == []
    assert [check.check_id for check in report.checks] == list(EligibilityCheckId)
    assert report.credit_limit == Decimal("24000")
    assert report.max_monthly_installment == Decimal("2400")


def test_credit_limit_exceeded_by_existing_balance():
    report = eligibility.evaluate_loan_eligibility(
        make_snapshot(),
        [make_existing_loan()],
        Decimal("20000"),
        as_of_date=AS_OF,
    )
    checks = _checks(report)
    assert report.credit_limit == Decimal("24000")
    assert report.available_credit == Decimal("19000")
    assert checks[EligibilityCheckId.CREDIT_LIMIT].passed is False
    assert checks[EligibilityCheckId.CREDIT_LIMIT].requirement == Decimal("19000")
    assert checks[EligibilityCheckId.CREDIT_LIMIT].actual_value == Decimal("20000")
    assert report.available_installment_capacity == Decimal("1600")
    assert report.eligible is False
    assert report.ineligibility_reasons == [EligibilityCheckId.CREDIT_LIMIT]


def test_all_checks_reported_when_several_fail():
    snapshot = make_snapshot(hire_date=date(2024, 12, 1), employment_status="Terminated")
    loans = [
        make_existing_loan(loan_id="A", max_late_days=45),
        make_existing_loan(loan_id="B", remaining_balance=Decimal("1000"), installment_amount=Decimal("1600")),
    ]
    report = eligibility.evaluate_loan_eligibility(snapshot, loans, Decimal("1000"), as_of_date=AS_OF)
    assert len(report.checks) == 6
    assert set(report.ineligibility_reasons) == {
        EligibilityCheckId.TENURE,
        EligibilityCheckId.EMPLOYMENT_STATUS,
        EligibilityCheckId.INSTALLMENT_CAPACITY,
        EligibilityCheckId.PAYMENT_HISTORY,
        EligibilityCheckId.ACTIVE_LOAN_LIMIT,
    }
    checks = _checks(report)
    assert checks[EligibilityCheckId.TENURE].actual_value == 31
    assert checks[EligibilityCheckId.EMPLOYMENT_STATUS].actual_value == "terminated"
    assert checks[EligibilityCheckId.ACTIVE_LOAN_LIMIT].actual_value == 2


def test_closed_loans_do_not_consume_credit():
    loans = [make_existing_loan(status=LoanStatus.COMPLETED, remaining_balance=Decimal("0"))]
    report = eligibility.evaluate_loan_eligibility(make_snapshot(), loans, Decimal("24000"), as_of_date=AS_OF)
    assert report.total_outstanding == Decimal("0")
    assert report.active_loan_count == 0
    assert report.eligible is True


def test_late_history_on_closed_loan_still_counts():
    loans = [make_existing_loan(status=LoanStatus.COMPLETED, remaining_balance=Decimal("0"), max_late_days=31)]
    report = eligibility.evaluate_loan_eligibility(make_snapshot(), loans, Decimal("1000"), as_of_date=AS_OF)
    assert report.ineligibility_reasons == [EligibilityCheckId.PAYMENT_HISTORY]


def test_missing_hire_date_fails_tenure():
    report = eligibility.evaluate_loan_eligibility(
        make_snapshot(hire_date=None), [], Decimal("1000"), as_of_date=AS_OF
    )
    assert _checks(report)[EligibilityCheckId.TENURE].passed is False
    assert report.days_of_service is None


def test_policy_thresholds_are_injectable():
    table = LoanPolicyTable(max_active_loans=1, min_service_days=30)
    snapshot = make_snapshot(hire_date=date(2024, 12, 1))
    report = eligibility.evaluate_loan_eligibility(
        snapshot, [make_existing_loan()], Decimal("1000"), as_of_date=AS_OF, policy_table=table
    )
    assert report.ineligibility_reasons == [EligibilityCheckId.ACTIVE_LOAN_LIMIT]


def test_evaluation_is_deterministic():
    args = (make_snapshot(), [make_existing_loan()], Decimal("5000"))
    first = eligibility.evaluate_loan_eligibility(*args, as_of_date=AS_OF)
    second = eligibility.evaluate_loan_eligibility(*args, as_of_date=AS_OF)
    assert first == second


def test_missing_employment_status_fails_check():
    snapshot = EligibilitySnapshot(basic_salary=Decimal("6000"), hire_date=date(2020, 1, 1))
    report = eligibility.evaluate_loan_eligibility(snapshot, [], Decimal("1000"), as_of_date=AS_OF)
    check = _checks(report)[EligibilityCheckId.EMPLOYMENT_STATUS]
    assert check.passed is False
    assert check.actual_value is None
    assert report.eligible is False
    assert report.ineligibility_reasons == [EligibilityCheckId.EMPLOYMENT_STATUS]
