from datetime import date
from decimal import Decimal

import pytest

from app.schemas.contributions import ContributionRecord
from app.services import contributions
from app.services.contribution_rates import ContributionRateTable, rates_for

AS_OF = date(2025, 1, 1)


def _record(**overrides) -> ContributionRecord:
    defaults = dict(name="Employee", nationality="SA", basic_salary=5000, housing_allowance=1250)
    defaults.update(overrides)
    return ContributionRecord(**defaults)


def test_legacy_national_contribution():
    result = contributions.calculate_contribution(True, 5000, housing_allowance=1250, as_of_date=AS_OF)
    assert result.error is None
    assert result.contribution_base == Decimal("6250")
    assert result.capped_base == Decimal("6250")
    assert result.employee_contribution == 609
    assert result.employer_contribution == 734
    assert result.total_contribution == 1343
    assert result.was_capped is False
    assert result.was_below_minimum is False
    assert result.is_reform_schedule is False


@pytest.mark.parametrize("salary", [1500, 8000, 45000, 120000])
def test_non_national_pays_no_employee_share(salary):
    result = contributions.calculate_contribution(False, salary, as_of_date=AS_OF)
    assert result.employee_contribution == 0
    assert result.rate_breakdown.pension.employer == 0
    assert result.rate_breakdown.solidarity.employee == 0


def test_non_national_employer_hazard_only():
    result = contributions.calculate_contribution(False, 10000, as_of_date=AS_OF)
    assert result.employer_contribution == 200
    assert result.total_contribution == 200


def test_base_capped_at_maximum():
    result = contributions.calculate_contribution(True, 60000, as_of_date=AS_OF)
    assert result.contribution_base == Decimal("60000")
    assert result.capped_base == Decimal("45000")
    assert result.was_capped is True
    assert result.employee_contribution == 4388
    assert result.employer_contribution == 5288


def test_base_raised_to_minimum():
    result = contributions.calculate_contribution(True, 1000, as_of_date=AS_OF)
    assert result.capped_base == Decimal("1500")
    assert result.was_below_minimum is True
    assert result.employee_contribution == 146


def test_custom_table_bounds_apply():
    table = ContributionRateTable(min_base=Decimal("400"), max_base=Decimal("45000"))
    result = contributions.calculate_contribution(True, 1000, as_of_date=AS_OF, table=table)
    assert result.capped_base == Decimal("1000")
    assert result.was_below_minimum is False


@pytest.mark.parametrize(
    "salary, message",
    [
        ("abc", "Invalid salary value"),
        (None, "Invalid salary value"),
        (float("nan"), "Invalid salary value"),
        (0, "Salary must be positive"),
        (-100, "Salary must be positive"),
    ],
)
def test_invalid_salary_returns_error_result(salary, message):
    result = contributions.calculate_contribution(True, salary, as_of_date=AS_OF)
    assert result.error == message
    assert result.employee_contribution == 0
    assert result.employer_contribution == 0
    assert result.total_contribution == 0


def test_hire_on_reform_cutoff_uses_reform_schedule():
    result = contributions.calculate_contribution(
        True, 10000, hire_date=date(2024, 7, 3), as_of_date=date(2025, 3, 1)
    )
    assert result.is_reform_schedule is True
    assert result.rates.breakdown.pension.employee == Decimal("0.09")


def test_hire_day_before_cutoff_uses_legacy_schedule():
    result = contributions.calculate_contribution(
        True, 10000, hire_date=date(2024, 7, 2), as_of_date=date(2027, 9, 1)
    )
    assert result.is_reform_schedule is False
    assert result.employee_contribution == 975


def test_reform_rate_steps_up_on_anniversary_month():
    hire = date(2024, 9, 1)
    before = contributions.calculate_contribution(True, 10000, hire_date=hire, as_of_date=date(2025, 6, 30))
    after = contributions.calculate_contribution(True, 10000, hire_date=hire, as_of_date=date(2025, 7, 1))
    assert before.employee_contribution == 975
    assert after.employee_contribution == 1025


def test_reform_rate_stops_at_terminal_tier():
    rates = rates_for(is_national=True, hire_date=date(2025, 1, 1), as_of_date=date(2031, 9, 1))
    assert rates.breakdown.pension.employee == Decimal("0.11")
    assert rates.is_reform_schedule is True


def test_rates_for_non_national():
    rates = rates_for(is_national=False, as_of_date=AS_OF)
    assert rates.employee == Decimal("0")
    assert rates.employer == Decimal("0.02")
    assert rates.breakdown.hazard.employer == Decimal("0.02")


def test_verify_contribution_within_tolerance():
    check = contributions.verify_contribution(610, 5000, is_national=True, housing_allowance=1250, as_of_date=AS_OF)
    assert check.valid is True
    assert check.expected == 609
    assert check.difference == Decimal("1")


def test_verify_contribution_outside_tolerance():
    check = contributions.verify_contribution(
        740, 5000, is_national=True, side="employer", housing_allowance=1250, as_of_date=AS_OF
    )
    assert check.valid is False
    assert check.expected == 734


def test_verify_contribution_rejects_unknown_side():
    with pytest.raises(ValueError):
        contributions.verify_contribution(100, 5000, is_national=True, side="both")


def test_summary_folds_records_and_skips_invalid():
    records = [
        _record(name="Amal"),
        _record(name="Ravi", nationality="IN", basic_salary=10000, housing_allowance=0),
        _record(name="Broken", basic_salary="abc"),
        _record(name="Capped", basic_salary=60000, housing_allowance=0),
    ]
    summary = contributions.summarize_contributions(records, as_of_date=AS_OF)

    assert summary.error is None
    assert summary.total_employees == 4
    assert summary.national_employees == 2
    assert summary.non_national_employees == 1
    assert summary.totals.employee == 609 + 0 + 4388
    assert summary.totals.employer == 734 + 200 + 5288
    assert summary.totals.total == summary.totals.employee + summary.totals.employer
    assert summary.hazard.employer == 125 + 200 + 900
    assert [item.index for item in summary.invalid_employees] == [2]
    assert summary.invalid_employees[0].error == "Invalid salary value"
    assert [item.name for item in summary.capped_employees] == ["Capped"]
    assert len(summary.processing_details) == 3
    assert summary.non_national.employee_contribution == 0


def test_summary_uses_explicit_national_flag():
    summary = contributions.summarize_contributions(
        [_record(nationality="IN", is_national=True)], as_of_date=AS_OF
    )
    assert summary.national_employees == 1
    assert summary.totals.employee == 609


def test_empty_summary_sets_error():
    summary = contributions.summarize_contributions([], as_of_date=AS_OF)
    assert summary.error == "No employees provided"
    assert summary.total_employees == 0


@pytest.mark.parametrize("housing", [-1000, "abc", float("inf")])
def test_invalid_housing_allowance_returns_error_result(housing):
    result = contributions.calculate_contribution(True, 5000, housing_allowance=housing, as_of_date=AS_OF)
    assert result.error == "Invalid housing allowance value"
    assert result.contribution_base == 0
    assert result.total_contribution == 0


def test_missing_housing_allowance_counts_as_zero():
    result = contributions.calculate_contribution(True, 5000, housing_allowance=None, as_of_date=AS_OF)
    assert result.error is None
    assert result.contribution_base == Decimal("5000")


def test_summary_lists_negative_housing_as_invalid():
    summary = contributions.summarize_contributions(
        [_record(name="Amal"), _record(name="Negative", housing_allowance=-500)], as_of_date=AS_OF
    )
    assert [item.index for item in summary.invalid_employees] == [1]
    assert summary.invalid_employees[0].error == "Invalid housing allowance value"
    assert summary.totals.employee == 609
