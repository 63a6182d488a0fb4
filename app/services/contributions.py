from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable

from app.schemas.contributions import (
    BelowMinimumRecord,
    CappedRecord,
    ContributionBreakdown,
    ContributionRecord,
    ContributionResult,
    ContributionSplit,
    ContributionSummary,
    ContributionTotals,
    ContributionVerification,
    InvalidRecord,
    NationalityTotals,
    ProcessedRecord,
)
from app.services.contribution_rates import (
    ContributionRateTable,
    build_rate_table,
    schedule_rates,
    select_schedule,
)

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


def _round_units(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _parse_amount(value: Any) -> Decimal | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not amount.is_finite():
        return None
    return amount


def calculate_contribution(
    is_national: bool,
    basic_salary: Any,
    *,
    housing_allowance: Any = 0,
    hire_date: date | None = None,
    as_of_date: date | None = None,
    table: ContributionRateTable | None = None,
) -> ContributionResult:
    """Compute employee/employer statutory contributions for one salary.

    The base is basic salary plus housing allowance only, clamped to the
    table's bounds. Invalid salaries or housing allowances produce a zeroed result with ``error``
    set instead of raising, so payroll batches can keep going.
    """
    rate_table = table or build_rate_table()
    schedule = select_schedule(
        rate_table,
        is_national=is_national,
        hire_date=hire_date,
        as_of_date=as_of_date or date.today(),
    )
    rates = schedule_rates(rate_table, schedule)

    basic = _parse_amount(basic_salary)
    if basic is None:
        return ContributionResult(rates=rates, error="Invalid salary value")
    if basic <= 0:
        return ContributionResult(rates=rates, error="Salary must be positive")
    housing = ZERO if housing_allowance is None else _parse_amount(housing_allowance)
    if housing is None or housing < 0:
        return ContributionResult(rates=rates, error="Invalid housing allowance value")

    base = basic + housing
    capped_base = min(max(base, rate_table.min_base), rate_table.max_base)

    employee = _round_units(capped_base * rates.employee)
    employer = _round_units(capped_base * rates.employer)
    parts = rates.breakdown
    breakdown = ContributionBreakdown(
        pension=ContributionSplit(
            employee=_round_units(capped_base * parts.pension.employee),
            employer=_round_units(capped_base * parts.pension.employer),
        ),
        hazard=ContributionSplit(
            employee=0,
            employer=_round_units(capped_base * parts.hazard.employer),
        ),
        solidarity=ContributionSplit(
            employee=_round_units(capped_base * parts.solidarity.employee),
            employer=_round_units(capped_base * parts.solidarity.employer),
        ),
    )
    return ContributionResult(
        employee_contribution=employee,
        employer_contribution=employer,
        total_contribution=employee + employer,
        basic_salary=basic,
        housing_allowance=housing,
        contribution_base=base,
        capped_base=capped_base,
        was_capped=base > rate_table.max_base,
        was_below_minimum=base < rate_table.min_base,
        is_reform_schedule=rates.is_reform_schedule,
        rates=rates,
        rate_breakdown=breakdown,
    )


def verify_contribution(
    recorded_amount: Any,
    basic_salary: Any,
    *,
    is_national: bool,
    side: str = "employee",
    housing_allowance: Any = 0,
    hire_date: date | None = None,
    as_of_date: date | None = None,
    tolerance: Decimal = Decimal("1"),
    table: ContributionRateTable | None = None,
) -> ContributionVerification:
    if side not in {"employee", "employer"}:
        raise ValueError("side must be 'employee' or 'employer'")
    result = calculate_contribution(
        is_national,
        basic_salary,
        housing_allowance=housing_allowance,
        hire_date=hire_date,
        as_of_date=as_of_date,
        table=table,
    )
    expected = result.employee_contribution if side == "employee" else result.employer_contribution
    calculated = _parse_amount(recorded_amount) or ZERO
    difference = abs(calculated - Decimal(expected))
    return ContributionVerification(
        valid=result.error is None and difference <= tolerance,
        expected=expected,
        calculated=calculated,
        difference=difference,
    )


def _record_is_national(record: ContributionRecord, table: ContributionRateTable) -> bool:
    if record.is_national is not None:
        return record.is_national
    return table.is_national(record.nationality)


def _add_totals(totals: ContributionTotals, employee: int, employer: int) -> None:
    totals.employee += employee
    totals.employer += employer
    totals.total += employee + employer


def summarize_contributions(
    records: Iterable[ContributionRecord],
    *,
    as_of_date: date | None = None,
    table: ContributionRateTable | None = None,
) -> ContributionSummary:
    """Fold single-record calculations into a payroll summary.

    Records with unusable salary data are listed in ``invalid_employees``
    and skipped; they never abort the batch.
    """
    rate_table = table or build_rate_table()
    effective_date = as_of_date or date.today()
    rows = list(records)
    summary = ContributionSummary(as_of_date=effective_date, total_employees=len(rows))
    if not rows:
        return summary.model_copy(update={"error": "No employees provided"})

    for index, record in enumerate(rows):
        label = record.name or f"Employee {index + 1}"
        is_national = _record_is_national(record, rate_table)
        result = calculate_contribution(
            is_national,
            record.basic_salary,
            housing_allowance=record.housing_allowance,
            hire_date=record.hire_date,
            as_of_date=effective_date,
            table=rate_table,
        )
        if result.error:
            logger.warning("Skipping contribution record index=%s: %s", index, result.error)
            summary.invalid_employees.append(
                InvalidRecord(
                    index=index,
                    name=label,
                    error=result.error,
                    basic_salary=None if record.basic_salary is None else str(record.basic_salary),
                )
            )
            continue

        if is_national:
            summary.national_employees += 1
            bucket = summary.national
        else:
            summary.non_national_employees += 1
            bucket = summary.non_national
        bucket.count += 1
        bucket.total_basic_salary += result.basic_salary
        bucket.total_capped_base += result.capped_base
        bucket.employee_contribution += result.employee_contribution
        bucket.employer_contribution += result.employer_contribution
        bucket.total_contribution += result.total_contribution

        _add_totals(summary.totals, result.employee_contribution, result.employer_contribution)
        parts = result.rate_breakdown
        _add_totals(summary.pension, parts.pension.employee, parts.pension.employer)
        _add_totals(summary.hazard, parts.hazard.employee, parts.hazard.employer)
        _add_totals(summary.solidarity, parts.solidarity.employee, parts.solidarity.employer)

        if result.was_capped:
            summary.capped_employees.append(
                CappedRecord(
                    index=index,
                    name=label,
                    contribution_base=result.contribution_base,
                    capped_base=result.capped_base,
                    reduction=result.contribution_base - result.capped_base,
                )
            )
        if result.was_below_minimum:
            summary.below_minimum_employees.append(
                BelowMinimumRecord(
                    index=index,
                    name=label,
                    contribution_base=result.contribution_base,
                    minimum_base=rate_table.min_base,
                )
            )
        summary.processing_details.append(
            ProcessedRecord(
                index=index,
                name=label,
                is_national=is_national,
                basic_salary=result.basic_salary,
                capped_base=result.capped_base,
                employee_contribution=result.employee_contribution,
                employer_contribution=result.employer_contribution,
                total_contribution=result.total_contribution,
            )
        )

    logger.info(
        "Contribution summary computed records=%s invalid=%s total=%s",
        len(rows),
        len(summary.invalid_employees),
        summary.totals.total,
    )
    return summary
