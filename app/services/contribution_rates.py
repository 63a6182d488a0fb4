"""Statutory social-insurance rate table and schedule selection.

Rates are fractions of the contribution base. The pension component
differs between the legacy schedule and the graduated reform schedule;
the occupational-hazard and solidarity-fund (unemployment) components
do not depend on the schedule.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from types import MappingProxyType
from typing import Mapping, Union

from app.core.settings import Settings, settings as app_settings
from app.schemas.contributions import ContributionRates, RateBreakdown, RateSplit

ZERO = Decimal("0")

REFORM_PENSION_RATES: Mapping[int, Decimal] = MappingProxyType(
    {
        2024: Decimal("0.09"),
        2025: Decimal("0.095"),
        2026: Decimal("0.10"),
        2027: Decimal("0.105"),
        2028: Decimal("0.11"),
    }
)


@dataclass(frozen=True)
class ContributionRateTable:
    min_base: Decimal = Decimal("1500")
    max_base: Decimal = Decimal("45000")
    reform_cutoff: date = date(2024, 7, 3)
    # Reform tiers step up in this month each year.
    anniversary_month: int = 7
    legacy_pension_rate: Decimal = Decimal("0.09")
    reform_pension_rates: Mapping[int, Decimal] = field(default_factory=lambda: REFORM_PENSION_RATES)
    hazard_employer_rate: Decimal = Decimal("0.02")
    solidarity_employee_rate: Decimal = Decimal("0.0075")
    solidarity_employer_rate: Decimal = Decimal("0.0075")
    national_codes: frozenset[str] = frozenset({"SA", "SAU", "SAUDI"})

    @property
    def first_reform_year(self) -> int:
        return min(self.reform_pension_rates)

    @property
    def terminal_reform_year(self) -> int:
        return max(self.reform_pension_rates)

    def is_national(self, nationality: str | None) -> bool:
        return (nationality or "").strip().upper() in self.national_codes


@dataclass(frozen=True)
class NonNationalSchedule:
    pass


@dataclass(frozen=True)
class LegacySchedule:
    pass


@dataclass(frozen=True)
class ReformSchedule:
    year: int


RateSchedule = Union[NonNationalSchedule, LegacySchedule, ReformSchedule]


def build_rate_table(settings: Settings | None = None) -> ContributionRateTable:
    source = settings or app_settings
    return ContributionRateTable(
        min_base=Decimal(source.contribution_min_base),
        max_base=Decimal(source.contribution_max_base),
    )


def reform_year(table: ContributionRateTable, as_of_date: date) -> int:
    effective_year = as_of_date.year
    if as_of_date.month < table.anniversary_month:
        effective_year -= 1
    return min(max(effective_year, table.first_reform_year), table.terminal_reform_year)


def select_schedule(
    table: ContributionRateTable,
    *,
    is_national: bool,
    hire_date: date | None,
    as_of_date: date,
) -> RateSchedule:
    if not is_national:
        return NonNationalSchedule()
    if hire_date is None or hire_date < table.reform_cutoff:
        return LegacySchedule()
    return ReformSchedule(year=reform_year(table, as_of_date))


def _split(employee: Decimal, employer: Decimal) -> RateSplit:
    return RateSplit(employee=employee, employer=employer, total=employee + employer)


def schedule_rates(table: ContributionRateTable, schedule: RateSchedule) -> ContributionRates:
    hazard = _split(ZERO, table.hazard_employer_rate)
    if isinstance(schedule, NonNationalSchedule):
        pension = _split(ZERO, ZERO)
        solidarity = _split(ZERO, ZERO)
    else:
        if isinstance(schedule, ReformSchedule):
            pension_rate = table.reform_pension_rates[schedule.year]
        else:
            pension_rate = table.legacy_pension_rate
        pension = _split(pension_rate, pension_rate)
        solidarity = _split(table.solidarity_employee_rate, table.solidarity_employer_rate)

    employee = pension.employee + hazard.employee + solidarity.employee
    employer = pension.employer + hazard.employer + solidarity.employer
    return ContributionRates(
        employee=employee,
        employer=employer,
        total=employee + employer,
        is_reform_schedule=isinstance(schedule, ReformSchedule),
        breakdown=RateBreakdown(pension=pension, hazard=hazard, solidarity=solidarity),
    )


def rates_for(
    *,
    is_national: bool,
    hire_date: date | None = None,
    as_of_date: date | None = None,
    table: ContributionRateTable | None = None,
) -> ContributionRates:
    rate_table = table or build_rate_table()
    schedule = select_schedule(
        rate_table,
        is_national=is_national,
        hire_date=hire_date,
        as_of_date=as_of_date or date.today(),
    )
    return schedule_rates(rate_table, schedule)
