from datetime import date
from decimal import Decimal
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class RateSplit(BaseModel):
    model_config = ConfigDict(frozen=True)

    employee: Decimal
    employer: Decimal
    total: Decimal


class RateBreakdown(BaseModel):
    model_config = ConfigDict(frozen=True)

    pension: RateSplit
    hazard: RateSplit
    solidarity: RateSplit


class ContributionRates(BaseModel):
    """Effective percentages (as fractions) applied to the capped base."""

    model_config = ConfigDict(frozen=True)

    employee: Decimal
    employer: Decimal
    total: Decimal
    is_reform_schedule: bool = False
    breakdown: RateBreakdown


class ContributionSplit(BaseModel):
    model_config = ConfigDict(frozen=True)

    employee: int = 0
    employer: int = 0


class ContributionBreakdown(BaseModel):
    model_config = ConfigDict(frozen=True)

    pension: ContributionSplit = Field(default_factory=ContributionSplit)
    hazard: ContributionSplit = Field(default_factory=ContributionSplit)
    solidarity: ContributionSplit = Field(default_factory=ContributionSplit)


class ContributionResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    employee_contribution: int = 0
    employer_contribution: int = 0
    total_contribution: int = 0
    basic_salary: Decimal = Decimal("0")
    housing_allowance: Decimal = Decimal("0")
    contribution_base: Decimal = Decimal("0")
    capped_base: Decimal = Decimal("0")
    was_capped: bool = False
    was_below_minimum: bool = False
    is_reform_schedule: bool = False
    rates: ContributionRates
    rate_breakdown: ContributionBreakdown = Field(default_factory=ContributionBreakdown)
    error: str | None = None


class ContributionRequest(BaseModel):
    is_national: bool
    basic_salary: Any
    housing_allowance: Any = 0
    hire_date: date | None = None
    as_of_date: date | None = None


class ContributionRecord(BaseModel):
    """One payroll line in a batch summary; salary fields stay loose so bad rows can be reported."""

    name: str | None = None
    nationality: str | None = None
    is_national: bool | None = None
    basic_salary: Any = None
    housing_allowance: Any = 0
    hire_date: date | None = None


class ContributionSummaryRequest(BaseModel):
    records: list[ContributionRecord]
    as_of_date: date | None = None


class ContributionTotals(BaseModel):
    employee: int = 0
    employer: int = 0
    total: int = 0


class NationalityTotals(BaseModel):
    count: int = 0
    total_basic_salary: Decimal = Decimal("0")
    total_capped_base: Decimal = Decimal("0")
    employee_contribution: int = 0
    employer_contribution: int = 0
    total_contribution: int = 0


class CappedRecord(BaseModel):
    index: int
    name: str
    contribution_base: Decimal
    capped_base: Decimal
    reduction: Decimal


class BelowMinimumRecord(BaseModel):
    index: int
    name: str
    contribution_base: Decimal
    minimum_base: Decimal


class InvalidRecord(BaseModel):
    index: int
    name: str
    error: str
    basic_salary: Any = None


class ProcessedRecord(BaseModel):
    index: int
    name: str
    is_national: bool
    basic_salary: Decimal
    capped_base: Decimal
    employee_contribution: int
    employer_contribution: int
    total_contribution: int


class ContributionSummary(BaseModel):
    as_of_date: date
    total_employees: int = 0
    national_employees: int = 0
    non_national_employees: int = 0
    totals: ContributionTotals = Field(default_factory=ContributionTotals)
    pension: ContributionTotals = Field(default_factory=ContributionTotals)
    hazard: ContributionTotals = Field(default_factory=ContributionTotals)
    solidarity: ContributionTotals = Field(default_factory=ContributionTotals)
    national: NationalityTotals = Field(default_factory=NationalityTotals)
    non_national: NationalityTotals = Field(default_factory=NationalityTotals)
    capped_employees: list[CappedRecord] = Field(default_factory=list)
    below_minimum_employees: list[BelowMinimumRecord] = Field(default_factory=list)
    invalid_employees: list[InvalidRecord] = Field(default_factory=list)
    processing_details: list[ProcessedRecord] = Field(default_factory=list)
    error: str | None = None


class ContributionVerification(BaseModel):
    valid: bool
    expected: int
    calculated: Decimal
    difference: Decimal


class ContributionVerificationRequest(ContributionRequest):
    recorded_amount: Any
    side: Literal["employee", "employer"] = "employee"
