from datetime import date

from fastapi import APIRouter, Query

from app.schemas.contributions import (
    ContributionRates,
    ContributionRequest,
    ContributionResult,
    ContributionSummary,
    ContributionSummaryRequest,
    ContributionVerification,
    ContributionVerificationRequest,
)
from app.services import contribution_rates, contributions

router = APIRouter(prefix="/contributions", tags=["contributions"])


@router.post(
    "/calculate",
    response_model=ContributionResult,
    summary="Calculate statutory contributions for one salary",
)
async def calculate_contribution(payload: ContributionRequest) -> ContributionResult:
    return contributions.calculate_contribution(
        payload.is_national,
        payload.basic_salary,
        housing_allowance=payload.housing_allowance,
        hire_date=payload.hire_date,
        as_of_date=payload.as_of_date,
    )


@router.post(
    "/summary",
    response_model=ContributionSummary,
    summary="Summarize contributions for a payroll batch",
)
async def summarize_contributions(payload: ContributionSummaryRequest) -> ContributionSummary:
    return contributions.summarize_contributions(payload.records, as_of_date=payload.as_of_date)


@router.post(
    "/verify",
    response_model=ContributionVerification,
    summary="Compare a recorded contribution with the computed amount",
)
async def verify_contribution(payload: ContributionVerificationRequest) -> ContributionVerification:
    return contributions.verify_contribution(
        payload.recorded_amount,
        payload.basic_salary,
        is_national=payload.is_national,
        side=payload.side,
        housing_allowance=payload.housing_allowance,
        hire_date=payload.hire_date,
        as_of_date=payload.as_of_date,
    )


@router.get("/rates", response_model=ContributionRates, summary="Effective contribution rates")
async def get_rates(
    national: bool = Query(...),
    hire_date: date | None = Query(default=None),
    as_of_date: date | None = Query(default=None),
) -> ContributionRates:
    return contribution_rates.rates_for(
        is_national=national,
        hire_date=hire_date,
        as_of_date=as_of_date,
    )
