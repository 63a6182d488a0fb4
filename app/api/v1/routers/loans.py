from fastapi import APIRouter, status

from app.schemas.loan import (
    EarlySettlementQuote,
    EligibilityReport,
    Loan,
    LoanApproveRequest,
    LoanClearanceRequest,
    LoanCommand,
    LoanCreateRequest,
    LoanDefaultRequest,
    LoanDisburseRequest,
    LoanEligibilityRequest,
    LoanPaymentRequest,
    LoanPaymentStatus,
    LoanPayrollDeductionRequest,
    LoanPolicyOut,
    LoanRejectRequest,
    LoanRestructureRequest,
    LoanReviewRequest,
    LoanSettlementRequest,
    LoanStatusRequest,
    OverdueInstallment,
    OverdueInstallmentsRequest,
)
from app.services import eligibility, loan_lifecycle, loan_payment_status, loan_policies

router = APIRouter(prefix="/loans", tags=["loans"])


@router.get("/policies", response_model=LoanPolicyOut, summary="Loan type caps and eligibility thresholds")
async def get_policies() -> LoanPolicyOut:
    return loan_policies.describe_policies()


@router.post("/eligibility", response_model=EligibilityReport, summary="Evaluate loan eligibility")
async def check_eligibility(payload: LoanEligibilityRequest) -> EligibilityReport:
    return eligibility.evaluate_loan_eligibility(
        payload.employee,
        payload.existing_loans,
        payload.requested_amount,
        as_of_date=payload.as_of_date,
    )


@router.post(
    "",
    response_model=Loan,
    status_code=status.HTTP_201_CREATED,
    summary="Create a loan application",
)
async def create_loan(payload: LoanCreateRequest) -> Loan:
    return loan_lifecycle.create_loan(
        payload.employee,
        payload.loan_type,
        payload.amount,
        payload.installments,
        payload.first_due_date,
        existing_loans=payload.existing_loans,
        skip_eligibility=payload.skip_eligibility,
        as_draft=payload.as_draft,
        as_of_date=payload.as_of_date,
        purpose=payload.purpose,
    )


@router.post("/submit", response_model=Loan, summary="Submit a draft loan")
async def submit_loan(payload: LoanCommand) -> Loan:
    return loan_lifecycle.submit_loan(payload.loan, on=payload.on)


@router.post("/review", response_model=Loan, summary="Move a submitted loan into review")
async def review_loan(payload: LoanReviewRequest) -> Loan:
    return loan_lifecycle.open_review(
        payload.loan,
        payload.employee,
        payload.existing_loans,
        skip_eligibility=payload.skip_eligibility,
        on=payload.on,
    )


@router.post("/approve", response_model=Loan, summary="Approve a pending loan")
async def approve_loan(payload: LoanApproveRequest) -> Loan:
    return loan_lifecycle.approve_loan(
        payload.loan,
        approved_amount=payload.approved_amount,
        approved_installments=payload.approved_installments,
        on=payload.on,
    )


@router.post("/reject", response_model=Loan, summary="Reject a pending loan")
async def reject_loan(payload: LoanRejectRequest) -> Loan:
    return loan_lifecycle.reject_loan(payload.loan, payload.reason, on=payload.on)


@router.post("/disburse", response_model=Loan, summary="Disburse an approved loan")
async def disburse_loan(payload: LoanDisburseRequest) -> Loan:
    return loan_lifecycle.disburse_loan(
        payload.loan,
        payload.method,
        deductions=payload.deductions,
        bank_transfer=payload.bank_transfer,
        check=payload.check,
        cash=payload.cash,
        on=payload.on,
    )


@router.post("/payments", response_model=Loan, summary="Apply a payment to an active loan")
async def apply_payment(payload: LoanPaymentRequest) -> Loan:
    return loan_lifecycle.apply_payment(
        payload.loan,
        payload.amount,
        method=payload.method,
        payment_date=payload.on,
        reference=payload.reference,
        notes=payload.notes,
    )


@router.post("/payroll-deductions", response_model=Loan, summary="Record a payroll deduction")
async def record_payroll_deduction(payload: LoanPayrollDeductionRequest) -> Loan:
    return loan_lifecycle.record_payroll_deduction(
        payload.loan,
        payload.payroll_run_id,
        payload.payroll_month,
        payload.payroll_year,
        payload.amount,
        deduction_date=payload.on,
    )


@router.post(
    "/early-settlement/quote",
    response_model=EarlySettlementQuote,
    summary="Quote the amount needed to settle early",
)
async def quote_early_settlement(payload: LoanCommand) -> EarlySettlementQuote:
    return loan_lifecycle.quote_early_settlement(payload.loan)


@router.post("/early-settlement", response_model=Loan, summary="Settle an active loan early")
async def settle_early(payload: LoanSettlementRequest) -> Loan:
    return loan_lifecycle.settle_early(
        payload.loan,
        payload.settlement_amount,
        method=payload.method,
        reference=payload.reference,
        on=payload.on,
    )


@router.post("/default", response_model=Loan, summary="Mark an active loan as defaulted")
async def mark_defaulted(payload: LoanDefaultRequest) -> Loan:
    return loan_lifecycle.mark_defaulted(payload.loan, payload.reason, notes=payload.notes, on=payload.on)


@router.post("/restructure", response_model=Loan, summary="Restructure the unpaid part of a loan")
async def restructure_loan(payload: LoanRestructureRequest) -> Loan:
    return loan_lifecycle.restructure_loan(
        payload.loan,
        payload.new_installment_count,
        payload.effective_date,
        new_installment_amount=payload.new_installment_amount,
        reason=payload.reason,
        on=payload.on,
    )


@router.post("/clearance", response_model=Loan, summary="Issue a clearance letter for a completed loan")
async def issue_clearance(payload: LoanClearanceRequest) -> Loan:
    return loan_lifecycle.issue_clearance(payload.loan, letter_url=payload.letter_url, on=payload.on)


@router.post("/status", response_model=LoanPaymentStatus, summary="Payment status for one loan")
async def get_payment_status(payload: LoanStatusRequest) -> LoanPaymentStatus:
    return loan_payment_status.compute_payment_status(payload.loan, payload.as_of_date)


@router.post(
    "/overdue-installments",
    response_model=list[OverdueInstallment],
    summary="Overdue installments across loans, most overdue first",
)
async def list_overdue_installments(payload: OverdueInstallmentsRequest) -> list[OverdueInstallment]:
    return loan_payment_status.find_overdue_installments(payload.loans, payload.as_of_date)
