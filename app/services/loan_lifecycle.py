from __future__ import annotations

import logging
import uuid
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable

from app.schemas.loan import (
    SETTLED_INSTALLMENT_STATUSES,
    BankTransferDetails,
    CashDetails,
    CheckDetails,
    ClearanceLetter,
    Completion,
    CompletionMethod,
    DefaultInfo,
    Disbursement,
    DisbursementDeduction,
    DisbursementMethod,
    EarlySettlement,
    EarlySettlementQuote,
    EligibilityReport,
    EligibilitySnapshot,
    ExistingLoanSnapshot,
    Installment,
    InstallmentAllocation,
    InstallmentStatus,
    Loan,
    LoanBalance,
    LoanStatus,
    LoanType,
    PaymentMethod,
    PaymentPerformance,
    PaymentRating,
    PaymentRecord,
    PayrollDeductionEntry,
    PayrollDeductionLink,
    RepaymentTerms,
    RestructuringRecord,
    RestructuringTerms,
    StatusChange,
)
from app.services.audit import record_audit_event
from app.services.eligibility import evaluate_loan_eligibility
from app.services.errors import InvalidLoanStateError, LoanEligibilityError, LoanValidationError
from app.services.loan_policies import LoanPolicyTable, build_policy_table, validate_loan_terms
from app.services.loan_schedules import InstallmentSchedule, generate_schedule

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
OPEN_INSTALLMENT_STATUSES = frozenset({InstallmentStatus.PENDING, InstallmentStatus.PARTIAL})


def _as_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _today(on: date | None) -> date:
    return on or date.today()


def _require_state(loan: Loan, operation: str, *allowed: LoanStatus) -> None:
    if loan.status not in allowed:
        raise InvalidLoanStateError(operation, loan.status.value, [state.value for state in allowed])


def _audit_state(loan: Loan) -> dict:
    return {
        "status": loan.status,
        "approved_amount": loan.approved_amount,
        "paid_amount": loan.balance.paid_amount,
        "remaining_balance": loan.balance.remaining_balance,
        "version": loan.version,
    }


def _commit(before: Loan | None, after: Loan, action: str) -> Loan:
    after.version = (before.version if before is not None else 0) + 1
    record_audit_event(
        action=action,
        resource_type="loan",
        resource_id=after.loan_id,
        old_value=_audit_state(before) if before is not None else None,
        new_value=_audit_state(after),
    )
    return after


def _transition(loan: Loan, operation: str, to_status: LoanStatus, at: date) -> None:
    loan.status_history.append(
        StatusChange(operation=operation, from_status=loan.status, to_status=to_status, at=at)
    )
    loan.status = to_status


def _repayment_terms(schedule: InstallmentSchedule) -> RepaymentTerms:
    return RepaymentTerms(
        installment_count=len(schedule.installments),
        installment_amount=schedule.installment_amount,
        first_due_date=schedule.first_due_date,
        last_due_date=schedule.last_due_date,
    )


def _refresh_balance(loan: Loan) -> None:
    balance = loan.balance
    balance.original_amount = loan.approved_amount
    balance.remaining_balance = max(loan.approved_amount - balance.paid_amount, ZERO)
    if loan.approved_amount > 0:
        ratio = balance.paid_amount / loan.approved_amount * Decimal("100")
        balance.completion_percentage = int(ratio.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    else:
        balance.completion_percentage = 0


def _failed_checks(report: EligibilityReport) -> list[dict]:
    return [check.model_dump(mode="json") for check in report.checks if not check.passed]


def _run_eligibility(
    snapshot: EligibilitySnapshot,
    existing_loans: Iterable[ExistingLoanSnapshot],
    amount: Decimal,
    as_of_date: date,
    policy_table: LoanPolicyTable,
) -> EligibilityReport:
    report = evaluate_loan_eligibility(
        snapshot,
        existing_loans,
        amount,
        as_of_date=as_of_date,
        policy_table=policy_table,
    )
    if not report.eligible:
        raise LoanEligibilityError(_failed_checks(report), report=report)
    return report


def _rate_performance(percentage: int) -> PaymentRating:
    if percentage >= 95:
        return PaymentRating.EXCELLENT
    if percentage >= 80:
        return PaymentRating.GOOD
    if percentage >= 60:
        return PaymentRating.FAIR
    return PaymentRating.POOR


def _record_performance(performance: PaymentPerformance, *, late: bool) -> None:
    if late:
        performance.late_payments += 1
    else:
        performance.on_time_payments += 1
    total = performance.on_time_payments + performance.late_payments
    ratio = Decimal(performance.on_time_payments) / Decimal(total) * Decimal("100")
    performance.on_time_percentage = int(ratio.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    performance.rating = _rate_performance(performance.on_time_percentage)


def _apply_waterfall(
    loan: Loan,
    amount: Decimal,
    payment_date: date,
    method: PaymentMethod,
    reference: str | None,
) -> list[InstallmentAllocation]:
    """Spread ``amount`` over open installments, oldest first, without skipping."""
    remaining = amount
    allocations: list[InstallmentAllocation] = []
    for installment in sorted(loan.installments, key=lambda item: item.number):
        if remaining <= 0:
            break
        if installment.status not in OPEN_INSTALLMENT_STATUSES:
            continue
        due = installment.amount_due
        if due <= 0:
            continue
        applied = min(remaining, due)
        installment.paid_amount += applied
        installment.payment_method = method
        installment.payment_reference = reference
        remaining -= applied
        allocations.append(
            InstallmentAllocation(installment_number=installment.number, amount_applied=applied)
        )
        if installment.amount_due <= 0:
            late_days = max((payment_date - installment.due_date).days, 0)
            installment.status = InstallmentStatus.PAID
            installment.paid_date = payment_date
            installment.late_days = late_days
            _record_performance(loan.performance, late=late_days > 0)
        else:
            installment.status = InstallmentStatus.PARTIAL
    return allocations


def _close_open_installments(loan: Loan, on: date, method: PaymentMethod | None = None) -> None:
    for installment in loan.installments:
        if installment.status in SETTLED_INSTALLMENT_STATUSES:
            continue
        installment.paid_amount = installment.principal_amount + installment.interest_amount
        installment.status = InstallmentStatus.PAID
        installment.paid_date = installment.paid_date or on
        if method is not None:
            installment.payment_method = method


def _complete(
    loan: Loan,
    *,
    method: CompletionMethod,
    on: date,
    final_amount: Decimal,
    final_reference: str | None,
) -> None:
    _close_open_installments(loan, on)
    if loan.payroll_deduction is not None:
        loan.payroll_deduction.active = False
    loan.completion = Completion(
        completion_date=on,
        method=method,
        final_payment_date=on,
        final_payment_amount=final_amount,
        final_payment_reference=final_reference,
    )
    _transition(loan, "complete", LoanStatus.COMPLETED, on)


def _validate_payment_amount(loan: Loan, amount: Decimal, field: str = "amount") -> None:
    if not amount.is_finite() or amount <= 0:
        raise LoanValidationError(field, "Payment amount must be greater than zero")
    if amount > loan.balance.remaining_balance:
        raise LoanValidationError(
            field,
            f"Payment amount exceeds remaining balance ({loan.balance.remaining_balance})",
            remaining_balance=str(loan.balance.remaining_balance),
        )


def _post_payment(
    loan: Loan,
    amount: Decimal,
    *,
    method: PaymentMethod,
    payment_date: date,
    reference: str | None,
    notes: str | None,
) -> bool:
    allocations = _apply_waterfall(loan, amount, payment_date, method, reference)
    loan.balance.paid_amount += amount
    _refresh_balance(loan)
    loan.payment_history.append(
        PaymentRecord(
            payment_id=f"PAY-{len(loan.payment_history) + 1}",
            payment_date=payment_date,
            amount=amount,
            method=method,
            reference=reference,
            remaining_balance=loan.balance.remaining_balance,
            allocations=allocations,
            notes=notes,
        )
    )
    if loan.balance.remaining_balance <= 0:
        _complete(
            loan,
            method=CompletionMethod.FULL_REPAYMENT,
            on=payment_date,
            final_amount=amount,
            final_reference=reference,
        )
        return True
    return False


def create_loan(
    snapshot: EligibilitySnapshot,
    loan_type: LoanType | str,
    amount,
    installments: int,
    first_due_date: date,
    *,
    existing_loans: Iterable[ExistingLoanSnapshot] = (),
    skip_eligibility: bool = False,
    as_draft: bool = False,
    as_of_date: date | None = None,
    purpose: str | None = None,
    loan_id: str | None = None,
    policy_table: LoanPolicyTable | None = None,
) -> Loan:
    """Open a new loan application.

    Terms are checked against the loan type's caps first; eligibility runs
    next unless skipped or the loan is saved as a draft (drafts are checked
    when they enter review). Nothing is created when either check fails.
    """
    table = policy_table or build_policy_table()
    today = _today(as_of_date)
    principal = _as_decimal(amount)
    validate_loan_terms(table, loan_type, principal, installments)

    report = None
    if not as_draft and not skip_eligibility:
        report = _run_eligibility(snapshot, existing_loans, principal, today, table)

    schedule = generate_schedule(principal, installments, first_due_date)
    status = LoanStatus.DRAFT if as_draft else LoanStatus.PENDING
    loan = Loan(
        loan_id=loan_id or str(uuid.uuid4()),
        employee_id=snapshot.employee_id,
        loan_type=LoanType(loan_type),
        principal=principal,
        approved_amount=principal,
        status=status,
        purpose=purpose,
        application_date=today,
        repayment=_repayment_terms(schedule),
        installments=schedule.installments,
        balance=LoanBalance(original_amount=principal, remaining_balance=principal),
        eligibility_snapshot=snapshot,
        eligibility_report=report,
        status_history=[StatusChange(operation="create", to_status=status, at=today)],
    )
    return _commit(None, loan, "loan.created")


def submit_loan(loan: Loan, *, on: date | None = None) -> Loan:
    _require_state(loan, "submit", LoanStatus.DRAFT)
    updated = loan.model_copy(deep=True)
    _transition(updated, "submit", LoanStatus.SUBMITTED, _today(on))
    return _commit(loan, updated, "loan.submitted")


def open_review(
    loan: Loan,
    snapshot: EligibilitySnapshot,
    existing_loans: Iterable[ExistingLoanSnapshot] = (),
    *,
    skip_eligibility: bool = False,
    on: date | None = None,
    policy_table: LoanPolicyTable | None = None,
) -> Loan:
    _require_state(loan, "review", LoanStatus.SUBMITTED)
    table = policy_table or build_policy_table()
    today = _today(on)
    validate_loan_terms(table, loan.loan_type, loan.principal, loan.repayment.installment_count)
    report = None
    if not skip_eligibility:
        report = _run_eligibility(snapshot, existing_loans, loan.principal, today, table)

    updated = loan.model_copy(deep=True)
    updated.eligibility_snapshot = snapshot
    updated.eligibility_report = report
    _transition(updated, "review", LoanStatus.PENDING, today)
    return _commit(loan, updated, "loan.review_opened")


def approve_loan(
    loan: Loan,
    *,
    approved_amount=None,
    approved_installments: int | None = None,
    on: date | None = None,
    policy_table: LoanPolicyTable | None = None,
) -> Loan:
    """Approve a pending loan, optionally for different terms.

    Changed terms are re-checked against the loan type's caps and produce a
    brand new schedule from the original first due date.
    """
    _require_state(loan, "approve", LoanStatus.PENDING)
    table = policy_table or build_policy_table()
    amount = _as_decimal(approved_amount) if approved_amount is not None else loan.approved_amount
    count = approved_installments if approved_installments is not None else loan.repayment.installment_count
    validate_loan_terms(table, loan.loan_type, amount, count)

    updated = loan.model_copy(deep=True)
    if amount != loan.approved_amount or count != loan.repayment.installment_count:
        schedule = generate_schedule(amount, count, loan.repayment.first_due_date)
        updated.installments = schedule.installments
        updated.repayment = _repayment_terms(schedule)
        updated.approved_amount = amount
        updated.balance = LoanBalance(original_amount=amount, remaining_balance=amount)

    today = _today(on)
    updated.approval_date = today
    _transition(updated, "approve", LoanStatus.APPROVED, today)
    return _commit(loan, updated, "loan.approved")


def reject_loan(loan: Loan, reason: str, *, on: date | None = None) -> Loan:
    _require_state(loan, "reject", LoanStatus.PENDING)
    if not reason or not reason.strip():
        raise LoanValidationError("reason", "Rejection reason is required")
    updated = loan.model_copy(deep=True)
    updated.rejection_reason = reason.strip()
    _transition(updated, "reject", LoanStatus.REJECTED, _today(on))
    return _commit(loan, updated, "loan.rejected")


def disburse_loan(
    loan: Loan,
    method: DisbursementMethod | str,
    *,
    deductions: Iterable[DisbursementDeduction] = (),
    bank_transfer: BankTransferDetails | None = None,
    check: CheckDetails | None = None,
    cash: CashDetails | None = None,
    on: date | None = None,
) -> Loan:
    _require_state(loan, "disburse", LoanStatus.APPROVED)
    method = DisbursementMethod(method)
    deduction_list = list(deductions)
    for deduction in deduction_list:
        if deduction.amount < 0:
            raise LoanValidationError("deductions", "Deduction amounts cannot be negative")
    total_deductions = sum((deduction.amount for deduction in deduction_list), ZERO)
    net_amount = loan.approved_amount - total_deductions
    if net_amount <= 0:
        raise LoanValidationError(
            "deductions",
            "Net disbursed amount must be greater than zero",
            net_disbursed_amount=str(net_amount),
        )
    if method == DisbursementMethod.CHECK and check is None:
        raise LoanValidationError("check", "Check details are required for check disbursement")

    today = _today(on)
    updated = loan.model_copy(deep=True)
    updated.disbursement = Disbursement(
        method=method,
        disbursement_date=today,
        disbursed_amount=loan.approved_amount,
        deductions=deduction_list,
        net_disbursed_amount=net_amount,
        bank_transfer=bank_transfer if method == DisbursementMethod.BANK_TRANSFER else None,
        check=check if method == DisbursementMethod.CHECK else None,
        cash=cash if method == DisbursementMethod.CASH else None,
    )
    updated.disbursement_date = today
    updated.payroll_deduction = PayrollDeductionLink(
        deduction_code=f"LOAN-{loan.loan_id}",
        deduction_amount=loan.repayment.installment_amount,
        start_date=loan.repayment.first_due_date,
        end_date=loan.repayment.last_due_date,
    )
    _transition(updated, "disburse", LoanStatus.ACTIVE, today)
    return _commit(loan, updated, "loan.disbursed")


def apply_payment(
    loan: Loan,
    amount,
    *,
    method: PaymentMethod | str = PaymentMethod.BANK_TRANSFER,
    payment_date: date | None = None,
    reference: str | None = None,
    notes: str | None = None,
) -> Loan:
    """Apply one payment through the installment waterfall.

    The loan completes when the remaining balance reaches zero.
    """
    _require_state(loan, "apply a payment to", LoanStatus.ACTIVE)
    payment = _as_decimal(amount)
    _validate_payment_amount(loan, payment)

    updated = loan.model_copy(deep=True)
    completed = _post_payment(
        updated,
        payment,
        method=PaymentMethod(method),
        payment_date=_today(payment_date),
        reference=reference,
        notes=notes,
    )
    result = _commit(loan, updated, "loan.payment_applied")
    if completed:
        record_audit_event(
            action="loan.completed",
            resource_type="loan",
            resource_id=result.loan_id,
            new_value=_audit_state(result),
        )
    return result


def record_payroll_deduction(
    loan: Loan,
    payroll_run_id: str,
    payroll_month: int,
    payroll_year: int,
    amount,
    *,
    deduction_date: date | None = None,
) -> Loan:
    _require_state(loan, "record a payroll deduction on", LoanStatus.ACTIVE)
    if any(entry.payroll_run_id == payroll_run_id for entry in loan.payroll_deductions):
        raise LoanValidationError(
            "payroll_run_id", f"Deduction already recorded for payroll run {payroll_run_id}"
        )
    deducted = _as_decimal(amount)
    _validate_payment_amount(loan, deducted)

    today = _today(deduction_date)
    updated = loan.model_copy(deep=True)
    completed = _post_payment(
        updated,
        deducted,
        method=PaymentMethod.PAYROLL_DEDUCTION,
        payment_date=today,
        reference=payroll_run_id,
        notes=f"Payroll deduction {payroll_month:02d}/{payroll_year}",
    )
    updated.payroll_deductions.append(
        PayrollDeductionEntry(
            payroll_run_id=payroll_run_id,
            payroll_month=payroll_month,
            payroll_year=payroll_year,
            deduction_date=today,
            deducted_amount=deducted,
            remaining_balance=updated.balance.remaining_balance,
        )
    )
    result = _commit(loan, updated, "loan.payroll_deduction_recorded")
    if completed:
        record_audit_event(
            action="loan.completed",
            resource_type="loan",
            resource_id=result.loan_id,
            new_value=_audit_state(result),
        )
    return result


def quote_early_settlement(loan: Loan) -> EarlySettlementQuote:
    _require_state(loan, "quote early settlement for", LoanStatus.ACTIVE)
    remaining = loan.balance.remaining_balance
    return EarlySettlementQuote(remaining_principal=remaining, total_settlement_amount=remaining)


def settle_early(
    loan: Loan,
    settlement_amount,
    *,
    method: PaymentMethod | str,
    reference: str | None = None,
    on: date | None = None,
) -> Loan:
    _require_state(loan, "settle", LoanStatus.ACTIVE)
    amount = _as_decimal(settlement_amount)
    remaining = loan.balance.remaining_balance
    if not amount.is_finite() or amount < remaining:
        raise LoanValidationError(
            "settlement_amount",
            f"Settlement amount must cover the remaining balance ({remaining})",
            remaining_balance=str(remaining),
        )

    today = _today(on)
    method = PaymentMethod(method)
    updated = loan.model_copy(deep=True)
    allocations = [
        InstallmentAllocation(installment_number=item.number, amount_applied=item.amount_due)
        for item in updated.installments
        if item.status in OPEN_INSTALLMENT_STATUSES and item.amount_due > 0
    ]
    _close_open_installments(updated, today, method)
    updated.balance.paid_amount = updated.approved_amount
    _refresh_balance(updated)
    updated.payment_history.append(
        PaymentRecord(
            payment_id=f"PAY-{len(updated.payment_history) + 1}",
            payment_date=today,
            amount=amount,
            method=method,
            reference=reference,
            remaining_balance=ZERO,
            allocations=allocations,
            notes="Early settlement",
        )
    )
    updated.early_settlement = EarlySettlement(
        settlement_date=today,
        remaining_principal=remaining,
        settlement_amount=amount,
        method=method,
        reference=reference,
    )
    _complete(
        updated,
        method=CompletionMethod.EARLY_SETTLEMENT,
        on=today,
        final_amount=amount,
        final_reference=reference,
    )
    return _commit(loan, updated, "loan.settled_early")


def mark_defaulted(
    loan: Loan,
    reason: str = "non_payment",
    *,
    notes: str | None = None,
    on: date | None = None,
) -> Loan:
    _require_state(loan, "default", LoanStatus.ACTIVE)
    today = _today(on)
    updated = loan.model_copy(deep=True)
    updated.default_info = DefaultInfo(
        default_date=today,
        reason=reason or "non_payment",
        outstanding_amount=loan.balance.remaining_balance,
        notes=notes,
    )
    if updated.payroll_deduction is not None:
        updated.payroll_deduction.active = False
    _transition(updated, "default", LoanStatus.DEFAULTED, today)
    return _commit(loan, updated, "loan.defaulted")


def _preserved_prefix(loan: Loan, on: date) -> list[Installment]:
    """Settled installments plus partial ones closed at what was paid."""
    preserved: list[Installment] = []
    for installment in sorted(loan.installments, key=lambda item: item.number):
        if installment.status in SETTLED_INSTALLMENT_STATUSES:
            preserved.append(installment)
        elif installment.status == InstallmentStatus.PARTIAL:
            preserved.append(
                installment.model_copy(
                    update={
                        "principal_amount": installment.paid_amount,
                        "interest_amount": ZERO,
                        "status": InstallmentStatus.PAID,
                        "paid_date": installment.paid_date or on,
                    }
                )
            )
    return preserved


def restructure_loan(
    loan: Loan,
    new_installment_count: int,
    effective_date: date,
    *,
    new_installment_amount=None,
    reason: str = "mutual_agreement",
    on: date | None = None,
) -> Loan:
    """Replace the unpaid suffix of the schedule with new terms.

    Paid installments keep their numbers, amounts and dates. The remaining
    balance is rescheduled from ``effective_date`` and numbered after them.
    A defaulted loan returns to active.
    """
    _require_state(loan, "restructure", LoanStatus.ACTIVE, LoanStatus.DEFAULTED)
    if isinstance(new_installment_count, bool) or not isinstance(new_installment_count, int) or new_installment_count <= 0:
        raise LoanValidationError("new_installment_count", "New installments must be greater than zero")
    remaining = loan.balance.remaining_balance
    if remaining <= 0:
        raise LoanValidationError("remaining_balance", "Loan has no remaining balance to restructure")
    agreed_amount = None
    if new_installment_amount is not None:
        agreed_amount = _as_decimal(new_installment_amount)
        if not agreed_amount.is_finite() or agreed_amount <= 0:
            raise LoanValidationError("new_installment_amount", "New installment amount must be greater than zero")

    today = _today(on)
    updated = loan.model_copy(deep=True)
    preserved = _preserved_prefix(updated, today)
    schedule = generate_schedule(
        remaining,
        new_installment_count,
        effective_date,
        start_number=len(preserved) + 1,
    )
    installment_amount = agreed_amount if agreed_amount is not None else schedule.installment_amount
    open_count = sum(1 for item in loan.installments if item.status in OPEN_INSTALLMENT_STATUSES)

    updated.restructuring_history.append(
        RestructuringRecord(
            restructure_id=f"RST-{len(loan.restructuring_history) + 1}",
            restructure_date=today,
            effective_date=effective_date,
            reason=reason or "mutual_agreement",
            previous_status=loan.status,
            preserved_installments=len(preserved),
            original_terms=RestructuringTerms(
                remaining_balance=remaining,
                installment_amount=loan.repayment.installment_amount,
                installment_count=open_count,
                end_date=loan.repayment.last_due_date,
            ),
            new_terms=RestructuringTerms(
                remaining_balance=remaining,
                installment_amount=installment_amount,
                installment_count=new_installment_count,
                end_date=schedule.last_due_date,
            ),
        )
    )
    updated.installments = preserved + schedule.installments
    updated.repayment = RepaymentTerms(
        installment_count=len(updated.installments),
        installment_amount=installment_amount,
        first_due_date=loan.repayment.first_due_date,
        last_due_date=schedule.last_due_date,
    )

    link = updated.payroll_deduction
    if link is None:
        updated.payroll_deduction = PayrollDeductionLink(
            deduction_code=f"LOAN-{loan.loan_id}",
            deduction_amount=installment_amount,
            start_date=effective_date,
            end_date=schedule.last_due_date,
        )
    else:
        link.deduction_amount = installment_amount
        link.end_date = schedule.last_due_date
        link.active = True

    if loan.status == LoanStatus.DEFAULTED:
        if updated.default_info is not None:
            updated.default_info.recovered = True
            updated.default_info.recovery_date = today
        _transition(updated, "restructure", LoanStatus.ACTIVE, today)
        logger.info("Loan %s recovered from default through restructuring", loan.loan_id)
    return _commit(loan, updated, "loan.restructured")


def issue_clearance(loan: Loan, *, letter_url: str | None = None, on: date | None = None) -> Loan:
    _require_state(loan, "issue clearance for", LoanStatus.COMPLETED)
    today = _today(on)
    updated = loan.model_copy(deep=True)
    if updated.completion is None:
        updated.completion = Completion(
            completion_date=today,
            method=CompletionMethod.FULL_REPAYMENT,
            final_payment_date=today,
            final_payment_amount=ZERO,
        )
    updated.completion.clearance_letter = ClearanceLetter(issue_date=today, letter_url=letter_url)
    updated.completion.case_closed = True
    updated.completion.closed_date = today
    return _commit(loan, updated, "loan.clearance_issued")
