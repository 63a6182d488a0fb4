from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Union

from pydantic import BaseModel, ConfigDict, Field


class LoanStatus(str, Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    ACTIVE = "active"
    COMPLETED = "completed"
    DEFAULTED = "defaulted"


class LoanType(str, Enum):
    PERSONAL = "personal"
    HOUSING = "housing"
    VEHICLE = "vehicle"
    EDUCATION = "education"
    EMERGENCY = "emergency"
    MARRIAGE = "marriage"
    MEDICAL = "medical"
    HAJJ = "hajj"
    FURNITURE = "furniture"
    COMPUTER = "computer"
    TRAVEL = "travel"
    DEBT_CONSOLIDATION = "debt_consolidation"
    OTHER = "other"


class InstallmentStatus(str, Enum):
    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"
    WAIVED = "waived"


class DisbursementMethod(str, Enum):
    BANK_TRANSFER = "bank_transfer"
    CHECK = "check"
    CASH = "cash"


class PaymentMethod(str, Enum):
    PAYROLL_DEDUCTION = "payroll_deduction"
    BANK_TRANSFER = "bank_transfer"
    CASH = "cash"
    CHECK = "check"


class DeductionType(str, Enum):
    PROCESSING_FEE = "processing_fee"
    INSURANCE = "insurance"
    ADVANCE_INSTALLMENT = "advance_installment"
    OTHER = "other"


class CompletionMethod(str, Enum):
    FULL_REPAYMENT = "full_repayment"
    EARLY_SETTLEMENT = "early_settlement"


class PaymentRating(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"


class EligibilityCheckId(str, Enum):
    TENURE = "tenure"
    EMPLOYMENT_STATUS = "employment_status"
    CREDIT_LIMIT = "credit_limit"
    INSTALLMENT_CAPACITY = "installment_capacity"
    PAYMENT_HISTORY = "payment_history"
    ACTIVE_LOAN_LIMIT = "active_loan_limit"


OPEN_LOAN_STATUSES = frozenset({LoanStatus.PENDING, LoanStatus.APPROVED, LoanStatus.ACTIVE})
SETTLED_INSTALLMENT_STATUSES = frozenset({InstallmentStatus.PAID, InstallmentStatus.WAIVED})

CheckValue = Union[bool, int, Decimal, str, None]


# ---------------------------------------------------------------------------
# Eligibility
# ---------------------------------------------------------------------------


class EligibilitySnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    employee_id: str | None = None
    basic_salary: Decimal = Field(ge=0)
    allowances_total: Decimal = Field(default=Decimal("0"), ge=0)
    hire_date: date | None = None
    employment_status: str | None = None

    @property
    def gross_salary(self) -> Decimal:
        return self.basic_salary + self.allowances_total


class ExistingLoanSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    loan_id: str | None = None
    status: LoanStatus
    remaining_balance: Decimal = Decimal("0")
    installment_amount: Decimal = Decimal("0")
    max_late_days: int = 0


class EligibilityCheck(BaseModel):
    model_config = ConfigDict(frozen=True)

    check_id: EligibilityCheckId
    passed: bool
    requirement: CheckValue
    actual_value: CheckValue


class EligibilityReport(BaseModel):
    model_config = ConfigDict(frozen=True)

    as_of_date: date
    eligible: bool
    checks: list[EligibilityCheck]
    ineligibility_reasons: list[EligibilityCheckId]
    requested_amount: Decimal
    gross_salary: Decimal
    credit_limit: Decimal
    total_outstanding: Decimal
    available_credit: Decimal
    max_monthly_installment: Decimal
    existing_deductions: Decimal
    available_installment_capacity: Decimal
    active_loan_count: int
    days_of_service: int | None = None


# ---------------------------------------------------------------------------
# Loan aggregate
# ---------------------------------------------------------------------------


class Installment(BaseModel):
    number: int = Field(ge=1)
    due_date: date
    principal_amount: Decimal
    interest_amount: Decimal = Decimal("0")
    status: InstallmentStatus = InstallmentStatus.PENDING
    paid_amount: Decimal = Decimal("0")
    paid_date: date | None = None
    late_days: int | None = None
    payment_method: PaymentMethod | None = None
    payment_reference: str | None = None

    @property
    def amount_due(self) -> Decimal:
        return max(self.principal_amount + self.interest_amount - self.paid_amount, Decimal("0"))


class RepaymentTerms(BaseModel):
    installment_count: int
    installment_amount: Decimal
    first_due_date: date
    last_due_date: date


class LoanBalance(BaseModel):
    original_amount: Decimal
    paid_amount: Decimal = Decimal("0")
    remaining_balance: Decimal
    completion_percentage: int = 0


class DisbursementDeduction(BaseModel):
    deduction_type: DeductionType = DeductionType.OTHER
    amount: Decimal
    description: str | None = None


class BankTransferDetails(BaseModel):
    bank_name: str | None = None
    account_number: str | None = None
    iban: str | None = None
    transfer_reference: str | None = None


class CheckDetails(BaseModel):
    check_number: str
    check_date: date | None = None


class CashDetails(BaseModel):
    receipt_number: str | None = None


class Disbursement(BaseModel):
    method: DisbursementMethod
    disbursement_date: date
    disbursed_amount: Decimal
    deductions: list[DisbursementDeduction] = Field(default_factory=list)
    net_disbursed_amount: Decimal
    bank_transfer: BankTransferDetails | None = None
    check: CheckDetails | None = None
    cash: CashDetails | None = None
    confirmation_required: bool = True
    confirmed: bool = False


class PayrollDeductionLink(BaseModel):
    active: bool = True
    deduction_code: str
    deduction_amount: Decimal
    start_date: date
    end_date: date
    frequency: str = "monthly"


class PayrollDeductionEntry(BaseModel):
    payroll_run_id: str
    payroll_month: int = Field(ge=1, le=12)
    payroll_year: int
    deduction_date: date
    deducted_amount: Decimal
    remaining_balance: Decimal


class InstallmentAllocation(BaseModel):
    installment_number: int
    amount_applied: Decimal


class PaymentRecord(BaseModel):
    payment_id: str
    payment_date: date
    amount: Decimal
    method: PaymentMethod
    reference: str | None = None
    remaining_balance: Decimal
    allocations: list[InstallmentAllocation] = Field(default_factory=list)
    notes: str | None = None


class PaymentPerformance(BaseModel):
    on_time_payments: int = 0
    late_payments: int = 0
    on_time_percentage: int | None = None
    rating: PaymentRating | None = None


class RestructuringTerms(BaseModel):
    remaining_balance: Decimal
    installment_amount: Decimal
    installment_count: int
    end_date: date


class RestructuringRecord(BaseModel):
    restructure_id: str
    restructure_date: date
    effective_date: date
    reason: str
    previous_status: LoanStatus
    preserved_installments: int
    original_terms: RestructuringTerms
    new_terms: RestructuringTerms


class DefaultInfo(BaseModel):
    default_date: date
    reason: str = "non_payment"
    outstanding_amount: Decimal
    notes: str | None = None
    recovered: bool = False
    recovery_date: date | None = None


class EarlySettlementQuote(BaseModel):
    remaining_principal: Decimal
    remaining_interest: Decimal = Decimal("0")
    early_settlement_penalty: Decimal = Decimal("0")
    total_settlement_amount: Decimal
    savings: Decimal = Decimal("0")


class EarlySettlement(BaseModel):
    settlement_date: date
    remaining_principal: Decimal
    settlement_amount: Decimal
    savings: Decimal = Decimal("0")
    method: PaymentMethod
    reference: str | None = None


class ClearanceLetter(BaseModel):
    issue_date: date
    letter_url: str | None = None
    delivered: bool = False


class Completion(BaseModel):
    completion_date: date
    method: CompletionMethod
    final_payment_date: date
    final_payment_amount: Decimal
    final_payment_reference: str | None = None
    clearance_letter: ClearanceLetter | None = None
    case_closed: bool = False
    closed_date: date | None = None


class StatusChange(BaseModel):
    operation: str
    from_status: LoanStatus | None = None
    to_status: LoanStatus
    at: date


class Loan(BaseModel):
    loan_id: str
    employee_id: str | None = None
    loan_type: LoanType
    principal: Decimal
    approved_amount: Decimal
    status: LoanStatus
    purpose: str | None = None
    application_date: date
    approval_date: date | None = None
    rejection_reason: str | None = None
    disbursement_date: date | None = None
    repayment: RepaymentTerms
    installments: list[Installment]
    balance: LoanBalance
    eligibility_snapshot: EligibilitySnapshot | None = None
    eligibility_report: EligibilityReport | None = None
    disbursement: Disbursement | None = None
    payroll_deduction: PayrollDeductionLink | None = None
    payroll_deductions: list[PayrollDeductionEntry] = Field(default_factory=list)
    payment_history: list[PaymentRecord] = Field(default_factory=list)
    performance: PaymentPerformance = Field(default_factory=PaymentPerformance)
    restructuring_history: list[RestructuringRecord] = Field(default_factory=list)
    default_info: DefaultInfo | None = None
    early_settlement: EarlySettlement | None = None
    completion: Completion | None = None
    status_history: list[StatusChange] = Field(default_factory=list)
    version: int = 0


# ---------------------------------------------------------------------------
# Read-side projections
# ---------------------------------------------------------------------------


class OverdueInstallment(BaseModel):
    loan_id: str
    employee_id: str | None = None
    loan_type: LoanType
    installment_number: int
    due_date: date
    amount: Decimal
    paid_amount: Decimal
    outstanding_amount: Decimal
    days_overdue: int
    default_candidate: bool = False


class LoanPaymentStatus(BaseModel):
    loan_id: str
    status: LoanStatus
    as_of_date: date
    next_installment: Installment | None = None
    overdue_installments: list[OverdueInstallment] = Field(default_factory=list)
    overdue_amount: Decimal = Decimal("0")
    remaining_balance: Decimal
    completion_percentage: int
    performance: PaymentPerformance


class LoanTypePolicyOut(BaseModel):
    loan_type: LoanType
    max_amount: Decimal
    max_installments: int


class LoanPolicyOut(BaseModel):
    min_service_days: int
    credit_limit_multiplier: Decimal
    max_installment_percentage: Decimal
    max_active_loans: int
    overdue_threshold_days: int
    default_after_days: int
    loan_types: list[LoanTypePolicyOut]


# ---------------------------------------------------------------------------
# API request bodies
# ---------------------------------------------------------------------------


class LoanEligibilityRequest(BaseModel):
    employee: EligibilitySnapshot
    existing_loans: list[ExistingLoanSnapshot] = Field(default_factory=list)
    requested_amount: Decimal = Decimal("0")
    as_of_date: date | None = None


class LoanCreateRequest(BaseModel):
    employee: EligibilitySnapshot
    existing_loans: list[ExistingLoanSnapshot] = Field(default_factory=list)
    loan_type: LoanType
    amount: Decimal
    installments: int
    first_due_date: date
    purpose: str | None = None
    skip_eligibility: bool = False
    as_draft: bool = False
    as_of_date: date | None = None


class LoanCommand(BaseModel):
    loan: Loan
    on: date | None = None


class LoanReviewRequest(LoanCommand):
    employee: EligibilitySnapshot
    existing_loans: list[ExistingLoanSnapshot] = Field(default_factory=list)
    skip_eligibility: bool = False


class LoanApproveRequest(LoanCommand):
    approved_amount: Decimal | None = None
    approved_installments: int | None = None


class LoanRejectRequest(LoanCommand):
    reason: str


class LoanDisburseRequest(LoanCommand):
    method: DisbursementMethod
    deductions: list[DisbursementDeduction] = Field(default_factory=list)
    bank_transfer: BankTransferDetails | None = None
    check: CheckDetails | None = None
    cash: CashDetails | None = None


class LoanPaymentRequest(LoanCommand):
    amount: Decimal
    method: PaymentMethod
    reference: str | None = None
    notes: str | None = None


class LoanPayrollDeductionRequest(LoanCommand):
    payroll_run_id: str
    payroll_month: int = Field(ge=1, le=12)
    payroll_year: int
    amount: Decimal


class LoanSettlementRequest(LoanCommand):
    settlement_amount: Decimal
    method: PaymentMethod
    reference: str | None = None


class LoanDefaultRequest(LoanCommand):
    reason: str = "non_payment"
    notes: str | None = None


class LoanRestructureRequest(LoanCommand):
    new_installment_count: int
    effective_date: date
    new_installment_amount: Decimal | None = None
    reason: str = "mutual_agreement"


class LoanClearanceRequest(LoanCommand):
    letter_url: str | None = None


class LoanStatusRequest(BaseModel):
    loan: Loan
    as_of_date: date | None = None


class OverdueInstallmentsRequest(BaseModel):
    loans: list[Loan]
    as_of_date: date | None = None
