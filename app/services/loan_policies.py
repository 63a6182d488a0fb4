from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from types import MappingProxyType
from typing import Mapping

from app.core.settings import Settings, settings as app_settings
from app.schemas.loan import LoanPolicyOut, LoanType, LoanTypePolicyOut
from app.services.errors import LoanValidationError


@dataclass(frozen=True)
class LoanTypePolicy:
    max_amount: Decimal
    max_installments: int


DEFAULT_LOAN_TYPE_POLICIES: Mapping[LoanType, LoanTypePolicy] = MappingProxyType(
    {
        LoanType.PERSONAL: LoanTypePolicy(Decimal("50000"), 24),
        LoanType.HOUSING: LoanTypePolicy(Decimal("200000"), 60),
        LoanType.VEHICLE: LoanTypePolicy(Decimal("100000"), 48),
        LoanType.EDUCATION: LoanTypePolicy(Decimal("30000"), 24),
        LoanType.EMERGENCY: LoanTypePolicy(Decimal("10000"), 6),
        LoanType.MARRIAGE: LoanTypePolicy(Decimal("30000"), 24),
        LoanType.MEDICAL: LoanTypePolicy(Decimal("20000"), 12),
        LoanType.HAJJ: LoanTypePolicy(Decimal("15000"), 12),
        LoanType.FURNITURE: LoanTypePolicy(Decimal("20000"), 18),
        LoanType.COMPUTER: LoanTypePolicy(Decimal("10000"), 12),
        LoanType.TRAVEL: LoanTypePolicy(Decimal("10000"), 6),
        LoanType.DEBT_CONSOLIDATION: LoanTypePolicy(Decimal("50000"), 24),
        LoanType.OTHER: LoanTypePolicy(Decimal("20000"), 12),
    }
)


@dataclass(frozen=True)
class LoanPolicyTable:
    min_service_days: int = 180
    credit_limit_multiplier: Decimal = Decimal("3")
    max_installment_percentage: Decimal = Decimal("30")
    max_active_loans: int = 2
    overdue_threshold_days: int = 30
    default_after_days: int = 90
    active_employment_status: str = "active"
    loan_types: Mapping[LoanType, LoanTypePolicy] = field(
        default_factory=lambda: DEFAULT_LOAN_TYPE_POLICIES
    )

    def policy_for(self, loan_type: LoanType | str) -> LoanTypePolicy:
        try:
            key = LoanType(loan_type)
        except ValueError:
            raise LoanValidationError("loan_type", f"Unsupported loan type: {loan_type}") from None
        policy = self.loan_types.get(key)
        if policy is None:
            raise LoanValidationError("loan_type", f"Unsupported loan type: {key.value}")
        return policy


def build_policy_table(settings: Settings | None = None) -> LoanPolicyTable:
    source = settings or app_settings
    return LoanPolicyTable(
        min_service_days=source.loan_min_service_days,
        credit_limit_multiplier=Decimal(source.loan_credit_limit_multiplier),
        max_installment_percentage=Decimal(source.loan_max_installment_percentage),
        max_active_loans=source.loan_max_active_loans,
        overdue_threshold_days=source.loan_overdue_threshold_days,
        default_after_days=source.loan_default_after_days,
    )


def validate_loan_terms(
    policy_table: LoanPolicyTable,
    loan_type: LoanType | str,
    amount: Decimal,
    installments: int,
) -> LoanTypePolicy:
    """Check an amount/installment pair against the loan type's caps."""
    if amount is None or amount <= 0:
        raise LoanValidationError("amount", "Loan amount must be greater than zero")
    policy = policy_table.policy_for(loan_type)
    if amount > policy.max_amount:
        raise LoanValidationError(
            "amount",
            f"Loan amount exceeds maximum allowed for {LoanType(loan_type).value} (max: {policy.max_amount})",
            max_amount=str(policy.max_amount),
        )
    if installments is None or installments <= 0 or installments > policy.max_installments:
        raise LoanValidationError(
            "installments",
            f"Installments must be between 1 and {policy.max_installments} for {LoanType(loan_type).value}",
            max_installments=policy.max_installments,
        )
    return policy


def describe_policies(policy_table: LoanPolicyTable | None = None) -> LoanPolicyOut:
    table = policy_table or build_policy_table()
    return LoanPolicyOut(
        min_service_days=table.min_service_days,
        credit_limit_multiplier=table.credit_limit_multiplier,
        max_installment_percentage=table.max_installment_percentage,
        max_active_loans=table.max_active_loans,
        overdue_threshold_days=table.overdue_threshold_days,
        default_after_days=table.default_after_days,
        loan_types=[
            LoanTypePolicyOut(
                loan_type=loan_type,
                max_amount=policy.max_amount,
                max_installments=policy.max_installments,
            )
            for loan_type, policy in table.loan_types.items()
        ],
    )
