from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, ROUND_CEILING

from app.schemas.loan import Installment
from app.services.errors import LoanValidationError


ZERO = Decimal("0")


@dataclass(frozen=True)
class InstallmentSchedule:
    installments: list[Installment]
    installment_amount: Decimal
    first_due_date: date
    last_due_date: date

    @property
    def total(self) -> Decimal:
        return sum((item.principal_amount for item in self.installments), ZERO)


def _as_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _add_months(start: date, months: int) -> date:
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def base_installment_amount(principal: Decimal, installment_count: int) -> Decimal:
    return (principal / Decimal(installment_count)).to_integral_value(rounding=ROUND_CEILING)


def generate_schedule(
    principal,
    installment_count: int,
    first_due_date: date,
    *,
    start_number: int = 1,
) -> InstallmentSchedule:
    """Build an interest-free schedule whose amounts sum to ``principal``.

    Every installment but the last carries ``ceil(principal / count)``; the
    last one takes whatever is left. When the rounded-up base would
    overshoot, trailing installments are clamped so none goes negative.
    """
    amount = _as_decimal(principal)
    if not amount.is_finite() or amount <= 0:
        raise LoanValidationError("principal", "Principal must be greater than zero")
    if isinstance(installment_count, bool) or not isinstance(installment_count, int) or installment_count <= 0:
        raise LoanValidationError("installments", "Installment count must be a positive integer")

    base = base_installment_amount(amount, installment_count)
    remaining = amount
    installments: list[Installment] = []
    for index in range(installment_count):
        if index == installment_count - 1:
            portion = remaining
        else:
            portion = min(base, remaining)
        remaining -= portion
        installments.append(
            Installment(
                number=start_number + index,
                due_date=_add_months(first_due_date, index),
                principal_amount=portion,
            )
        )

    return InstallmentSchedule(
        installments=installments,
        installment_amount=base,
        first_due_date=first_due_date,
        last_due_date=installments[-1].due_date,
    )
