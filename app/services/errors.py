from __future__ import annotations

from typing import Any, Iterable


class LoanEngineError(ValueError):
    """Base error for contribution/loan engine failures.

    Carries the same ``code``/``message``/``details`` triple the API layer
    renders into the error envelope.
    """

    code = "loan_engine_error"

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return self.message


class LoanValidationError(LoanEngineError):
    code = "validation_error"

    def __init__(self, field: str, message: str, **details: Any) -> None:
        super().__init__(message, details={"field": field, **details})
        self.field = field


class LoanEligibilityError(LoanEngineError):
    code = "loan_ineligible"

    def __init__(self, failed_checks: list[dict[str, Any]], report: Any | None = None) -> None:
        names = ", ".join(check["check_id"] for check in failed_checks)
        super().__init__(
            f"Employee is not eligible for this loan: {names}",
            details={"failed_checks": failed_checks},
        )
        self.failed_checks = failed_checks
        self.report = report


class InvalidLoanStateError(LoanEngineError):
    code = "invalid_state"

    def __init__(self, operation: str, current_state: str, allowed_states: Iterable[str]) -> None:
        allowed = sorted(allowed_states)
        super().__init__(
            f"Cannot {operation} a loan in state '{current_state}' (requires one of: {', '.join(allowed)})",
            details={"operation": operation, "current_state": current_state, "allowed_states": allowed},
        )
        self.operation = operation
        self.current_state = current_state
        self.allowed_states = allowed
