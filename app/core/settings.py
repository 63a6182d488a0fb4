from decimal import Decimal
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    environment: str = Field(default="development", alias="ENVIRONMENT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    allowed_origins: list[str] = Field(default_factory=lambda: ["*"], alias="ALLOWED_ORIGINS")

    # Statutory contribution base bounds (basic + housing, per month).
    contribution_min_base: Decimal = Field(default=Decimal("1500"), gt=0, alias="CONTRIBUTION_MIN_BASE")
    contribution_max_base: Decimal = Field(default=Decimal("45000"), gt=0, alias="CONTRIBUTION_MAX_BASE")

    loan_min_service_days: int = Field(default=180, ge=0, alias="LOAN_MIN_SERVICE_DAYS")
    loan_credit_limit_multiplier: Decimal = Field(default=Decimal("3"), gt=0, alias="LOAN_CREDIT_LIMIT_MULTIPLIER")
    loan_max_installment_percentage: Decimal = Field(
        default=Decimal("30"), gt=0, le=100, alias="LOAN_MAX_INSTALLMENT_PERCENTAGE"
    )
    loan_max_active_loans: int = Field(default=2, ge=1, alias="LOAN_MAX_ACTIVE_LOANS")
    loan_overdue_threshold_days: int = Field(default=30, ge=0, alias="LOAN_OVERDUE_THRESHOLD_DAYS")
    loan_default_after_days: int = Field(default=90, ge=1, alias="LOAN_DEFAULT_AFTER_DAYS")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
