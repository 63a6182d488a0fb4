from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from app.core.settings import settings
from app.services.contribution_rates import build_rate_table
from app.services.loan_policies import build_policy_table

APP_VERSION = "0.1.0"


async def _check_api() -> dict[str, str]:
    return {"status": "ok", "version": APP_VERSION}


async def _check_policy_tables() -> dict[str, str]:
    try:
        rate_table = build_rate_table(settings)
        build_policy_table(settings)
    except ValueError as exc:
        return {"status": "error", "error": str(exc)}
    if rate_table.min_base > rate_table.max_base:
        return {"status": "error", "error": "contribution min base exceeds max base"}
    return {"status": "ok"}


def _overall_status(checks: dict[str, dict[str, Any]]) -> tuple[str, bool]:
    ready = all(check.get("status") == "ok" for check in checks.values())
    return ("ok" if ready else "degraded", ready)


async def live_payload() -> dict[str, str]:
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


async def ready_payload() -> dict[str, Any]:
    checks = {
        "api": await _check_api(),
        "policies": await _check_policy_tables(),
    }
    overall, ready = _overall_status(checks)
    return {
        "status": overall,
        "ready": ready,
        "environment": settings.environment,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": checks,
    }
