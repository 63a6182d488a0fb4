import json
import logging
from decimal import Decimal

import pytest
from conftest import make_active_loan

from app.core import context
from app.core.logging import AUDIT_LOGGER_NAME, JsonFormatter, build_logging_config, get_audit_logger
from app.core.settings import Settings
from app.services.audit import record_audit_event
from app.services.contribution_rates import build_rate_table
from app.services.loan_policies import build_policy_table


class _ListHandler(logging.Handler):
    def __init__(self) -> None:
        super().__init__()
        self.records: list[logging.LogRecord] = []

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(record)


@pytest.fixture
def audit_records():
    logger = get_audit_logger()
    handler = _ListHandler()
    previous_level = logger.level
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    yield handler.records
    logger.removeHandler(handler)
    logger.setLevel(previous_level)


def test_settings_read_environment(monkeypatch):
    monkeypatch.setenv("CONTRIBUTION_MIN_BASE", "400")
    monkeypatch.setenv("LOAN_MAX_ACTIVE_LOANS", "3")
    monkeypatch.setenv("LOAN_MAX_INSTALLMENT_PERCENTAGE", "33.33")
    configured = Settings()

    assert build_rate_table(configured).min_base == Decimal("400")
    table = build_policy_table(configured)
    assert table.max_active_loans == 3
    assert table.max_installment_percentage == Decimal("33.33")


def test_settings_defaults(monkeypatch):
    for name in ("CONTRIBUTION_MIN_BASE", "CONTRIBUTION_MAX_BASE", "LOAN_MAX_ACTIVE_LOANS"):
        monkeypatch.delenv(name, raising=False)
    configured = Settings(_env_file=None)
    assert configured.contribution_min_base == Decimal("1500")
    assert configured.contribution_max_base == Decimal("45000")
    assert configured.loan_max_active_loans == 2


def test_audit_event_carries_diff(audit_records):
    event = record_audit_event(
        action="loan.approved",
        resource_type="loan",
        resource_id="LN-1",
        old_value={"status": "pending", "remaining_balance": Decimal("10000")},
        new_value={"status": "approved", "remaining_balance": Decimal("10000")},
    )
    assert event["changes"] == {"status": {"from": "pending", "to": "approved"}}
    assert len(audit_records) == 1
    assert audit_records[0].getMessage() == "loan.approved: status"
    assert audit_records[0].event["resource_id"] == "LN-1"


def test_lifecycle_operations_emit_audit_lines(audit_records):
    make_active_loan()
    actions = [record.event["action"] for record in audit_records]
    assert actions == ["loan.created", "loan.approved", "loan.disbursed"]


def test_json_formatter_includes_request_context():
    tokens = context.bind_request_context("req-1", "tenant-a")
    try:
        record = logging.LogRecord("app.test", logging.INFO, __file__, 1, "hello %s", ("world",), None)
        record.tenant_id = context.get_tenant_id()
        record.request_id = context.get_request_id()
        record.event = {"action": "loan.created"}
        payload = json.loads(JsonFormatter(stream_label="audit").format(record))
    finally:
        context.reset_request_context(tokens)

    assert payload["message"] == "hello world"
    assert payload["tenant_id"] == "tenant-a"
    assert payload["request_id"] == "req-1"
    assert payload["stream"] == "audit"
    assert payload["event"] == {"action": "loan.created"}
    assert context.get_request_id() == "-"


def test_logging_config_routes_audit_separately():
    config = build_logging_config("debug")
    assert config["loggers"][AUDIT_LOGGER_NAME]["handlers"] == ["audit"]
    assert config["loggers"][AUDIT_LOGGER_NAME]["propagate"] is False
    assert config["handlers"]["default"]["level"] == "DEBUG"
    assert config["loggers"]["httpx"] == {"level": "WARNING"}
