"""
Tests for approval_kernel.logging_config.

Covers:
- JSON envelope, extras and context identifiers on every line
- Exception fields, including the attributes of engine errors
- LogContext scoping, thread hand-off through copied contexts
- configure_logging / reset_logging lifecycle
"""

import contextvars
import json
import logging
import threading
from datetime import datetime, timezone
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from approval_kernel.domain.approval import ApprovalStatus, UserRole
from approval_kernel.exceptions import DuplicateDecisionError, RequestNotFoundError
from approval_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _isolated_logging():
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()
    configure_logging(level=logging.DEBUG)


@pytest.fixture
def json_lines():
    """Install a JSON handler on a fresh stream and return a reader for it."""
    stream = StringIO()
    configure_logging(handler=logging.StreamHandler(stream))

    def read() -> list[dict]:
        return [json.loads(line) for line in stream.getvalue().splitlines() if line]

    return read


class TestEnvelope:
    def test_fields(self, json_lines):
        get_logger("manager").info("approval_request_created")

        (line,) = json_lines()
        assert line["message"] == "approval_request_created"
        assert line["level"] == "INFO"
        assert line["logger"] == "approval_kernel.manager"
        assert datetime.fromisoformat(line["ts"]).tzinfo is not None

    def test_extras_merged(self, json_lines):
        get_logger("manager").info(
            "approval_decision_recorded", extra={"approved_count": 2, "approved": True},
        )
        line = json_lines()[0]
        assert line["approved_count"] == 2
        assert line["approved"] is True

    def test_extra_cannot_shadow_envelope(self, json_lines):
        get_logger("manager").info("real_message", extra={"logger": "spoofed"})
        assert json_lines()[0]["logger"] == "approval_kernel.manager"

    def test_domain_values_serialized(self, json_lines):
        order_uuid = uuid4()
        deadline = datetime(2024, 1, 2, 9, 30, tzinfo=timezone.utc)
        get_logger("manager").info("typed", extra={
            "order_uuid": order_uuid,
            "amount": Decimal("25000.50"),
            "status": ApprovalStatus.ESCALATED,
            "roles": frozenset({UserRole.ADMIN.value, UserRole.MANAGER.value}),
            "expires_at": deadline,
        })
        line = json_lines()[0]
        assert line["order_uuid"] == str(order_uuid)
        assert line["amount"] == "25000.50"
        assert line["status"] == "escalated"
        assert line["roles"] == ["admin", "manager"]
        assert line["expires_at"] == "2024-01-02T09:30:00+00:00"

    def test_level_filtering_default_info(self, json_lines):
        log = get_logger("scheduler")
        log.debug("noisy")
        log.info("escalation_pass_started")
        log.warning("escalation_pass_skipped")
        assert [line["message"] for line in json_lines()] == [
            "escalation_pass_started",
            "escalation_pass_skipped",
        ]


class TestExceptionFields:
    def test_plain_exception(self, json_lines):
        try:
            raise ConnectionError("mail relay unreachable")
        except ConnectionError:
            get_logger("notifications").exception("side_effect_failed")

        line = json_lines()[0]
        assert line["exc_type"] == "ConnectionError"
        assert line["exc_message"] == "mail relay unreachable"
        assert "exc_code" not in line
        assert "Traceback" in line["traceback"]

    def test_engine_error_attributes(self, json_lines):
        try:
            raise DuplicateDecisionError("req-1", "mgr-1")
        except DuplicateDecisionError:
            get_logger("manager").error("decision_refused", exc_info=True)

        line = json_lines()[0]
        assert line["exc_type"] == "DuplicateDecisionError"
        assert line["exc_code"] == "DUPLICATE_DECISION"
        assert line["exc_request_id"] == "req-1"
        assert line["exc_approver_id"] == "mgr-1"

    def test_not_found_code(self, json_lines):
        try:
            raise RequestNotFoundError("req-404")
        except RequestNotFoundError:
            get_logger("bulk").warning("bulk_item_failed", exc_info=True)
        assert json_lines()[0]["exc_code"] == "NOT_FOUND"


class TestLogContext:
    def test_context_on_every_line(self, json_lines):
        LogContext.set(request_id="req-1", purchase_order_id="PO-1")
        get_logger("manager").info("first")
        get_logger("scheduler").info("second")
        for line in json_lines():
            assert line["request_id"] == "req-1"
            assert line["purchase_order_id"] == "PO-1"

    def test_absent_when_unset(self, json_lines):
        get_logger("manager").info("bare")
        line = json_lines()[0]
        assert not {"correlation_id", "request_id", "actor_id", "job_id"} & line.keys()

    def test_set_keeps_existing_fields(self):
        LogContext.set(request_id="req-1")
        LogContext.set(actor_id="mgr-1", request_id=None)
        assert LogContext.get_all() == {"request_id": "req-1", "actor_id": "mgr-1"}

    def test_clear(self):
        LogContext.set(job_id="bulk_approve-1")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_nests_and_restores(self):
        LogContext.set(request_id="outer")
        with LogContext.bind(request_id="inner", actor_id="adm-1"):
            assert LogContext.get_all() == {"request_id": "inner", "actor_id": "adm-1"}
            with LogContext.bind(job_id="escalation-7"):
                assert LogContext.get_all()["job_id"] == "escalation-7"
            assert "job_id" not in LogContext.get_all()
        assert LogContext.get_all() == {"request_id": "outer"}

    def test_bind_restores_on_error(self):
        with pytest.raises(RuntimeError):
            with LogContext.bind(request_id="req-9"):
                raise RuntimeError("store down")
        assert LogContext.get_all() == {}

    def test_unknown_and_none_ignored(self):
        with LogContext.bind(request_id=None, tenant="acme"):
            assert LogContext.get_all() == {}

    def test_field_order_is_stable(self):
        LogContext.set(job_id="j", actor_id="a", correlation_id="c")
        assert list(LogContext.get_all()) == ["correlation_id", "actor_id", "job_id"]

    def test_copied_context_reaches_thread(self):
        seen = {}

        def worker():
            seen.update(LogContext.get_all())

        with LogContext.bind(job_id="bulk_reject-3"):
            ctx = contextvars.copy_context()
        thread = threading.Thread(target=ctx.run, args=(worker,))
        thread.start()
        thread.join()

        assert seen == {"job_id": "bulk_reject-3"}
        assert LogContext.get_all() == {}

    def test_plain_thread_starts_empty(self):
        seen = {}
        LogContext.set(request_id="req-1")
        thread = threading.Thread(target=lambda: seen.update(LogContext.get_all()))
        thread.start()
        thread.join()
        assert seen == {}


class TestConfigureLogging:
    def test_second_call_is_noop(self):
        first, second = logging.StreamHandler(StringIO()), logging.StreamHandler(StringIO())
        configure_logging(handler=first)
        configure_logging(handler=second, level=logging.DEBUG)

        root = logging.getLogger("approval_kernel")
        assert root.handlers == [first]
        assert root.level == logging.INFO

    def test_handler_gets_json_formatter(self):
        handler = logging.StreamHandler(StringIO())
        configure_logging(handler=handler)
        assert isinstance(handler.formatter, StructuredFormatter)

    def test_stream_argument(self):
        stream = StringIO()
        configure_logging(stream=stream, level=logging.WARNING)
        get_logger("cli").info("dropped")
        get_logger("cli").warning("kept")
        assert [json.loads(line)["message"] for line in stream.getvalue().splitlines()] == ["kept"]

    def test_not_propagated_to_root(self):
        configure_logging(handler=logging.StreamHandler(StringIO()))
        assert logging.getLogger("approval_kernel").propagate is False

    def test_reset_allows_reconfiguration(self):
        configure_logging(handler=logging.StreamHandler(StringIO()))
        reset_logging()
        assert logging.getLogger("approval_kernel").handlers == []

        replacement = logging.StreamHandler(StringIO())
        configure_logging(handler=replacement)
        assert logging.getLogger("approval_kernel").handlers == [replacement]
