"""
Tests for the pure threshold resolution engine.

Tests cover:
- resolve_threshold: range matching, tie-break order, inactive thresholds,
  negative amounts, no-match
- evaluate_condition: every operator, missing attributes
- extract_condition_attributes: default currency, first item category
- is_authorized: required roles and escalation recipients
"""

from decimal import Decimal

import pytest

from approval_engines.thresholds import (
    DEFAULT_CURRENCY,
    evaluate_condition,
    extract_condition_attributes,
    is_authorized,
    resolve_threshold,
    threshold_sort_key,
)
from approval_kernel.domain.approval import (
    ApprovalCondition,
    ConditionField,
    ConditionOperator,
    UserRole,
)
from tests.conftest import make_order, make_threshold

SMALL = make_threshold("small", min_amount="0", max_amount="10000", roles=(UserRole.MANAGER,), required_approvers=1)
MEDIUM = make_threshold("medium", min_amount="10001", max_amount="50000")
LARGE = make_threshold("large", min_amount="50001", max_amount=None, roles=(UserRole.ADMIN,))
DEFAULT_TABLE = (SMALL, MEDIUM, LARGE)


def cond(field: ConditionField, op: ConditionOperator, value) -> ApprovalCondition:
    return ApprovalCondition(field=field, operator=op, value=value)


# =========================================================================
# resolve_threshold
# =========================================================================


class TestResolveThreshold:
    @pytest.mark.parametrize("amount,expected", [
        ("0", "small"),
        ("10000", "small"),
        ("10001", "medium"),
        ("25000", "medium"),
        ("50000", "medium"),
        ("50001", "large"),
        ("10000000", "large"),
    ])
    def test_amount_bands(self, amount, expected):
        result = resolve_threshold(DEFAULT_TABLE, amount=Decimal(amount))
        assert result.threshold_id == expected

    def test_gap_between_bands_returns_none(self):
        result = resolve_threshold(DEFAULT_TABLE, amount=Decimal("10000.50"))
        assert result is None

    def test_empty_table_returns_none(self):
        assert resolve_threshold((), amount=Decimal("100")) is None

    def test_negative_amount_raises(self):
        with pytest.raises(ValueError, match="negative"):
            resolve_threshold(DEFAULT_TABLE, amount=Decimal("-1"))

    def test_inactive_threshold_ignored(self):
        inactive = make_threshold("medium", min_amount="10001", max_amount="50000", is_active=False)
        assert resolve_threshold((inactive,), amount=Decimal("20000")) is None

    def test_narrowest_range_wins(self):
        broad = make_threshold("broad", min_amount="0", max_amount="100000")
        narrow = make_threshold("narrow", min_amount="20000", max_amount="30000")
        assert resolve_threshold((broad, narrow), amount=Decimal("25000")) is narrow
        assert resolve_threshold((narrow, broad), amount=Decimal("25000")) is narrow

    def test_unbounded_range_loses_to_bounded(self):
        unbounded = make_threshold("open", min_amount="40000", max_amount=None)
        bounded = make_threshold("wide", min_amount="0", max_amount="1000000")
        assert resolve_threshold((unbounded, bounded), amount=Decimal("45000")) is bounded

    def test_equal_width_prefers_higher_min_amount(self):
        low = make_threshold("low", min_amount="0", max_amount="30000")
        high = make_threshold("high", min_amount="10000", max_amount="40000")
        assert resolve_threshold((low, high), amount=Decimal("20000")) is high

    def test_full_tie_breaks_on_id(self):
        b = make_threshold("b", min_amount="0", max_amount="30000")
        a = make_threshold("a", min_amount="0", max_amount="30000")
        assert resolve_threshold((b, a), amount=Decimal("20000")).threshold_id == "a"

    def test_result_independent_of_configuration_order(self):
        import itertools

        table = (
            make_threshold("x", min_amount="0", max_amount="60000"),
            make_threshold("y", min_amount="20000", max_amount="80000"),
            make_threshold("z", min_amount="20000", max_amount=None),
        )
        results = {
            resolve_threshold(perm, amount=Decimal("30000")).threshold_id
            for perm in itertools.permutations(table)
        }
        assert results == {"y"}

    def test_sort_key_puts_unbounded_last(self):
        ordered = sorted(DEFAULT_TABLE, key=threshold_sort_key)
        assert ordered[-1] is LARGE

    def test_conditions_filter_candidates(self):
        it_only = make_threshold(
            "it-purchases",
            min_amount="0",
            max_amount="20000",
            conditions=(cond(ConditionField.DEPARTMENT, ConditionOperator.EQUALS, "it"),),
        )
        fallback = make_threshold("any", min_amount="0", max_amount="50000")
        table = (it_only, fallback)

        it_attrs = {ConditionField.DEPARTMENT: "it"}
        ops_attrs = {ConditionField.DEPARTMENT: "operations"}
        assert resolve_threshold(table, amount=Decimal("5000"), attributes=it_attrs) is it_only
        assert resolve_threshold(table, amount=Decimal("5000"), attributes=ops_attrs) is fallback

    def test_emits_engine_trace(self, captured_logs):
        resolve_threshold(DEFAULT_TABLE, amount=Decimal("25000"))
        traces = [r for r in captured_logs() if r["message"] == "APPROVAL_ENGINE_TRACE"]
        assert traces
        assert traces[-1]["engine_name"] == "threshold_resolver"
        assert len(traces[-1]["input_fingerprint"]) == 16


# =========================================================================
# evaluate_condition
# =========================================================================


class TestEvaluateCondition:
    ATTRS = {
        ConditionField.SUPPLIER_CATEGORY: "office",
        ConditionField.PAYMENT_TERMS: "net30",
    }

    @pytest.mark.parametrize("op,value,expected", [
        (ConditionOperator.EQUALS, "office", True),
        (ConditionOperator.EQUALS, "Office", False),
        (ConditionOperator.CONTAINS, "ffi", True),
        (ConditionOperator.CONTAINS, "raw", False),
        (ConditionOperator.IN, ("office", "it"), True),
        (ConditionOperator.IN, ("it",), False),
        (ConditionOperator.NOT_IN, ("it",), True),
        (ConditionOperator.NOT_IN, ("office",), False),
    ])
    def test_operators(self, op, value, expected):
        c = cond(ConditionField.SUPPLIER_CATEGORY, op, value)
        assert evaluate_condition(c, self.ATTRS) is expected

    def test_in_accepts_single_string(self):
        c = cond(ConditionField.SUPPLIER_CATEGORY, ConditionOperator.IN, "office")
        assert evaluate_condition(c, self.ATTRS)

    @pytest.mark.parametrize("op,value,expected", [
        (ConditionOperator.EQUALS, "it", False),
        (ConditionOperator.CONTAINS, "it", False),
        (ConditionOperator.IN, ("it",), False),
        (ConditionOperator.NOT_IN, ("it",), True),
    ])
    def test_missing_attribute(self, op, value, expected):
        c = cond(ConditionField.PRODUCT_CATEGORY, op, value)
        assert evaluate_condition(c, self.ATTRS) is expected


# =========================================================================
# extract_condition_attributes
# =========================================================================


class TestExtractAttributes:
    def test_uses_order_fields(self):
        order = make_order(department="it", currency="USD", item_categories=("laptops", "cables"))
        attrs = extract_condition_attributes(order)
        assert attrs[ConditionField.DEPARTMENT] == "it"
        assert attrs[ConditionField.CURRENCY] == "USD"
        assert attrs[ConditionField.PRODUCT_CATEGORY] == "laptops"
        assert attrs[ConditionField.SUPPLIER_CATEGORY] == "office"
        assert attrs[ConditionField.PAYMENT_TERMS] == "net30"

    def test_default_currency(self):
        attrs = extract_condition_attributes(make_order())
        assert attrs[ConditionField.CURRENCY] == DEFAULT_CURRENCY
        attrs = extract_condition_attributes(make_order(), default_currency="EUR")
        assert attrs[ConditionField.CURRENCY] == "EUR"

    def test_no_items_means_no_product_category(self):
        attrs = extract_condition_attributes(make_order(item_categories=()))
        assert ConditionField.PRODUCT_CATEGORY not in attrs


# =========================================================================
# is_authorized
# =========================================================================


class TestIsAuthorized:
    def test_required_role(self):
        assert is_authorized(UserRole.MANAGER, MEDIUM)
        assert is_authorized(UserRole.ADMIN, MEDIUM)
        assert not is_authorized(UserRole.EMPLOYEE, MEDIUM)

    def test_escalation_recipients_widen_the_set(self):
        assert not is_authorized(UserRole.MANAGER, LARGE)
        assert is_authorized(UserRole.MANAGER, LARGE, escalated_to=(UserRole.MANAGER,))
