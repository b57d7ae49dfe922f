"""
approval_engines.thresholds -- Threshold resolution.

Responsibility:
    Pick the single threshold that governs a purchase order, given its
    amount and condition attributes.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import approval_kernel.domain types.

Invariants enforced:
    - Only active thresholds whose closed range ``[min_amount, max_amount]``
      covers the amount and whose conditions all hold are candidates.
    - Deterministic tie-break between candidates:
        1. narrowest range first (``max_amount - min_amount``),
           unbounded ranges last;
        2. higher ``min_amount`` first;
        3. ``threshold_id`` ascending.
      The result never depends on configuration order.

Failure modes:
    - ValueError for a negative amount.
    - Returns None when nothing matches ("no approval required").
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from decimal import Decimal

from approval_engines.tracer import traced_engine
from approval_kernel.domain.approval import (
    ApprovalCondition,
    ApprovalThreshold,
    ConditionField,
    ConditionOperator,
    PurchaseOrder,
    UserRole,
)

DEFAULT_CURRENCY = "PHP"


def extract_condition_attributes(
    order: PurchaseOrder,
    default_currency: str = DEFAULT_CURRENCY,
) -> dict[ConditionField, str]:
    """Attributes a threshold condition may test.

    ``product_category`` is the first line item's category.
    """
    attributes: dict[ConditionField, str] = {
        ConditionField.SUPPLIER_CATEGORY: order.supplier_category,
        ConditionField.DEPARTMENT: order.department,
        ConditionField.PAYMENT_TERMS: order.payment_terms,
        ConditionField.CURRENCY: order.currency or default_currency,
    }
    if order.item_categories:
        attributes[ConditionField.PRODUCT_CATEGORY] = order.item_categories[0]
    return attributes


def evaluate_condition(
    condition: ApprovalCondition,
    attributes: Mapping[ConditionField, str],
) -> bool:
    """Evaluate one condition.  A missing attribute only satisfies ``not_in``."""
    actual = attributes.get(condition.field)
    expected = condition.value

    if condition.operator == ConditionOperator.EQUALS:
        return actual is not None and actual == expected
    if condition.operator == ConditionOperator.CONTAINS:
        return actual is not None and str(expected) in actual
    if condition.operator == ConditionOperator.IN:
        return actual is not None and actual in _as_tuple(expected)
    if condition.operator == ConditionOperator.NOT_IN:
        return actual is None or actual not in _as_tuple(expected)
    return False


def _as_tuple(value: str | tuple[str, ...]) -> tuple[str, ...]:
    return value if isinstance(value, tuple) else (value,)


def threshold_matches(
    threshold: ApprovalThreshold,
    amount: Decimal,
    attributes: Mapping[ConditionField, str],
) -> bool:
    if not threshold.is_active or not threshold.covers(amount):
        return False
    return all(evaluate_condition(c, attributes) for c in threshold.conditions)


def threshold_sort_key(threshold: ApprovalThreshold) -> tuple:
    """Sort key implementing the tie-break order (best candidate first)."""
    width = threshold.range_width
    return (
        width is None,
        width if width is not None else Decimal(0),
        -threshold.min_amount,
        threshold.threshold_id,
    )


@traced_engine("threshold_resolver", "1.0", fingerprint_fields=("amount",))
def resolve_threshold(
    thresholds: Iterable[ApprovalThreshold],
    amount: Decimal,
    attributes: Mapping[ConditionField, str] | None = None,
) -> ApprovalThreshold | None:
    """Return the governing threshold for ``amount`` or None.

    Raises:
        ValueError: If ``amount`` is negative.
    """
    if amount < 0:
        raise ValueError(f"Purchase order amount cannot be negative: {amount}")

    attrs = attributes or {}
    candidates = [t for t in thresholds if threshold_matches(t, amount, attrs)]
    if not candidates:
        return None
    return min(candidates, key=threshold_sort_key)


def is_authorized(
    role: UserRole,
    threshold: ApprovalThreshold,
    escalated_to: Iterable[UserRole] = (),
) -> bool:
    """True when ``role`` may decide under ``threshold``.

    ``escalated_to`` widens the set for requests that accept decisions
    while escalated.
    """
    return role in threshold.required_roles or role in set(escalated_to)
