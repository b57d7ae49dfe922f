"""
Configuration Loader (``approval_config.loader``).

Responsibility
--------------
Loads the approval YAML document and parses it into typed configuration
objects.  Services never call this directly; they receive a
``ConfigurationProvider``.

Invariants enforced
-------------------
* Parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; required fields have no silent defaults.
* Amounts are parsed through ``str`` into ``Decimal`` so YAML floats never
  leak binary rounding into thresholds.
* Escalation priority ``normal`` (used by older configuration files) is
  read as ``medium``.
* ``compute_checksum`` produces a deterministic SHA-256 of the document.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown role / priority / operator  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
import re
from datetime import date
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from approval_config.schema import ApprovalConfiguration, EngineSettings
from approval_kernel.domain.approval import (
    ApprovalCondition,
    ApprovalThreshold,
    ConditionField,
    ConditionOperator,
    EscalationLevel,
    EscalationPolicy,
    EscalationRecipient,
    Priority,
    RecipientType,
    UserRole,
)

_PRIORITY_ALIASES = {"normal": Priority.MEDIUM}

_LIST_OPERATORS = (ConditionOperator.IN, ConditionOperator.NOT_IN)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_date(value: Any) -> date:
    """Parse a date from YAML (string or date object)."""
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value)
    raise ValueError(f"Cannot parse date from {value!r}")


def parse_decimal(value: Any, field_name: str) -> Decimal:
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"{field_name}: not a decimal amount: {value!r}") from exc


def parse_priority(value: Any) -> Priority:
    text = str(value).strip().lower()
    if text in _PRIORITY_ALIASES:
        return _PRIORITY_ALIASES[text]
    return Priority(text)


def parse_role(value: Any) -> UserRole:
    return UserRole(str(value).strip().lower())


def _slug(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")


def parse_condition(data: dict[str, Any]) -> ApprovalCondition:
    operator = ConditionOperator(data["operator"])
    raw = data["value"]
    if operator in _LIST_OPERATORS:
        values = raw if isinstance(raw, (list, tuple)) else [raw]
        value: str | tuple[str, ...] = tuple(str(v) for v in values)
    else:
        if isinstance(raw, (list, tuple)):
            raise ValueError(f"Operator '{operator.value}' takes a single value, got {raw!r}")
        value = str(raw)
    return ApprovalCondition(
        field=ConditionField(data["field"]),
        operator=operator,
        value=value,
    )


def parse_threshold(data: dict[str, Any]) -> ApprovalThreshold:
    """
    Parse an ``ApprovalThreshold`` from a dict.

    ``id`` defaults to a slug of ``name``.  ``max_amount`` may be omitted or
    null for an unbounded range.
    """
    name = data["name"]
    max_amount = data.get("max_amount")
    hours = data.get("escalation_time_hours")
    return ApprovalThreshold(
        threshold_id=str(data.get("id") or _slug(name)),
        name=name,
        min_amount=parse_decimal(data.get("min_amount", 0), f"{name}.min_amount"),
        max_amount=(
            parse_decimal(max_amount, f"{name}.max_amount") if max_amount is not None else None
        ),
        required_roles=frozenset(parse_role(r) for r in data.get("required_roles", ())),
        required_approvers=int(data.get("required_approvers", 1)),
        escalation_time_hours=int(hours) if hours is not None else None,
        skip_weekends=bool(data.get("skip_weekends", False)),
        skip_holidays=bool(data.get("skip_holidays", False)),
        priority=parse_priority(data.get("priority", "medium")),
        auto_approve=bool(data.get("auto_approve", False)),
        conditions=tuple(parse_condition(c) for c in data.get("conditions") or ()),
        is_active=bool(data.get("is_active", True)),
        version=int(data.get("version", 1)),
    )


def parse_recipient(data: dict[str, Any]) -> EscalationRecipient:
    recipient_type = RecipientType(data["type"])
    value = str(data["value"])
    if recipient_type == RecipientType.ROLE:
        value = parse_role(value).value
    return EscalationRecipient(type=recipient_type, value=value, name=data.get("name"))


def parse_escalation_level(data: dict[str, Any]) -> EscalationLevel:
    return EscalationLevel(
        level=int(data["level"]),
        after_hours=int(data["after_hours"]),
        recipients=tuple(parse_recipient(r) for r in data.get("recipients") or ()),
        priority=parse_priority(data.get("priority", "high")),
        template=data.get("template"),
    )


def parse_escalation_policy(data: dict[str, Any]) -> EscalationPolicy:
    levels = sorted(
        (parse_escalation_level(lvl) for lvl in data.get("levels") or ()),
        key=lambda lvl: lvl.level,
    )
    return EscalationPolicy(
        enabled=bool(data.get("enabled", True)),
        levels=tuple(levels),
        skip_weekends=bool(data.get("skip_weekends", False)),
        skip_holidays=bool(data.get("skip_holidays", False)),
    )


def parse_settings(data: dict[str, Any]) -> EngineSettings:
    defaults = EngineSettings()
    known = set(EngineSettings.__dataclass_fields__)
    unknown = set(data) - known
    if unknown:
        raise ValueError(f"Unknown engine settings: {', '.join(sorted(unknown))}")
    values: dict[str, Any] = {}
    for name, value in data.items():
        default = getattr(defaults, name)
        if isinstance(default, bool):
            if not isinstance(value, bool):
                raise ValueError(f"Engine setting '{name}' must be true or false, got {value!r}")
            values[name] = value
        else:
            values[name] = type(default)(value)
    return EngineSettings(**values)


def parse_configuration(data: dict[str, Any], source: str | None = None) -> ApprovalConfiguration:
    """Parse a whole approval document."""
    return ApprovalConfiguration(
        thresholds=tuple(parse_threshold(t) for t in data.get("thresholds") or ()),
        escalation=parse_escalation_policy(data.get("escalation") or {}),
        holidays=frozenset(parse_date(d) for d in data.get("holidays") or ()),
        settings=parse_settings(data.get("engine") or {}),
        checksum=compute_checksum(data),
        source=source,
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 checksum of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
