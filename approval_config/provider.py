"""
Configuration Provider.

Services ask the provider for thresholds, the escalation policy, the
holiday calendar and settings.  They never read files.  Swapping the
configuration affects new requests only; in-flight requests keep their
threshold snapshot.
"""

from __future__ import annotations

import threading
from collections.abc import Mapping
from decimal import Decimal
from typing import Protocol

from approval_config.schema import ApprovalConfiguration, EngineSettings
from approval_engines.thresholds import resolve_threshold
from approval_kernel.domain.approval import (
    ApprovalThreshold,
    ConditionField,
    EscalationPolicy,
)
from approval_kernel.domain.calendar import HolidayCalendar
from approval_kernel.logging_config import get_logger

logger = get_logger("config.provider")


class ConfigurationProvider(Protocol):
    def get_thresholds(self) -> tuple[ApprovalThreshold, ...]:
        ...

    def get_threshold(
        self,
        amount: Decimal,
        attributes: Mapping[ConditionField, str] | None = None,
    ) -> ApprovalThreshold | None:
        ...

    def get_escalation_policy(self) -> EscalationPolicy:
        ...

    def get_holiday_calendar(self) -> HolidayCalendar:
        ...

    def get_settings(self) -> EngineSettings:
        ...


class StaticConfigurationProvider:
    """Serves one ``ApprovalConfiguration``; ``replace_configuration`` swaps it."""

    def __init__(self, config: ApprovalConfiguration):
        self._lock = threading.Lock()
        self._config = config
        self._calendar = config.holiday_calendar()

    @property
    def configuration(self) -> ApprovalConfiguration:
        with self._lock:
            return self._config

    def replace_configuration(self, config: ApprovalConfiguration) -> None:
        with self._lock:
            previous = self._config.checksum
            self._config = config
            self._calendar = config.holiday_calendar()
        logger.info(
            "configuration_replaced",
            extra={"previous_checksum": previous, "checksum": config.checksum},
        )

    def get_thresholds(self) -> tuple[ApprovalThreshold, ...]:
        return self.configuration.thresholds

    def get_threshold(
        self,
        amount: Decimal,
        attributes: Mapping[ConditionField, str] | None = None,
    ) -> ApprovalThreshold | None:
        return resolve_threshold(self.get_thresholds(), amount=amount, attributes=attributes)

    def get_escalation_policy(self) -> EscalationPolicy:
        return self.configuration.escalation

    def get_holiday_calendar(self) -> HolidayCalendar:
        with self._lock:
            return self._calendar

    def get_settings(self) -> EngineSettings:
        return self.configuration.settings
