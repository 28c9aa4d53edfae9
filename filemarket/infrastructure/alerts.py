"""Operator alert channel.

Alerts are conditions an operator has to act on by hand: misconfigured
listings, payment notifications for unknown orders, missing or partial
payout batches.
"""

from dataclasses import dataclass, field
from typing import Any, Protocol

import structlog

logger = structlog.get_logger()


class AlertChannel(Protocol):
    def alert(self, code: str, message: str, **context: Any) -> None: ...


class LoggingAlertChannel:
    """Emits alerts as structured error records tagged ``operator_alert``."""

    def alert(self, code: str, message: str, **context: Any) -> None:
        logger.error(message, operator_alert=True, alert_code=code, **context)


@dataclass
class Alert:
    code: str
    message: str
    context: dict[str, Any] = field(default_factory=dict)


class RecordingAlertChannel:
    """Keeps alerts in memory and logs them; used by tests."""

    def __init__(self) -> None:
        self.alerts: list[Alert] = []

    def alert(self, code: str, message: str, **context: Any) -> None:
        self.alerts.append(Alert(code=code, message=message, context=context))
        logger.error(message, operator_alert=True, alert_code=code, **context)

    def codes(self) -> list[str]:
        return [a.code for a in self.alerts]
