"""Alert models and constants."""

from dataclasses import dataclass
from datetime import timedelta
from enum import Enum

OUTAGE_SUBJECT = "Outage detected"
OUTAGE_MESSAGE_TEMPLATE = "The failure rate of {uri} exceeds the SLA"


class AlertOutcome(str, Enum):
    """Result of evaluating one origin."""

    NO_ALERT = "no_alert"
    SUPPRESSED = "suppressed"
    ALERTED = "alerted"
    DELIVERY_FAILED = "delivery_failed"


@dataclass(frozen=True)
class AlertThreshold:
    """Process-wide alerting policy, applied to every origin.

    Attributes:
        failure_limit: Failures within the window that trigger an alert
        window: Trailing span the failures are counted over
        cooldown: Minimum time between two notifications for one origin
    """

    failure_limit: int
    window: timedelta
    cooldown: timedelta


def outage_message(uri: str) -> str:
    return OUTAGE_MESSAGE_TEMPLATE.format(uri=uri)
