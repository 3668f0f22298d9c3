"""Outage alerting: threshold evaluation and notifier backends."""

from originwatch.alerts.evaluator import AlertEvaluator
from originwatch.alerts.models import (
    OUTAGE_SUBJECT,
    AlertOutcome,
    AlertThreshold,
    outage_message,
)
from originwatch.alerts.notifiers import (
    EmailNotifier,
    LogNotifier,
    Notifier,
    SnsNotifier,
    WebhookNotifier,
)
from originwatch.alerts.setup import build_notifier

__all__ = [
    "AlertEvaluator",
    "AlertOutcome",
    "AlertThreshold",
    "EmailNotifier",
    "LogNotifier",
    "Notifier",
    "OUTAGE_SUBJECT",
    "SnsNotifier",
    "WebhookNotifier",
    "build_notifier",
    "outage_message",
]
