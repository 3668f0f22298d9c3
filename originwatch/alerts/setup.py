"""Notifier construction from settings."""

import logging
from typing import TYPE_CHECKING

from originwatch.alerts.notifiers import (
    EmailNotifier,
    LogNotifier,
    Notifier,
    SnsNotifier,
    WebhookNotifier,
)

if TYPE_CHECKING:
    from originwatch.config import Settings

logger = logging.getLogger(__name__)


def build_notifier(settings: "Settings") -> Notifier:
    """Create the notifier selected by ``settings.notifier``.

    Falls back to LogNotifier when the selected channel is missing the
    settings it needs.
    """
    if settings.notifier == "sns":
        if not settings.notification_topic:
            logger.warning("SNS notifier selected without a topic ARN, logging alerts instead")
            return LogNotifier()
        logger.info("SNS notifier configured (region=%s)", settings.aws_region)
        return SnsNotifier(region=settings.aws_region, endpoint_url=settings.sns_endpoint_url)

    if settings.notifier == "email":
        if not settings.smtp_host or not settings.notification_topic:
            logger.warning(
                "Email notifier selected without SMTP host or recipient, logging alerts instead"
            )
            return LogNotifier()
        logger.info("Email notifier configured (host=%s)", settings.smtp_host)
        return EmailNotifier(
            smtp_host=settings.smtp_host,
            smtp_port=settings.smtp_port,
            sender=settings.smtp_sender,
            username=settings.smtp_username,
            password=settings.smtp_password,
        )

    if settings.notifier == "webhook":
        if not settings.notification_topic:
            logger.warning("Webhook notifier selected without a URL, logging alerts instead")
            return LogNotifier()
        logger.info("Webhook notifier configured")
        return WebhookNotifier()

    return LogNotifier()
