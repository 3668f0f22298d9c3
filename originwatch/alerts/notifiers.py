"""Notifier implementations for outage alerts.

This module provides:
- Notifier: Protocol every notification backend satisfies
- SnsNotifier: publishes to an AWS SNS topic
- EmailNotifier: SMTP email, the topic is the recipient address
- WebhookNotifier: Slack-compatible webhook, the topic is the URL
- LogNotifier: writes the alert to the log only

Every notifier makes a single attempt and raises NotificationError on
failure. Deduplication is the evaluator's job, so repeated calls with the
same arguments are safe.
"""

import asyncio
import logging
from email.message import EmailMessage
from typing import Any, Protocol

import aiosmtplib
import boto3
import httpx
from botocore.exceptions import BotoCoreError, ClientError

from originwatch.exceptions import NotificationError

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    """Protocol for alert delivery."""

    async def notify(self, topic: str, subject: str, message: str) -> None:
        """Deliver a message to the channel identified by topic."""
        ...


class SnsNotifier:
    """AWS SNS publisher.

    boto3 is synchronous, so publish runs in a worker thread.
    """

    def __init__(
        self,
        region: str,
        endpoint_url: str | None = None,
        client: Any = None,
    ) -> None:
        """Initialize the SNS notifier.

        Args:
            region: AWS region of the topic
            endpoint_url: Override for SNS-compatible endpoints (LocalStack)
            client: Pre-built boto3 SNS client (optional)
        """
        if client is None:
            client_kwargs = {"service_name": "sns", "region_name": region}
            if endpoint_url:
                client_kwargs["endpoint_url"] = endpoint_url
            client = boto3.client(**client_kwargs)
        self._client = client

    async def notify(self, topic: str, subject: str, message: str) -> None:
        try:
            response = await asyncio.to_thread(
                self._client.publish,
                TopicArn=topic,
                Subject=subject,
                Message=message,
            )
        except (BotoCoreError, ClientError) as e:
            raise NotificationError(f"SNS publish to {topic} failed: {e}", topic=topic) from e

        logger.info(
            "Published notification to %s (message_id=%s)",
            topic,
            response.get("MessageId"),
        )


class EmailNotifier:
    """SMTP email notifier."""

    def __init__(
        self,
        smtp_host: str,
        smtp_port: int,
        sender: str,
        username: str | None = None,
        password: str | None = None,
        use_tls: bool = True,
    ):
        """Initialize the email notifier.

        Args:
            smtp_host: SMTP server hostname
            smtp_port: SMTP server port
            sender: Sender email address
            username: SMTP authentication username (optional)
            password: SMTP authentication password (optional)
            use_tls: Whether to use STARTTLS (default: True)
        """
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.sender = sender
        self.username = username
        self.password = password
        self.use_tls = use_tls

    async def notify(self, topic: str, subject: str, message: str) -> None:
        email = EmailMessage()
        email["Subject"] = subject
        email["From"] = self.sender
        email["To"] = topic
        email.set_content(message)

        try:
            await aiosmtplib.send(
                email,
                hostname=self.smtp_host,
                port=self.smtp_port,
                username=self.username,
                password=self.password,
                start_tls=self.use_tls,
            )
        except aiosmtplib.SMTPException as e:
            raise NotificationError(f"Email to {topic} failed: {e}", topic=topic) from e


class WebhookNotifier:
    """Slack-compatible webhook notifier."""

    def __init__(self, timeout_seconds: float = 10.0):
        self.timeout_seconds = timeout_seconds

    async def notify(self, topic: str, subject: str, message: str) -> None:
        payload = {
            "text": f":fire: {subject}",
            "attachments": [
                {
                    "color": "#ff0000",
                    "text": message,
                }
            ],
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.post(topic, json=payload)
                response.raise_for_status()
        except httpx.TimeoutException as e:
            raise NotificationError("Webhook request timed out", topic=topic) from e
        except httpx.HTTPStatusError as e:
            raise NotificationError(
                f"Webhook returned {e.response.status_code}", topic=topic
            ) from e
        except httpx.RequestError as e:
            raise NotificationError(f"Webhook request failed: {e}", topic=topic) from e


class LogNotifier:
    """Writes alerts to the log. Used when no channel is configured."""

    async def notify(self, topic: str, subject: str, message: str) -> None:
        logger.warning("ALERT [%s] %s: %s", topic or "-", subject, message)
