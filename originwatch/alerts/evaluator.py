"""Threshold and cooldown evaluation for outage alerts.

The evaluator keeps no state of its own. Every call re-derives "is the
origin failing" and "did we alert recently" from the store.
"""

import logging
from collections.abc import Callable
from datetime import datetime, timezone

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from originwatch.alerts.models import (
    OUTAGE_SUBJECT,
    AlertOutcome,
    AlertThreshold,
    outage_message,
)
from originwatch.alerts.notifiers import Notifier
from originwatch.db.repositories.origin_repo import OriginRepository
from originwatch.exceptions import NotificationError, PersistenceError
from originwatch.models import Origin

logger = logging.getLogger(__name__)


class AlertEvaluator:
    """Decides whether an origin's failures warrant a new notification.

    Example:
        evaluator = AlertEvaluator(
            session_factory=async_session,
            notifier=SnsNotifier(region="eu-west-1"),
            threshold=AlertThreshold(3, timedelta(minutes=5), timedelta(hours=1)),
            topic="arn:aws:sns:eu-west-1:123456789012:outages",
        )
        outcome = await evaluator.evaluate(origin)
    """

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        notifier: Notifier,
        threshold: AlertThreshold,
        topic: str,
    ):
        self._session_factory = session_factory
        self._notifier = notifier
        self._threshold = threshold
        self._topic = topic

    @property
    def threshold(self) -> AlertThreshold:
        return self._threshold

    async def evaluate(self, origin: Origin) -> AlertOutcome:
        """Evaluate one origin and notify if its failure rate exceeds the SLA.

        Raises:
            PersistenceError: If the store cannot be queried or written
        """
        async with self._session_factory() as session:
            repo = OriginRepository(session)
            exceeded = await repo.failure_rate_exceeded(
                origin.origin_uid,
                self._threshold.failure_limit,
                self._threshold.window,
            )
            if not exceeded:
                return AlertOutcome.NO_ALERT

            if await repo.has_recent_notification(origin.origin_uid, self._threshold.cooldown):
                logger.debug("Alert suppressed by cooldown (origin_uid=%s)", origin.origin_uid)
                return AlertOutcome.SUPPRESSED

        message = outage_message(origin.uri)
        try:
            await self._notifier.notify(self._topic, OUTAGE_SUBJECT, message)
        except NotificationError as e:
            logger.error(
                "Failed to deliver outage alert (origin_uid=%s, topic=%s): %s",
                origin.origin_uid,
                self._topic,
                e,
            )
            return AlertOutcome.DELIVERY_FAILED

        try:
            async with self._session_factory() as session, session.begin():
                notification_uid = await OriginRepository(session).record_notification(
                    origin.origin_uid,
                    self._topic,
                    OUTAGE_SUBJECT,
                    message,
                    datetime.now(timezone.utc),
                )
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"record_notification failed: {e}",
                operation="record_notification",
                origin_uid=origin.origin_uid,
            ) from e

        logger.warning(
            "Outage alert sent (origin_uid=%s, notification_uid=%s, uri=%s)",
            origin.origin_uid,
            notification_uid,
            origin.uri,
        )
        return AlertOutcome.ALERTED
