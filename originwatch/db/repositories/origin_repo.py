"""Repository for origins, probe outcomes and notifications.

Write methods only flush: the caller owns the transaction, so one probe
outcome (or one notification) lands in a single ``session.begin()`` block.

Usage:
    async with session_factory() as session, session.begin():
        repo = OriginRepository(session)
        probe_uid = await repo.record_success(origin_uid, 200, 42, observed_at)
"""

import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from originwatch.db.repositories.base import BaseRepository
from originwatch.exceptions import PersistenceError
from originwatch.models import FailureReason, Notification, Origin, ProbeFailure, ProbeSuccess


@dataclass
class OriginStatus:
    """Most recent successful probe of an origin."""

    origin_uid: uuid.UUID
    uri: str
    status_code: int
    latency_ms: int
    observed_at: datetime


@dataclass
class OriginFailureStatus:
    """Most recent failed probe of an origin."""

    origin_uid: uuid.UUID
    uri: str
    reason: FailureReason
    observed_at: datetime


@contextmanager
def _wrap_errors(operation: str, origin_uid: uuid.UUID | None = None) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as e:
        raise PersistenceError(
            f"{operation} failed: {e}", operation=operation, origin_uid=origin_uid
        ) from e


class OriginRepository(BaseRepository):
    """Origin store operations used by the poller and the alert evaluator."""

    async def create_origin(self, uri: str, origin_uid: uuid.UUID | None = None) -> Origin:
        """Register a new origin."""
        origin = Origin(origin_uid=origin_uid or uuid.uuid4(), uri=uri)
        with _wrap_errors("create_origin", origin.origin_uid):
            self.session.add(origin)
            await self.session.flush()
        return origin

    async def list_origins(self) -> list[Origin]:
        with _wrap_errors("list_origins"):
            result = await self.session.execute(select(Origin).order_by(Origin.id))
            return list(result.scalars().all())

    async def _origin_id(self, origin_uid: uuid.UUID, operation: str) -> int:
        with _wrap_errors(operation, origin_uid):
            origin_id = await self.session.scalar(
                select(Origin.id).where(Origin.origin_uid == origin_uid)
            )
        if origin_id is None:
            raise PersistenceError(
                f"{operation} failed: origin {origin_uid} does not exist",
                operation=operation,
                origin_uid=origin_uid,
            )
        return origin_id

    async def record_success(
        self,
        origin_uid: uuid.UUID,
        status_code: int,
        latency_ms: int,
        observed_at: datetime,
    ) -> uuid.UUID:
        """Append a completed probe and return its probe_uid."""
        origin_id = await self._origin_id(origin_uid, "record_success")
        probe = ProbeSuccess(
            probe_uid=uuid.uuid4(),
            origin_id=origin_id,
            status_code=status_code,
            latency_ms=latency_ms,
            observed_at=observed_at,
        )
        with _wrap_errors("record_success", origin_uid):
            self.session.add(probe)
            await self.session.flush()
        return probe.probe_uid

    async def record_failure(
        self,
        origin_uid: uuid.UUID,
        reason: FailureReason,
        observed_at: datetime,
    ) -> uuid.UUID:
        """Append a failed probe and return its probe_uid."""
        origin_id = await self._origin_id(origin_uid, "record_failure")
        probe = ProbeFailure(
            probe_uid=uuid.uuid4(),
            origin_id=origin_id,
            reason=FailureReason(reason).value,
            observed_at=observed_at,
        )
        with _wrap_errors("record_failure", origin_uid):
            self.session.add(probe)
            await self.session.flush()
        return probe.probe_uid

    async def record_notification(
        self,
        origin_uid: uuid.UUID,
        topic: str,
        subject: str,
        message: str,
        created_at: datetime,
    ) -> uuid.UUID:
        """Append a dispatched notification and return its notification_uid."""
        origin_id = await self._origin_id(origin_uid, "record_notification")
        notification = Notification(
            notification_uid=uuid.uuid4(),
            origin_id=origin_id,
            topic=topic,
            subject=subject,
            message=message,
            created_at=created_at,
        )
        with _wrap_errors("record_notification", origin_uid):
            self.session.add(notification)
            await self.session.flush()
        return notification.notification_uid

    async def failure_rate_exceeded(
        self,
        origin_uid: uuid.UUID,
        limit: int,
        window: timedelta,
        now: datetime | None = None,
    ) -> bool:
        """Whether the origin failed at least ``limit`` times in the window.

        The window is ``[now - window, now]``, inclusive on both ends.

        Args:
            origin_uid: Origin to inspect
            limit: Number of failures that exceeds the SLA
            window: Trailing span to count failures over
            now: End of the window, defaults to the current UTC time

        Returns:
            True if the failure count within the window is >= limit
        """
        end = now or datetime.now(timezone.utc)
        start = end - window

        with _wrap_errors("failure_rate_exceeded", origin_uid):
            count = await self.session.scalar(
                select(func.count(ProbeFailure.id))
                .join(Origin, Origin.id == ProbeFailure.origin_id)
                .where(Origin.origin_uid == origin_uid)
                .where(ProbeFailure.observed_at.between(start, end))
            )
        return (count or 0) >= limit

    async def has_recent_notification(
        self,
        origin_uid: uuid.UUID,
        cooldown: timedelta,
        now: datetime | None = None,
    ) -> bool:
        """Whether a notification was created strictly after ``now - cooldown``."""
        boundary = (now or datetime.now(timezone.utc)) - cooldown

        with _wrap_errors("has_recent_notification", origin_uid):
            notification_id = await self.session.scalar(
                select(Notification.id)
                .join(Origin, Origin.id == Notification.origin_id)
                .where(Origin.origin_uid == origin_uid)
                .where(Notification.created_at > boundary)
                .limit(1)
            )
        return notification_id is not None

    async def latest_successes(self) -> list[OriginStatus]:
        """Most recent successful probe for every origin that has one."""
        ranked = (
            select(
                Origin.origin_uid,
                Origin.uri,
                ProbeSuccess.status_code,
                ProbeSuccess.latency_ms,
                ProbeSuccess.observed_at,
                func.row_number()
                .over(
                    partition_by=ProbeSuccess.origin_id,
                    order_by=(ProbeSuccess.observed_at.desc(), ProbeSuccess.id.desc()),
                )
                .label("rank"),
            )
            .join(Origin, Origin.id == ProbeSuccess.origin_id)
            .subquery()
        )

        with _wrap_errors("latest_successes"):
            result = await self.session.execute(
                select(
                    ranked.c.origin_uid,
                    ranked.c.uri,
                    ranked.c.status_code,
                    ranked.c.latency_ms,
                    ranked.c.observed_at,
                )
                .where(ranked.c.rank == 1)
                .order_by(ranked.c.uri)
            )
            rows = result.all()

        return [
            OriginStatus(
                origin_uid=row.origin_uid,
                uri=row.uri,
                status_code=row.status_code,
                latency_ms=row.latency_ms,
                observed_at=row.observed_at,
            )
            for row in rows
        ]

    async def latest_failures(self) -> list[OriginFailureStatus]:
        """Most recent failed probe for every origin that has one."""
        ranked = (
            select(
                Origin.origin_uid,
                Origin.uri,
                ProbeFailure.reason,
                ProbeFailure.observed_at,
                func.row_number()
                .over(
                    partition_by=ProbeFailure.origin_id,
                    order_by=(ProbeFailure.observed_at.desc(), ProbeFailure.id.desc()),
                )
                .label("rank"),
            )
            .join(Origin, Origin.id == ProbeFailure.origin_id)
            .subquery()
        )

        with _wrap_errors("latest_failures"):
            result = await self.session.execute(
                select(
                    ranked.c.origin_uid,
                    ranked.c.uri,
                    ranked.c.reason,
                    ranked.c.observed_at,
                )
                .where(ranked.c.rank == 1)
                .order_by(ranked.c.uri)
            )
            rows = result.all()

        return [
            OriginFailureStatus(
                origin_uid=row.origin_uid,
                uri=row.uri,
                reason=FailureReason(row.reason),
                observed_at=row.observed_at,
            )
            for row in rows
        ]
