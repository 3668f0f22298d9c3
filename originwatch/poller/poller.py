"""Poller: probes every origin on a fixed interval and feeds the alert evaluator.

Each cycle loads the origin list, then runs probe -> persist -> evaluate for
every origin. Origins are processed concurrently up to ``max_concurrency``
and the cycle waits for all of them before sleeping, so one origin never has
two probes in flight.

Usage:
    poller = Poller(
        session_factory=async_session,
        client=httpx.AsyncClient(follow_redirects=True),
        evaluator=evaluator,
    )
    await poller.run(stop_event)
"""

import asyncio
import logging
import time
import uuid
from collections.abc import Callable
from datetime import datetime, timezone

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from originwatch.alerts.evaluator import AlertEvaluator
from originwatch.db.repositories.origin_repo import OriginRepository
from originwatch.exceptions import PersistenceError
from originwatch.models import Origin
from originwatch.poller.models import CycleReport, ProbeOutcome
from originwatch.probes.classifier import classify_failure

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 60.0
DEFAULT_REQUEST_TIMEOUT = 3.0


class Poller:
    """Scheduled probe loop over all registered origins."""

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        client: httpx.AsyncClient,
        evaluator: AlertEvaluator,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        max_concurrency: int = 10,
    ):
        """Initialize the poller.

        Args:
            session_factory: Callable that creates AsyncSession instances
            client: Shared HTTP client used for every probe
            evaluator: AlertEvaluator run after each persisted outcome
            request_timeout: Per-probe timeout in seconds (default: 3.0)
            poll_interval: Sleep between cycles in seconds (default: 60.0)
            max_concurrency: Origins probed at the same time (default: 10)
        """
        if request_timeout >= poll_interval:
            raise ValueError("request_timeout must be shorter than poll_interval")

        self._session_factory = session_factory
        self._client = client
        self._evaluator = evaluator
        self._request_timeout = request_timeout
        self._poll_interval = poll_interval
        self._max_concurrency = max_concurrency

    async def run(self, stop_event: asyncio.Event | None = None) -> None:
        """Poll forever, or until stop_event is set.

        Errors escaping a cycle are logged and the next cycle runs on schedule.
        """
        if stop_event is None:
            stop_event = asyncio.Event()

        logger.info(
            "Poller started (interval=%.1fs, timeout=%.1fs, concurrency=%d)",
            self._poll_interval,
            self._request_timeout,
            self._max_concurrency,
        )

        while not stop_event.is_set():
            try:
                await self.poll_once()
            except asyncio.CancelledError:
                logger.info("Poller cancelled")
                break
            except Exception as e:
                logger.exception("Poll cycle failed, skipping until next tick: %s", e)

            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self._poll_interval)
            except TimeoutError:
                pass

        logger.info("Poller stopped")

    async def poll_once(self) -> CycleReport:
        """Run one cycle over all origins.

        Raises:
            PersistenceError: If the origin list cannot be loaded
        """
        async with self._session_factory() as session:
            origins = await OriginRepository(session).list_origins()

        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def _bounded(origin: Origin) -> ProbeOutcome:
            async with semaphore:
                return await self.probe_origin(origin)

        results = await asyncio.gather(
            *[_bounded(origin) for origin in origins],
            return_exceptions=True,
        )

        outcomes: list[ProbeOutcome] = []
        for origin, result in zip(origins, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, BaseException):
                logger.error(
                    "Unexpected error processing origin (origin_uid=%s): %s",
                    origin.origin_uid,
                    result,
                    exc_info=result,
                )
                outcomes.append(ProbeOutcome(origin_uid=origin.origin_uid, error=str(result)))
            else:
                outcomes.append(result)

        report = CycleReport.from_outcomes(outcomes)
        logger.info(
            "Poll cycle complete (origins=%d, successes=%d, failures=%d, aborted=%d, alerts=%d)",
            report.origins,
            report.successes,
            report.failures,
            report.aborted,
            report.alerts,
        )
        return report

    async def probe_origin(self, origin: Origin) -> ProbeOutcome:
        """Probe one origin, persist the outcome, then evaluate alerts.

        A persistence error aborts this origin only and is reported in the
        returned outcome.
        """
        outcome = await self._probe(origin)

        try:
            outcome.probe_uid = await self._persist(origin, outcome)
        except PersistenceError as e:
            logger.error(
                "Failed to persist probe outcome (origin_uid=%s, operation=%s): %s",
                origin.origin_uid,
                e.operation,
                e,
            )
            outcome.error = str(e)
            return outcome

        try:
            outcome.alert = await self._evaluator.evaluate(origin)
        except PersistenceError as e:
            logger.error(
                "Failed to evaluate alerts (origin_uid=%s, operation=%s): %s",
                origin.origin_uid,
                e.operation,
                e,
            )
            outcome.error = str(e)

        return outcome

    async def _probe(self, origin: Origin) -> ProbeOutcome:
        """Issue the GET and classify the result. Never raises for probe errors."""
        outcome = ProbeOutcome(
            origin_uid=origin.origin_uid,
            observed_at=datetime.now(timezone.utc),
        )
        start = time.perf_counter()

        try:
            response = await self._client.get(origin.uri, timeout=self._request_timeout)
        except Exception as e:
            outcome.reason = classify_failure(e)
            logger.debug(
                "Probe raised %s (origin_uid=%s): %s", type(e).__name__, origin.origin_uid, e
            )
            return outcome

        outcome.status_code = response.status_code
        outcome.latency_ms = int((time.perf_counter() - start) * 1000)
        return outcome

    async def _persist(self, origin: Origin, outcome: ProbeOutcome) -> uuid.UUID:
        """Write the outcome in its own transaction and commit it."""
        operation = "record_success" if outcome.succeeded else "record_failure"

        try:
            async with self._session_factory() as session, session.begin():
                repo = OriginRepository(session)
                if outcome.succeeded:
                    probe_uid = await repo.record_success(
                        origin.origin_uid,
                        outcome.status_code,
                        outcome.latency_ms,
                        outcome.observed_at,
                    )
                else:
                    probe_uid = await repo.record_failure(
                        origin.origin_uid,
                        outcome.reason,
                        outcome.observed_at,
                    )
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"{operation} failed: {e}", operation=operation, origin_uid=origin.origin_uid
            ) from e

        if outcome.succeeded:
            logger.info(
                "Made a request to the origin (origin_uid=%s, probe_uid=%s, status=%d, latency_ms=%d)",
                origin.origin_uid,
                probe_uid,
                outcome.status_code,
                outcome.latency_ms,
            )
        else:
            logger.warning(
                "Failed to make a request to the origin (origin_uid=%s, probe_uid=%s, reason=%s)",
                origin.origin_uid,
                probe_uid,
                outcome.reason.value,
            )
        return probe_uid
