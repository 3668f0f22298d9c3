"""Tests for the Poller.

End-to-end cycles run against a file-backed SQLite store with
httpx.MockTransport standing in for the origins.
"""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

import httpx
import pytest
import pytest_asyncio
from sqlalchemy import select

from originwatch.alerts.evaluator import AlertEvaluator
from originwatch.alerts.models import AlertOutcome, AlertThreshold
from originwatch.db.repositories.origin_repo import OriginRepository
from originwatch.exceptions import PersistenceError
from originwatch.models import FailureReason, Notification, ProbeFailure, ProbeSuccess
from originwatch.poller.poller import Poller

URI = "http://example.test"
TOPIC = "arn:aws:sns:eu-west-1:123456789012:outages"
THRESHOLD = AlertThreshold(
    failure_limit=3,
    window=timedelta(minutes=5),
    cooldown=timedelta(hours=1),
)


def _refuse(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("[Errno 111] Connection refused", request=request)


@pytest_asyncio.fixture
async def make_poller(session_factory, notifier):
    """Build pollers whose HTTP client is served by a MockTransport handler."""
    clients: list[httpx.AsyncClient] = []

    def _make(handler, threshold=THRESHOLD, notifier_override=None, **kwargs):
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        clients.append(client)
        evaluator = AlertEvaluator(
            session_factory,
            notifier_override or notifier,
            threshold,
            TOPIC,
        )
        return Poller(session_factory, client, evaluator, **kwargs)

    yield _make

    for client in clients:
        await client.aclose()


async def _create_origin(session_factory, uri: str = URI):
    async with session_factory() as session, session.begin():
        return await OriginRepository(session).create_origin(uri)


async def _latest_status(session_factory, uri: str) -> int | None:
    async with session_factory() as session:
        statuses = await OriginRepository(session).latest_successes()
    return next((s.status_code for s in statuses if s.uri == uri), None)


async def _latest_reason(session_factory, uri: str) -> FailureReason | None:
    async with session_factory() as session:
        failures = await OriginRepository(session).latest_failures()
    return next((f.reason for f in failures if f.uri == uri), None)


class TestPollerInit:
    """Tests for Poller construction."""

    def test_rejects_timeout_not_shorter_than_interval(self, session_factory):
        with pytest.raises(ValueError):
            Poller(
                session_factory,
                AsyncMock(),
                AsyncMock(),
                request_timeout=60.0,
                poll_interval=60.0,
            )


class TestPollOnceRecordsOutcomes:
    """Tests for probe outcome persistence."""

    @pytest.mark.asyncio
    async def test_records_latest_status_200(self, session_factory, make_poller):
        requests: list[httpx.Request] = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200)

        await _create_origin(session_factory)
        poller = make_poller(handler)

        report = await poller.poll_once()

        assert len(requests) == 1
        assert requests[0].method == "GET"
        assert str(requests[0].url) == URI
        assert await _latest_status(session_factory, URI) == 200
        assert report.successes == 1
        assert report.failures == 0

    @pytest.mark.asyncio
    async def test_records_client_errors_as_success_rows(self, session_factory, make_poller):
        state = {"status": 200}
        await _create_origin(session_factory)
        poller = make_poller(lambda request: httpx.Response(state["status"]))

        await poller.poll_once()
        state["status"] = 404
        await poller.poll_once()

        assert await _latest_status(session_factory, URI) == 404

    @pytest.mark.asyncio
    async def test_success_records_latency_and_start_time(self, session_factory, make_poller):
        origin = await _create_origin(session_factory)
        poller = make_poller(lambda request: httpx.Response(204))

        outcome = await poller.probe_origin(origin)

        assert outcome.status_code == 204
        assert outcome.latency_ms is not None
        assert outcome.latency_ms >= 0
        assert outcome.observed_at is not None
        assert outcome.probe_uid is not None
        assert outcome.alert == AlertOutcome.NO_ALERT

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error, reason",
        [
            (
                httpx.UnsupportedProtocol(
                    "Request URL is missing an 'http://' or 'https://' protocol."
                ),
                FailureReason.BAD_REQUEST,
            ),
            (httpx.ConnectError("Connection refused"), FailureReason.CONNECTION_FAILURE),
            (httpx.ReadTimeout("timed out"), FailureReason.REQUEST_TIMEOUT),
            (httpx.TooManyRedirects("Exceeded maximum allowed redirects."), FailureReason.REDIRECTION),
        ],
    )
    async def test_records_classified_failure(self, session_factory, make_poller, error, reason):
        def handler(request):
            raise error

        await _create_origin(session_factory)
        poller = make_poller(handler)

        report = await poller.poll_once()

        assert report.failures == 1
        assert await _latest_reason(session_factory, URI) == reason

    @pytest.mark.asyncio
    async def test_one_row_per_probe(self, session_factory, make_poller, count_rows):
        await _create_origin(session_factory, "http://up.test")
        await _create_origin(session_factory, "http://down.test")

        def handler(request):
            if request.url.host == "down.test":
                raise httpx.ConnectError("refused", request=request)
            return httpx.Response(200)

        await make_poller(handler).poll_once()

        assert await count_rows(ProbeSuccess) == 1
        assert await count_rows(ProbeFailure) == 1

    @pytest.mark.asyncio
    async def test_no_origins(self, make_poller):
        report = await make_poller(lambda request: httpx.Response(200)).poll_once()

        assert report.origins == 0
        assert report.alerts == 0


class TestAlerting:
    """End-to-end threshold and cooldown behaviour."""

    @pytest.mark.asyncio
    async def test_alert_fires_on_cycle_reaching_limit(
        self, session_factory, make_poller, notifier, count_rows
    ):
        await _create_origin(session_factory)
        poller = make_poller(_refuse)

        first = await poller.poll_once()
        second = await poller.poll_once()
        assert first.alerts == 0
        assert second.alerts == 0
        assert await count_rows(Notification) == 0

        third = await poller.poll_once()

        assert third.alerts == 1
        assert await count_rows(Notification) == 1
        async with session_factory() as session:
            notification = (await session.execute(select(Notification))).scalar_one()
        assert notification.subject == "Outage detected"
        assert notification.message == f"The failure rate of {URI} exceeds the SLA"
        assert notification.topic == TOPIC
        assert notifier.sent == [(TOPIC, notification.subject, notification.message)]

    @pytest.mark.asyncio
    async def test_no_second_alert_within_cooldown(
        self, session_factory, make_poller, notifier, count_rows
    ):
        await _create_origin(session_factory)
        poller = make_poller(_refuse)

        for _ in range(6):
            await poller.poll_once()

        assert await count_rows(Notification) == 1
        assert len(notifier.sent) == 1

    @pytest.mark.asyncio
    async def test_alerts_again_after_cooldown_elapses(
        self, session_factory, make_poller, count_rows
    ):
        threshold = AlertThreshold(
            failure_limit=3,
            window=timedelta(minutes=5),
            cooldown=timedelta(milliseconds=100),
        )
        await _create_origin(session_factory)
        poller = make_poller(_refuse, threshold=threshold)

        for _ in range(3):
            await poller.poll_once()
        assert await count_rows(Notification) == 1

        await asyncio.sleep(0.2)
        await poller.poll_once()

        assert await count_rows(Notification) == 2

    @pytest.mark.asyncio
    async def test_failed_delivery_keeps_probe_rows(
        self, session_factory, make_poller, failing_notifier, count_rows
    ):
        await _create_origin(session_factory)
        poller = make_poller(_refuse, notifier_override=failing_notifier)

        for _ in range(3):
            report = await poller.poll_once()

        assert report.alerts == 0
        assert report.aborted == 0
        assert await count_rows(ProbeFailure) == 3
        assert await count_rows(Notification) == 0

    @pytest.mark.asyncio
    async def test_healthy_origin_never_alerts(
        self, session_factory, make_poller, notifier, count_rows
    ):
        await _create_origin(session_factory)
        poller = make_poller(lambda request: httpx.Response(500))

        for _ in range(4):
            await poller.poll_once()

        assert await count_rows(Notification) == 0
        assert notifier.sent == []


class TestErrorIsolation:
    """Errors for one origin must not stop the cycle."""

    @pytest.mark.asyncio
    async def test_persistence_error_aborts_only_that_origin(
        self, session_factory, make_poller, count_rows, monkeypatch
    ):
        broken = await _create_origin(session_factory, "http://broken.test")
        await _create_origin(session_factory, "http://fine.test")
        original = OriginRepository.record_success

        async def flaky_record_success(self, origin_uid, *args):
            if origin_uid == broken.origin_uid:
                raise PersistenceError(
                    "disk full", operation="record_success", origin_uid=origin_uid
                )
            return await original(self, origin_uid, *args)

        monkeypatch.setattr(OriginRepository, "record_success", flaky_record_success)
        poller = make_poller(lambda request: httpx.Response(200))

        report = await poller.poll_once()

        assert report.origins == 2
        assert report.aborted == 1
        assert report.successes == 1
        assert await count_rows(ProbeSuccess) == 1
        assert await _latest_status(session_factory, "http://fine.test") == 200

    @pytest.mark.asyncio
    async def test_aborted_origin_skips_evaluation(self, session_factory, make_poller):
        origin = await _create_origin(session_factory)
        poller = make_poller(lambda request: httpx.Response(200))
        poller._evaluator = AsyncMock()
        poller._persist = AsyncMock(
            side_effect=PersistenceError("locked", operation="record_success")
        )

        outcome = await poller.probe_origin(origin)

        assert outcome.aborted
        assert outcome.alert is None
        poller._evaluator.evaluate.assert_not_called()

    @pytest.mark.asyncio
    async def test_unexpected_error_is_contained(self, session_factory, make_poller):
        await _create_origin(session_factory, "http://a.test")
        await _create_origin(session_factory, "http://b.test")
        poller = make_poller(lambda request: httpx.Response(200))
        poller._evaluator = AsyncMock()
        poller._evaluator.evaluate.side_effect = [RuntimeError("bug"), AlertOutcome.NO_ALERT]

        report = await poller.poll_once()

        assert report.origins == 2
        assert report.aborted == 1

    @pytest.mark.asyncio
    async def test_list_origins_failure_propagates_from_poll_once(
        self, make_poller, monkeypatch
    ):
        async def broken_list(self):
            raise PersistenceError("connection lost", operation="list_origins")

        monkeypatch.setattr(OriginRepository, "list_origins", broken_list)
        poller = make_poller(lambda request: httpx.Response(200))

        with pytest.raises(PersistenceError):
            await poller.poll_once()


class TestRunLoop:
    """Tests for the scheduling loop."""

    @pytest.mark.asyncio
    async def test_cycle_errors_do_not_stop_the_loop(self, make_poller):
        poller = make_poller(
            lambda request: httpx.Response(200), request_timeout=0.005, poll_interval=0.01
        )
        stop_event = asyncio.Event()
        calls = 0

        async def fake_poll_once():
            nonlocal calls
            calls += 1
            if calls == 1:
                raise PersistenceError("database unavailable", operation="list_origins")
            if calls == 3:
                stop_event.set()

        poller.poll_once = fake_poll_once

        await asyncio.wait_for(poller.run(stop_event), timeout=5)

        assert calls == 3

    @pytest.mark.asyncio
    async def test_stop_event_interrupts_sleep(self, make_poller):
        poller = make_poller(lambda request: httpx.Response(200))
        stop_event = asyncio.Event()

        async def fake_poll_once():
            stop_event.set()

        poller.poll_once = fake_poll_once

        # Default interval is 60s; run must return as soon as the event is set
        await asyncio.wait_for(poller.run(stop_event), timeout=2)

    @pytest.mark.asyncio
    async def test_run_polls_origins(self, session_factory, make_poller):
        await _create_origin(session_factory)
        poller = make_poller(
            lambda request: httpx.Response(200), request_timeout=0.005, poll_interval=0.01
        )
        stop_event = asyncio.Event()
        original = poller.poll_once

        async def poll_then_stop():
            report = await original()
            stop_event.set()
            return report

        poller.poll_once = poll_then_stop

        await asyncio.wait_for(poller.run(stop_event), timeout=5)

        assert await _latest_status(session_factory, URI) == 200
