"""Process entry point: wires settings, database, notifier and poller."""

import asyncio
import logging
import signal

import httpx

from originwatch.alerts.evaluator import AlertEvaluator
from originwatch.alerts.setup import build_notifier
from originwatch.config import Settings
from originwatch.db.database import create_engine, create_session_factory, init_models
from originwatch.poller.poller import Poller

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


async def serve(settings: Settings) -> None:
    """Run the poller until SIGINT or SIGTERM."""
    engine = create_engine(settings)
    try:
        # Startup failures are fatal
        await init_models(engine)
        session_factory = create_session_factory(engine)

        evaluator = AlertEvaluator(
            session_factory=session_factory,
            notifier=build_notifier(settings),
            threshold=settings.alert_threshold(),
            topic=settings.notification_topic,
        )

        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop_event.set)

        async with httpx.AsyncClient(follow_redirects=True) as client:
            poller = Poller(
                session_factory=session_factory,
                client=client,
                evaluator=evaluator,
                request_timeout=settings.request_timeout_seconds,
                poll_interval=settings.poll_interval_seconds,
                max_concurrency=settings.max_concurrency,
            )
            try:
                await poller.run(stop_event)
            finally:
                for sig in (signal.SIGINT, signal.SIGTERM):
                    loop.remove_signal_handler(sig)
    finally:
        await engine.dispose()


def run() -> None:
    settings = Settings()
    configure_logging(settings.log_level)
    logger.info("Starting originwatch")
    asyncio.run(serve(settings))


if __name__ == "__main__":
    run()
