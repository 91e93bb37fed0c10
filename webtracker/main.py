"""Entry point: run one tracking cycle now, then keep running on a schedule."""

import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

from apscheduler.executors.debug import DebugExecutor
from apscheduler.schedulers.blocking import BlockingScheduler

from webtracker.config import Settings
from webtracker.cycle import CycleRunner
from webtracker.orchestrator import ProductOrchestrator
from webtracker.rate_limiter import RateLimiter
from webtracker.registry import build_default_registry
from webtracker.renderer import PlaywrightRenderer
from webtracker.scheduler import TrackingScheduler
from webtracker.storage import SqliteStore

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"


def configure_logging(settings: Settings) -> None:
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if settings.log_file:
        Path(settings.log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(settings.log_file))
    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT, handlers=handlers)


def build_scheduler(settings: Settings, renderer, scheduler=None) -> TrackingScheduler:
    """Wire store, registry and renderer into a scheduler ready to start."""
    store = SqliteStore(settings.db_path)
    store.init_db()
    registry = build_default_registry(settings)
    registry.verify()

    orchestrator = ProductOrchestrator(store, registry, renderer, settings)
    runner = CycleRunner(store, orchestrator, RateLimiter(settings.product_delay_seconds))
    return TrackingScheduler(runner, settings.cycle_cron, scheduler=scheduler)


def blocking_scheduler() -> BlockingScheduler:
    # Playwright sync objects are bound to the thread that created them,
    # so cycles run on the scheduler thread itself.
    return BlockingScheduler(executors={"default": DebugExecutor()})


def main() -> None:
    """Initialize the store, run once immediately, then start the scheduler."""
    # Load .env from project root
    load_dotenv(Path(__file__).resolve().parents[1] / ".env")
    settings = Settings.from_env()
    configure_logging(settings)

    logger.info("🚀 Web tracker started")
    with PlaywrightRenderer(settings) as renderer:
        tracking = build_scheduler(settings, renderer, scheduler=blocking_scheduler())

        # Run once immediately on startup
        tracking.run_now()

        try:
            tracking.start()
        except (KeyboardInterrupt, SystemExit):
            logger.info("Shutting down")
        finally:
            tracking.stop()


if __name__ == "__main__":
    main()
