"""Entry point and scheduler for Fare Watch."""

import logging
import os
import random
import sys
import time
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
load_dotenv(Path(__file__).resolve().parents[1] / ".env")

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.interval import IntervalTrigger

from fare_watch.notifiers import notify
from fare_watch.runner import NO_MONITORS, RunResult, SubprocessSearch, check_monitors

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"


def configure_logging(stream=sys.stdout) -> None:
    """Log to ``stream``; the search command uses stderr to keep stdout for JSON."""
    level = os.environ.get("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(stream)],
        force=True,
    )


def run_check(store: Path | None = None) -> RunResult:
    """Query every enabled monitor once, persist changes and send alerts."""
    result = check_monitors(SubprocessSearch(), notify, store)
    if not result.records:
        logger.info(NO_MONITORS)
    else:
        logger.info("Checked monitors: %d reports", len(result.reports))
    return result


def run_check_with_jitter(store: Path | None = None) -> None:
    """
    Add randomized jitter before each scheduled check.

    The base interval is CHECK_INTERVAL_MINUTES; each run is preceded by a
    random delay of 0-JITTER_MAX_SECONDS seconds (default 0-180 s).
    """
    jitter_max = int(os.environ.get("JITTER_MAX_SECONDS", "180"))
    delay = random.uniform(0, jitter_max)
    logger.debug("Jitter: sleeping %.1f s before check", delay)
    time.sleep(delay)
    for report in run_check(store).reports:
        logger.info("%s", report)


def main(store: Path | None = None) -> None:
    """Run once immediately, then start the scheduler."""
    logger.info("🚀 Fare Watch started")
    logger.info("Monitor store: %s", store or os.environ.get("MONITORS_PATH", "data/monitors.json"))

    interval_minutes = int(os.environ.get("CHECK_INTERVAL_MINUTES", "30"))
    jitter_max = int(os.environ.get("JITTER_MAX_SECONDS", "180"))

    logger.info(
        "Scheduler: every ~%d min ± %d s jitter",
        interval_minutes, jitter_max,
    )

    # First run without jitter
    for report in run_check(store).reports:
        logger.info("%s", report)

    scheduler = BlockingScheduler()
    scheduler.add_job(
        run_check_with_jitter,
        trigger=IntervalTrigger(minutes=interval_minutes),
        kwargs={"store": store},
        id="fare_check",
        max_instances=1,          # Prevent overlapping runs
        misfire_grace_time=300,   # 5 min grace if a run is missed
    )
    scheduler.start()


if __name__ == "__main__":
    configure_logging()
    main()
