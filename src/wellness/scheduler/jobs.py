"""
APScheduler jobs for background re-analysis.

Nightly job re-runs every period for every user with stored samples, so the
last-result records stay fresh even for users who did not check in that day.

The scheduler runs in the process started by `python -m wellness`.
"""
import logging
from datetime import datetime, timezone

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from wellness.config import get_settings

logger = logging.getLogger(__name__)


def build_scheduler(analyzer) -> AsyncIOScheduler:
    """
    Create and configure the APScheduler.

    Args:
        analyzer: WellnessAnalyzer the nightly job runs against.

    Returns:
        Configured AsyncIOScheduler (not yet started).
    """
    settings = get_settings()
    scheduler = AsyncIOScheduler()

    scheduler.add_job(
        _nightly_analysis,
        trigger="cron",
        hour=settings.analysis_hour,
        minute=0,
        id="nightly_analysis",
        replace_existing=True,
        kwargs={"analyzer": analyzer},
    )

    return scheduler


async def _nightly_analysis(analyzer) -> None:
    """
    Nightly job: refresh all periods for every known user.

    A failure for one user is logged and the loop moves on.
    """
    settings = get_settings()
    started = datetime.now(timezone.utc)
    logger.info("Nightly analysis starting at %s", started.isoformat())

    try:
        user_ids = analyzer.samples.list_user_ids()
    except Exception as exc:
        logger.error("Nightly analysis could not list users: %s", exc)
        return

    done = 0
    for user_id in user_ids:
        try:
            user_tz = analyzer.samples.get_user_timezone(user_id, settings.default_user_tz)
            await analyzer.refresh_user(user_id, user_tz, started)
            done += 1
        except Exception as exc:
            logger.error("Nightly analysis failed for user %s: %s", user_id, exc)

    logger.info("Nightly analysis finished: %d/%d users", done, len(user_ids))
