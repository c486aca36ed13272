"""
Main entrypoint: runs the nightly analysis scheduler, or one analysis.

Usage:
    python -m wellness                          # starts the scheduler
    python -m wellness analyze <user_id> [day|week|month|all]
"""
import asyncio
import logging
import sys

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(name)s %(levelname)s %(message)s",
)
logger = logging.getLogger(__name__)


async def _run_analyze(user_id: int, period: str) -> int:
    from wellness.models.analysis import AnalyzeRequest
    from wellness.pipeline.analyzer import InsufficientSamplesError, build_analyzer

    analyzer = build_analyzer()
    user_tz = analyzer.samples.get_user_timezone(user_id, analyzer.settings.default_user_tz)
    try:
        result = await analyzer.analyze(
            AnalyzeRequest(user_id=user_id, user_tz=user_tz, period=period)
        )
    except InsufficientSamplesError as exc:
        logger.error("Cannot analyse user %s: %s", user_id, exc)
        return 1

    print(result.model_dump_json(indent=2))
    return 0


async def _run_scheduler() -> None:
    from wellness.config import get_settings
    from wellness.pipeline.analyzer import build_analyzer
    from wellness.scheduler.jobs import build_scheduler

    settings = get_settings()
    analyzer = build_analyzer(settings)

    scheduler = build_scheduler(analyzer)
    scheduler.start()
    logger.info(
        "Scheduler started (nightly analysis at %02d:00)",
        settings.analysis_hour,
    )

    try:
        await asyncio.Event().wait()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Shutting down...")
    finally:
        scheduler.shutdown()
        logger.info("Goodbye.")


def _usage() -> int:
    print("usage: python -m wellness [analyze <user_id> [day|week|month|all]]", file=sys.stderr)
    return 2


if __name__ == "__main__":
    # Dispatch on first argument: `python -m wellness analyze ...` or just `python -m wellness`
    if len(sys.argv) > 1 and sys.argv[1] == "analyze":
        if len(sys.argv) < 3 or not sys.argv[2].isdigit():
            sys.exit(_usage())
        period = sys.argv[3] if len(sys.argv) > 3 else "all"
        sys.exit(asyncio.run(_run_analyze(int(sys.argv[2]), period)))
    elif len(sys.argv) > 1:
        sys.exit(_usage())
    else:
        asyncio.run(_run_scheduler())
