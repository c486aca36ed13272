"""
WellnessAnalyzer — per-request analysis pipeline.

Flow for one analysis:
  1. Normalise the request and look up the response cache
  2. Load the period's samples, convert to the user's timezone
  3. Score them (build_wellness_report)
  4. Generate the narrative (InsightOrchestrator), bounded by a timeout
  5. Store: history record, last result for the period, and the cache when
     the narrative is final (ok or disabled)

Only an empty sample set or a storage failure fails the request. Any failure
in the narrative stage degrades to metrics plus best-effort or placeholder
text.
"""
import asyncio
import dataclasses
import hashlib
import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from wellness.ai.contract import DEFAULT_CONTRACT
from wellness.ai.generation import build_text_generator
from wellness.ai.insight import (
    InsightGenerationError,
    InsightOrchestrator,
    InsightTransportError,
    TokenBudgets,
)
from wellness.analysis.report import WellnessReport, build_wellness_report
from wellness.analysis.samples import WellnessSample, records_to_samples, to_timezone
from wellness.config import Settings, get_settings
from wellness.db.repository import AnalysisRepository, SampleRepository
from wellness.models.analysis import (
    INSIGHT_BEST_EFFORT,
    INSIGHT_DISABLED,
    INSIGHT_FAILED,
    INSIGHT_OK,
    PERIODS,
    AnalysisResult,
    AnalyzeRequest,
    BurnoutRiskOut,
    OptimalScheduleOut,
    ProductivityModelOut,
)
from wellness.prompts.insight import build_insight_prompt

logger = logging.getLogger(__name__)

LLM_DISABLED_TEXT = "LLM disabled"
CACHEABLE_STATUSES = (INSIGHT_OK, INSIGHT_DISABLED)


class InsufficientSamplesError(ValueError):
    """Not enough samples in the requested period to analyse anything."""


def resolve_timezone(name: str) -> ZoneInfo:
    """IANA zone by name; unknown or blank names fall back to UTC."""
    try:
        return ZoneInfo(name or "UTC")
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone %r, using UTC", name)
        return ZoneInfo("UTC")


def normalize_request(req: AnalyzeRequest) -> AnalyzeRequest:
    return req.model_copy(update={
        "user_tz": req.user_tz or "UTC",
        "period": req.period if req.period in PERIODS else "all",
        "week_starts": req.week_starts or "monday",
    })


def build_cache_key(req: AnalyzeRequest) -> str:
    """SHA-256 of the normalised request as sorted-key JSON."""
    payload = json.dumps(normalize_request(req).model_dump(), sort_keys=True)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def period_range(period: str, now: datetime) -> Tuple[Optional[datetime], datetime]:
    """(start, end) for a period ending now. start is None for "all"."""
    if period == "day":
        return now - timedelta(days=1), now
    if period == "week":
        return now - timedelta(days=7), now
    if period == "month":
        return now - timedelta(days=30), now
    return None, now


def day_bounds(ts: datetime, tz: ZoneInfo) -> Tuple[datetime, datetime]:
    """Local midnight-to-midnight around ts, as aware datetimes."""
    local = ts.astimezone(tz)
    start = datetime(local.year, local.month, local.day, tzinfo=tz)
    return start, start + timedelta(days=1)


def report_to_result(report: WellnessReport, insight: str, status: str) -> AnalysisResult:
    debug: Dict[str, object] = {}
    if report.trailing_sleep_hours > 0:
        debug["avg_sleep_hours"] = report.trailing_sleep_hours
    if report.avg_sleep_start:
        debug["avg_sleep_start"] = report.avg_sleep_start
    if report.avg_sleep_end:
        debug["avg_sleep_end"] = report.avg_sleep_end
    if report.sleep_delta_hours != 0:
        debug["avg_sleep_delta"] = report.sleep_delta_hours

    schedule = None
    if report.schedule is not None:
        s = report.schedule
        schedule = OptimalScheduleOut(
            suggested_sleep_window=s.suggested_sleep_window,
            best_focus_hours=s.best_focus_hours,
            best_light_tasks_hours=s.best_light_tasks_hours,
            recovery_tips=s.recovery_tips,
        )

    return AnalysisResult(
        energy_by_weekday=report.energy_by_weekday,
        productivity_model=ProductivityModelOut(
            weights=report.productivity.weights,
            score=report.productivity.score,
        ),
        burnout_risk=BurnoutRiskOut(
            score=report.burnout.score,
            level=report.burnout.level,
            reasons=report.burnout.reasons,
            prediction_horizon_days=report.burnout.prediction_horizon_days,
        ),
        optimal_schedule=schedule,
        llm_insight=insight,
        insight_status=status,
        debug=debug,
    )


class WellnessAnalyzer:
    """Wires storage, scoring and narrative generation per request."""

    def __init__(
        self,
        samples: SampleRepository,
        results: AnalysisRepository,
        orchestrator: Optional[InsightOrchestrator] = None,
        settings: Optional[Settings] = None,
    ):
        """
        Args:
            samples: Sample store.
            results: Cache/history/last-result store.
            orchestrator: None disables narrative generation.
            settings: Defaults to get_settings().
        """
        self.samples = samples
        self.results = results
        self.orchestrator = orchestrator
        self.settings = settings or get_settings()

    async def analyze(self, request: AnalyzeRequest, now: Optional[datetime] = None) -> AnalysisResult:
        """
        Run one analysis.

        Raises:
            ValueError: user_id is not positive.
            InsufficientSamplesError: too few samples in the period.
        """
        if request.user_id <= 0:
            raise ValueError("user id is required")

        req = normalize_request(request)
        key = build_cache_key(req)
        cached = self.results.get_cached(key)
        if cached is not None:
            logger.info("Cache hit for user %s period %s", req.user_id, req.period)
            return cached

        tz = resolve_timezone(req.user_tz)
        now = (now or datetime.now(timezone.utc)).astimezone(tz)
        start, end = period_range(req.period, now)

        records = self.samples.get_samples(req.user_id, start, end)
        if len(records) < max(1, self.settings.min_samples_for_analysis):
            raise InsufficientSamplesError(
                f"need at least {max(1, self.settings.min_samples_for_analysis)} "
                f"sample(s) for analysis, found {len(records)}"
            )
        samples = to_timezone(records_to_samples(records), tz)

        report = build_wellness_report(
            samples,
            burnout_min_samples=self.settings.burnout_min_samples,
            window_days=self.settings.trend_window_days,
            notes_max_chars=self.settings.notes_max_chars,
            include_schedule=self.settings.include_schedule,
        )
        logger.info(
            "Scored user %s period %s: %d samples, burnout=%s, productivity=%.2f",
            req.user_id, req.period, report.num_points,
            report.burnout.level, report.productivity.score,
        )

        insight, status = await self._generate_insight(report, req, start, end)
        result = report_to_result(report, insight, status)
        self._store(key, req, result)
        return result

    async def _generate_insight(
        self,
        report: WellnessReport,
        req: AnalyzeRequest,
        start: Optional[datetime],
        end: datetime,
    ) -> Tuple[str, str]:
        if self.orchestrator is None:
            return LLM_DISABLED_TEXT, INSIGHT_DISABLED

        prompt = build_insight_prompt(
            report,
            period=req.period,
            user_tz=req.user_tz,
            period_start=start,
            period_end=end,
        )
        try:
            insight = await asyncio.wait_for(
                self.orchestrator.generate(prompt),
                timeout=self.settings.llm_timeout_seconds,
            )
        except InsightTransportError as exc:
            if exc.partial_text:
                logger.warning("Insight %s call failed; keeping partial text", exc.stage)
                return exc.partial_text, INSIGHT_BEST_EFFORT
            return f"Insight unavailable: {exc}", INSIGHT_FAILED
        except InsightGenerationError as exc:
            logger.warning("Insight generation produced no text: %s", exc)
            return f"Insight unavailable: {exc}", INSIGHT_FAILED
        except asyncio.TimeoutError:
            logger.error("Insight generation timed out for user %s", req.user_id)
            return "Insight unavailable: timed out", INSIGHT_FAILED

        return insight.text, INSIGHT_OK if insight.validated else INSIGHT_BEST_EFFORT

    def _store(self, key: str, req: AnalyzeRequest, result: AnalysisResult) -> None:
        # Failed and best-effort narratives are retried on the next request
        if result.insight_status in CACHEABLE_STATUSES:
            self.results.set_cached(
                key, req.user_id, result, timedelta(minutes=self.settings.cache_ttl_minutes)
            )
        self.results.append_history(key, req, result)
        self.results.upsert_last(req.user_id, req.period, result)

    # ─── Tracking and batch refresh ───────────────────────────────────────────

    def track(self, user_id: int, user_tz: str, sample: WellnessSample) -> bool:
        """
        Store today's check-in (one per local day) and remember the timezone.

        Returns:
            True if it replaced an earlier check-in for the same day.
        """
        if user_id <= 0:
            raise ValueError("user id is required")
        tz = resolve_timezone(user_tz)
        day_start, day_end = day_bounds(sample.ts, tz)
        updated = self.samples.upsert_sample_for_day(user_id, sample, day_start, day_end)
        self.samples.set_user_timezone(user_id, user_tz or "UTC")
        self.results.invalidate_user(user_id)
        return updated

    async def analyze_all_periods(self, user_id: int, user_tz: str = "") -> Optional[Exception]:
        """
        Re-run every period for one user.

        Periods without samples are skipped. Returns the first other error
        encountered (remaining periods still run), or None.
        """
        user_tz = user_tz or self.samples.get_user_timezone(user_id, self.settings.default_user_tz)
        first_error: Optional[Exception] = None
        for period in PERIODS:
            try:
                await self.analyze(AnalyzeRequest(user_id=user_id, user_tz=user_tz, period=period))
            except InsufficientSamplesError as exc:
                logger.info("Skipping %s analysis for user %s: %s", period, user_id, exc)
            except Exception as exc:
                logger.error("%s analysis failed for user %s: %s", period, user_id, exc)
                if first_error is None:
                    first_error = exc
        return first_error

    async def refresh_user(self, user_id: int, user_tz: str, ts: datetime) -> None:
        """Re-analyse every period after a check-in and record the outcome on that day's sample."""
        tz = resolve_timezone(user_tz)
        day_start, day_end = day_bounds(ts, tz)
        try:
            error = await self.analyze_all_periods(user_id, user_tz)
        except Exception as exc:
            logger.error("Refresh failed for user %s: %s", user_id, exc)
            error = exc
        if error is not None:
            self.samples.set_analysis_status_for_day(
                user_id, day_start, day_end, "failed", str(error)
            )
            return
        self.samples.set_analysis_status_for_day(user_id, day_start, day_end, "ready")

    def get_last_analyses(self, user_id: int) -> Dict[str, Tuple[AnalysisResult, datetime]]:
        if user_id <= 0:
            raise ValueError("user id is required")
        return self.results.get_last(user_id)

    def get_today_sample(self, user_id: int, user_tz: str = "", now: Optional[datetime] = None):
        """Today's stored check-in in the user's timezone, or None."""
        if user_id <= 0:
            raise ValueError("user id is required")
        user_tz = user_tz or self.samples.get_user_timezone(user_id, self.settings.default_user_tz)
        tz = resolve_timezone(user_tz)
        day_start, day_end = day_bounds(now or datetime.now(timezone.utc), tz)
        return self.samples.get_sample_for_day(user_id, day_start, day_end)


def build_analyzer(settings: Optional[Settings] = None, engine=None) -> WellnessAnalyzer:
    """Wire repositories, the provider client and the orchestrator from settings."""
    settings = settings or get_settings()
    if engine is None:
        from wellness.db.engine import get_engine
        engine = get_engine()

    orchestrator = None
    client = build_text_generator(settings)
    if client is None:
        logger.info("Text generation disabled or no API key; insights will be skipped.")
    else:
        contract = dataclasses.replace(
            DEFAULT_CONTRACT,
            claims_min_points=settings.claims_min_points,
            claims_min_observed_days=settings.claims_min_observed_days,
        )
        orchestrator = InsightOrchestrator(
            client,
            contract=contract,
            budgets=TokenBudgets(
                first=settings.first_call_max_tokens,
                continuation=settings.continuation_max_tokens,
                repair=settings.repair_max_tokens,
            ),
            fast=settings.insight_fast_mode,
        )

    return WellnessAnalyzer(
        samples=SampleRepository(engine),
        results=AnalysisRepository(engine),
        orchestrator=orchestrator,
        settings=settings,
    )
