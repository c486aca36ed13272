"""
WellnessReport assembler.

Runs every scoring function once over a period's samples and gathers the
per-metric aggregates into a WellnessReport, the single object consumed by
the prompt layer and the analysis pipeline.

Pure: samples in, report out. Loading and timezone conversion happen in the
pipeline before this is called.
"""
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Dict, List, Optional, Sequence

from wellness.analysis import stats
from wellness.analysis.samples import WellnessSample
from wellness.analysis.schedule import (
    OptimalSchedule,
    compute_optimal_schedule,
    energy_by_hour,
)
from wellness.analysis.scoring import (
    BURNOUT_MIN_SAMPLES,
    TRAILING_WINDOW_DAYS,
    BurnoutRisk,
    ProductivityModel,
    compute_burnout_risk,
    compute_productivity_model,
    energy_by_weekday,
    observed_weekdays,
)


@dataclass
class MetricSummary:
    """Average and range of one rating over the period."""
    avg: float
    min: float
    max: float


@dataclass
class WellnessReport:
    """
    Complete scoring output for one user and period.

    Produced by build_wellness_report() and consumed by the prompt layer.
    """
    num_points: int
    num_observed_days: int
    energy_by_weekday: Dict[str, float]
    observed_weekdays: List[str]
    productivity: ProductivityModel
    burnout: BurnoutRisk

    averages: Dict[str, float] = field(default_factory=dict)
    energy: MetricSummary = field(default_factory=lambda: MetricSummary(0, 0, 0))
    stress: MetricSummary = field(default_factory=lambda: MetricSummary(0, 0, 0))
    sleep_hours: MetricSummary = field(default_factory=lambda: MetricSummary(0, 0, 0))
    avg_sleep_start: str = ""
    avg_sleep_end: str = ""
    trailing_sleep_hours: float = 0.0
    sleep_delta_hours: float = 0.0
    notes: str = ""

    energy_by_hour: Dict[int, float] = field(default_factory=dict)
    schedule: Optional[OptimalSchedule] = None


_AVERAGED_FIELDS = (
    "sleep_hours",
    "sleep_quality",
    "mood",
    "activity",
    "productive",
    "stress",
    "energy",
    "concentration",
)


def _summary(samples: Sequence[WellnessSample], name: str) -> MetricSummary:
    values = [getattr(s, name) for s in samples]
    lo, hi = stats.min_max(values)
    return MetricSummary(
        avg=stats.round2(stats.mean(values)),
        min=stats.round2(lo),
        max=stats.round2(hi),
    )


def build_user_notes(samples: Sequence[WellnessSample], max_len: int = 1200) -> str:
    """
    Join free-text notes as "YYYY-MM-DD HH:MM — note" lines.

    The digest is cut at max_len characters, mid-line if necessary.
    """
    if max_len <= 0:
        return ""

    out = ""
    for s in samples:
        txt = (s.note or "").strip()
        if not txt:
            continue
        line = f"{s.ts.strftime('%Y-%m-%d %H:%M')} — {txt}"
        if out:
            line = "\n" + line
        if len(out) + len(line) > max_len:
            out += line[: max_len - len(out)]
            break
        out += line
    return out


def sleep_delta(samples: Sequence[WellnessSample], days: int = 7) -> float:
    """
    Mean sleep over the last `days` minus the mean over the `days` before that.

    0.0 when either window is empty.
    """
    if not samples:
        return 0.0
    latest = samples[-1].ts
    recent_cut = latest - timedelta(days=days)
    prior_cut = recent_cut - timedelta(days=days)
    recent = [s.sleep_hours for s in samples if s.ts > recent_cut]
    prior = [s.sleep_hours for s in samples if prior_cut < s.ts <= recent_cut]
    if not recent or not prior:
        return 0.0
    return stats.round2(stats.mean(recent) - stats.mean(prior))


def build_wellness_report(
    samples: Sequence[WellnessSample],
    *,
    burnout_min_samples: int = BURNOUT_MIN_SAMPLES,
    window_days: int = TRAILING_WINDOW_DAYS,
    notes_max_chars: int = 1200,
    include_schedule: bool = False,
) -> WellnessReport:
    """
    Score a period's samples.

    Args:
        samples: Time-ordered samples, timestamps already in the user's zone.
        burnout_min_samples: Minimum count for a determinate burnout level.
        window_days: Trailing window for trend rules.
        notes_max_chars: Cap on the free-text note digest.
        include_schedule: Also compute the hourly profile and day schedule.
    """
    by_weekday = energy_by_weekday(samples)
    productivity = compute_productivity_model(samples)
    burnout = compute_burnout_risk(
        samples, productivity, min_samples=burnout_min_samples, window_days=window_days
    )

    report = WellnessReport(
        num_points=len(samples),
        num_observed_days=stats.count_unique_days(samples),
        energy_by_weekday=by_weekday,
        observed_weekdays=observed_weekdays(by_weekday),
        productivity=productivity,
        burnout=burnout,
        averages={
            name: stats.round2(stats.field_mean(samples, name)) for name in _AVERAGED_FIELDS
        },
        energy=_summary(samples, "energy"),
        stress=_summary(samples, "stress"),
        sleep_hours=_summary(samples, "sleep_hours"),
        avg_sleep_start=stats.circular_mean_clock(s.sleep_start for s in samples),
        avg_sleep_end=stats.circular_mean_clock(s.sleep_end for s in samples),
        trailing_sleep_hours=stats.round2(
            stats.field_mean(stats.trailing_window(samples, window_days), "sleep_hours")
        ),
        sleep_delta_hours=sleep_delta(samples),
        notes=build_user_notes(samples, notes_max_chars),
    )

    if include_schedule:
        report.energy_by_hour = energy_by_hour(samples)
        report.schedule = compute_optimal_schedule(samples, report.energy_by_hour)

    return report
