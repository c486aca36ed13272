"""
Scoring engine: energy score, weekday energy, productivity and burnout risk.

All functions are pure (no DB access, no clock reads), so they can be called
concurrently from independent requests without synchronisation.

Energy score
------------
A weighted blend of six 0-100 terms. Sleep duration uses a Gaussian centred on
7.75h (width 2.0) so both short and long nights score lower; the self-reported
0-10 ratings are scaled linearly. Caffeine, alcohol and workout flags apply a
small fixed adjustment after weighting.

Burnout risk
------------
Nine independent rules, each worth a fixed number of points. Trailing rules
look at the last 14 days relative to the latest sample. Below the minimum
sample count the level is forced to "insufficient-data".
"""
import math
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Dict, List, Sequence

from wellness.analysis import stats
from wellness.analysis.samples import WellnessSample

RISK_LOW = "low"
RISK_MEDIUM = "medium"
RISK_HIGH = "high"
RISK_INSUFFICIENT_DATA = "insufficient-data"

PREDICTION_HORIZON_DAYS = 14
BURNOUT_MIN_SAMPLES = 5
TRAILING_WINDOW_DAYS = 14

SLEEP_OPTIMUM_HOURS = 7.75
SLEEP_WIDTH_HOURS = 2.0

ENERGY_WEIGHTS: Dict[str, float] = OrderedDict([
    ("sleep", 0.32),
    ("sleep_quality", 0.13),
    ("mood", 0.20),
    ("activity", 0.12),
    ("energy", 0.18),
    ("concentration", 0.05),
])

CAFFEINE_BONUS = 2.5
ALCOHOL_PENALTY = -4.0
WORKOUT_BONUS = 1.5

PRODUCTIVITY_WEIGHTS: Dict[str, float] = OrderedDict([
    ("energy_mean", 0.40),
    ("energy_stable", 0.15),
    ("sleep_ok", 0.10),
    ("mood_ok", 0.10),
    ("sleep_quality_ok", 0.08),
    ("focus_ok", 0.07),
    ("stress_ok", 0.05),
    ("self_energy_ok", 0.05),
])

INSUFFICIENT_DATA_REASON = (
    "Not enough data to forecast burnout (at least {n} check-ins are needed)."
)
NO_TRIGGER_REASON = "No clear burnout triggers in the current data."

_WEEKDAY_LABELS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")


@dataclass
class ProductivityModel:
    """Static weight table plus the blended 0-100 score."""
    weights: Dict[str, float]
    score: float


@dataclass
class BurnoutRisk:
    """Rule-based burnout assessment over a 14-day horizon."""
    level: str
    score: float
    reasons: List[str] = field(default_factory=list)
    prediction_horizon_days: int = PREDICTION_HORIZON_DAYS


@dataclass(frozen=True)
class BurnoutRule:
    name: str
    points: float
    reason: str


# Ordered: sleep debt and mood decline carry the most weight.
BURNOUT_RULES: List[BurnoutRule] = [
    BurnoutRule("sleep_debt", 30, "Sleep debt has been building over the last ~2 weeks."),
    BurnoutRule("mood_decline", 25, "Mood has been trending down over the last ~2 weeks."),
    BurnoutRule("energy_volatile", 20, "Energy is highly volatile (sharp swings day to day)."),
    BurnoutRule("low_productivity", 20, "The overall productivity score is low."),
    BurnoutRule("high_stress", 15, "Average stress is high."),
    BurnoutRule("low_self_energy", 10, "Self-rated energy is low on average."),
    BurnoutRule("poor_sleep_quality", 10, "Sleep quality is below a comfortable level."),
    BurnoutRule("frequent_alcohol", 10, "Alcohol shows up on more than 30% of days."),
    BurnoutRule("rare_workouts", 5, "Workouts happen on fewer than 20% of days."),
]


# ─── Energy ────────────────────────────────────────────────────────────────────

def sleep_term(hours: float) -> float:
    """Gaussian sleep-duration term, 100 at 7.75h."""
    return 100.0 * math.exp(-(((hours - SLEEP_OPTIMUM_HOURS) / SLEEP_WIDTH_HOURS) ** 2))


def _rating_term(value: float) -> float:
    return stats.clamp(value / 10.0, 0.0, 1.0) * 100.0


def energy_score(sample: WellnessSample) -> float:
    """Composite 0-100 energy score for a single sample."""
    terms = {
        "sleep": sleep_term(sample.sleep_hours),
        "sleep_quality": _rating_term(sample.sleep_quality),
        "mood": _rating_term(sample.mood),
        "activity": _rating_term(sample.activity),
        "energy": _rating_term(sample.energy),
        "concentration": _rating_term(sample.concentration),
    }
    e = sum(ENERGY_WEIGHTS[k] * v for k, v in terms.items())

    if sample.caffeine:
        e += CAFFEINE_BONUS
    if sample.alcohol:
        e += ALCOHOL_PENALTY
    if sample.workout:
        e += WORKOUT_BONUS

    return stats.clamp(e, 0.0, 100.0)


def weekday_label(sample: WellnessSample) -> str:
    return _WEEKDAY_LABELS[sample.ts.weekday()]


def energy_by_weekday(samples: Sequence[WellnessSample]) -> Dict[str, float]:
    """
    Mean energy score per weekday, rounded to 2 decimals.

    Timestamps must already be in the user's timezone. Weekdays with no
    samples are absent (absence is not zero).
    """
    buckets: Dict[int, List[float]] = {}
    for s in samples:
        buckets.setdefault(s.ts.weekday(), []).append(energy_score(s))

    return {
        _WEEKDAY_LABELS[day]: stats.round2(stats.mean(vals))
        for day, vals in sorted(buckets.items())
    }


def observed_weekdays(energy_map: Dict[str, float]) -> List[str]:
    """Observed weekday labels in calendar order."""
    return [d for d in _WEEKDAY_LABELS if d in energy_map]


# ─── Productivity ──────────────────────────────────────────────────────────────

def productivity_factors(samples: Sequence[WellnessSample]) -> Dict[str, float]:
    """The eight 0-100 inputs blended by PRODUCTIVITY_WEIGHTS."""
    energies = [energy_score(s) for s in samples]
    return {
        "energy_mean": stats.mean(energies),
        "energy_stable": 100.0 - stats.population_std(energies),
        "sleep_ok": stats.percent_in_range(samples, "sleep_hours", 7.0, 9.0),
        "mood_ok": stats.percent_at_least(samples, "mood", 6.5),
        "sleep_quality_ok": stats.percent_at_least(samples, "sleep_quality", 6.5),
        "focus_ok": stats.percent_at_least(samples, "concentration", 6.0),
        "stress_ok": stats.percent_at_most(samples, "stress", 5.5),
        "self_energy_ok": stats.percent_at_least(samples, "energy", 6.0),
    }


def compute_productivity_model(samples: Sequence[WellnessSample]) -> ProductivityModel:
    if not samples:
        return ProductivityModel(weights=dict(PRODUCTIVITY_WEIGHTS), score=0.0)

    factors = productivity_factors(samples)
    score = sum(PRODUCTIVITY_WEIGHTS[k] * factors[k] for k in PRODUCTIVITY_WEIGHTS)
    return ProductivityModel(
        weights=dict(PRODUCTIVITY_WEIGHTS),
        score=stats.round2(stats.clamp(score, 0.0, 100.0)),
    )


# ─── Burnout ───────────────────────────────────────────────────────────────────

def burnout_signals(
    samples: Sequence[WellnessSample],
    model: ProductivityModel,
    window_days: int = TRAILING_WINDOW_DAYS,
) -> Dict[str, bool]:
    """Evaluate every burnout rule. Keys match BURNOUT_RULES names."""
    window = stats.trailing_window(samples, window_days)
    return {
        "sleep_debt": stats.field_mean(window, "sleep_hours") < 6.6,
        "mood_decline": stats.half_split_trend(
            [s.mood for s in window], window_days, min_count=8
        ) < -0.15,
        "energy_volatile": stats.volatility(
            [energy_score(s) for s in window], min_count=5
        ) > 18.0,
        "low_productivity": model.score < 45,
        "high_stress": stats.field_mean(samples, "stress") > 6.5,
        "low_self_energy": stats.field_mean(samples, "energy") < 4.5,
        "poor_sleep_quality": stats.field_mean(samples, "sleep_quality") < 6.0,
        "frequent_alcohol": stats.percent_flagged(samples, "alcohol") > 30.0,
        "rare_workouts": stats.percent_flagged(samples, "workout") < 20.0,
    }


def risk_level(score: float) -> str:
    if score >= 70:
        return RISK_HIGH
    if score >= 40:
        return RISK_MEDIUM
    return RISK_LOW


def score_burnout_signals(signals: Dict[str, bool]) -> BurnoutRisk:
    """
    Turn rule outcomes into a BurnoutRisk.

    Points only ever add, so firing one more rule never lowers the score.
    """
    score = 0.0
    reasons: List[str] = []
    for rule in BURNOUT_RULES:
        if signals.get(rule.name):
            score += rule.points
            reasons.append(rule.reason)

    score = stats.clamp(score, 0.0, 100.0)
    if not reasons:
        reasons.append(NO_TRIGGER_REASON)

    return BurnoutRisk(level=risk_level(score), score=stats.round2(score), reasons=reasons)


def insufficient_burnout_risk(min_samples: int = BURNOUT_MIN_SAMPLES) -> BurnoutRisk:
    return BurnoutRisk(
        level=RISK_INSUFFICIENT_DATA,
        score=0.0,
        reasons=[INSUFFICIENT_DATA_REASON.format(n=min_samples)],
    )


def compute_burnout_risk(
    samples: Sequence[WellnessSample],
    model: ProductivityModel,
    min_samples: int = BURNOUT_MIN_SAMPLES,
    window_days: int = TRAILING_WINDOW_DAYS,
) -> BurnoutRisk:
    """
    Rule-based burnout risk.

    Args:
        samples: Time-ordered samples (oldest first).
        model: ProductivityModel computed over the same samples.
        min_samples: Below this count the level is "insufficient-data".
        window_days: Trailing window for the sleep/mood/volatility rules.
    """
    if len(samples) < min_samples:
        return insufficient_burnout_risk(min_samples)
    return score_burnout_signals(burnout_signals(samples, model, window_days))
