"""
Aggregate statistics over wellness samples.

Every function here is pure and total: empty inputs and windows that are too
small for a trend return a neutral 0 rather than raising, so the scoring layer
never has to guard against division by zero.
"""
import math
from datetime import datetime, timedelta
from statistics import fmean, pstdev
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from wellness.analysis.samples import WellnessSample


def clamp(x: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, x))


def round2(x: float) -> float:
    return round(x * 100) / 100


def mean(values: Iterable[float]) -> float:
    vals = list(values)
    if not vals:
        return 0.0
    return fmean(vals)


def population_std(values: Iterable[float]) -> float:
    vals = list(values)
    if not vals:
        return 0.0
    return pstdev(vals)


def min_max(values: Iterable[float]) -> Tuple[float, float]:
    vals = list(values)
    if not vals:
        return 0.0, 0.0
    return min(vals), max(vals)


def percent_where(
    samples: Sequence[WellnessSample],
    predicate: Callable[[WellnessSample], bool],
) -> float:
    """Percentage (0-100) of samples satisfying predicate. 0.0 for no samples."""
    if not samples:
        return 0.0
    hits = sum(1 for s in samples if predicate(s))
    return 100.0 * hits / len(samples)


def percent_in_range(
    samples: Sequence[WellnessSample],
    field: str,
    lo: float,
    hi: float,
) -> float:
    return percent_where(samples, lambda s: lo <= getattr(s, field) <= hi)


def percent_at_least(samples: Sequence[WellnessSample], field: str, threshold: float) -> float:
    return percent_where(samples, lambda s: getattr(s, field) >= threshold)


def percent_at_most(samples: Sequence[WellnessSample], field: str, threshold: float) -> float:
    return percent_where(samples, lambda s: getattr(s, field) <= threshold)


def percent_flagged(samples: Sequence[WellnessSample], flag: str) -> float:
    return percent_where(samples, lambda s: bool(getattr(s, flag)))


def field_mean(samples: Sequence[WellnessSample], field: str) -> float:
    return mean(getattr(s, field) for s in samples)


def trailing_window(
    samples: Sequence[WellnessSample],
    days: int,
    latest: Optional[datetime] = None,
) -> List[WellnessSample]:
    """
    Samples in (anchor - days, anchor].

    The anchor defaults to the latest sample timestamp unless an
    explicit anchor is given. Samples after the anchor are excluded.
    """
    if not samples:
        return []
    anchor = latest or max(s.ts for s in samples)
    cut = anchor - timedelta(days=days)
    return [s for s in samples if cut < s.ts <= anchor]


def half_split_trend(values: Sequence[float], window_days: int, min_count: int = 8) -> float:
    """
    (second-half mean − first-half mean) / window_days.

    The first half takes floor(n/2) values. Returns 0.0 when fewer than
    min_count values are available.
    """
    n = len(values)
    if n < min_count or window_days <= 0:
        return 0.0
    first = mean(values[: n // 2])
    last = mean(values[n // 2:])
    return (last - first) / window_days


def volatility(values: Sequence[float], min_count: int = 5) -> float:
    """Population standard deviation, or 0.0 below min_count values."""
    if len(values) < min_count:
        return 0.0
    return population_std(values)


def count_unique_days(samples: Sequence[WellnessSample]) -> int:
    return len({s.ts.date() for s in samples})


def parse_clock(raw: Optional[str]) -> Optional[int]:
    """Parse "HH:MM" into minutes after midnight. None for blank/invalid."""
    if not raw:
        return None
    try:
        hh, mm = raw.strip().split(":")
        hours, minutes = int(hh), int(mm)
    except ValueError:
        return None
    if not (0 <= hours < 24 and 0 <= minutes < 60):
        return None
    return hours * 60 + minutes


def circular_mean_clock(times: Iterable[Optional[str]]) -> str:
    """
    Average clock times on the 24h circle.

    Bed times straddle midnight, so an arithmetic mean of 23:30 and 00:30
    would give noon; the angular mean gives 00:00. Returns "" when no time
    parses.
    """
    sum_sin = 0.0
    sum_cos = 0.0
    n = 0
    for raw in times:
        minutes = parse_clock(raw)
        if minutes is None:
            continue
        angle = 2 * math.pi * minutes / 1440.0
        sum_sin += math.sin(angle)
        sum_cos += math.cos(angle)
        n += 1
    if n == 0:
        return ""

    avg_angle = math.atan2(sum_sin / n, sum_cos / n)
    if avg_angle < 0:
        avg_angle += 2 * math.pi
    total = int(round(avg_angle * 1440.0 / (2 * math.pi))) % 1440
    return f"{total // 60:02d}:{total % 60:02d}"
