"""
Hourly energy profile and suggested day schedule.

Only used when Settings.include_schedule is on. Energy is bucketed by the
clock hour of each check-in, smoothed across observed neighbouring hours, and
the best non-overlapping 2-hour windows become focus / light-task slots.
Hours with no observations are never invented.
"""
import math
from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Tuple

from wellness.analysis import stats
from wellness.analysis.samples import WellnessSample
from wellness.analysis.scoring import energy_score

WAKE_HOUR = 7.5

RECOVERY_TIPS = [
    "Put demanding tasks on energy peaks and routine work on the middle windows.",
    "If energy dips after lunch, try a 10-15 minute walk.",
    "Two or three times a week, block 60-90 minutes of focus time with no meetings.",
]


@dataclass
class OptimalSchedule:
    suggested_sleep_window: str
    best_focus_hours: List[str] = field(default_factory=list)
    best_light_tasks_hours: List[str] = field(default_factory=list)
    recovery_tips: List[str] = field(default_factory=list)


def energy_by_hour(samples: Sequence[WellnessSample], radius: int = 2) -> Dict[int, float]:
    """Mean energy per observed clock hour, smoothed over observed hours within ±radius."""
    buckets: Dict[int, List[float]] = {}
    for s in samples:
        buckets.setdefault(s.ts.hour, []).append(energy_score(s))
    raw = {h: stats.round2(stats.mean(v)) for h, v in buckets.items()}

    smoothed = {}
    for h in raw:
        neighbours = [
            raw[(h + k) % 24]
            for k in range(-radius, radius + 1)
            if (h + k) % 24 in raw
        ]
        smoothed[h] = stats.round2(stats.mean(neighbours))
    return smoothed


def observed_hours_list(by_hour: Dict[int, float]) -> str:
    return ", ".join(f"{h:02d}:00" for h in sorted(by_hour))


def _window_label(start: int, length: int) -> str:
    return f"{start:02d}:00–{(start + length) % 24:02d}:00"


def _unique_windows(
    windows: List[Tuple[int, float]],
    n: int,
    length: int = 2,
    avoid: Sequence[str] = (),
) -> List[str]:
    used = [False] * 24
    out: List[str] = []
    for start, _ in windows:
        label = _window_label(start, length)
        if label in avoid:
            continue
        hours = [(start + i) % 24 for i in range(length)]
        if any(used[h] for h in hours):
            continue
        out.append(label)
        for h in hours:
            used[h] = True
        if len(out) == n:
            break
    return out


def _best_single_hours(by_hour: Dict[int, float], k: int) -> List[str]:
    ranked = sorted(by_hour.items(), key=lambda kv: kv[1], reverse=True)[:k]
    return [_window_label(h, 1) for h, _ in ranked]


def _fmt_hhmm(hours: float) -> str:
    hh = int(math.floor(hours)) % 24
    mm = int(round((hours - math.floor(hours)) * 60))
    if mm == 60:
        mm = 0
        hh = (hh + 1) % 24
    return f"{hh:02d}:{mm:02d}"


def suggested_sleep_window(samples: Sequence[WellnessSample], window_days: int = 14) -> str:
    """Bedtime-to-wake window ending at 07:30, as long as the trailing mean sleep."""
    avg = stats.field_mean(stats.trailing_window(samples, window_days), "sleep_hours")
    bed = (WAKE_HOUR - avg) % 24
    return f"{_fmt_hhmm(bed)}–{_fmt_hhmm(WAKE_HOUR)}"


def compute_optimal_schedule(
    samples: Sequence[WellnessSample],
    by_hour: Dict[int, float],
) -> OptimalSchedule:
    # Only windows where both hours were observed
    windows = [
        (h, (by_hour[h] + by_hour[(h + 1) % 24]) / 2)
        for h in range(24)
        if h in by_hour and (h + 1) % 24 in by_hour
    ]
    windows.sort(key=lambda w: w[1], reverse=True)

    best = _unique_windows(windows, 3) or _best_single_hours(by_hour, 3)
    light = _unique_windows(windows, 2, avoid=best) or _best_single_hours(by_hour, 2)

    return OptimalSchedule(
        suggested_sleep_window=suggested_sleep_window(samples),
        best_focus_hours=best,
        best_light_tasks_hours=light,
        recovery_tips=list(RECOVERY_TIPS),
    )
