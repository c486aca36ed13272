"""
WellnessSample dataclass and conversion from stored rows.

WellnessSample is the in-memory representation used by all analysis modules.
It is a plain Python dataclass with no SQLModel or DB dependencies. Scoring
functions take List[WellnessSample] and return pure results.
"""
from dataclasses import dataclass, replace
from datetime import datetime, timezone, tzinfo
from typing import Any, Iterable, List, Optional


@dataclass(frozen=True)
class WellnessSample:
    """
    One timestamped self-report.
    Ratings are on 0-10 scales; sleep_start/sleep_end are "HH:MM" clock times.
    """

    ts: datetime
    sleep_hours: float = 0.0
    sleep_start: Optional[str] = None
    sleep_end: Optional[str] = None
    mood: float = 0.0
    activity: float = 0.0
    productive: float = 0.0
    stress: float = 0.0
    energy: float = 0.0           # subjective energy rating
    concentration: float = 0.0
    sleep_quality: float = 0.0
    caffeine: bool = False        # stimulant use
    alcohol: bool = False
    workout: bool = False         # exercise
    note: str = ""


def records_to_samples(records: Iterable[Any]) -> List[WellnessSample]:
    """
    Convert persisted SampleRecord rows (or any object with the same attributes)
    into WellnessSample instances, preserving order.
    """
    return [
        WellnessSample(
            ts=r.ts,
            sleep_hours=r.sleep_hours or 0.0,
            sleep_start=r.sleep_start or None,
            sleep_end=r.sleep_end or None,
            mood=r.mood or 0.0,
            activity=r.activity or 0.0,
            productive=r.productive or 0.0,
            stress=r.stress or 0.0,
            energy=r.energy or 0.0,
            concentration=r.concentration or 0.0,
            sleep_quality=r.sleep_quality or 0.0,
            caffeine=bool(r.caffeine),
            alcohol=bool(r.alcohol),
            workout=bool(r.workout),
            note=r.note or "",
        )
        for r in records
    ]


def to_timezone(samples: Iterable[WellnessSample], tz: tzinfo) -> List[WellnessSample]:
    """
    Re-express every timestamp in the caller's timezone.

    Naive timestamps are treated as UTC (SQLite drops tzinfo on read).
    """
    out = []
    for s in samples:
        ts = s.ts if s.ts.tzinfo is not None else s.ts.replace(tzinfo=timezone.utc)
        out.append(replace(s, ts=ts.astimezone(tz)))
    return out
