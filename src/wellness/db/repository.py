"""
Storage for samples and analysis results.

SampleRepository and AnalysisRepository wrap a SQLAlchemy engine and open a
short-lived Session per call. Upserts are select-then-update keyed by the
logical key (user+day, cache key, user+period), so repeating a write for the
same key is harmless. Samples also carry a unique (user_id, local_day) index
so concurrent check-ins for one day cannot both insert.

All datetimes are stored as naive UTC (SQLite drops tzinfo).
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple

from sqlalchemy import and_, or_
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from wellness.analysis.samples import WellnessSample
from wellness.models.analysis import (
    AnalysisHistory,
    AnalysisResult,
    AnalyzeRequest,
    CachedAnalysis,
    LastAnalysis,
)
from wellness.models.sample import SampleRecord, UserSettings

logger = logging.getLogger(__name__)

_SAMPLE_FIELDS = (
    "sleep_hours",
    "sleep_start",
    "sleep_end",
    "mood",
    "activity",
    "productive",
    "stress",
    "energy",
    "concentration",
    "sleep_quality",
    "caffeine",
    "alcohol",
    "workout",
    "note",
)


def to_utc_naive(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def local_day_key(day_start: datetime) -> str:
    """Calendar date of a local day start, "YYYY-MM-DD"."""
    return day_start.date().isoformat()


class SampleRepository:
    """Reads and writes SampleRecord rows and per-user settings."""

    def __init__(self, engine):
        self.engine = engine

    def get_samples(
        self,
        user_id: int,
        start: Optional[datetime],
        end: datetime,
    ) -> List[SampleRecord]:
        """Samples with start <= ts < end, oldest first. start=None means no lower bound."""
        stmt = select(SampleRecord).where(
            SampleRecord.user_id == user_id,
            SampleRecord.ts < to_utc_naive(end),
        )
        if start is not None:
            stmt = stmt.where(SampleRecord.ts >= to_utc_naive(start))
        with Session(self.engine) as s:
            return list(s.exec(stmt.order_by(SampleRecord.ts)).all())

    def get_sample_for_day(
        self,
        user_id: int,
        day_start: datetime,
        day_end: datetime,
    ) -> Optional[SampleRecord]:
        with Session(self.engine) as s:
            return s.exec(
                select(SampleRecord)
                .where(
                    SampleRecord.user_id == user_id,
                    SampleRecord.ts >= to_utc_naive(day_start),
                    SampleRecord.ts < to_utc_naive(day_end),
                )
                .order_by(SampleRecord.ts.desc())
            ).first()

    def _find_day_row(
        self,
        s: Session,
        user_id: int,
        day_start: datetime,
        day_end: datetime,
    ) -> Optional[SampleRecord]:
        return s.exec(
            select(SampleRecord)
            .where(
                SampleRecord.user_id == user_id,
                or_(
                    SampleRecord.local_day == local_day_key(day_start),
                    and_(
                        SampleRecord.ts >= to_utc_naive(day_start),
                        SampleRecord.ts < to_utc_naive(day_end),
                    ),
                ),
            )
            .order_by(SampleRecord.ts.desc())
        ).first()

    def upsert_sample_for_day(
        self,
        user_id: int,
        sample: WellnessSample,
        day_start: datetime,
        day_end: datetime,
    ) -> bool:
        """
        Store one sample as the user's entry for that local day.

        The unique (user_id, local_day) index decides between concurrent
        writers: the loser's insert fails and is retried as an update.

        Returns:
            True if an existing row for the day was overwritten, False if inserted.
        """
        if user_id <= 0:
            raise ValueError("invalid user id")

        values = {name: getattr(sample, name) for name in _SAMPLE_FIELDS}
        values["note"] = values["note"] or ""
        values["ts"] = to_utc_naive(sample.ts)
        values["local_day"] = local_day_key(day_start)
        values["analysis_status"] = "pending"
        values["analysis_error"] = ""

        with Session(self.engine) as s:
            existing = self._find_day_row(s, user_id, day_start, day_end)
            if existing is None:
                s.add(SampleRecord(
                    user_id=user_id, analysis_updated_at=datetime.utcnow(), **values
                ))
                try:
                    s.commit()
                    return False
                except IntegrityError:
                    s.rollback()
                    logger.info("Sample for user %s on %s written concurrently; updating",
                                user_id, values["local_day"])
                    existing = self._find_day_row(s, user_id, day_start, day_end)
                    if existing is None:
                        raise

            for k, v in values.items():
                setattr(existing, k, v)
            existing.analysis_updated_at = datetime.utcnow()
            s.add(existing)
            s.commit()
            return True

    def list_user_ids(self) -> List[int]:
        with Session(self.engine) as s:
            return sorted(set(s.exec(select(SampleRecord.user_id).distinct()).all()))

    def get_user_timezone(self, user_id: int, default: str = "UTC") -> str:
        with Session(self.engine) as s:
            row = s.get(UserSettings, user_id)
        if row is None or not row.user_tz:
            return default
        return row.user_tz

    def set_user_timezone(self, user_id: int, user_tz: str) -> None:
        if user_id <= 0:
            raise ValueError("invalid user id")
        with Session(self.engine) as s:
            row = s.get(UserSettings, user_id)
            if row is None:
                row = UserSettings(user_id=user_id)
            row.user_tz = user_tz or "UTC"
            row.updated_at = datetime.utcnow()
            s.add(row)
            s.commit()

    def set_analysis_status_for_day(
        self,
        user_id: int,
        day_start: datetime,
        day_end: datetime,
        status: str,
        error: str = "",
    ) -> int:
        """Mark every sample of the day with an analysis status. Returns rows updated."""
        if not status:
            raise ValueError("status is required")
        with Session(self.engine) as s:
            rows = s.exec(
                select(SampleRecord).where(
                    SampleRecord.user_id == user_id,
                    SampleRecord.ts >= to_utc_naive(day_start),
                    SampleRecord.ts < to_utc_naive(day_end),
                )
            ).all()
            for row in rows:
                row.analysis_status = status
                row.analysis_error = error
                row.analysis_updated_at = datetime.utcnow()
                s.add(row)
            s.commit()
            return len(rows)


class AnalysisRepository:
    """Response cache, append-only history and last-result-per-period."""

    def __init__(self, engine):
        self.engine = engine

    def get_cached(self, key: str, now: Optional[datetime] = None) -> Optional[AnalysisResult]:
        now = now or datetime.utcnow()
        with Session(self.engine) as s:
            row = s.get(CachedAnalysis, key)
        if row is None or row.expires_at <= now:
            return None
        return AnalysisResult.model_validate_json(row.response_json)

    def set_cached(
        self,
        key: str,
        user_id: int,
        result: AnalysisResult,
        ttl: timedelta,
    ) -> None:
        if not key or ttl.total_seconds() <= 0:
            return
        expires = datetime.utcnow() + ttl
        with Session(self.engine) as s:
            row = s.get(CachedAnalysis, key)
            if row is None:
                row = CachedAnalysis(
                    key=key, user_id=user_id, response_json="", expires_at=expires
                )
            row.response_json = result.model_dump_json()
            row.expires_at = expires
            row.created_at = datetime.utcnow()
            s.add(row)
            s.commit()

    def invalidate_user(self, user_id: int) -> None:
        """Drop every cached response for a user (their data changed)."""
        with Session(self.engine) as s:
            rows = s.exec(select(CachedAnalysis).where(CachedAnalysis.user_id == user_id)).all()
            for row in rows:
                s.delete(row)
            s.commit()

    def append_history(self, key: str, request: AnalyzeRequest, result: AnalysisResult) -> None:
        with Session(self.engine) as s:
            s.add(AnalysisHistory(
                key=key,
                user_id=request.user_id,
                request_json=request.model_dump_json(),
                response_json=result.model_dump_json(),
            ))
            s.commit()

    def upsert_last(self, user_id: int, period: str, result: AnalysisResult) -> None:
        if user_id <= 0 or not period:
            raise ValueError("invalid user id or period")
        with Session(self.engine) as s:
            row = s.get(LastAnalysis, (user_id, period))
            if row is None:
                row = LastAnalysis(user_id=user_id, period=period, response_json="")
            row.response_json = result.model_dump_json()
            row.updated_at = datetime.utcnow()
            s.add(row)
            s.commit()

    def get_last(self, user_id: int) -> Dict[str, Tuple[AnalysisResult, datetime]]:
        with Session(self.engine) as s:
            rows = s.exec(select(LastAnalysis).where(LastAnalysis.user_id == user_id)).all()
        return {
            row.period: (AnalysisResult.model_validate_json(row.response_json), row.updated_at)
            for row in rows
        }
