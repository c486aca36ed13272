"""
Integration tests for SampleRepository and AnalysisRepository.

Uses the in-memory SQLite engine from conftest. No network.
"""
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest
from sqlalchemy.exc import IntegrityError
from sqlmodel import select

from wellness.analysis.samples import WellnessSample
from wellness.db.repository import AnalysisRepository, SampleRepository, to_utc_naive
from wellness.models.analysis import (
    AnalysisHistory,
    AnalysisResult,
    AnalyzeRequest,
    BurnoutRiskOut,
    ProductivityModelOut,
)
from wellness.models.sample import SampleRecord

UTC = timezone.utc
DAY = datetime(2025, 1, 6, tzinfo=UTC)


# ─── Factories ────────────────────────────────────────────────────────────────

def make_sample(ts: datetime, **kw) -> WellnessSample:
    values = dict(sleep_hours=7.5, mood=7, activity=6, stress=4, energy=7,
                  concentration=7, sleep_quality=7, workout=True)
    values.update(kw)
    return WellnessSample(ts=ts, **values)


def make_result(insight: str = "Energy\nFine.") -> AnalysisResult:
    return AnalysisResult(
        energy_by_weekday={"Mon": 80.0},
        productivity_model=ProductivityModelOut(weights={"energy_mean": 0.4}, score=75.0),
        burnout_risk=BurnoutRiskOut(score=0.0, level="low", reasons=["none"]),
        llm_insight=insight,
        insight_status="ok",
    )


@pytest.fixture
def samples(engine) -> SampleRepository:
    return SampleRepository(engine)


@pytest.fixture
def results(engine) -> AnalysisRepository:
    return AnalysisRepository(engine)


# ─── Samples ──────────────────────────────────────────────────────────────────

class TestToUtcNaive:
    def test_aware(self):
        ts = datetime(2025, 1, 6, 10, 0, tzinfo=timezone(timedelta(hours=2)))
        assert to_utc_naive(ts) == datetime(2025, 1, 6, 8, 0)

    def test_naive_unchanged(self):
        ts = datetime(2025, 1, 6, 10, 0)
        assert to_utc_naive(ts) is ts


class TestUpsertSampleForDay:
    def test_insert_then_update_same_day(self, samples, test_session):
        day_end = DAY + timedelta(days=1)
        assert samples.upsert_sample_for_day(1, make_sample(DAY + timedelta(hours=8)), DAY, day_end) is False
        assert samples.upsert_sample_for_day(
            1, make_sample(DAY + timedelta(hours=20), mood=3), DAY, day_end
        ) is True

        rows = test_session.exec(select(SampleRecord)).all()
        assert len(rows) == 1
        assert rows[0].mood == 3
        assert rows[0].ts == datetime(2025, 1, 6, 20, 0)
        assert rows[0].analysis_status == "pending"

    def test_different_days_are_separate_rows(self, samples, test_session):
        for d in range(3):
            start = DAY + timedelta(days=d)
            samples.upsert_sample_for_day(1, make_sample(start + timedelta(hours=9)), start,
                                          start + timedelta(days=1))
        assert len(test_session.exec(select(SampleRecord)).all()) == 3

    def test_invalid_user(self, samples):
        with pytest.raises(ValueError):
            samples.upsert_sample_for_day(0, make_sample(DAY), DAY, DAY + timedelta(days=1))

    def test_local_day_recorded(self, samples, test_session):
        tokyo_day = datetime(2025, 1, 7, tzinfo=timezone(timedelta(hours=9)))
        samples.upsert_sample_for_day(1, make_sample(tokyo_day + timedelta(hours=8)), tokyo_day,
                                      tokyo_day + timedelta(days=1))
        assert test_session.exec(select(SampleRecord)).one().local_day == "2025-01-07"

    def test_unique_per_user_and_local_day(self, test_session):
        test_session.add(SampleRecord(user_id=1, ts=datetime(2025, 1, 6, 8, 0), local_day="2025-01-06"))
        test_session.commit()
        test_session.add(SampleRecord(user_id=1, ts=datetime(2025, 1, 6, 9, 0), local_day="2025-01-06"))
        with pytest.raises(IntegrityError):
            test_session.commit()

    def test_concurrent_insert_becomes_update(self, samples, test_session):
        day_end = DAY + timedelta(days=1)
        samples.upsert_sample_for_day(1, make_sample(DAY + timedelta(hours=8)), DAY, day_end)

        # The second writer's lookup ran before the first writer committed
        real_find = samples._find_day_row
        lookups = []

        def stale_then_real(*args):
            lookups.append(args)
            return None if len(lookups) == 1 else real_find(*args)

        with patch.object(samples, "_find_day_row", side_effect=stale_then_real):
            updated = samples.upsert_sample_for_day(
                1, make_sample(DAY + timedelta(hours=20), mood=2), DAY, day_end
            )

        assert updated is True
        rows = test_session.exec(select(SampleRecord)).all()
        assert len(rows) == 1
        assert rows[0].mood == 2

    def test_stored_as_utc(self, samples, test_session):
        berlin_9am = datetime(2025, 1, 6, 9, 0, tzinfo=timezone(timedelta(hours=1)))
        samples.upsert_sample_for_day(1, make_sample(berlin_9am), DAY, DAY + timedelta(days=1))
        assert test_session.exec(select(SampleRecord)).one().ts == datetime(2025, 1, 6, 8, 0)


class TestGetSamples:
    def _seed(self, samples):
        for d in (0, 2, 1):
            start = DAY + timedelta(days=d)
            samples.upsert_sample_for_day(1, make_sample(start + timedelta(hours=9)), start,
                                          start + timedelta(days=1))
        samples.upsert_sample_for_day(2, make_sample(DAY + timedelta(hours=9)), DAY,
                                      DAY + timedelta(days=1))

    def test_ordered_oldest_first(self, samples):
        self._seed(samples)
        rows = samples.get_samples(1, None, DAY + timedelta(days=10))
        assert [r.ts.day for r in rows] == [6, 7, 8]

    def test_range_filter(self, samples):
        self._seed(samples)
        rows = samples.get_samples(1, DAY + timedelta(days=1), DAY + timedelta(days=2))
        assert [r.ts.day for r in rows] == [7]

    def test_other_users_excluded(self, samples):
        self._seed(samples)
        assert len(samples.get_samples(2, None, DAY + timedelta(days=10))) == 1

    def test_get_sample_for_day(self, samples):
        self._seed(samples)
        row = samples.get_sample_for_day(1, DAY + timedelta(days=2), DAY + timedelta(days=3))
        assert row.ts == datetime(2025, 1, 8, 9, 0)
        assert samples.get_sample_for_day(1, DAY + timedelta(days=5), DAY + timedelta(days=6)) is None

    def test_list_user_ids(self, samples):
        self._seed(samples)
        assert samples.list_user_ids() == [1, 2]


class TestUserTimezone:
    def test_default(self, samples):
        assert samples.get_user_timezone(1) == "UTC"
        assert samples.get_user_timezone(1, default="Europe/Paris") == "Europe/Paris"

    def test_set_and_update(self, samples):
        samples.set_user_timezone(1, "Asia/Tokyo")
        assert samples.get_user_timezone(1) == "Asia/Tokyo"
        samples.set_user_timezone(1, "Europe/Berlin")
        assert samples.get_user_timezone(1) == "Europe/Berlin"

    def test_blank_stored_as_utc(self, samples):
        samples.set_user_timezone(1, "")
        assert samples.get_user_timezone(1, default="Asia/Tokyo") == "UTC"


class TestAnalysisStatus:
    def test_marks_rows_of_the_day(self, samples, test_session):
        samples.upsert_sample_for_day(1, make_sample(DAY + timedelta(hours=9)), DAY,
                                      DAY + timedelta(days=1))
        n = samples.set_analysis_status_for_day(1, DAY, DAY + timedelta(days=1), "failed", "boom")
        assert n == 1
        row = test_session.exec(select(SampleRecord)).one()
        assert row.analysis_status == "failed"
        assert row.analysis_error == "boom"
        assert row.analysis_updated_at is not None

    def test_no_rows(self, samples):
        assert samples.set_analysis_status_for_day(1, DAY, DAY + timedelta(days=1), "ready") == 0

    def test_status_required(self, samples):
        with pytest.raises(ValueError):
            samples.set_analysis_status_for_day(1, DAY, DAY + timedelta(days=1), "")


# ─── Results ──────────────────────────────────────────────────────────────────

class TestCache:
    def test_roundtrip(self, results):
        results.set_cached("k1", 1, make_result("cached"), timedelta(minutes=15))
        assert results.get_cached("k1").llm_insight == "cached"

    def test_missing(self, results):
        assert results.get_cached("nope") is None

    def test_expired(self, results):
        results.set_cached("k1", 1, make_result(), timedelta(minutes=15))
        later = datetime.utcnow() + timedelta(minutes=16)
        assert results.get_cached("k1", now=later) is None

    def test_overwrite(self, results):
        results.set_cached("k1", 1, make_result("old"), timedelta(minutes=15))
        results.set_cached("k1", 1, make_result("new"), timedelta(minutes=15))
        assert results.get_cached("k1").llm_insight == "new"

    def test_zero_ttl_not_stored(self, results):
        results.set_cached("k1", 1, make_result(), timedelta(0))
        assert results.get_cached("k1") is None

    def test_invalidate_user(self, results):
        results.set_cached("a", 1, make_result(), timedelta(minutes=15))
        results.set_cached("b", 1, make_result(), timedelta(minutes=15))
        results.set_cached("c", 2, make_result(), timedelta(minutes=15))
        results.invalidate_user(1)
        assert results.get_cached("a") is None
        assert results.get_cached("b") is None
        assert results.get_cached("c") is not None


class TestHistoryAndLast:
    def test_history_is_append_only(self, results, test_session):
        req = AnalyzeRequest(user_id=1, period="week")
        results.append_history("k", req, make_result())
        results.append_history("k", req, make_result())
        rows = test_session.exec(select(AnalysisHistory)).all()
        assert len(rows) == 2
        assert AnalyzeRequest.model_validate_json(rows[0].request_json) == req

    def test_upsert_last_keeps_one_per_period(self, results):
        results.upsert_last(1, "week", make_result("first"))
        results.upsert_last(1, "week", make_result("second"))
        results.upsert_last(1, "all", make_result("all"))
        last = results.get_last(1)
        assert set(last) == {"week", "all"}
        result, updated_at = last["week"]
        assert result.llm_insight == "second"
        assert isinstance(updated_at, datetime)

    def test_get_last_other_user_empty(self, results):
        results.upsert_last(1, "week", make_result())
        assert results.get_last(2) == {}

    def test_upsert_last_validation(self, results):
        with pytest.raises(ValueError):
            results.upsert_last(0, "week", make_result())
        with pytest.raises(ValueError):
            results.upsert_last(1, "", make_result())
