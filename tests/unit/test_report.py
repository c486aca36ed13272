"""Tests for WellnessReport assembly, the notes digest and the sleep delta."""
from datetime import datetime, timedelta, timezone

import pytest

from wellness.analysis.report import build_user_notes, build_wellness_report, sleep_delta
from wellness.analysis.samples import WellnessSample, records_to_samples
from wellness.analysis.scoring import RISK_INSUFFICIENT_DATA, RISK_LOW
from wellness.models.sample import SampleRecord

BASE = datetime(2025, 1, 6, 9, 0, tzinfo=timezone.utc)


def make_sample(day: float = 0, **overrides) -> WellnessSample:
    values = dict(
        ts=BASE + timedelta(days=day),
        sleep_hours=7.5,
        sleep_start="23:00",
        sleep_end="06:30",
        mood=7.0,
        activity=6.0,
        productive=6.0,
        stress=4.0,
        energy=7.0,
        concentration=7.0,
        sleep_quality=7.0,
        workout=True,
    )
    values.update(overrides)
    return WellnessSample(**values)


class TestUserNotes:
    def test_format(self):
        notes = build_user_notes([make_sample(0, note="  slept badly ")])
        assert notes == "2025-01-06 09:00 — slept badly"

    def test_skips_blank_notes_and_joins_lines(self):
        samples = [make_sample(0, note="a"), make_sample(1, note=""), make_sample(2, note="b")]
        assert build_user_notes(samples) == "2025-01-06 09:00 — a\n2025-01-08 09:00 — b"

    def test_truncated_to_max_len(self):
        samples = [make_sample(i, note="x" * 50) for i in range(5)]
        notes = build_user_notes(samples, max_len=100)
        assert len(notes) == 100

    def test_zero_len(self):
        assert build_user_notes([make_sample(0, note="a")], max_len=0) == ""

    def test_no_notes(self):
        assert build_user_notes([make_sample(0)]) == ""


class TestSleepDelta:
    def test_recent_minus_prior(self):
        samples = [make_sample(i, sleep_hours=6.0 if i < 7 else 8.0) for i in range(14)]
        assert sleep_delta(samples) == pytest.approx(2.0)

    def test_zero_when_no_prior_week(self):
        assert sleep_delta([make_sample(i) for i in range(3)]) == 0.0

    def test_empty(self):
        assert sleep_delta([]) == 0.0


class TestBuildWellnessReport:
    def test_small_sample_set(self):
        report = build_wellness_report([make_sample(i) for i in range(3)])
        assert report.num_points == 3
        assert report.num_observed_days == 3
        assert report.observed_weekdays == ["Mon", "Tue", "Wed"]
        assert report.burnout.level == RISK_INSUFFICIENT_DATA
        assert report.schedule is None
        assert report.energy_by_hour == {}

    def test_aggregates(self):
        samples = [make_sample(0, stress=2.0), make_sample(1, stress=6.0)]
        report = build_wellness_report(samples)
        assert report.averages["stress"] == 4.0
        assert report.stress.min == 2.0
        assert report.stress.max == 6.0
        assert report.avg_sleep_start == "23:00"
        assert report.avg_sleep_end == "06:30"
        assert report.trailing_sleep_hours == 7.5

    def test_full_report(self):
        samples = [make_sample(i) for i in range(10)]
        report = build_wellness_report(samples)
        assert report.burnout.level == RISK_LOW
        assert 0 <= report.productivity.score <= 100

    def test_burnout_minimum_is_configurable(self):
        samples = [make_sample(i) for i in range(6)]
        report = build_wellness_report(samples, burnout_min_samples=7)
        assert report.burnout.level == RISK_INSUFFICIENT_DATA

    def test_schedule_when_requested(self):
        report = build_wellness_report([make_sample(i) for i in range(3)], include_schedule=True)
        assert report.schedule is not None
        assert report.energy_by_hour == {9: report.energy_by_hour[9]}

    def test_notes_capped(self):
        samples = [make_sample(i, note="y" * 40) for i in range(5)]
        report = build_wellness_report(samples, notes_max_chars=60)
        assert len(report.notes) == 60


class TestRecordsToSamples:
    def test_converts_rows(self):
        rec = SampleRecord(
            user_id=1, ts=datetime(2025, 1, 6, 9, 0), sleep_hours=7.0, mood=6.0,
            alcohol=True, note=None,
        )
        [s] = records_to_samples([rec])
        assert s.sleep_hours == 7.0
        assert s.mood == 6.0
        assert s.alcohol is True
        assert s.note == ""
        assert s.sleep_start is None
