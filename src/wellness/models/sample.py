"""Check-in sample and per-user settings models."""
from datetime import datetime
from typing import Optional

from sqlalchemy import Index
from sqlmodel import Field, SQLModel

SAMPLE_DAY_INDEX = "ix_samplerecord_user_local_day"


class SampleRecord(SQLModel, table=True):
    """One daily self-report. At most one row per user per local calendar day."""

    __table_args__ = (Index(SAMPLE_DAY_INDEX, "user_id", "local_day", unique=True),)

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(index=True)
    ts: datetime = Field(index=True)  # stored in UTC
    local_day: Optional[str] = None  # "YYYY-MM-DD" in the user's timezone

    sleep_hours: float = 0.0
    sleep_start: Optional[str] = None  # "HH:MM" local
    sleep_end: Optional[str] = None

    # Ratings 0-10
    mood: float = 0.0
    activity: float = 0.0
    productive: float = 0.0
    stress: float = 0.0
    energy: float = 0.0
    concentration: float = 0.0
    sleep_quality: float = 0.0

    caffeine: bool = False
    alcohol: bool = False
    workout: bool = False
    note: str = ""

    # "pending", "ready", "failed"
    analysis_status: str = "pending"
    analysis_error: str = ""
    analysis_updated_at: Optional[datetime] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)


class UserSettings(SQLModel, table=True):
    """Per-user preferences; currently just the IANA timezone."""

    user_id: int = Field(primary_key=True)
    user_tz: str = "UTC"
    updated_at: datetime = Field(default_factory=datetime.utcnow)
