"""
Analysis response models.

AnalysisResult / AnalyzeRequest are pydantic models (serialised to JSON for
storage). The three tables hold cached responses, the append-only history,
and the latest result per user and period.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field as PydanticField
from sqlmodel import Field, SQLModel

PERIODS = ("day", "week", "month", "all")

INSIGHT_OK = "ok"
INSIGHT_BEST_EFFORT = "best_effort"
INSIGHT_FAILED = "failed"
INSIGHT_DISABLED = "disabled"


class AnalyzeRequest(BaseModel):
    user_id: int
    user_tz: str = ""
    period: str = "all"
    week_starts: str = "monday"


class ProductivityModelOut(BaseModel):
    weights: Dict[str, float]
    score: float


class BurnoutRiskOut(BaseModel):
    score: float
    level: str
    reasons: List[str]
    prediction_horizon_days: int = 14


class OptimalScheduleOut(BaseModel):
    suggested_sleep_window: str
    best_focus_hours: List[str] = PydanticField(default_factory=list)
    best_light_tasks_hours: List[str] = PydanticField(default_factory=list)
    recovery_tips: List[str] = PydanticField(default_factory=list)


class AnalysisResult(BaseModel):
    energy_by_weekday: Dict[str, float]
    productivity_model: ProductivityModelOut
    burnout_risk: BurnoutRiskOut
    optimal_schedule: Optional[OptimalScheduleOut] = None
    llm_insight: str = ""
    insight_status: str = INSIGHT_DISABLED
    debug: Dict[str, Any] = PydanticField(default_factory=dict)


class CachedAnalysis(SQLModel, table=True):
    """Response cache keyed by the request hash. Rows past expires_at are ignored."""

    key: str = Field(primary_key=True)
    user_id: int = Field(index=True)
    response_json: str
    expires_at: datetime
    created_at: datetime = Field(default_factory=datetime.utcnow)


class AnalysisHistory(SQLModel, table=True):
    """Immutable record of every analysis produced."""

    id: Optional[int] = Field(default=None, primary_key=True)
    key: str = Field(index=True)
    user_id: int = Field(index=True)
    request_json: str
    response_json: str
    created_at: datetime = Field(default_factory=datetime.utcnow)


class LastAnalysis(SQLModel, table=True):
    """Most recent result per (user, period)."""

    user_id: int = Field(primary_key=True)
    period: str = Field(primary_key=True)
    response_json: str
    updated_at: datetime = Field(default_factory=datetime.utcnow)
