import time
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

MAX_TIMESTAMP_DRIFT_SECONDS = 300


class HistoricalSessionSummary(BaseModel):
    id: str
    completed_at: datetime
    total_score: float
    duration_seconds: int | None = None
    notes: str | None = None


class HistoricalResponse(BaseModel):
    question_id: str
    category: str
    answer_value: int = Field(ge=1, le=10)


class TrendPoint(BaseModel):
    session_id: str
    completed_at: datetime
    value: float


class PublishPayload(BaseModel):
    score: float = Field(ge=0, le=10000)
    timestamp: int = Field(default_factory=lambda: int(time.time()))
    category_scores: dict[str, float] = Field(default_factory=dict)

    @field_validator("category_scores")
    @classmethod
    def _check_categories(cls, value: dict[str, float]) -> dict[str, float]:
        for category, score in value.items():
            if "@" in category or "http" in category:
                raise ValueError(f"Category '{category}' contains potential PII or invalid characters")
            if score < 0 or score > 10:
                raise ValueError(f"Category '{category}' score {score} is out of range (0.0 - 10.0)")
        return value

    @model_validator(mode="after")
    def _check_timestamp(self) -> "PublishPayload":
        if self.timestamp > int(time.time()) + MAX_TIMESTAMP_DRIFT_SECONDS:
            raise ValueError(f"Timestamp {self.timestamp} is in the future")
        return self


class Preferences(BaseModel):
    prefill_from_last_session: bool = True
    network_sharing: bool = False
    goal_score: float | None = Field(default=None, ge=0)


class AnswerRequest(BaseModel):
    value: Any


class NavigateRequest(BaseModel):
    action: Literal["next", "prev", "index"]
    index: int | None = None


class SubmitRequest(BaseModel):
    notes: str | None = None


class SubmitResponse(BaseModel):
    historical_session_id: str


class DeleteSessionsRequest(BaseModel):
    ids: list[str] = Field(default_factory=list)


class HistoryResponse(BaseModel):
    sessions: list[HistoricalSessionSummary]
    trends: dict[str, list[TrendPoint]]
    error: str | None = None
