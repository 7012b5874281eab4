from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime


class SessionPhase(str, enum.Enum):
    EMPTY = "empty"
    RESUMABLE = "resumable"
    HISTORICAL_PREFILL = "historical_prefill"
    ACTIVE = "active"


@dataclass
class QuestionnaireContext:
    """Mutable state of the in-progress assessment, owned by the app root."""

    session_id: str | None = None
    answers: dict[str, int] = field(default_factory=dict)
    current_index: int = 0
    acknowledged: bool = False
    is_historical_prefill: bool = False
    is_submitting: bool = False
    sharing_enabled: bool = False
    phase: SessionPhase = SessionPhase.EMPTY
    started_at: datetime | None = None

    def reset(self, started_at: datetime | None = None) -> None:
        self.answers = {}
        self.current_index = 0
        self.acknowledged = False
        self.is_historical_prefill = False
        self.phase = SessionPhase.ACTIVE
        self.started_at = started_at
