from __future__ import annotations

from datetime import datetime
from typing import Mapping, Protocol

from ..schemas import HistoricalResponse, HistoricalSessionSummary, TrendPoint


class PersistenceAdapter(Protocol):
    """Storage contract the questionnaire core depends on.

    Every call may fail; callers decide whether a failure is fatal.
    """

    async def get_setting(self, key: str) -> str | None: ...

    async def set_setting(self, key: str, value: str) -> None: ...

    async def save_answer(self, session_id: str, question_id: str, value: int) -> None: ...

    async def load_answers(self, session_id: str) -> dict[str, int]: ...

    async def clear_session(self, session_id: str) -> None: ...

    async def get_last_active(self, session_id: str) -> datetime | None: ...

    async def update_last_active(self, session_id: str, at: datetime | None = None) -> None: ...

    async def save_historical_session(
        self,
        score: float,
        answers: Mapping[str, int],
        duration_seconds: int | None = None,
        notes: str | None = None,
    ) -> str: ...

    async def load_historical_sessions(self) -> list[HistoricalSessionSummary]: ...

    async def load_session_responses(self, session_id: str) -> list[HistoricalResponse]: ...

    async def delete_historical_session(self, session_id: str) -> None: ...

    async def delete_historical_sessions(self, session_ids: list[str]) -> None: ...

    async def load_category_trends(self) -> dict[str, list[TrendPoint]]: ...
