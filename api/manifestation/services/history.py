from __future__ import annotations

import logging

from ..schemas import HistoricalSessionSummary, TrendPoint
from .persistence import PersistenceAdapter

logger = logging.getLogger(__name__)


class HistoryService:
    """Archived sessions and their per-category trends.

    Failures are recorded on ``error`` instead of raised so a broken read
    never takes the questionnaire down with it.
    """

    def __init__(self, store: PersistenceAdapter):
        self.store = store
        self.sessions: list[HistoricalSessionSummary] = []
        self.trends: dict[str, list[TrendPoint]] = {}
        self.error: str | None = None

    async def fetch_history(self) -> None:
        self.error = None
        try:
            self.sessions = await self.store.load_historical_sessions()
            self.trends = await self.store.load_category_trends()
        except Exception as exc:
            logger.warning("[history] failed to load history: %s", exc)
            self.error = str(exc)

    async def delete_session(self, session_id: str) -> None:
        self.error = None
        try:
            await self.store.delete_historical_session(session_id)
        except Exception as exc:
            logger.warning("[history] failed to delete session %s: %s", session_id, exc)
            self.error = str(exc)
            return
        await self.fetch_history()

    async def delete_sessions(self, session_ids: list[str]) -> None:
        self.error = None
        if not session_ids:
            return
        try:
            await self.store.delete_historical_sessions(session_ids)
        except Exception as exc:
            logger.warning("[history] failed to delete %s sessions: %s", len(session_ids), exc)
            self.error = str(exc)
            return
        await self.fetch_history()
