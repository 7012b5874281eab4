from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Coroutine

from ..question_tree import Question, QuestionTree, get_question_tree
from .context import QuestionnaireContext, SessionPhase
from .persistence import PersistenceAdapter
from .preferences import load_preferences
from .scoring import calculate_score, get_max_possible_score, is_valid_rating, percent_complete
from .session_manager import (
    abandon_session,
    check_expiry,
    discard_session,
    ensure_session_id,
    touch,
)

logger = logging.getLogger(__name__)


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class Questionnaire:
    """Answer state machine for the single in-progress assessment.

    Memory is authoritative: ``set_answer`` updates the context synchronously
    and mirrors the write to storage in a background task whose failure is
    only logged.
    """

    def __init__(
        self,
        store: PersistenceAdapter,
        context: QuestionnaireContext | None = None,
        tree: QuestionTree | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.store = store
        self.ctx = context or QuestionnaireContext()
        self.tree = tree if tree is not None else get_question_tree()
        self.now = clock or _now_utc
        self._pending: set[asyncio.Task] = set()

    # lifecycle

    async def init(self) -> None:
        self.ctx.acknowledged = False
        self.ctx.is_historical_prefill = False
        try:
            await self._init_session()
        except Exception:
            logger.exception("[questionnaire] init failed, starting with an empty sheet")
            self.ctx.reset(started_at=self.now())

    async def _init_session(self) -> None:
        prefs = await load_preferences(self.store)
        self.ctx.sharing_enabled = prefs.network_sharing
        session_id = await ensure_session_id(self.store)
        self.ctx.session_id = session_id
        self.ctx.started_at = self.now()
        self.ctx.current_index = 0

        state = await check_expiry(self.store, session_id, self.now())
        if state.expired:
            await discard_session(self.store, session_id)
            self.ctx.reset(started_at=self.now())
            await touch(self.store, session_id, self.now())
            return

        answers = await self.store.load_answers(session_id)
        answers = {qid: v for qid, v in answers.items() if self.tree.is_leaf(qid) and is_valid_rating(v)}
        if answers:
            self.ctx.answers = answers
            self.ctx.phase = SessionPhase.RESUMABLE
            logger.info("[questionnaire] found %s saved answers for %s", len(answers), session_id)
        elif prefs.prefill_from_last_session and await self._prefill_from_history():
            self.ctx.phase = SessionPhase.HISTORICAL_PREFILL
        else:
            self.ctx.answers = {}
            self.ctx.phase = SessionPhase.ACTIVE
        await touch(self.store, session_id, self.now())

    async def _prefill_from_history(self) -> bool:
        sessions = await self.store.load_historical_sessions()
        if not sessions:
            return False
        latest = sessions[0]
        responses = await self.store.load_session_responses(latest.id)
        answers = {
            r.question_id: r.answer_value
            for r in responses
            if self.tree.is_leaf(r.question_id) and is_valid_rating(r.answer_value)
        }
        if not answers:
            return False
        self.ctx.answers = answers
        self.ctx.is_historical_prefill = True
        logger.info("[questionnaire] pre-filled %s answers from historical session %s", len(answers), latest.id)
        return True

    async def resume_session(self) -> None:
        self.ctx.acknowledged = True
        was_prefill = self.ctx.phase == SessionPhase.HISTORICAL_PREFILL
        self.ctx.phase = SessionPhase.ACTIVE
        if was_prefill and self.ctx.session_id:
            self._spawn(self._write_through(self.ctx.session_id, dict(self.ctx.answers)))

    async def start_fresh(self) -> None:
        old_session_id = self.ctx.session_id
        self.ctx.reset(started_at=self.now())
        await self.flush()
        self.ctx.session_id = await abandon_session(self.store, old_session_id)
        if self.ctx.session_id:
            await touch(self.store, self.ctx.session_id, self.now())

    # answers

    def set_answer(self, question_id: str, value: Any) -> bool:
        if not self.tree.is_leaf(question_id):
            logger.warning("[questionnaire] rejected answer for unknown question %r", question_id)
            return False
        if not is_valid_rating(value):
            logger.warning("[questionnaire] rejected rating %r for question %s", value, question_id)
            return False
        self.ctx.answers[question_id] = value
        if self.ctx.session_id is None:
            logger.warning("[questionnaire] no session id yet, answer %s kept in memory only", question_id)
            return True
        self._spawn(self._persist_answer(self.ctx.session_id, question_id, value))
        return True

    async def _persist_answer(self, session_id: str, question_id: str, value: int) -> None:
        try:
            await self.store.save_answer(session_id, question_id, value)
        except Exception as exc:
            logger.warning("[questionnaire] failed to save answer %s for %s: %s", question_id, session_id, exc)
            return
        await touch(self.store, session_id, self.now())

    async def _write_through(self, session_id: str, answers: dict[str, int]) -> None:
        try:
            for question_id, value in answers.items():
                await self.store.save_answer(session_id, question_id, value)
        except Exception as exc:
            logger.warning("[questionnaire] failed to persist pre-filled answers for %s: %s", session_id, exc)
            return
        await touch(self.store, session_id, self.now())

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def flush(self) -> None:
        while self._pending:
            await asyncio.gather(*list(self._pending))

    # navigation

    @property
    def total_questions(self) -> int:
        return len(self.tree)

    @property
    def current_question(self) -> Question | None:
        if not self.tree.leaves:
            return None
        return self.tree.leaves[self.ctx.current_index]

    def go_to_next(self) -> int:
        if self.ctx.current_index < self.total_questions - 1:
            self.ctx.current_index += 1
        return self.ctx.current_index

    def go_to_prev(self) -> int:
        if self.ctx.current_index > 0:
            self.ctx.current_index -= 1
        return self.ctx.current_index

    def go_to_index(self, index: int) -> int:
        if 0 <= index < self.total_questions:
            self.ctx.current_index = index
        return self.ctx.current_index

    # derived state

    @property
    def answers(self) -> dict[str, int]:
        return dict(self.ctx.answers)

    @property
    def phase(self) -> SessionPhase:
        return self.ctx.phase

    @property
    def has_saved_session(self) -> bool:
        return bool(self.ctx.answers) and not self.ctx.acknowledged

    @property
    def is_historical_prefill(self) -> bool:
        return self.ctx.is_historical_prefill

    @property
    def percent_complete(self) -> int:
        return percent_complete(self.ctx.answers, self.tree)

    @property
    def score(self) -> float:
        return calculate_score(self.ctx.answers, self.tree)

    @property
    def max_score(self) -> float:
        return get_max_possible_score(self.tree)

    def snapshot(self) -> dict[str, Any]:
        current = self.current_question
        return {
            "session_id": self.ctx.session_id,
            "phase": self.ctx.phase.value,
            "answers": self.answers,
            "current_index": self.ctx.current_index,
            "current_question_id": current.id if current else None,
            "total_questions": self.total_questions,
            "has_saved_session": self.has_saved_session,
            "is_historical_prefill": self.is_historical_prefill,
            "is_submitting": self.ctx.is_submitting,
            "percent_complete": self.percent_complete,
            "score": round(self.score, 2),
            "max_score": self.max_score,
        }
