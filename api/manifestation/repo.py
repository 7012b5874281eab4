import asyncio
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping

from sqlalchemy import bindparam, text

from .config import last_active_key
from .database import SessionLocal
from .question_tree import QuestionTree, get_question_tree
from .schemas import HistoricalResponse, HistoricalSessionSummary, TrendPoint
from .services.scoring import is_valid_rating

logger = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _to_epoch_ms(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return (value - _EPOCH) // timedelta(milliseconds=1)


def _from_epoch_ms(raw: str | None) -> datetime | None:
    if raw is None:
        return None
    try:
        return _EPOCH + timedelta(milliseconds=int(raw))
    except (TypeError, ValueError, OverflowError):
        logger.warning("[repo] ignoring malformed heartbeat value %r", raw)
        return None


def get_setting(db, key: str) -> str | None:
    row = db.execute(text("SELECT value FROM settings WHERE key=:key"), {"key": key}).mappings().first()
    return row["value"] if row else None


def set_setting(db, key: str, value: str) -> None:
    db.execute(
        text(
            """
            INSERT INTO settings (key, value, updated_at) VALUES (:key, :value, CURRENT_TIMESTAMP)
            ON CONFLICT(key) DO UPDATE SET value=excluded.value, updated_at=CURRENT_TIMESTAMP
            """
        ),
        {"key": key, "value": value},
    )


def save_answer(db, session_id: str, question_id: str, value: int) -> None:
    db.execute(
        text(
            """
            INSERT INTO questionnaire_responses (session_id, question_number, answer_value, answered_at)
            VALUES (:session_id, :question_id, :value, CURRENT_TIMESTAMP)
            ON CONFLICT(session_id, question_number)
            DO UPDATE SET answer_value=excluded.answer_value, answered_at=CURRENT_TIMESTAMP
            """
        ),
        {"session_id": session_id, "question_id": question_id, "value": value},
    )


def load_answer_rows(db, session_id: str) -> list[dict[str, Any]]:
    rows = db.execute(
        text("SELECT question_number, answer_value FROM questionnaire_responses WHERE session_id=:session_id"),
        {"session_id": session_id},
    ).mappings().all()
    return [dict(r) for r in rows]


def coerce_answer_rows(rows: list[dict[str, Any]], tree: QuestionTree) -> dict[str, int]:
    answers: dict[str, int] = {}
    for row in rows:
        qid = str(row.get("question_number"))
        value = row.get("answer_value")
        if not tree.is_leaf(qid) or not is_valid_rating(value):
            logger.warning("[repo] dropping stored answer %s=%r", qid, value)
            continue
        answers[qid] = value
    return answers


def clear_session(db, session_id: str) -> None:
    db.execute(text("DELETE FROM questionnaire_responses WHERE session_id=:session_id"), {"session_id": session_id})
    db.execute(text("DELETE FROM settings WHERE key=:key"), {"key": last_active_key(session_id)})


def insert_historical_session(
    db,
    tree: QuestionTree,
    score: float,
    answers: Mapping[str, int],
    duration_seconds: int | None = None,
    notes: str | None = None,
    completed_at: datetime | None = None,
) -> str:
    historical_id = str(uuid.uuid4())
    db.execute(
        text(
            """
            INSERT INTO historical_sessions (id, completed_at, total_score, duration_seconds, notes)
            VALUES (:id, :completed_at, :total_score, :duration_seconds, :notes)
            """
        ),
        {
            "id": historical_id,
            "completed_at": (completed_at or _now_utc()).isoformat(),
            "total_score": score,
            "duration_seconds": duration_seconds,
            "notes": notes,
        },
    )
    for question_id, value in answers.items():
        category = tree.category_for(question_id)
        if category is None:
            continue
        db.execute(
            text(
                """
                INSERT INTO historical_responses (session_id, question_id, category, answer_value)
                VALUES (:session_id, :question_id, :category, :value)
                """
            ),
            {"session_id": historical_id, "question_id": question_id, "category": category, "value": value},
        )
    return historical_id


def list_historical_sessions(db) -> list[dict[str, Any]]:
    rows = db.execute(
        text(
            """
            SELECT id, completed_at, total_score, duration_seconds, notes
            FROM historical_sessions
            ORDER BY completed_at DESC
            """
        )
    ).mappings().all()
    return [dict(r) for r in rows]


def list_session_responses(db, session_id: str) -> list[dict[str, Any]]:
    rows = db.execute(
        text(
            """
            SELECT question_id, category, answer_value
            FROM historical_responses
            WHERE session_id=:session_id
            ORDER BY id ASC
            """
        ),
        {"session_id": session_id},
    ).mappings().all()
    return [dict(r) for r in rows]


def delete_historical_sessions(db, session_ids: list[str]) -> None:
    if not session_ids:
        return
    stmt = text("DELETE FROM historical_sessions WHERE id IN :ids").bindparams(bindparam("ids", expanding=True))
    db.execute(stmt, {"ids": list(session_ids)})


def list_category_trend_rows(db) -> list[dict[str, Any]]:
    rows = db.execute(
        text(
            """
            SELECT hs.id AS session_id, hs.completed_at AS completed_at, hr.category AS category,
                   ROUND(AVG(hr.answer_value), 2) AS value
            FROM historical_sessions hs
            JOIN historical_responses hr ON hr.session_id = hs.id
            GROUP BY hs.id, hs.completed_at, hr.category
            ORDER BY hs.completed_at ASC
            """
        )
    ).mappings().all()
    return [dict(r) for r in rows]


class SqlStore:
    """Async persistence adapter backed by SQLAlchemy.

    Blocking database work runs in a worker thread so the event loop is never
    held by sqlite.
    """

    def __init__(self, session_factory=None, tree: QuestionTree | None = None):
        self._session_factory = session_factory or SessionLocal
        self._tree = tree

    @property
    def tree(self) -> QuestionTree:
        return self._tree if self._tree is not None else get_question_tree()

    def _read(self, fn, *args):
        with self._session_factory() as db:
            return fn(db, *args)

    def _write(self, fn, *args):
        with self._session_factory() as db:
            try:
                result = fn(db, *args)
                db.commit()
            except Exception:
                db.rollback()
                raise
            return result

    async def get_setting(self, key: str) -> str | None:
        return await asyncio.to_thread(self._read, get_setting, key)

    async def set_setting(self, key: str, value: str) -> None:
        await asyncio.to_thread(self._write, set_setting, key, value)

    async def save_answer(self, session_id: str, question_id: str, value: int) -> None:
        await asyncio.to_thread(self._write, save_answer, session_id, question_id, value)

    async def load_answers(self, session_id: str) -> dict[str, int]:
        rows = await asyncio.to_thread(self._read, load_answer_rows, session_id)
        return coerce_answer_rows(rows, self.tree)

    async def clear_session(self, session_id: str) -> None:
        await asyncio.to_thread(self._write, clear_session, session_id)

    async def get_last_active(self, session_id: str) -> datetime | None:
        raw = await self.get_setting(last_active_key(session_id))
        return _from_epoch_ms(raw)

    async def update_last_active(self, session_id: str, at: datetime | None = None) -> None:
        await self.set_setting(last_active_key(session_id), str(_to_epoch_ms(at or _now_utc())))

    async def save_historical_session(
        self,
        score: float,
        answers: Mapping[str, int],
        duration_seconds: int | None = None,
        notes: str | None = None,
    ) -> str:
        return await asyncio.to_thread(
            self._write, insert_historical_session, self.tree, score, dict(answers), duration_seconds, notes
        )

    async def load_historical_sessions(self) -> list[HistoricalSessionSummary]:
        rows = await asyncio.to_thread(self._read, list_historical_sessions)
        return [HistoricalSessionSummary.model_validate(r) for r in rows]

    async def load_session_responses(self, session_id: str) -> list[HistoricalResponse]:
        rows = await asyncio.to_thread(self._read, list_session_responses, session_id)
        out: list[HistoricalResponse] = []
        for row in rows:
            if not is_valid_rating(row.get("answer_value")):
                logger.warning("[repo] dropping archived response %s for session %s", row.get("question_id"), session_id)
                continue
            out.append(HistoricalResponse.model_validate(row))
        return out

    async def delete_historical_session(self, session_id: str) -> None:
        await asyncio.to_thread(self._write, delete_historical_sessions, [session_id])

    async def delete_historical_sessions(self, session_ids: list[str]) -> None:
        await asyncio.to_thread(self._write, delete_historical_sessions, list(session_ids))

    async def load_category_trends(self) -> dict[str, list[TrendPoint]]:
        rows = await asyncio.to_thread(self._read, list_category_trend_rows)
        trends: dict[str, list[TrendPoint]] = {}
        for row in rows:
            trends.setdefault(row["category"], []).append(
                TrendPoint(session_id=row["session_id"], completed_at=row["completed_at"], value=float(row["value"]))
            )
        return trends
