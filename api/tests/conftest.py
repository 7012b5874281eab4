import uuid
from datetime import datetime, timedelta, timezone

import pytest

from manifestation.question_tree import build_question_tree
from manifestation.schemas import HistoricalResponse, HistoricalSessionSummary, TrendPoint

SMALL_TREE_DEF = {
    "questions": [
        {
            "id": "1",
            "points": 100,
            "category": "Focus",
            "description": "Focus",
            "children": [
                {"id": "1a", "points": 60, "description": "a"},
                {"id": "1b", "points": 40, "description": "b"},
            ],
        },
        {"id": "2", "points": 200, "category": "Energy", "description": "Energy"},
        {"id": "3", "points": 700, "category": "Action", "description": "Action"},
    ]
}


class FakeStore:
    """In-memory persistence adapter; names in ``fail_on`` raise RuntimeError."""

    def __init__(self, tree):
        self.tree = tree
        self.settings: dict[str, str] = {}
        self.responses: dict[str, dict[str, int]] = {}
        self.last_active: dict[str, datetime] = {}
        self.historical: list[dict] = []
        self.calls: list[tuple] = []
        self.fail_on: set[str] = set()
        self._clock = datetime(2026, 1, 1, tzinfo=timezone.utc)

    def _record(self, name, *args):
        self.calls.append((name, *args))
        if name in self.fail_on:
            raise RuntimeError(f"{name} failed")

    def call_names(self) -> list[str]:
        return [c[0] for c in self.calls]

    async def get_setting(self, key):
        self._record("get_setting", key)
        return self.settings.get(key)

    async def set_setting(self, key, value):
        self._record("set_setting", key, value)
        self.settings[key] = value

    async def save_answer(self, session_id, question_id, value):
        self._record("save_answer", session_id, question_id, value)
        self.responses.setdefault(session_id, {})[question_id] = value

    async def load_answers(self, session_id):
        self._record("load_answers", session_id)
        return dict(self.responses.get(session_id, {}))

    async def clear_session(self, session_id):
        self._record("clear_session", session_id)
        self.responses.pop(session_id, None)
        self.last_active.pop(session_id, None)

    async def get_last_active(self, session_id):
        self._record("get_last_active", session_id)
        return self.last_active.get(session_id)

    async def update_last_active(self, session_id, at=None):
        self._record("update_last_active", session_id)
        self.last_active[session_id] = at or datetime.now(timezone.utc)

    async def save_historical_session(self, score, answers, duration_seconds=None, notes=None):
        self._record("save_historical_session", score)
        self._clock += timedelta(minutes=1)
        historical_id = str(uuid.uuid4())
        self.historical.append(
            {
                "id": historical_id,
                "completed_at": self._clock,
                "total_score": score,
                "duration_seconds": duration_seconds,
                "notes": notes,
                "answers": dict(answers),
            }
        )
        return historical_id

    async def load_historical_sessions(self):
        self._record("load_historical_sessions")
        rows = sorted(self.historical, key=lambda r: r["completed_at"], reverse=True)
        return [
            HistoricalSessionSummary(
                id=r["id"],
                completed_at=r["completed_at"],
                total_score=r["total_score"],
                duration_seconds=r["duration_seconds"],
                notes=r["notes"],
            )
            for r in rows
        ]

    async def load_session_responses(self, session_id):
        self._record("load_session_responses", session_id)
        for r in self.historical:
            if r["id"] == session_id:
                return [
                    HistoricalResponse(question_id=qid, category=self.tree.category_for(qid), answer_value=v)
                    for qid, v in r["answers"].items()
                ]
        return []

    async def delete_historical_session(self, session_id):
        self._record("delete_historical_session", session_id)
        self.historical = [r for r in self.historical if r["id"] != session_id]

    async def delete_historical_sessions(self, session_ids):
        self._record("delete_historical_sessions", list(session_ids))
        self.historical = [r for r in self.historical if r["id"] not in set(session_ids)]

    async def load_category_trends(self):
        self._record("load_category_trends")
        trends: dict[str, list[TrendPoint]] = {}
        for r in sorted(self.historical, key=lambda r: r["completed_at"]):
            per_category: dict[str, list[int]] = {}
            for qid, v in r["answers"].items():
                per_category.setdefault(self.tree.category_for(qid), []).append(v)
            for category, vals in per_category.items():
                trends.setdefault(category, []).append(
                    TrendPoint(session_id=r["id"], completed_at=r["completed_at"], value=round(sum(vals) / len(vals), 2))
                )
        return trends


class FakePublisher:
    def __init__(self, error: Exception | None = None):
        self.error = error
        self.published: list[tuple[float, dict[str, float]]] = []

    async def publish(self, score, category_scores):
        self.published.append((score, category_scores))
        if self.error:
            raise self.error


@pytest.fixture
def small_tree():
    return build_question_tree(SMALL_TREE_DEF)


@pytest.fixture
def store(small_tree):
    return FakeStore(small_tree)


@pytest.fixture
def publisher():
    return FakePublisher()


@pytest.fixture
def now():
    return datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
