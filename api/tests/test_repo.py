from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import text

from manifestation import repo
from manifestation.config import last_active_key
from manifestation.database import build_session_factory, run_migrations
from manifestation.question_tree import QuestionTree
from manifestation.repo import SqlStore


@pytest.fixture
def session_factory(tmp_path):
    factory = build_session_factory(f"sqlite:///{tmp_path / 'test.db'}")
    run_migrations(factory)
    return factory


@pytest.fixture
def sql_store(session_factory, small_tree):
    return SqlStore(session_factory, tree=small_tree)


def test_migrations_apply_once(session_factory):
    assert run_migrations(session_factory) == []
    with session_factory() as db:
        names = [r["name"] for r in db.execute(text("SELECT name FROM _migrations ORDER BY name")).mappings().all()]
    assert names == ["001_initial_schema.sql", "002_historical_schema.sql", "003_optimized_indexes.sql"]


@pytest.mark.asyncio
async def test_settings_upsert(sql_store):
    assert await sql_store.get_setting("k") is None
    await sql_store.set_setting("k", "one")
    await sql_store.set_setting("k", "two")
    assert await sql_store.get_setting("k") == "two"


@pytest.mark.asyncio
async def test_answers_upsert_and_coerce(sql_store, session_factory):
    await sql_store.save_answer("sid", "1a", 3)
    await sql_store.save_answer("sid", "1a", 8)
    await sql_store.save_answer("sid", "2", 10)
    await sql_store.save_answer("other", "3", 5)
    with session_factory() as db:
        repo.save_answer(db, "sid", "retired", 4)
        db.commit()

    assert await sql_store.load_answers("sid") == {"1a": 8, "2": 10}
    assert await sql_store.load_answers("other") == {"3": 5}


@pytest.mark.asyncio
async def test_heartbeat_roundtrip_and_clear(sql_store):
    at = datetime(2026, 2, 3, 4, 5, 6, 789000, tzinfo=timezone.utc)
    await sql_store.save_answer("sid", "1a", 3)
    await sql_store.update_last_active("sid", at)
    assert await sql_store.get_setting(last_active_key("sid")) == "1770091506789"
    assert await sql_store.get_last_active("sid") == at

    await sql_store.clear_session("sid")
    assert await sql_store.load_answers("sid") == {}
    assert await sql_store.get_last_active("sid") is None


@pytest.mark.asyncio
async def test_malformed_heartbeat_reads_as_missing(sql_store):
    await sql_store.set_setting(last_active_key("sid"), "not-a-number")
    assert await sql_store.get_last_active("sid") is None


@pytest.mark.asyncio
async def test_historical_sessions_newest_first_with_responses(sql_store, session_factory, small_tree):
    base = datetime(2026, 1, 1, tzinfo=timezone.utc)
    with session_factory() as db:
        older = repo.insert_historical_session(db, small_tree, 150.0, {"1a": 2, "2": 3}, 60, None, base)
        newer = repo.insert_historical_session(db, small_tree, 900.0, {"1a": 9, "1b": 7, "2": 8}, 120, "n", base + timedelta(days=1))
        db.commit()

    sessions = await sql_store.load_historical_sessions()
    assert [s.id for s in sessions] == [newer, older]
    assert sessions[0].notes == "n"
    assert sessions[0].duration_seconds == 120

    responses = await sql_store.load_session_responses(newer)
    assert {(r.question_id, r.category, r.answer_value) for r in responses} == {
        ("1a", "Focus", 9),
        ("1b", "Focus", 7),
        ("2", "Energy", 8),
    }


@pytest.mark.asyncio
async def test_save_historical_session_returns_id(sql_store):
    historical_id = await sql_store.save_historical_session(100.0, {"1a": 1, "1b": 1, "2": 1, "3": 1}, 5, None)
    sessions = await sql_store.load_historical_sessions()
    assert [s.id for s in sessions] == [historical_id]
    assert len(await sql_store.load_session_responses(historical_id)) == 4


@pytest.mark.asyncio
async def test_delete_cascades_to_responses(sql_store, session_factory):
    first = await sql_store.save_historical_session(1.0, {"1a": 1})
    second = await sql_store.save_historical_session(2.0, {"2": 2})
    third = await sql_store.save_historical_session(3.0, {"3": 3})

    await sql_store.delete_historical_session(first)
    await sql_store.delete_historical_sessions([second, "unknown"])

    assert [s.id for s in await sql_store.load_historical_sessions()] == [third]
    with session_factory() as db:
        remaining = db.execute(text("SELECT COUNT(*) AS n FROM historical_responses")).mappings().first()
    assert remaining["n"] == 1


@pytest.mark.asyncio
async def test_category_trends_average_per_session(sql_store, session_factory, small_tree):
    base = datetime(2026, 1, 1, tzinfo=timezone.utc)
    with session_factory() as db:
        s1 = repo.insert_historical_session(db, small_tree, 1.0, {"1a": 2, "1b": 3, "2": 5}, completed_at=base)
        s2 = repo.insert_historical_session(db, small_tree, 1.0, {"1a": 6, "1b": 9, "2": 4}, completed_at=base + timedelta(days=7))
        db.commit()

    trends = await sql_store.load_category_trends()
    assert [(p.session_id, p.value) for p in trends["Focus"]] == [(s1, 2.5), (s2, 7.5)]
    assert [(p.session_id, p.value) for p in trends["Energy"]] == [(s1, 5.0), (s2, 4.0)]


@pytest.mark.asyncio
async def test_failed_archive_rolls_back(sql_store, small_tree, monkeypatch):
    def broken_insert(db, tree, score, answers, duration_seconds=None, notes=None, completed_at=None):
        db.execute(text("INSERT INTO historical_sessions (id, total_score) VALUES ('partial', 1.0)"))
        raise RuntimeError("disk full")

    monkeypatch.setattr(repo, "insert_historical_session", broken_insert)
    with pytest.raises(RuntimeError):
        await sql_store.save_historical_session(1.0, {"1a": 1})
    assert await sql_store.load_historical_sessions() == []


def test_store_keeps_leafless_tree(session_factory):
    empty = QuestionTree(())
    assert SqlStore(session_factory, tree=empty).tree is empty
