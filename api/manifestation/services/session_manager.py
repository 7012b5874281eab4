from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from ..config import SESSION_TIMEOUT_DAYS, SETTING_SESSION_ID
from .persistence import PersistenceAdapter

logger = logging.getLogger(__name__)

SESSION_TIMEOUT = timedelta(days=SESSION_TIMEOUT_DAYS)


@dataclass(frozen=True)
class SessionState:
    session_id: str
    last_active: datetime | None
    expired: bool


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def is_expired(last_active: datetime | None, now: datetime, timeout: timedelta = SESSION_TIMEOUT) -> bool:
    if last_active is None:
        return False
    return now - last_active > timeout


async def ensure_session_id(store: PersistenceAdapter) -> str:
    existing = await store.get_setting(SETTING_SESSION_ID)
    if existing and existing.strip():
        return existing.strip()
    session_id = str(uuid.uuid4())
    await store.set_setting(SETTING_SESSION_ID, session_id)
    logger.info("[session] created session id %s", session_id)
    return session_id


async def rotate_session_id(store: PersistenceAdapter) -> str:
    session_id = str(uuid.uuid4())
    await store.set_setting(SETTING_SESSION_ID, session_id)
    logger.info("[session] rotated to session id %s", session_id)
    return session_id


async def check_expiry(store: PersistenceAdapter, session_id: str, now: datetime | None = None) -> SessionState:
    last_active = await store.get_last_active(session_id)
    expired = is_expired(last_active, now or _now_utc())
    if expired:
        logger.info("[session] session %s expired (last active %s)", session_id, last_active)
    return SessionState(session_id=session_id, last_active=last_active, expired=expired)


async def touch(store: PersistenceAdapter, session_id: str, now: datetime | None = None) -> None:
    try:
        await store.update_last_active(session_id, now or _now_utc())
    except Exception as exc:
        logger.warning("[session] failed to update last active for %s: %s", session_id, exc)


async def discard_session(store: PersistenceAdapter, session_id: str) -> None:
    await store.clear_session(session_id)
    logger.info("[session] cleared in-progress data for %s", session_id)


async def abandon_session(store: PersistenceAdapter, session_id: str | None) -> str | None:
    """Drop in-progress data for ``session_id`` and move to a new id.

    The old data is cleared before the id changes so a failed rotation can
    never resurrect it. Returns the id to continue with: the new one, or the
    old (now empty) one when the new id could not be persisted.
    """
    if session_id:
        try:
            await discard_session(store, session_id)
        except Exception as exc:
            logger.warning("[session] failed to clear in-progress data for %s: %s", session_id, exc)
    try:
        return await rotate_session_id(store)
    except Exception as exc:
        logger.warning("[session] failed to rotate session id, keeping %s: %s", session_id, exc)
        return session_id


async def needs_crash_recovery(store: PersistenceAdapter, session_id: str, now: datetime | None = None) -> bool:
    state = await check_expiry(store, session_id, now)
    return state.last_active is not None and not state.expired
