from __future__ import annotations

import logging

from ..config import (
    DEFAULT_PREFILL_FROM_LAST_SESSION,
    SETTING_GOAL_SCORE,
    SETTING_NETWORK_SHARING,
    SETTING_PREFILL,
)
from ..schemas import Preferences
from .persistence import PersistenceAdapter

logger = logging.getLogger(__name__)


def _parse_bool(raw: str | None, default: bool) -> bool:
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in {"true", "1", "yes", "on"}:
        return True
    if value in {"false", "0", "no", "off"}:
        return False
    logger.warning("[preferences] unrecognised boolean %r, using default", raw)
    return default


def _parse_goal(raw: str | None) -> float | None:
    if raw is None or not raw.strip():
        return None
    try:
        goal = float(raw)
    except ValueError:
        logger.warning("[preferences] ignoring malformed goal score %r", raw)
        return None
    return goal if goal >= 0 else None


async def load_preferences(store: PersistenceAdapter) -> Preferences:
    return Preferences(
        prefill_from_last_session=_parse_bool(await store.get_setting(SETTING_PREFILL), DEFAULT_PREFILL_FROM_LAST_SESSION),
        network_sharing=_parse_bool(await store.get_setting(SETTING_NETWORK_SHARING), False),
        goal_score=_parse_goal(await store.get_setting(SETTING_GOAL_SCORE)),
    )


async def save_preferences(store: PersistenceAdapter, prefs: Preferences, max_score: float | None = None) -> Preferences:
    if prefs.goal_score is not None and max_score is not None and prefs.goal_score > max_score:
        raise ValueError(f"goal_score must be between 0 and {max_score:g}")
    await store.set_setting(SETTING_PREFILL, "true" if prefs.prefill_from_last_session else "false")
    await store.set_setting(SETTING_NETWORK_SHARING, "true" if prefs.network_sharing else "false")
    await store.set_setting(SETTING_GOAL_SCORE, "" if prefs.goal_score is None else f"{prefs.goal_score:g}")
    return prefs
