from __future__ import annotations

import logging

from .publisher import Publisher
from .questionnaire import Questionnaire
from .scoring import calculate_score, category_scores, complete_answer_sheet
from .session_manager import abandon_session, touch

logger = logging.getLogger(__name__)


async def submit_session(
    questionnaire: Questionnaire,
    publisher: Publisher | None = None,
    notes: str | None = None,
) -> str | None:
    """Archive the current sheet, optionally publish it, then reset.

    Returns the new historical session id, or None when another submission
    is already running. Archival errors propagate with the session intact.
    """
    ctx = questionnaire.ctx
    if ctx.is_submitting:
        logger.info("[submit] submission already in progress, ignoring")
        return None
    ctx.is_submitting = True
    try:
        tree = questionnaire.tree
        sheet = complete_answer_sheet(ctx.answers, tree)
        score = calculate_score(sheet, tree)
        now = questionnaire.now()
        duration = int((now - ctx.started_at).total_seconds()) if ctx.started_at else None

        try:
            historical_id = await questionnaire.store.save_historical_session(score, sheet, duration, notes)
        except Exception:
            logger.exception("[submit] Failed to submit session")
            raise

        if ctx.sharing_enabled and publisher is not None:
            try:
                await publisher.publish(score, category_scores(sheet, tree))
            except Exception as exc:
                logger.warning("[submit] Failed to publish result to network: %s", exc)

        old_session_id = ctx.session_id
        ctx.reset(started_at=now)
        await questionnaire.flush()
        ctx.session_id = await abandon_session(questionnaire.store, old_session_id)
        if ctx.session_id:
            await touch(questionnaire.store, ctx.session_id, now)

        logger.info("[submit] archived session %s with score %.2f", historical_id, score)
        return historical_id
    finally:
        ctx.is_submitting = False
