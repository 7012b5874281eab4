from fastapi import APIRouter, Depends, HTTPException

from ..deps import get_questionnaire, get_store
from ..schemas import Preferences
from ..services.persistence import PersistenceAdapter
from ..services.preferences import load_preferences, save_preferences
from ..services.questionnaire import Questionnaire

router = APIRouter()


@router.get("/settings", response_model=Preferences)
async def get_settings(store: PersistenceAdapter = Depends(get_store)) -> Preferences:
    return await load_preferences(store)


@router.put("/settings", response_model=Preferences)
async def put_settings(
    payload: Preferences,
    store: PersistenceAdapter = Depends(get_store),
    questionnaire: Questionnaire = Depends(get_questionnaire),
) -> Preferences:
    try:
        prefs = await save_preferences(store, payload, max_score=questionnaire.max_score)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    questionnaire.ctx.sharing_enabled = prefs.network_sharing
    return prefs
