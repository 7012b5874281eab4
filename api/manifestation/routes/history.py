from typing import Any

from fastapi import APIRouter, Depends, HTTPException

from ..deps import get_history, get_store
from ..schemas import DeleteSessionsRequest, HistoricalResponse, HistoryResponse
from ..services.analysis import compute_focus_areas, summarize_trends
from ..services.history import HistoryService
from ..services.persistence import PersistenceAdapter

router = APIRouter()


@router.get("/history", response_model=HistoryResponse)
async def get_history_view(history: HistoryService = Depends(get_history)) -> HistoryResponse:
    await history.fetch_history()
    return HistoryResponse(sessions=history.sessions, trends=history.trends, error=history.error)


@router.get("/history/trends")
async def get_trends(history: HistoryService = Depends(get_history)) -> dict[str, Any]:
    await history.fetch_history()
    if history.error:
        raise HTTPException(status_code=500, detail="Failed to load history")
    return {
        "trends": {category: [p.model_dump(mode="json") for p in points] for category, points in history.trends.items()},
        "directions": summarize_trends(history.trends),
        "focus_areas": compute_focus_areas(history.trends),
    }


@router.get("/history/{session_id}/responses", response_model=list[HistoricalResponse])
async def get_responses(session_id: str, store: PersistenceAdapter = Depends(get_store)) -> list[HistoricalResponse]:
    return await store.load_session_responses(session_id)


@router.delete("/history/{session_id}", response_model=HistoryResponse)
async def delete_one(session_id: str, history: HistoryService = Depends(get_history)) -> HistoryResponse:
    await history.delete_session(session_id)
    if history.error:
        raise HTTPException(status_code=500, detail="Failed to delete session")
    return HistoryResponse(sessions=history.sessions, trends=history.trends)


@router.post("/history/delete", response_model=HistoryResponse)
async def delete_many(payload: DeleteSessionsRequest, history: HistoryService = Depends(get_history)) -> HistoryResponse:
    await history.delete_sessions(payload.ids)
    if history.error:
        raise HTTPException(status_code=500, detail="Failed to delete sessions")
    return HistoryResponse(sessions=history.sessions, trends=history.trends)
