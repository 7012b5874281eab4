from typing import Any

from fastapi import APIRouter, Depends, HTTPException

from ..deps import get_publisher, get_questionnaire
from ..schemas import AnswerRequest, NavigateRequest, SubmitRequest, SubmitResponse
from ..services.publisher import Publisher
from ..services.questionnaire import Questionnaire
from ..services.submission import submit_session


router = APIRouter()


@router.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/questions")
def get_questions(questionnaire: Questionnaire = Depends(get_questionnaire)) -> dict[str, Any]:
    return {**questionnaire.tree.to_dict(), "max_score": questionnaire.max_score}


@router.get("/questionnaire")
def get_state(questionnaire: Questionnaire = Depends(get_questionnaire)) -> dict[str, Any]:
    return questionnaire.snapshot()


@router.post("/questionnaire/init")
async def init_questionnaire(questionnaire: Questionnaire = Depends(get_questionnaire)) -> dict[str, Any]:
    await questionnaire.init()
    return questionnaire.snapshot()


@router.post("/questionnaire/resume")
async def resume(questionnaire: Questionnaire = Depends(get_questionnaire)) -> dict[str, Any]:
    await questionnaire.resume_session()
    return questionnaire.snapshot()


@router.post("/questionnaire/fresh")
async def start_fresh(questionnaire: Questionnaire = Depends(get_questionnaire)) -> dict[str, Any]:
    await questionnaire.start_fresh()
    return questionnaire.snapshot()


@router.put("/questionnaire/answers/{question_id}")
async def put_answer(
    question_id: str,
    payload: AnswerRequest,
    questionnaire: Questionnaire = Depends(get_questionnaire),
) -> dict[str, Any]:
    if not questionnaire.tree.is_leaf(question_id):
        raise HTTPException(status_code=404, detail="Question not found")
    accepted = questionnaire.set_answer(question_id, payload.value)
    return {"accepted": accepted, **questionnaire.snapshot()}


@router.post("/questionnaire/navigate")
def navigate(payload: NavigateRequest, questionnaire: Questionnaire = Depends(get_questionnaire)) -> dict[str, Any]:
    if payload.action == "next":
        questionnaire.go_to_next()
    elif payload.action == "prev":
        questionnaire.go_to_prev()
    else:
        if payload.index is None:
            raise HTTPException(status_code=422, detail="index is required for action 'index'")
        questionnaire.go_to_index(payload.index)
    return questionnaire.snapshot()


@router.post("/questionnaire/submit", response_model=SubmitResponse)
async def submit(
    payload: SubmitRequest | None = None,
    questionnaire: Questionnaire = Depends(get_questionnaire),
    publisher: Publisher = Depends(get_publisher),
) -> SubmitResponse:
    try:
        historical_id = await submit_session(questionnaire, publisher, notes=payload.notes if payload else None)
    except Exception:
        raise HTTPException(status_code=500, detail="Failed to save session")
    if historical_id is None:
        raise HTTPException(status_code=409, detail="Submission already in progress")
    return SubmitResponse(historical_session_id=historical_id)
