from fastapi import HTTPException, Request

from .services.history import HistoryService
from .services.persistence import PersistenceAdapter
from .services.publisher import Publisher
from .services.questionnaire import Questionnaire


def _state_attr(request: Request, name: str):
    value = getattr(request.app.state, name, None)
    if value is None:
        raise HTTPException(status_code=503, detail="Service not ready")
    return value


def get_questionnaire(request: Request) -> Questionnaire:
    return _state_attr(request, "questionnaire")


def get_store(request: Request) -> PersistenceAdapter:
    return _state_attr(request, "store")


def get_publisher(request: Request) -> Publisher:
    return _state_attr(request, "publisher")


def get_history(request: Request) -> HistoryService:
    return _state_attr(request, "history")
