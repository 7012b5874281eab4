from fastapi import FastAPI

from .history import router as history_router
from .questionnaire import router as questionnaire_router
from .settings import router as settings_router


def include_routers(app: FastAPI) -> None:
    app.include_router(questionnaire_router, tags=["questionnaire"])
    app.include_router(history_router, tags=["history"])
    app.include_router(settings_router, tags=["settings"])


__all__ = ["include_routers"]
