import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from .config import LOG_LEVEL
from .database import run_migrations
from .question_tree import get_question_tree
from .repo import SqlStore
from .routes import include_routers
from .services.history import HistoryService
from .services.publisher import HttpPublisher
from .services.questionnaire import Questionnaire

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    run_migrations()
    tree = get_question_tree()
    store = SqlStore(tree=tree)
    app.state.store = store
    app.state.publisher = HttpPublisher()
    app.state.history = HistoryService(store)
    app.state.questionnaire = Questionnaire(store, tree=tree)
    await app.state.questionnaire.init()
    logger.info("[startup] questionnaire ready with %s questions", len(tree))
    yield
    await app.state.questionnaire.flush()


app = FastAPI(title="Manifestation API", lifespan=lifespan)
include_routers(app)
