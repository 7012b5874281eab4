from __future__ import annotations

import asyncio
import logging
from typing import Protocol

import requests

from ..config import PEER_PUBLISH_URL, PUBLISH_TIMEOUT_SECONDS
from ..schemas import PublishPayload

logger = logging.getLogger(__name__)


class PublishError(Exception):
    pass


class Publisher(Protocol):
    async def publish(self, score: float, category_scores: dict[str, float]) -> None: ...


class HttpPublisher:
    """Sends anonymised results to a peer node's publish endpoint."""

    def __init__(self, url: str | None = None, timeout: float = PUBLISH_TIMEOUT_SECONDS, session: requests.Session | None = None):
        self.url = PEER_PUBLISH_URL if url is None else url
        self.timeout = timeout
        self._session = session or requests.Session()

    def _post(self, payload: PublishPayload) -> None:
        try:
            resp = self._session.post(self.url, json=payload.model_dump(), timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as exc:
            raise PublishError(f"publish to {self.url} failed: {exc}") from exc

    async def publish(self, score: float, category_scores: dict[str, float]) -> None:
        if not self.url:
            raise PublishError("no peer publish URL configured")
        payload = PublishPayload(score=score, category_scores=category_scores)
        await asyncio.to_thread(self._post, payload)
        logger.info("[publish] published score %.2f across %s categories", score, len(category_scores))
