"""HTTP client for the chat server: session init, streamed questions and the itinerary summary."""

from __future__ import annotations

import json
import logging
from typing import Callable, List, Optional

import httpx
from pydantic import TypeAdapter, ValidationError

from .models import ChatSession, GroundingSource, JourneySummary


logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60.0

_SOURCES = TypeAdapter(List[GroundingSource])


class ChatAPIError(Exception):
    pass


def _error_from(resp: httpx.Response, fallback: str) -> ChatAPIError:
    try:
        data = resp.json()
    except ValueError:
        data = {}
    message = data.get("error") if isinstance(data, dict) else None
    return ChatAPIError(message or fallback)


class ChatAPIClient:
    def __init__(self, base_url: str = "http://localhost:3000", client: Optional[httpx.Client] = None,
                 timeout: float = DEFAULT_TIMEOUT) -> None:
        self._client = client or httpx.Client(base_url=base_url.rstrip("/"), timeout=timeout)
        self._owns_client = client is None

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "ChatAPIClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def initialize_chat_session(self) -> ChatSession:
        """Create a server-side chat session.

        Raises ChatAPIError with the server's message (or a generic one) on any non-2xx answer.
        """
        resp = self._client.post("/api/chat/init", headers={"Content-Type": "application/json"})
        if not resp.is_success:
            raise _error_from(resp, "初始化聊天失敗")
        return ChatSession(sessionId=resp.json()["sessionId"])

    def ask_tokyo_expert(
        self,
        session: ChatSession,
        question: str,
        on_chunk: Callable[[str], None],
        on_complete: Callable[[List[GroundingSource]], None],
        on_error: Callable[[Exception], None],
    ) -> None:
        """Send ``question`` and dispatch the SSE reply to the callbacks.

        Text frames go to ``on_chunk`` as they arrive; sources are held until the
        complete frame and then handed to ``on_complete``. Server-side error
        frames, HTTP failures and transport errors all end up in ``on_error``.
        """
        try:
            with self._client.stream(
                "POST",
                "/api/chat/send",
                json={"sessionId": session.sessionId, "message": question},
                headers={"Accept": "text/event-stream", "Content-Type": "application/json"},
            ) as resp:
                if not resp.is_success:
                    resp.read()
                    raise _error_from(resp, "發送訊息失敗")

                sources: List[GroundingSource] = []
                for line in resp.iter_lines():
                    if not line.startswith("data: "):
                        continue
                    data = line[len("data: "):]
                    if not data.strip():
                        continue
                    try:
                        payload = json.loads(data)
                    except json.JSONDecodeError as e:
                        logger.warning("Unparsable SSE data %r: %s", data, e)
                        continue
                    if not isinstance(payload, dict):
                        continue

                    ptype = payload.get("type")
                    if ptype == "text":
                        on_chunk(payload.get("content", ""))
                    elif ptype == "sources":
                        try:
                            sources = _SOURCES.validate_python(payload.get("content") or [])
                        except ValidationError as e:
                            logger.warning("Ignoring malformed sources frame: %s", e)
                    elif ptype == "complete":
                        on_complete(sources)
                        return
                    elif ptype == "error":
                        on_error(ChatAPIError(payload.get("content") or "未知錯誤"))
                        return
        except (ChatAPIError, httpx.HTTPError) as e:
            logger.error("Chat API call failed: %s", e)
            on_error(e)

    def get_journey_summary(self) -> Optional[JourneySummary]:
        """Structured itinerary summary, or None when the server cannot provide one."""
        try:
            resp = self._client.get("/api/journey/summary", headers={"Content-Type": "application/json"})
            if not resp.is_success:
                logger.warning("Journey summary unavailable: HTTP %s", resp.status_code)
                return None
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Failed to fetch journey summary: %s", e)
            return None

        if not isinstance(data, dict):
            logger.warning("Journey summary response is not an object: %r", data)
            return None
        if not data.get("success"):
            logger.warning("Journey summary request failed: %s", data.get("message"))
            return None
        if data.get("summary") is None:
            logger.warning("Journey summary response has no summary")
            return None
        try:
            return JourneySummary.model_validate(data["summary"])
        except ValidationError as e:
            logger.warning("Invalid journey summary: %s", e)
            return None
