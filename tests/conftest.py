import asyncio
import os

# Read by chat_server.config at import time.
os.environ.setdefault("CHAT_RATE_LIMIT", "1000/minute")

from pathlib import Path
from typing import Any, List, Optional

import pytest
from fastapi.testclient import TestClient

from chat_server.deps import get_chat_factory, get_journey_path
from chat_server.main import app


ASSET_JOURNEY = Path(__file__).resolve().parent.parent / "chat_server" / "assets" / "journey.txt"


class FakeChunk:
    def __init__(self, text: str = "", candidates: Optional[list] = None) -> None:
        self.text = text
        self.candidates = candidates or []


class FakeStream:
    def __init__(self, chunks: List[Any], error: Optional[Exception] = None, delay: float = 0.0) -> None:
        self._chunks = chunks
        self._error = error
        self._delay = delay

    async def _iterate(self):
        for chunk in self._chunks:
            if self._delay:
                await asyncio.sleep(self._delay)
            yield chunk
        if self._error is not None:
            raise self._error

    def __aiter__(self):
        return self._iterate()


class FakeChat:
    """Stands in for google.generativeai.ChatSession."""

    def __init__(self, replies: Optional[List[List[Any]]] = None, error: Optional[Exception] = None,
                 send_error: Optional[Exception] = None, delay: float = 0.0) -> None:
        self.replies = list(replies or [[FakeChunk("好的")]])
        self.error = error
        self.send_error = send_error
        self.delay = delay
        self.sent: List[str] = []
        self.events: List[str] = []

    async def send_message_async(self, message: str, stream: bool = False):
        assert stream
        self.sent.append(message)
        self.events.append(f"send:{message}")
        if self.send_error is not None:
            raise self.send_error
        chunks = self.replies.pop(0) if self.replies else []
        return FakeStream(chunks, self.error, self.delay)


class FakeChatFactory:
    def __init__(self, chat: Optional[FakeChat] = None, error: Optional[Exception] = None) -> None:
        self.chat = chat or FakeChat()
        self.error = error
        self.instructions: List[str] = []

    def create_chat(self, system_instruction: str) -> FakeChat:
        self.instructions.append(system_instruction)
        if self.error is not None:
            raise self.error
        return self.chat


def web_chunk(uri: str, title: str = "") -> dict:
    return {"web": {"uri": uri, "title": title}}


def grounded_candidate(*chunks: dict) -> dict:
    return {"grounding_metadata": {"grounding_chunks": list(chunks)}}


@pytest.fixture
def fake_factory() -> FakeChatFactory:
    return FakeChatFactory()


@pytest.fixture
def journey_path() -> Path:
    return ASSET_JOURNEY


@pytest.fixture
def client(fake_factory, journey_path):
    app.dependency_overrides[get_chat_factory] = lambda: fake_factory
    app.dependency_overrides[get_journey_path] = lambda: journey_path
    try:
        with TestClient(app) as c:
            yield c
    finally:
        app.dependency_overrides.clear()
