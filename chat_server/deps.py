from pathlib import Path
from typing import Optional

from fastapi import HTTPException, Request, status

from .config import CONFIG
from .gemini import GeminiChatFactory
from .sessions import SessionStore


def get_session_store(request: Request) -> SessionStore:
    store = getattr(request.app.state, "sessions", None)
    if store is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Session store not initialized",
        )
    return store


def get_chat_factory(request: Request) -> Optional[GeminiChatFactory]:
    """None when no API key is configured; chat routes answer 500 in that case."""
    return getattr(request.app.state, "chat_factory", None)


def get_journey_path() -> Path:
    return CONFIG.journey_path
