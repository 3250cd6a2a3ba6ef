import json
import logging
import time
from datetime import datetime
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import StreamingResponse
from pydantic import ValidationError

from ..deps import get_chat_factory, get_journey_path, get_session_store
from ..gemini import INVALID_KEY_MARKER, GeminiChatFactory, build_system_instruction, stream_reply
from ..journey import load_journey_text
from ..schemas import ChatSession, SendMessageRequest
from ..sessions import SessionEntry, SessionStore


logger = logging.getLogger(__name__)

router = APIRouter()

MISSING_KEY_MESSAGE = "API 金鑰未設定。請聯繫開發者。"

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "Content-Type",
}


def _read_journey(path: Path) -> str:
    try:
        return load_journey_text(path)
    except OSError as e:
        logger.warning("Journey file %s unavailable, starting chat without it: %s", path, e)
        return ""


@router.post("/init", response_model=ChatSession)
async def init_chat(
    factory: Optional[GeminiChatFactory] = Depends(get_chat_factory),
    store: SessionStore = Depends(get_session_store),
    journey_path: Path = Depends(get_journey_path),
) -> ChatSession:
    if factory is None:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=MISSING_KEY_MESSAGE)

    start_time = time.monotonic()
    try:
        instruction = build_system_instruction(_read_journey(journey_path))
        chat = factory.create_chat(instruction)
    except Exception as e:
        logger.exception("Chat initialization error")
        if INVALID_KEY_MARKER in str(e):
            detail = "API 金鑰無效。請檢查 API 金鑰設定。"
        else:
            detail = f"初始化聊天失敗：{e}"
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail)

    session_id = store.create(chat)
    log_data = {
        "ts": datetime.utcnow().isoformat(),
        "tool": "gemini",
        "fn": "create_chat",
        "latency_ms": f"{(time.monotonic() - start_time) * 1000:.2f}",
        "ok": True,
        "active_sessions": len(store),
    }
    logger.info(json.dumps(log_data))
    return ChatSession(sessionId=session_id)


async def _locked_reply(entry: SessionEntry, message: str):
    async with entry.lock:
        async for frame in stream_reply(entry.chat, message):
            yield frame


@router.post("/send")
async def send_message(
    request: Request,
    factory: Optional[GeminiChatFactory] = Depends(get_chat_factory),
    store: SessionStore = Depends(get_session_store),
):
    if factory is None:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=MISSING_KEY_MESSAGE)

    try:
        body = SendMessageRequest.model_validate(await request.json())
    except (ValueError, ValidationError) as e:
        logger.error("Send message error: %s", e)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="發送訊息時發生錯誤。")

    if not body.sessionId or not body.message:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="缺少必要的參數。")

    entry = store.get(body.sessionId) if isinstance(body.sessionId, str) else None
    if entry is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="聊天會話已過期，請重新初始化。")

    return StreamingResponse(
        _locked_reply(entry, str(body.message)),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
