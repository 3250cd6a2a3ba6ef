"""Gemini chat sessions and the SSE relay for streamed replies."""

from __future__ import annotations

import json
import logging
import time
from datetime import datetime
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional

import google.generativeai as genai
from google.generativeai.types import content_types

from .schemas import GroundingSource


logger = logging.getLogger(__name__)


BASE_SYSTEM_INSTRUCTION = (
    "你是一位專為計劃前往東京市區旅遊的台灣遊客提供協助的 AI 旅遊顧問。請務必使用繁體中文回答。"
    "你的回答應該友善、口語化、實用，並且盡可能包含當地人才知道的實用秘訣或建議。\n"
    "當你提到一個明確的地點、地標、車站、公園、餐廳、商店或區域時，請用雙中括號將其包起來，"
    "例如：`[[東京晴空塔]]` 或 `[[新宿御苑]]` 或 `[[澀谷站]]` 或 `[[一蘭拉麵 新宿店]]`。"
    "這樣使用者可以快速識別重要的地點資訊。\n\n"
    "請針對以下主題提供建議：\n"
    "- 交通方式與路線規劃\n"
    "- 美食推薦（包括平價選擇）\n"
    "- 購物地點與商品\n"
    "- 觀光景點與活動\n"
    "- 住宿建議\n"
    "- 實用的旅遊小撇步\n"
    "- 文化禮儀與注意事項\n"
    "- 當地生活體驗\n\n"
    "當問題涉及需要最新資訊的情況（例如：特定活動日期、商家目前營業時間、即時匯率、天氣預報等），"
    "請優先運用 Google Search 工具來查找並提供最準確的答案，同時附上資訊來源網址。\n\n"
    "如果使用者詢問東京以外的地區，請友善地提醒你專精於東京市區旅遊，並建議他們將問題聚焦在東京相關內容上。"
)

JOURNEY_PREAMBLE = "\n\n**重要：以下是用戶的詳細行程資訊，請仔細閱讀並在回答時參考這些資訊：**\n\n"

JOURNEY_GUIDANCE = (
    "\n\n請根據用戶的具體行程安排（包括日期、住宿飯店、航班時間、已規劃的景點等）來提供個人化的建議。特別注意：\n"
    "- 根據用戶的住宿位置推薦附近的景點和餐廳\n"
    "- 考慮用戶的航班時間和行程安排\n"
    "- 參考用戶已規劃的景點，避免重複推薦\n"
    "- 根據用戶的興趣和已列出的偏好提供建議\n"
    "- 如果用戶詢問的景點或時間與行程衝突，請主動提醒"
)

INVALID_KEY_MARKER = "API key not valid"


def build_system_instruction(journey_text: str = "") -> str:
    instruction = BASE_SYSTEM_INSTRUCTION
    if journey_text.strip():
        instruction += JOURNEY_PREAMBLE + journey_text + JOURNEY_GUIDANCE
    return instruction


class GoogleSearchTool(content_types.Tool):
    """Search grounding for Gemini 2.x models.

    The SDK rebuilds plain ``protos.Tool`` values field by field and loses
    ``google_search`` on the way; ``Tool`` instances are passed through as-is.
    """

    def __init__(self) -> None:
        super().__init__()
        self._proto = genai.protos.Tool(google_search=genai.protos.Tool.GoogleSearch())


def _grounding_tools(name: str) -> Optional[list]:
    # Gemini 2.x models only accept google_search; 1.5 models need google_search_retrieval.
    if name == "google_search":
        return [GoogleSearchTool()]
    if name == "google_search_retrieval":
        return ["google_search_retrieval"]
    return None


class GeminiChatFactory:
    """Creates upstream chat sessions that keep their own conversation history."""

    def __init__(self, api_key: str, model_name: str, grounding_tool: str = "google_search") -> None:
        if not api_key:
            raise ValueError("Gemini API key is required")
        genai.configure(api_key=api_key)
        self.model_name = model_name
        self.tools = _grounding_tools(grounding_tool)

    def create_chat(self, system_instruction: str) -> genai.ChatSession:
        model = genai.GenerativeModel(
            self.model_name,
            system_instruction=system_instruction,
            tools=self.tools,
        )
        return model.start_chat()


# --- Response chunk helpers ---

def _field(obj: Any, *names: str) -> Any:
    """Read the first present field from an SDK object or a plain dict."""
    if obj is None:
        return None
    for name in names:
        if isinstance(obj, dict):
            value = obj.get(name)
        else:
            value = getattr(obj, name, None)
        if value is not None:
            return value
    return None


def _chunk_text(chunk: Any) -> str:
    if isinstance(chunk, dict):
        return chunk.get("text") or ""
    try:
        return chunk.text or ""
    except ValueError:
        # Metadata-only chunks have no text part and the SDK refuses the accessor.
        return ""


def _grounding_chunks(candidate: Any) -> List[Any]:
    metadata = _field(candidate, "grounding_metadata", "groundingMetadata")
    chunks = _field(metadata, "grounding_chunks", "groundingChunks")
    return list(chunks) if chunks else []


def extract_sources(chunks: Optional[Iterable[Any]]) -> List[GroundingSource]:
    if not chunks:
        return []

    sources: List[GroundingSource] = []
    for chunk in chunks:
        web = _field(chunk, "web")
        uri = _field(web, "uri")
        if uri:
            title = _field(web, "title")
            sources.append(GroundingSource(uri=uri, title=title or uri))
    return sources


def sse_frame(payload: Dict[str, Any]) -> str:
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


def stream_error_message(exc: Exception) -> str:
    message = str(exc)
    if INVALID_KEY_MARKER in message:
        return "API 金鑰無效。請檢查您的 API 金鑰設定。"
    return f"與 AI 溝通時發生串流錯誤：{message}"


async def stream_reply(chat: Any, message: str) -> AsyncIterator[str]:
    """Relay one upstream reply as text, sources and complete frames, or a single error frame."""
    start_time = time.monotonic()
    text_chunks = 0
    grounded_candidate = None

    try:
        response = await chat.send_message_async(message, stream=True)
        async for chunk in response:
            text = _chunk_text(chunk)
            if text:
                text_chunks += 1
                yield sse_frame({"type": "text", "content": text})

            candidates = _field(chunk, "candidates")
            if candidates:
                candidate = candidates[0]
                if _grounding_chunks(candidate):
                    grounded_candidate = candidate

        sources = extract_sources(_grounding_chunks(grounded_candidate)) if grounded_candidate is not None else []
        if sources:
            yield sse_frame({"type": "sources", "content": [s.model_dump() for s in sources]})
        yield sse_frame({"type": "complete"})
        ok = True
    except Exception as e:
        logger.exception("Gemini stream error")
        yield sse_frame({"type": "error", "content": stream_error_message(e)})
        ok = False

    log_data = {
        "ts": datetime.utcnow().isoformat(),
        "tool": "gemini",
        "fn": "send_message_stream",
        "latency_ms": f"{(time.monotonic() - start_time) * 1000:.2f}",
        "ok": ok,
        "text_chunks": text_chunks,
    }
    logger.info(json.dumps(log_data))
