import asyncio
import json

import pytest

from chat_server.deps import get_chat_factory, get_journey_path
from chat_server.main import app
from chat_server.routers.chat import _locked_reply
from chat_server.sessions import SessionEntry

from conftest import FakeChat, FakeChatFactory, FakeChunk, grounded_candidate, web_chunk


def _events(resp) -> list:
    out = []
    for line in resp.text.split("\n"):
        if line.startswith("data: "):
            out.append(json.loads(line[len("data: "):]))
    return out


def _init(client) -> str:
    r = client.post("/api/chat/init")
    assert r.status_code == 200, r.text
    return r.json()["sessionId"]


def test_health(client):
    r = client.get("/")
    assert r.status_code == 200
    assert r.json() == {"status": "ok", "sessions": 0}


def test_init_creates_session_with_journey_instruction(client, fake_factory):
    sid = _init(client)
    assert sid
    assert client.get("/").json()["sessions"] == 1
    instruction = fake_factory.instructions[-1]
    assert "淺草豪景酒店" in instruction
    assert "請根據用戶的具體行程安排" in instruction


def test_init_without_journey_file_still_works(client, fake_factory, tmp_path):
    app.dependency_overrides[get_journey_path] = lambda: tmp_path / "missing.txt"
    _init(client)
    assert "行程資訊" not in fake_factory.instructions[-1]


def test_init_without_api_key(client):
    app.dependency_overrides[get_chat_factory] = lambda: None
    r = client.post("/api/chat/init")
    assert r.status_code == 500
    assert r.json() == {"error": "API 金鑰未設定。請聯繫開發者。"}


@pytest.mark.parametrize(
    "error, expected",
    [
        (RuntimeError("API key not valid"), "API 金鑰無效。請檢查 API 金鑰設定。"),
        (RuntimeError("model not found"), "初始化聊天失敗：model not found"),
    ],
)
def test_init_upstream_failure(client, error, expected):
    app.dependency_overrides[get_chat_factory] = lambda: FakeChatFactory(error=error)
    r = client.post("/api/chat/init")
    assert r.status_code == 500
    assert r.json() == {"error": expected}


def test_send_streams_text_sources_and_complete(client, fake_factory):
    fake_factory.chat.replies = [[
        FakeChunk("推薦"),
        FakeChunk("[[淺草寺]]", [grounded_candidate(web_chunk("https://www.senso-ji.jp/", "淺草寺"))]),
    ]]
    sid = _init(client)

    r = client.post("/api/chat/send", json={"sessionId": sid, "message": "淺草有什麼好玩？"})
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/event-stream")
    assert r.headers["cache-control"] == "no-cache"
    assert r.headers["access-control-allow-origin"] == "*"
    assert _events(r) == [
        {"type": "text", "content": "推薦"},
        {"type": "text", "content": "[[淺草寺]]"},
        {"type": "sources", "content": [{"uri": "https://www.senso-ji.jp/", "title": "淺草寺"}]},
        {"type": "complete"},
    ]
    assert fake_factory.chat.sent == ["淺草有什麼好玩？"]


def test_send_keeps_conversation_on_same_chat(client, fake_factory):
    fake_factory.chat.replies = [[FakeChunk("一")], [FakeChunk("二")]]
    sid = _init(client)
    first = client.post("/api/chat/send", json={"sessionId": sid, "message": "Q1"})
    second = client.post("/api/chat/send", json={"sessionId": sid, "message": "Q2"})
    assert _events(first)[0]["content"] == "一"
    assert _events(second)[0]["content"] == "二"
    assert fake_factory.chat.sent == ["Q1", "Q2"]


def test_concurrent_sends_on_one_session_do_not_interleave():
    chat = FakeChat(replies=[[FakeChunk("a1"), FakeChunk("a2")], [FakeChunk("b1"), FakeChunk("b2")]], delay=0.01)
    entry = SessionEntry(chat=chat)

    async def consume(message):
        async for frame in _locked_reply(entry, message):
            event = json.loads(frame[len("data: "):])
            chat.events.append(event.get("content", event["type"]))

    async def run():
        await asyncio.gather(consume("Q1"), consume("Q2"))

    asyncio.run(run())
    assert chat.events == ["send:Q1", "a1", "a2", "complete", "send:Q2", "b1", "b2", "complete"]
    assert not entry.lock.locked()


def test_send_upstream_error_becomes_error_frame(client, fake_factory):
    fake_factory.chat.send_error = RuntimeError("boom")
    sid = _init(client)
    r = client.post("/api/chat/send", json={"sessionId": sid, "message": "hi"})
    assert r.status_code == 200
    assert _events(r) == [{"type": "error", "content": "與 AI 溝通時發生串流錯誤：boom"}]


@pytest.mark.parametrize(
    "body",
    [
        {"message": "hi"},
        {"sessionId": "abc"},
        {"sessionId": "", "message": "hi"},
        {"sessionId": "abc", "message": ""},
    ],
)
def test_send_missing_parameters(client, body):
    r = client.post("/api/chat/send", json=body)
    assert r.status_code == 400
    assert r.json() == {"error": "缺少必要的參數。"}


def test_send_unknown_session(client):
    r = client.post("/api/chat/send", json={"sessionId": "nope", "message": "hi"})
    assert r.status_code == 404
    assert r.json() == {"error": "聊天會話已過期，請重新初始化。"}


@pytest.mark.parametrize("session_id", [123, ["abc"], {"id": "abc"}])
def test_send_non_string_session_is_unknown(client, session_id):
    _init(client)
    r = client.post("/api/chat/send", json={"sessionId": session_id, "message": "hi"})
    assert r.status_code == 404
    assert r.json() == {"error": "聊天會話已過期，請重新初始化。"}


def test_send_malformed_body(client):
    r = client.post("/api/chat/send", content=b"not json", headers={"Content-Type": "application/json"})
    assert r.status_code == 500
    assert r.json() == {"error": "發送訊息時發生錯誤。"}


def test_send_without_api_key(client):
    app.dependency_overrides[get_chat_factory] = lambda: None
    r = client.post("/api/chat/send", json={"sessionId": "x", "message": "hi"})
    assert r.status_code == 500
    assert r.json() == {"error": "API 金鑰未設定。請聯繫開發者。"}


def test_journey_summary(client):
    r = client.get("/api/journey/summary")
    assert r.status_code == 200
    data = r.json()
    assert data["success"] is True
    assert data["message"] == "行程摘要讀取成功"
    assert "error" not in data
    summary = data["summary"]
    assert summary["hotel"] == "淺草豪景酒店"
    assert set(summary["flights"]) == {"departure", "return"}
    assert summary["dates"][0].startswith("12/20(五)")
    assert summary["dailyPlans"][0]["activities"]


def test_journey_summary_missing_file(client, tmp_path):
    app.dependency_overrides[get_journey_path] = lambda: tmp_path / "missing.txt"
    r = client.get("/api/journey/summary")
    assert r.status_code == 500
    assert r.json() == {
        "success": False,
        "error": "無法讀取行程資訊",
        "message": "請確認 journey.txt 文件存在且格式正確",
    }
