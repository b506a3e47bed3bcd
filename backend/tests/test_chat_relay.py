"""Tests du relais de conversation : réassemblage du flux et persona."""

import json

import httpx
import pytest
from bson import ObjectId

from conftest import FakeGateway
from gardiens.core.errors import CommunicationFailure, InsufficientCredits, RateLimited
from gardiens.models.chat import ChatTurn, UserProgress
from gardiens.services.ai_gateway import AIGatewayClient
from gardiens.services.chat_relay import NarrativeChatRelay, SSELineBuffer, build_system_prompt

DELTAS = ["Bien", "venue, Gardienne ", "de l'", "Eau 🌊", " : cherchez le mascaron… ", "éclairé."]


def _sse_body(deltas=DELTAS, done=True):
    lines = [": keep-alive", ""]
    for delta in deltas:
        frame = {"choices": [{"delta": {"content": delta}}]}
        lines.append(f"data: {json.dumps(frame, ensure_ascii=False)}\r")
        lines.append("")
    if done:
        lines.append("data: [DONE]")
        lines.append("")
    return "\n".join(lines).encode("utf-8")


def _split(data, size):
    return [data[i:i + size] for i in range(0, len(data), size)]


async def _collect(relay, **kwargs):
    conversation = kwargs.pop("conversation", [ChatTurn(role="user", content="Un indice ?")])
    progress = kwargs.pop("progress", UserProgress(currentDay=1, keys=["eau"]))
    return [text async for text in relay.stream_reply(conversation, progress, **kwargs)]


class TestSSELineBuffer:
    def test_unsplit_stream(self):
        buffer = SSELineBuffer()
        assert buffer.feed(_sse_body()) == DELTAS
        assert buffer.done is True

    @pytest.mark.parametrize("size", [1, 2, 3, 5, 7, 64])
    def test_arbitrary_chunk_boundaries(self, size):
        buffer = SSELineBuffer()
        deltas = []
        for chunk in _split(_sse_body(), size):
            deltas += buffer.feed(chunk)
        assert "".join(deltas) == "".join(DELTAS)

    def test_trailing_line_without_newline(self):
        body = _sse_body(done=False) + b'data: {"choices":[{"delta":{"content":"fin"}}]}'
        buffer = SSELineBuffer()
        deltas = buffer.feed(body)
        assert deltas == DELTAS
        assert buffer.flush() == ["fin"]

    def test_ignores_non_data_and_role_only_frames(self):
        body = b'event: ping\n\ndata: {"choices":[{"delta":{"role":"assistant"}}]}\n\ndata: {"choices":[{"delta":{"content":"ok"}}]}\n'
        assert SSELineBuffer().feed(body) == ["ok"]

    def test_nothing_after_done(self):
        body = b'data: [DONE]\ndata: {"choices":[{"delta":{"content":"trop tard"}}]}\n'
        buffer = SSELineBuffer()
        assert buffer.feed(body) == []
        assert buffer.flush() == []


class TestNarrativeChatRelay:
    @pytest.mark.asyncio
    async def test_yields_cumulative_text(self):
        relay = NarrativeChatRelay(FakeGateway(chunks=[_sse_body()]))
        texts = await _collect(relay)

        assert len(texts) == len(DELTAS)
        assert texts[0] == DELTAS[0]
        assert texts[-1] == "".join(DELTAS)
        assert all(later.startswith(earlier) for earlier, later in zip(texts, texts[1:]))

    @pytest.mark.asyncio
    @pytest.mark.parametrize("size", [1, 4, 13])
    async def test_split_stream_matches_unsplit(self, size):
        whole = await _collect(NarrativeChatRelay(FakeGateway(chunks=[_sse_body()])))
        split = await _collect(NarrativeChatRelay(FakeGateway(chunks=_split(_sse_body(), size))))
        assert split[-1] == whole[-1]

    @pytest.mark.asyncio
    async def test_system_persona_first(self):
        gateway = FakeGateway(chunks=[_sse_body()])
        await _collect(NarrativeChatRelay(gateway), progress=UserProgress(currentDay=2, keys=["eau", "temps"]))

        messages = gateway.calls[0]
        assert messages[0]["role"] == "system"
        assert "Jour du parcours: 2/3" in messages[0]["content"]
        assert "Clés collectées: eau, temps" in messages[0]["content"]
        assert messages[1] == {"role": "user", "content": "Un indice ?"}

    def test_persona_without_keys(self):
        assert "Clés collectées: aucune" in build_system_prompt(UserProgress())

    @pytest.mark.asyncio
    async def test_empty_body(self):
        with pytest.raises(CommunicationFailure):
            await _collect(NarrativeChatRelay(FakeGateway(chunks=[])))

    @pytest.mark.asyncio
    async def test_persists_history(self, mock_db):
        user_id = ObjectId()
        relay = NarrativeChatRelay(FakeGateway(chunks=[_sse_body()]), mock_db)
        await _collect(relay, user_id=user_id)

        history = mock_db.chat_messages.docs
        assert [m["role"] for m in history] == ["user", "assistant"]
        assert history[0]["content"] == "Un indice ?"
        assert history[1]["content"] == "".join(DELTAS)

    @pytest.mark.asyncio
    async def test_abandoned_stream_is_not_persisted(self, mock_db):
        relay = NarrativeChatRelay(FakeGateway(chunks=_split(_sse_body(), 8)), mock_db)
        replies = relay.stream_reply([ChatTurn(role="user", content="?")], UserProgress(), user_id=ObjectId())
        await replies.__anext__()
        await replies.aclose()

        assert mock_db.chat_messages.docs == []


class TestGatewayStream:
    def _relay(self, settings, handler):
        return NarrativeChatRelay(AIGatewayClient(settings, transport=httpx.MockTransport(handler)))

    @pytest.mark.asyncio
    async def test_streams_through_http(self, settings):
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, content=_sse_body(), headers={"content-type": "text/event-stream"})

        texts = await _collect(self._relay(settings, handler))
        assert texts[-1] == "".join(DELTAS)
        assert seen["body"]["stream"] is True
        assert seen["body"]["model"] == settings.ai_model

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status_code, exc",
        [(429, RateLimited), (402, InsufficientCredits), (503, CommunicationFailure)],
    )
    async def test_error_statuses(self, settings, status_code, exc):
        relay = self._relay(settings, lambda request: httpx.Response(status_code, json={"error": "x"}))
        with pytest.raises(exc):
            await _collect(relay)
