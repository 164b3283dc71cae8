"""
Tests for streaming text coaching.
"""

import json

import pytest
from fastapi.testclient import TestClient

from coachline.api.dependencies import settings
from coachline.coaching.chat import ChatService, sse_event
from coachline.coaching.personality import BUILTIN_SYSTEM_PROMPT, PersonalityResolver
from coachline.coaching.usage import UsageLimiter
from coachline.db.repositories import PersonalityRepository, UsageRepository
from coachline.exceptions import CoachingError, ErrorKind
from coachline.llm.providers.base import ChatMessage
from tests.fakes import USER_ID, FakeLLMProvider


def _events(frames) -> list[dict]:
    events = []
    for frame in frames:
        assert frame.startswith("data: ") and frame.endswith("\n\n")
        events.append(json.loads(frame[len("data: ") :]))
    return events


def _parse_stream(body: str) -> list[dict]:
    return [
        json.loads(block[len("data: ") :]) for block in body.split("\n\n") if block
    ]


@pytest.fixture
def resolver(db_session, voice_platform) -> PersonalityResolver:
    return PersonalityResolver(PersonalityRepository(db_session), voice_platform)


def _service(usage_limiter, resolver, context_builder, provider) -> ChatService:
    return ChatService(usage_limiter, resolver, context_builder, provider)


class TestSseEvent:
    def test_frame_format(self):
        """Test the server-sent event frame encoding."""
        assert sse_event({"type": "chunk", "content": "hi"}) == (
            'data: {"type": "chunk", "content": "hi"}\n\n'
        )


class TestChatStart:
    """Tests for ChatService.start."""

    @pytest.mark.asyncio
    async def test_builds_system_prompt(
        self, usage_limiter, resolver, context_builder, llm_provider
    ):
        """Test that the system prompt combines personality and context."""
        service = _service(usage_limiter, resolver, context_builder, llm_provider)

        turn = await service.start(
            USER_ID,
            "I feel stuck",
            history=[ChatMessage(role="assistant", content="How are you?")],
        )

        assert turn.system_prompt.startswith(BUILTIN_SYSTEM_PROMPT)
        assert "=== USER CONTEXT FOR AI COACHING ===" in turn.system_prompt
        assert [m.role for m in turn.messages] == ["assistant", "user"]
        assert turn.messages[-1].content == "I feel stuck"
        assert turn.usage.allowed is True

    @pytest.mark.asyncio
    async def test_takes_one_chat_unit(
        self, usage_limiter, resolver, context_builder, llm_provider
    ):
        """Test that each chat request consumes one unit of allowance."""
        service = _service(usage_limiter, resolver, context_builder, llm_provider)

        first = await service.start(USER_ID, "hello")
        second = await service.start(USER_ID, "hello again")

        assert second.usage.remaining == first.usage.remaining - 1

    @pytest.mark.asyncio
    async def test_rate_limited(self, db_session, resolver, context_builder, llm_provider):
        limiter = UsageLimiter(UsageRepository(db_session), limits={"chat": 0})
        service = _service(limiter, resolver, context_builder, llm_provider)

        with pytest.raises(CoachingError) as exc_info:
            await service.start(USER_ID, "hello")

        assert exc_info.value.kind == ErrorKind.RATE_LIMIT_EXCEEDED
        assert exc_info.value.message.startswith("Chat rate limit exceeded")
        assert llm_provider.requests == []


class TestChatStream:
    """Tests for the SSE frames produced by ChatService.stream."""

    @pytest.mark.asyncio
    async def test_session_chunks_done(
        self, usage_limiter, resolver, context_builder, llm_provider
    ):
        """Test the event order of a successful stream."""
        service = _service(usage_limiter, resolver, context_builder, llm_provider)
        turn = await service.start(USER_ID, "hello")

        events = _events([frame async for frame in service.stream(turn)])

        assert [e["type"] for e in events] == [
            "session",
            "chunk",
            "chunk",
            "chunk",
            "done",
        ]
        assert events[0]["turnId"] == turn.turn_id
        assert events[0]["userMessage"]["content"] == "hello"
        assert "remaining" in events[0]["usageInfo"]
        assert [e["content"] for e in events[1:4]] == ["Hello", ", ", "friend."]
        assert events[-1]["assistantMessage"]["content"] == "Hello, friend."

    @pytest.mark.asyncio
    async def test_provider_failure_ends_with_error(
        self, usage_limiter, resolver, context_builder
    ):
        """Test that a provider failure ends the stream with an error event."""
        provider = FakeLLMProvider(fail_after=1)
        service = _service(usage_limiter, resolver, context_builder, provider)
        turn = await service.start(USER_ID, "hello")

        events = _events([frame async for frame in service.stream(turn)])

        assert [e["type"] for e in events] == ["session", "chunk", "error"]
        assert events[-1]["message"] == "model overloaded"

    @pytest.mark.asyncio
    async def test_not_configured(self, usage_limiter, resolver, context_builder):
        """Test the stream when no LLM provider is configured."""
        service = _service(usage_limiter, resolver, context_builder, None)
        turn = await service.start(USER_ID, "hello")

        events = _events([frame async for frame in service.stream(turn)])

        assert [e["type"] for e in events] == ["session", "error"]
        assert events[-1]["message"] == "Text coaching is not configured"

    @pytest.mark.asyncio
    async def test_stops_when_client_disconnects(
        self, usage_limiter, resolver, context_builder, llm_provider
    ):
        """Test that streaming stops once the client goes away."""
        service = _service(usage_limiter, resolver, context_builder, llm_provider)
        turn = await service.start(USER_ID, "hello")
        checks = []

        async def is_disconnected() -> bool:
            checks.append(1)
            return len(checks) > 1

        events = _events(
            [frame async for frame in service.stream(turn, is_disconnected)]
        )

        assert [e["type"] for e in events] == ["session", "chunk"]


class TestChatApi:
    """Tests for POST /chat/message/stream."""

    def test_streams_reply(self, api_client: TestClient, auth_headers, llm_provider):
        """Test streaming a reply over the chat endpoint."""
        response = api_client.post(
            "/chat/message/stream",
            json={"message": "I finished the report", "history": []},
            headers=auth_headers,
        )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        events = _parse_stream(response.text)
        assert events[0]["type"] == "session"
        assert events[-1]["type"] == "done"
        assert events[-1]["assistantMessage"]["content"] == "Hello, friend."
        (system_prompt, messages) = llm_provider.requests[0]
        assert messages[-1].content == "I finished the report"

    def test_rate_limited_before_streaming(
        self, api_client: TestClient, auth_headers, monkeypatch
    ):
        """Test that rate limiting returns 429 before a stream opens."""
        monkeypatch.setitem(settings.usage_limits, "chat", 0)

        response = api_client.post(
            "/chat/message/stream", json={"message": "hello"}, headers=auth_headers
        )

        assert response.status_code == 429
        assert response.json()["errorCode"] == "RATE_LIMIT_EXCEEDED"

    def test_empty_message_rejected(self, api_client: TestClient, auth_headers):
        response = api_client.post(
            "/chat/message/stream", json={"message": ""}, headers=auth_headers
        )

        assert response.status_code == 422
