"""
Tests for the ElevenLabs client and retry helpers.
"""

import httpx
import pytest

from coachline.exceptions import CoachingError, ErrorKind
from coachline.voice.client import AgentConfig, ElevenLabsClient, VoiceSettings
from coachline.voice.retry import (
    NonRetryableError,
    RetryableError,
    RetryConfig,
    calculate_delay,
    check_response,
    retry_async,
)

NO_WAIT = RetryConfig(max_retries=2, initial_delay=0, jitter=False)


def _client(handler, retry_config: RetryConfig = NO_WAIT) -> ElevenLabsClient:
    return ElevenLabsClient(
        api_key="xi-test",
        base_url="https://voice.test",
        retry_config=retry_config,
        transport=httpx.MockTransport(handler),
    )


class TestAgentConfig:
    def test_payload_with_voice(self):
        """Test the agent payload with voice settings."""
        config = AgentConfig(
            name="Supportive Coach",
            prompt="Be kind.",
            first_message="Hi!",
            voice=VoiceSettings("voice-1", stability=0.6, similarity_boost=0.75),
        )

        payload = config.to_payload()

        agent = payload["conversation_config"]["agent"]
        assert payload["name"] == "Supportive Coach"
        assert agent["prompt"] == {"prompt": "Be kind."}
        assert agent["first_message"] == "Hi!"
        assert agent["tts"]["voice_id"] == "voice-1"
        assert agent["tts"]["stability"] == 0.6

    def test_payload_defaults(self):
        agent = AgentConfig(name="Coach", prompt="p").to_payload()[
            "conversation_config"
        ]["agent"]

        assert agent["first_message"]
        assert agent["language"] == "en"
        assert "tts" not in agent


class TestElevenLabsClient:
    """Tests for ElevenLabsClient against a mock transport."""

    @pytest.mark.asyncio
    async def test_get_signed_url(self):
        """Test fetching a signed URL with the API key header."""
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"signed_url": "wss://voice.test/s?t=1"})

        client = _client(handler)
        url = await client.get_signed_url("agent-1")
        await client.aclose()

        assert url == "wss://voice.test/s?t=1"
        assert seen[0].url.params["agent_id"] == "agent-1"
        assert seen[0].headers["xi-api-key"] == "xi-test"

    @pytest.mark.asyncio
    async def test_retries_server_errors(self):
        """Test that a transient 5xx is retried until success."""
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            if len(attempts) < 3:
                return httpx.Response(503, text="busy")
            return httpx.Response(200, json={"signed_url": "wss://ok"})

        client = _client(handler)

        assert await client.get_signed_url("agent-1") == "wss://ok"
        assert len(attempts) == 3

    @pytest.mark.asyncio
    async def test_exhausted_retries_map_status_message(self):
        """Test the user-facing message after retries run out."""
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(429, text="slow down")

        client = _client(handler)

        with pytest.raises(CoachingError) as exc_info:
            await client.get_signed_url("agent-1")

        assert exc_info.value.kind == ErrorKind.VOICE_PLATFORM_ERROR
        assert "Rate limit exceeded" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_client_errors_are_not_retried(self):
        """Test that a 4xx response fails after one attempt."""
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            return httpx.Response(404, text="missing")

        client = _client(handler)

        with pytest.raises(CoachingError) as exc_info:
            await client.get_signed_url("agent-1")

        assert len(attempts) == 1
        assert "Voice agent not found" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_missing_signed_url(self):
        client = _client(lambda request: httpx.Response(200, json={}))

        with pytest.raises(CoachingError) as exc_info:
            await client.get_signed_url("agent-1")

        assert exc_info.value.message == "Voice platform error: No signed URL in response"

    @pytest.mark.asyncio
    async def test_validate_agent(self):
        """Test agent validation for existing and missing agents."""
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/good"):
                return httpx.Response(200, json={"agent_id": "good"})
            return httpx.Response(404)

        client = _client(handler)

        assert await client.validate_agent("good") is True
        assert await client.validate_agent("bad") is False

    @pytest.mark.asyncio
    async def test_create_agent(self):
        bodies = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(request.read())
            return httpx.Response(200, json={"agent_id": "new-agent"})

        client = _client(handler)

        agent_id = await client.create_agent(AgentConfig(name="Coach", prompt="p"))

        assert agent_id == "new-agent"
        assert b'"name":"Coach"' in bodies[0].replace(b" ", b"")

    @pytest.mark.asyncio
    async def test_create_agent_is_attempted_once(self):
        """Test that a failed agent creation is not sent again."""
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            return httpx.Response(503, text="unavailable")

        client = _client(handler)

        with pytest.raises(CoachingError) as exc_info:
            await client.create_agent(AgentConfig(name="Coach", prompt="p"))

        assert len(attempts) == 1
        assert "temporarily unavailable" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_create_agent_network_error_is_not_retried(self):
        """Test that a lost agent creation request is not resent."""
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            raise httpx.ReadTimeout("timed out", request=request)

        client = _client(handler)

        with pytest.raises(CoachingError):
            await client.create_agent(AgentConfig(name="Coach", prompt="p"))

        assert len(attempts) == 1

    @pytest.mark.asyncio
    async def test_network_errors_are_retried(self):
        """Test that connection errors are retried."""
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            raise httpx.ConnectError("refused", request=request)

        client = _client(handler)

        with pytest.raises(CoachingError):
            await client.get_signed_url("agent-1")

        assert len(attempts) == 3


class TestRetryHelpers:
    """Tests for retry_async, check_response and calculate_delay."""

    def test_delay_grows_exponentially(self):
        """Test the backoff delay growth."""
        config = RetryConfig(initial_delay=1.0, jitter=False)

        assert [calculate_delay(i, config) for i in range(3)] == [1.0, 2.0, 4.0]

    def test_delay_is_capped(self):
        config = RetryConfig(initial_delay=10.0, max_delay=15.0, jitter=False)

        assert calculate_delay(5, config) == 15.0

    def test_check_response_classifies(self):
        """Test classification of retryable and non-retryable statuses."""
        request = httpx.Request("GET", "https://voice.test")
        config = RetryConfig()

        check_response(httpx.Response(200, request=request), config)
        with pytest.raises(RetryableError):
            check_response(httpx.Response(502, request=request), config)
        with pytest.raises(NonRetryableError):
            check_response(httpx.Response(401, request=request), config)

    @pytest.mark.asyncio
    async def test_non_retryable_raises_immediately(self):
        calls = []

        async def operation():
            calls.append(1)
            raise NonRetryableError("bad request", status_code=400)

        with pytest.raises(NonRetryableError):
            await retry_async(operation, NO_WAIT)

        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_returns_after_transient_failure(self):
        calls = []

        async def operation():
            calls.append(1)
            if len(calls) == 1:
                raise RetryableError("flaky", status_code=500)
            return "ok"

        assert await retry_async(operation, NO_WAIT) == "ok"
