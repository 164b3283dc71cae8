"""
Conversational voice platform client.

Talks to the ElevenLabs Conversational AI REST API: signed WebSocket URLs
for client sessions, agent lookup and agent provisioning.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import Any, Optional

import httpx

from coachline.exceptions import CoachingError
from coachline.voice.retry import (
    NonRetryableError,
    RetryableError,
    RetryConfig,
    check_response,
    retry_async,
)

logger = logging.getLogger(__name__)

DEFAULT_TTS_MODEL = "eleven_turbo_v2_5"
DEFAULT_FIRST_MESSAGE = "Hello! How can I help you today?"

# User-facing messages by upstream status
_STATUS_MESSAGES = {
    429: "Rate limit exceeded. Please try again in a few minutes.",
    401: "Authentication failed. Please contact support.",
    404: "Voice agent not found. Please contact support.",
    503: "Service is temporarily unavailable. Please try again later.",
}


@dataclass
class VoiceSettings:
    voice_id: str
    stability: Optional[float] = None
    similarity_boost: Optional[float] = None

    def to_tts(self) -> dict[str, Any]:
        tts: dict[str, Any] = {"voice_id": self.voice_id}
        if self.stability is not None:
            tts["stability"] = self.stability
        if self.similarity_boost is not None:
            tts["similarity_boost"] = self.similarity_boost
        return tts


@dataclass
class AgentConfig:
    """Everything needed to provision a conversational agent."""

    name: str
    prompt: str
    first_message: Optional[str] = None
    language: str = "en"
    voice: Optional[VoiceSettings] = None

    def to_payload(self) -> dict[str, Any]:
        agent: dict[str, Any] = {
            "prompt": {"prompt": self.prompt},
            "first_message": self.first_message or DEFAULT_FIRST_MESSAGE,
            "language": self.language or "en",
        }
        if self.voice and self.voice.voice_id:
            agent["tts"] = {**self.voice.to_tts(), "model_id": DEFAULT_TTS_MODEL}
        return {"name": self.name, "conversation_config": {"agent": agent}}


class VoicePlatform(ABC):
    """Operations the coaching services need from the voice platform."""

    @abstractmethod
    async def get_signed_url(self, agent_id: str) -> str:
        """Issue a short-lived connection URL for an agent."""

    @abstractmethod
    async def validate_agent(self, agent_id: str) -> bool:
        """True if the agent exists and is reachable."""

    @abstractmethod
    async def create_agent(self, config: AgentConfig) -> str:
        """Provision an agent and return its id."""

    async def aclose(self) -> None:
        return None


class ElevenLabsClient(VoicePlatform):
    """
    httpx-based client for the ElevenLabs Conversational AI API.

    Args:
        api_key: ElevenLabs API key (sent as ``xi-api-key``)
        base_url: API root
        timeout: Per-request timeout in seconds
        retry_config: Backoff settings for retryable failures
        transport: Optional httpx transport (tests use httpx.MockTransport)
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.elevenlabs.io",
        timeout: float = 30.0,
        retry_config: Optional[RetryConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not api_key:
            logger.warning("ElevenLabs API key not configured")
        self.retry_config = retry_config or RetryConfig()
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers={"xi-api-key": api_key},
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        operation: str,
        retry: bool = True,
        **kwargs: Any,
    ) -> httpx.Response:
        # Non-idempotent calls get a single attempt
        config = (
            self.retry_config if retry else replace(self.retry_config, max_retries=0)
        )

        async def attempt() -> httpx.Response:
            response = await self._client.request(method, path, **kwargs)
            check_response(response, config)
            return response

        try:
            return await retry_async(attempt, config, name=operation)
        except (RetryableError, NonRetryableError) as e:
            message = _STATUS_MESSAGES.get(
                e.status_code, f"Failed to {operation}: {e}"
            )
            logger.error(f"Voice platform {operation} failed: {e}")
            raise CoachingError.voice_platform(message, cause=e) from e

    async def get_signed_url(self, agent_id: str) -> str:
        logger.info(f"Generating signed URL for agent: {agent_id}")
        response = await self._request(
            "GET",
            "/v1/convai/conversation/get-signed-url",
            "generate signed URL",
            params={"agent_id": agent_id},
        )
        signed_url = response.json().get("signed_url")
        if not signed_url:
            raise CoachingError.voice_platform("No signed URL in response")
        return signed_url

    async def get_agent(self, agent_id: str) -> dict[str, Any]:
        response = await self._request(
            "GET", f"/v1/convai/agents/{agent_id}", "get agent details"
        )
        return response.json()

    async def validate_agent(self, agent_id: str) -> bool:
        try:
            details = await self.get_agent(agent_id)
        except CoachingError as e:
            logger.warning(f"Agent validation failed for {agent_id}: {e.message}")
            return False
        return bool(details.get("agent_id"))

    async def create_agent(self, config: AgentConfig) -> str:
        logger.info(f"Creating voice agent: {config.name}")
        response = await self._request(
            "POST",
            "/v1/convai/agents/create",
            "create agent",
            retry=False,
            json=config.to_payload(),
        )
        agent_id = response.json().get("agent_id")
        if not agent_id:
            raise CoachingError.voice_platform(
                "Agent creation succeeded but no agent_id returned"
            )
        logger.info(f"Voice agent created: {agent_id}")
        return agent_id
