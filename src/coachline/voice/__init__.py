"""Conversational voice platform integration."""

from coachline.voice.client import (
    AgentConfig,
    ElevenLabsClient,
    VoicePlatform,
    VoiceSettings,
)

__all__ = ["AgentConfig", "ElevenLabsClient", "VoicePlatform", "VoiceSettings"]
