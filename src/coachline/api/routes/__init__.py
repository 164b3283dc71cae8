"""
API routes for Coachline.
"""

from coachline.api.routes import chat, voice_coach

__all__ = ["chat", "voice_coach"]
