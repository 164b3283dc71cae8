"""
Coach personalities and voice agent resolution.

A user's personality (requested or default) decides which voice agent a
session talks to. Agents are provisioned lazily the first time a
personality is used. When anything in that chain fails, the statically
configured environment agent is used instead; only when that is missing as
well does resolution fail.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from coachline.db.repositories.personality import PersonalityRepository
from coachline.exceptions import CoachingError
from coachline.models.db import CoachPersonality
from coachline.voice.client import AgentConfig, VoicePlatform, VoiceSettings

logger = logging.getLogger(__name__)


DEFAULT_PERSONALITIES: list[dict] = [
    {
        "name": "Supportive Coach",
        "description": (
            "A warm and encouraging coach who provides emotional support "
            "and practical guidance"
        ),
        "style": "supportive",
        "system_prompt": """You are a supportive and encouraging AI coach. Your role is to help users achieve their goals through:

- Providing emotional support and validation
- Offering practical guidance and actionable steps
- Celebrating progress and wins
- Helping users work through challenges
- Maintaining a positive but realistic outlook
- Asking thoughtful questions to help users think through problems

You have access to the user's goals, journal entries, and progress data. Use this context to provide personalized, relevant coaching. Reference specific goals and milestones when appropriate.

Be warm, friendly, and approachable. Balance empathy with action-oriented guidance. Help users stay accountable while being understanding of setbacks.""",
        "voice_id": "pNInz6obpgDQGcFmaJgB",
        "voice_stability": 0.6,
        "voice_similarity_boost": 0.75,
        "first_message": (
            "Hi! I'm your supportive coach. I'm here to help you achieve your "
            "goals. What would you like to work on today?"
        ),
        "language": "en",
        "is_default": True,
    },
    {
        "name": "Motivational Coach",
        "description": (
            "An energetic and inspiring coach who pushes you to reach your "
            "full potential"
        ),
        "style": "motivational",
        "system_prompt": """You are a high-energy, motivational coach. Your mission is to inspire and energize users to achieve their goals through:

- Using enthusiastic and uplifting language
- Celebrating every win, big or small
- Turning setbacks into opportunities for growth
- Reminding users of their potential and capabilities
- Using motivational phrases and positive reinforcement
- Creating excitement about the journey ahead

You have access to the user's goals, journal entries, and progress. Use this to provide personalized motivation that resonates with their specific situation.

Be energetic, optimistic, and inspiring. Use exclamation points. Make users feel like they can conquer anything!""",
        "voice_id": "AZnzlk1XvdvUeBnXmlld",
        "voice_stability": 0.7,
        "voice_similarity_boost": 0.8,
        "first_message": (
            "Hey champion! I'm so excited to work with you today! "
            "What amazing goal are we crushing?"
        ),
        "language": "en",
        "is_default": False,
    },
    {
        "name": "Analytical Coach",
        "description": (
            "A data-driven coach focused on metrics, patterns, and systematic progress"
        ),
        "style": "analytical",
        "system_prompt": """You are an analytical, data-driven coach. Your approach is systematic and metrics-focused:

- Analyze progress data and identify patterns
- Break down goals into measurable milestones
- Use specific numbers and percentages
- Identify trends and optimization opportunities
- Provide structured action plans
- Focus on efficiency and effectiveness

You have access to the user's goals with progress percentages, milestones, and completion data. Use this to provide data-driven insights and recommendations.

Be logical, organized, and detail-oriented. Use phrases like "Based on your data...", "Your metrics show...", "Let's analyze...". Help users make informed decisions based on their progress patterns.""",
        "voice_id": "EXAVITQu4vr4xnSDxMaL",
        "voice_stability": 0.7,
        "voice_similarity_boost": 0.75,
        "first_message": (
            "Hello. Let's review your progress data and identify optimization "
            "opportunities for your goals."
        ),
        "language": "en",
        "is_default": False,
    },
]

BUILTIN_SYSTEM_PROMPT: str = DEFAULT_PERSONALITIES[0]["system_prompt"]


@dataclass
class ResolvedAgent:
    """Voice agent and personality settings for one session."""

    agent_id: str
    personality_id: Optional[str] = None
    system_prompt: Optional[str] = None
    first_message: Optional[str] = None
    language: str = "en"
    voice: Optional[VoiceSettings] = None
    used_fallback: bool = False


def _voice_settings(personality: CoachPersonality) -> Optional[VoiceSettings]:
    if not personality.voice_id:
        return None
    return VoiceSettings(
        voice_id=personality.voice_id,
        stability=personality.voice_stability,
        similarity_boost=personality.voice_similarity_boost,
    )


class PersonalityResolver:
    """
    Resolves a user's personality to a voice agent.

    Args:
        repository: Personality storage
        voice_platform: Used to provision missing agents
        fallback_agent_id: Environment agent used when resolution fails
    """

    def __init__(
        self,
        repository: PersonalityRepository,
        voice_platform: VoicePlatform,
        fallback_agent_id: str = "",
    ):
        self.repository = repository
        self.voice_platform = voice_platform
        self.fallback_agent_id = fallback_agent_id

    def ensure_defaults(self, user_id: str) -> CoachPersonality:
        """
        Return the user's default personality, creating the default set if
        the user has none.
        """
        existing = self.repository.get_default(user_id)
        if existing is not None:
            return existing

        logger.info(f"No default personality for user {user_id}, creating defaults")
        created = self.repository.bulk_create(
            [{"user_id": user_id, **spec} for spec in DEFAULT_PERSONALITIES]
        )
        logger.info(f"Created {len(created)} default personalities for user {user_id}")
        return next(p for p in created if p.is_default)

    def load(self, user_id: str, personality_id: Optional[str]) -> CoachPersonality:
        """
        Load the requested personality, or the user's default one.

        Raises:
            CoachingError: PERSONALITY_NOT_FOUND if the requested personality
                does not exist for this user
        """
        if personality_id:
            personality = self.repository.get_for_user(user_id, personality_id)
            if personality is None:
                raise CoachingError.personality_not_found(personality_id)
            return personality
        return self.ensure_defaults(user_id)

    async def _provision(self, personality: CoachPersonality) -> str:
        logger.info(f"Personality {personality.id} has no agent, provisioning one")
        agent_id = await self.voice_platform.create_agent(
            AgentConfig(
                name=personality.name,
                prompt=personality.system_prompt,
                first_message=personality.first_message,
                language=personality.language or "en",
                voice=_voice_settings(personality),
            )
        )
        self.repository.set_agent_id(personality, agent_id)
        logger.info(f"Agent {agent_id} linked to personality {personality.id}")
        return agent_id

    async def resolve(
        self, user_id: str, personality_id: Optional[str] = None
    ) -> ResolvedAgent:
        """
        Resolve the voice agent for a user.

        Safe to call repeatedly: a second call finds the personality and
        agent created by the first.

        Raises:
            CoachingError: AGENT_NOT_CONFIGURED if resolution fails and no
                environment agent is configured
        """
        try:
            personality = self.load(user_id, personality_id)
            agent_id = personality.external_agent_id
            if not agent_id:
                agent_id = await self._provision(personality)

            return ResolvedAgent(
                agent_id=agent_id,
                personality_id=str(personality.id),
                system_prompt=personality.system_prompt,
                first_message=personality.first_message,
                language=personality.language or "en",
                voice=_voice_settings(personality),
            )
        except Exception as e:
            logger.error(
                f"Error resolving personality {personality_id} for user {user_id}: {e}"
            )
            if not self.fallback_agent_id:
                logger.error("No fallback voice agent configured")
                raise CoachingError.agent_not_configured() from e

            logger.warning(f"Falling back to environment agent: {self.fallback_agent_id}")
            return ResolvedAgent(agent_id=self.fallback_agent_id, used_fallback=True)

    def resolve_system_prompt(
        self, user_id: str, personality_id: Optional[str] = None
    ) -> str:
        """
        System prompt for text coaching: requested, then default, then built in.

        Never provisions a voice agent and never raises.
        """
        try:
            if personality_id:
                personality = self.repository.get_for_user(user_id, personality_id)
                if personality is not None:
                    return personality.system_prompt
            default = self.repository.get_default(user_id)
            if default is not None:
                return default.system_prompt
        except Exception as e:
            logger.warning(f"Could not load personality for user {user_id}: {e}")
        return BUILTIN_SYSTEM_PROMPT
