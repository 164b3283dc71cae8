"""
Service wiring for API routes.

Process-wide clients (voice platform, embedding and LLM providers, metrics
store) live on ``app.state`` and are created by ``create_app``. Everything
that touches the database is built per request around the request's
session. Tests swap pieces out with ``app.dependency_overrides``.
"""

import logging
from typing import Optional

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from coachline.coaching.chat import ChatService
from coachline.coaching.context_builder import ContextBuilder
from coachline.coaching.conversations import ConversationStore
from coachline.coaching.metrics import MetricsRecorder
from coachline.coaching.orchestrator import SessionOrchestrator
from coachline.coaching.personality import PersonalityResolver
from coachline.coaching.usage import UsageLimiter
from coachline.config import settings
from coachline.db.connection import SessionLocal, get_db
from coachline.db.repositories import (
    CoachingSessionRepository,
    EmbeddingRepository,
    PersonalityRepository,
    UsageRepository,
    VoiceConversationRepository,
)
from coachline.llm.providers import LLMProvider, create_provider
from coachline.retrieval.embeddings import EmbeddingProvider, OpenAIEmbeddingProvider
from coachline.retrieval.service import RetrievalService
from coachline.sources.base import GoalSource, JournalSource
from coachline.sources.sql import SqlGoalSource, SqlJournalSource
from coachline.voice.client import ElevenLabsClient, VoicePlatform
from coachline.voice.retry import RetryConfig

logger = logging.getLogger(__name__)


def build_voice_platform() -> VoicePlatform:
    return ElevenLabsClient(
        api_key=settings.elevenlabs_api_key,
        base_url=settings.elevenlabs_base_url,
        timeout=settings.elevenlabs_timeout,
        retry_config=RetryConfig(
            max_retries=settings.elevenlabs_max_retries,
            initial_delay=settings.elevenlabs_retry_delay,
        ),
    )


def build_embedding_provider() -> Optional[EmbeddingProvider]:
    if not settings.rag_enabled:
        return None
    if not settings.openai_api_key:
        logger.warning("OPENAI_API_KEY not set; semantic retrieval disabled")
        return None
    return OpenAIEmbeddingProvider(
        api_key=settings.openai_api_key, model=settings.rag_embedding_model
    )


def build_llm_provider() -> Optional[LLMProvider]:
    api_key = (
        settings.anthropic_api_key
        if settings.llm_provider == "anthropic"
        else settings.openai_api_key
    )
    if not api_key:
        logger.warning(f"No API key for {settings.llm_provider}; text coaching disabled")
        return None
    return create_provider(
        settings.llm_provider, api_key=api_key, model=settings.chat_model or None
    )


# ===== Process-wide clients =====


def get_voice_platform(request: Request) -> VoicePlatform:
    return request.app.state.voice_platform


def get_embedding_provider(request: Request) -> Optional[EmbeddingProvider]:
    return request.app.state.embedding_provider


def get_llm_provider(request: Request) -> Optional[LLMProvider]:
    return request.app.state.llm_provider


def get_metrics(request: Request) -> MetricsRecorder:
    return request.app.state.metrics


def get_goal_source() -> GoalSource:
    return SqlGoalSource(SessionLocal)


def get_journal_source() -> JournalSource:
    return SqlJournalSource(SessionLocal)


# ===== Per-request services =====


def get_usage_limiter(session: Session = Depends(get_db)) -> UsageLimiter:
    return UsageLimiter(
        UsageRepository(session),
        limits=settings.usage_limits,
        warning_thresholds=settings.usage_warning_thresholds,
    )


def get_retrieval_service(
    session: Session = Depends(get_db),
    embedding_provider: Optional[EmbeddingProvider] = Depends(get_embedding_provider),
    usage_limiter: UsageLimiter = Depends(get_usage_limiter),
) -> RetrievalService:
    return RetrievalService(
        EmbeddingRepository(session),
        embedding_provider,
        usage_limiter=usage_limiter,
        enabled=settings.rag_enabled,
        similarity_threshold=settings.rag_similarity_threshold,
        recency_weight=settings.rag_recency_weight,
        tie_tolerance=settings.rag_tie_tolerance,
    )


def get_context_builder(
    goal_source: GoalSource = Depends(get_goal_source),
    journal_source: JournalSource = Depends(get_journal_source),
    retrieval: RetrievalService = Depends(get_retrieval_service),
    metrics: MetricsRecorder = Depends(get_metrics),
) -> ContextBuilder:
    return ContextBuilder(
        goal_source,
        journal_source,
        retrieval,
        metrics,
        recent_journals=settings.context_recent_journals,
        relevant_journals=settings.context_relevant_journals,
        recent_days=settings.context_recent_days,
    )


def get_personality_resolver(
    session: Session = Depends(get_db),
    voice_platform: VoicePlatform = Depends(get_voice_platform),
) -> PersonalityResolver:
    return PersonalityResolver(
        PersonalityRepository(session),
        voice_platform,
        fallback_agent_id=settings.elevenlabs_agent_id,
    )


def get_conversation_store(session: Session = Depends(get_db)) -> ConversationStore:
    return ConversationStore(VoiceConversationRepository(session))


def get_orchestrator(
    session: Session = Depends(get_db),
    conversations: ConversationStore = Depends(get_conversation_store),
    usage_limiter: UsageLimiter = Depends(get_usage_limiter),
    resolver: PersonalityResolver = Depends(get_personality_resolver),
    context_builder: ContextBuilder = Depends(get_context_builder),
    voice_platform: VoicePlatform = Depends(get_voice_platform),
    metrics: MetricsRecorder = Depends(get_metrics),
) -> SessionOrchestrator:
    return SessionOrchestrator(
        CoachingSessionRepository(session),
        conversations,
        usage_limiter,
        resolver,
        context_builder,
        voice_platform,
        metrics,
        fallback_agent_id=settings.elevenlabs_agent_id,
        session_duration_seconds=settings.max_session_duration_seconds,
        signed_url_ttl_seconds=settings.signed_url_ttl_seconds,
    )


def get_chat_service(
    usage_limiter: UsageLimiter = Depends(get_usage_limiter),
    resolver: PersonalityResolver = Depends(get_personality_resolver),
    context_builder: ContextBuilder = Depends(get_context_builder),
    provider: Optional[LLMProvider] = Depends(get_llm_provider),
) -> ChatService:
    return ChatService(
        usage_limiter,
        resolver,
        context_builder,
        provider,
        max_tokens=settings.chat_max_tokens,
        temperature=settings.chat_temperature,
    )
