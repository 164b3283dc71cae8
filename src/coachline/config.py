"""
Coachline Configuration.

Centralized configuration management using Pydantic Settings.
Loads configuration from environment variables.
"""

import os
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


def get_xdg_state_dir() -> str:
    """
    Get XDG-compliant state directory for Coachline logs.

    Follows XDG Base Directory Specification:
    - Uses $XDG_STATE_HOME/coachline if XDG_STATE_HOME is set
    - Falls back to $HOME/.local/state/coachline if not set
    - Returns relative path ./logs if HOME not available (dev/testing)

    Returns:
        str: Path to state/logs directory
    """
    xdg_state_home = os.getenv("XDG_STATE_HOME")
    if xdg_state_home:
        return str(Path(xdg_state_home) / "coachline" / "logs")

    home = os.getenv("HOME")
    if home:
        return str(Path(home) / ".local" / "state" / "coachline" / "logs")

    return "./logs"


# Daily allowance per action
DEFAULT_USAGE_LIMITS: dict[str, int] = {
    "chat": 20,
    "insights": 3,
    "rag_embedding": 100,
    "rag_search": 200,
    "voice_coach_session": 10,
}

# Warn once remaining usage drops to this many
DEFAULT_USAGE_WARNING_THRESHOLDS: dict[str, int] = {
    "chat": 2,
    "insights": 1,
    "rag_embedding": 10,
    "rag_search": 20,
    "voice_coach_session": 2,
}


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url_override: str = ""  # Full URL wins over the components below
    postgres_db: str = "coachline"
    postgres_user: str = "coachline"
    postgres_password: str = "coachline_dev_password"
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    db_pool_size: int = 5
    db_pool_max_overflow: int = 5
    db_pool_timeout: int = 30
    db_pool_recycle: int = 1800

    @property
    def database_url(self) -> str:
        """Construct database URL from components."""
        if self.database_url_override:
            return self.database_url_override
        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    # Voice platform (ElevenLabs Conversational AI)
    elevenlabs_api_key: str = ""
    elevenlabs_agent_id: str = ""  # Environment fallback agent
    elevenlabs_base_url: str = "https://api.elevenlabs.io"
    elevenlabs_timeout: float = 30.0
    elevenlabs_max_retries: int = 3
    elevenlabs_retry_delay: float = 1.0  # Base delay for exponential backoff

    # LLM
    llm_provider: str = "openai"  # openai or anthropic
    openai_api_key: str = ""
    anthropic_api_key: str = ""
    chat_model: str = ""  # Empty = provider default
    chat_max_tokens: int = 1024
    chat_temperature: float = 0.7

    # Retrieval
    rag_enabled: bool = True
    rag_embedding_model: str = "text-embedding-3-small"
    rag_similarity_threshold: float = 0.3
    rag_max_retrieved_docs: int = 5
    rag_recency_weight: float = 0.05  # Max bonus for documents inside the window
    rag_tie_tolerance: float = 0.01  # Scores closer than this rank newest first

    # Coaching
    max_session_duration_seconds: int = 1800
    signed_url_ttl_seconds: int = 600
    context_recent_journals: int = 5
    context_relevant_journals: int = 5
    context_recent_days: int = 90

    # Usage limits
    usage_limits: dict[str, int] = dict(DEFAULT_USAGE_LIMITS)
    usage_warning_thresholds: dict[str, int] = dict(DEFAULT_USAGE_WARNING_THRESHOLDS)

    # Metrics
    metrics_retention_hours: int = 24

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_reload: bool = False
    cors_origins: list[str] = ["http://localhost:3000"]

    # Application
    environment: str = "development"

    # Logging
    log_level: str = "INFO"
    log_dir: str = ""  # XDG-compliant log directory (defaults to XDG state dir if empty)
    log_format: str = "standard"  # standard or json
    log_console_enabled: bool = True
    log_file_enabled: bool = True
    log_max_bytes: int = 10_485_760  # 10MB per log file
    log_backup_count: int = 5

    @property
    def log_directory(self) -> Path:
        """Get the log directory path, using XDG default if not specified."""
        if self.log_dir:
            return Path(self.log_dir).expanduser()
        return Path(get_xdg_state_dir())


# Global settings instance
settings = Settings()
