# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Application configuration settings using Pydantic Settings.

This module provides centralized configuration management for the
EduDash assistant control plane. Settings are loaded from environment
variables with sensible defaults.

The Settings class is the main entry point and aggregates all subsettings.
A cached instance is provided via get_settings() for dependency injection.

Example:
    >>> from src.core.config.settings import get_settings
    >>> settings = get_settings()
    >>> print(settings.environment)
    'development'
"""

from functools import lru_cache
from typing import Literal, Self

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """Database configuration for the quota ledger store.

    When ``enabled`` is False the application falls back to the
    in-memory quota store, which is what tests and local demos use.

    Attributes:
        enabled: Whether the SQL quota store is used.
        user: PostgreSQL username.
        password: PostgreSQL password.
        host: Database host address.
        port: Database port number.
        database: Database name.
        url_override: Full SQLAlchemy URL, takes precedence over components.
        pool_size: Connection pool size.
        max_overflow: Maximum overflow connections.
        echo: Whether SQLAlchemy logs emitted statements.
    """

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        extra="ignore",
    )

    enabled: bool = False
    user: str = "edudash"
    password: SecretStr = SecretStr("edudash_password")
    host: str = "edudash-db"
    port: int = 5432
    database: str = "edudash"
    url_override: str | None = None
    pool_size: int = 10
    max_overflow: int = 20
    echo: bool = False

    @property
    def url(self) -> str:
        """Build the async database URL from components."""
        if self.url_override:
            return self.url_override
        pwd = self.password.get_secret_value()
        return f"postgresql+asyncpg://{self.user}:{pwd}@{self.host}:{self.port}/{self.database}"


class RedisSettings(BaseSettings):
    """Redis configuration for quota view caching.

    Attributes:
        enabled: Whether cached read views are stored in Redis.
        host: Redis server host.
        port: Redis server port.
        password: Redis password.
        database: Redis database number.
        max_connections: Maximum connection pool size.
    """

    model_config = SettingsConfigDict(
        env_prefix="REDIS_",
        extra="ignore",
    )

    enabled: bool = False
    host: str = "edudash-redis"
    port: int = 6379
    password: SecretStr = SecretStr("edudash_redis_password")
    database: int = 0
    max_connections: int = 50

    @property
    def url(self) -> str:
        """Build the Redis connection URL."""
        pwd = self.password.get_secret_value()
        return f"redis://:{pwd}@{self.host}:{self.port}/{self.database}"


class LLMSettings(BaseSettings):
    """LLM provider configuration using LiteLLM.

    LiteLLM handles provider routing based on model prefix.

    Attributes:
        default_provider: Default LLM provider to use.
        ollama_base_url: Base URL for an Ollama server.
        ollama_default_model: Default Ollama model.
        openai_api_key: OpenAI API key.
        openai_default_model: Default OpenAI model.
        anthropic_api_key: Anthropic API key.
        anthropic_default_model: Default Anthropic model.
        request_timeout: Request timeout in seconds.
        max_retries: Maximum retry attempts.
        temperature: Sampling temperature for assistant turns.
        max_tokens: Completion token cap for assistant turns.
    """

    model_config = SettingsConfigDict(
        extra="ignore",
    )

    default_provider: Literal["ollama", "openai", "anthropic"] = "openai"

    ollama_base_url: str = Field(
        default="http://localhost:11434",
        validation_alias="OLLAMA_BASE_URL",
    )
    ollama_default_model: str = Field(
        default="qwen2.5:7b",
        validation_alias="OLLAMA_DEFAULT_MODEL",
    )

    openai_api_key: SecretStr | None = Field(
        default=None,
        validation_alias="OPENAI_API_KEY",
    )
    openai_default_model: str = Field(
        default="gpt-4o-mini",
        validation_alias="OPENAI_DEFAULT_MODEL",
    )

    anthropic_api_key: SecretStr | None = Field(
        default=None,
        validation_alias="ANTHROPIC_API_KEY",
    )
    anthropic_default_model: str = Field(
        default="claude-3-5-sonnet-20241022",
        validation_alias="ANTHROPIC_DEFAULT_MODEL",
    )

    request_timeout: float = 60.0
    max_retries: int = 3
    temperature: float = 0.4
    max_tokens: int = 1024

    def get_default_model(self) -> str:
        """Get the default model for the configured provider.

        Returns:
            Model identifier string for the default provider.
        """
        models = {
            "ollama": f"ollama/{self.ollama_default_model}",
            "openai": self.openai_default_model,
            "anthropic": self.anthropic_default_model,
        }
        return models[self.default_provider]

    def get_api_key(self) -> str | None:
        """Get the API key for the configured provider, if any."""
        keys = {
            "ollama": None,
            "openai": self.openai_api_key,
            "anthropic": self.anthropic_api_key,
        }
        key = keys[self.default_provider]
        return key.get_secret_value() if key else None


class QuotaSettings(BaseSettings):
    """Quota ledger configuration.

    Attributes:
        default_tier: Subscription tier used for implicit allocations.
        max_individual_share: Largest fraction of an organization's pool
            a single principal may be allocated.
        conflict_retries: Attempts for optimistic allocation updates.
        cache_ttl_seconds: TTL of cached usage summaries.
        low_utilization_threshold: Utilization below which a decrease
            is suggested.
        high_utilization_threshold: Projected utilization above which an
            increase is suggested.
        suggestion_lookback_days: Window of usage events analysed for
            suggestions.
    """

    model_config = SettingsConfigDict(
        env_prefix="QUOTA_",
        extra="ignore",
    )

    default_tier: str = "free"
    max_individual_share: float = Field(default=0.5, gt=0.0, le=1.0)
    conflict_retries: int = 3
    cache_ttl_seconds: int = 60
    low_utilization_threshold: float = 0.2
    high_utilization_threshold: float = 0.9
    suggestion_lookback_days: int = 30


class VoiceSettings(BaseSettings):
    """Real-time voice session configuration.

    Attributes:
        transport: Transport backend, or "auto" to select from the runtime.
        stream_url: WebSocket endpoint of the streaming transcription service.
        realtime_url: WebSocket endpoint of the provider real-time session.
        realtime_model: Model requested for provider real-time sessions.
        token_url: HTTP endpoint issuing short-lived session credentials.
        static_token: Fixed credential used when no token endpoint is set.
        chunk_interval_ms: Nominal audio chunk duration.
        connect_timeout: Seconds to wait for the channel to confirm.
        stop_timeout: Bound on stopping the transport's active session.
        done_grace: Seconds between the done signal and channel close.
        settle_delay: Seconds to let buffered events drain after close.
        vad_silence_ms: Server-side VAD silence duration.
        transcription_model: Input transcription model for provider sessions.
    """

    model_config = SettingsConfigDict(
        env_prefix="VOICE_",
        extra="ignore",
    )

    transport: Literal["auto", "websocket", "webrtc"] = "auto"
    stream_url: str = "ws://localhost:8765/stream"
    realtime_url: str = "wss://api.openai.com/v1/realtime"
    realtime_model: str = "gpt-4o-realtime-preview"
    token_url: str | None = None
    static_token: SecretStr = SecretStr("")
    chunk_interval_ms: int = 250
    connect_timeout: float = 10.0
    stop_timeout: float = 3.0
    done_grace: float = 0.1
    settle_delay: float = 0.2
    vad_silence_ms: int = Field(default=700, ge=300, le=2000)
    transcription_model: str = "whisper-1"


class AssistantSettings(BaseSettings):
    """Conversation orchestrator configuration.

    Attributes:
        max_context_messages: Size of the bounded conversation window.
        max_tool_iterations: Upper bound on model/tool round trips per turn.
        turn_feature: Metered feature consumed by a completed turn.
        confirmation_ttl_seconds: Lifetime of a pending tool confirmation.
        confirmation_audit_size: Resolved confirmations kept in the audit log.
        system_prompt: System prompt prepended to every model call.
    """

    model_config = SettingsConfigDict(
        env_prefix="ASSISTANT_",
        extra="ignore",
    )

    max_context_messages: int = Field(default=10, ge=2)
    max_tool_iterations: int = 4
    turn_feature: str = "chat_completions"
    confirmation_ttl_seconds: int = 300
    confirmation_audit_size: int = Field(default=1000, ge=1)
    system_prompt: str = (
        "You are Dash, the assistant of a school management app. "
        "Use the available tools to look up school data or take actions. "
        "Be concise."
    )


class CORSSettings(BaseSettings):
    """CORS configuration for API.

    Attributes:
        origins: Comma-separated list of allowed origins.
        allow_credentials: Whether to allow credentials.
        allow_methods: Allowed HTTP methods.
        allow_headers: Allowed HTTP headers.
    """

    model_config = SettingsConfigDict(
        env_prefix="CORS_",
        extra="ignore",
    )

    origins: str = "http://localhost:3000,http://localhost:8081"
    allow_credentials: bool = True
    allow_methods: list[str] = ["*"]
    allow_headers: list[str] = ["*"]

    @property
    def origins_list(self) -> list[str]:
        """Parse origins string into a list."""
        return [origin.strip() for origin in self.origins.split(",") if origin.strip()]


class APISettings(BaseSettings):
    """API server configuration.

    Attributes:
        host: Host to bind to.
        port: Port to listen on.
        workers: Number of worker processes.
        reload: Whether to enable auto-reload.
    """

    model_config = SettingsConfigDict(
        env_prefix="API_",
        extra="ignore",
    )

    host: str = "0.0.0.0"
    port: int = 34100
    workers: int = 2
    reload: bool = False


class Settings(BaseSettings):
    """Main application settings aggregating all subsettings.

    Use get_settings() to obtain a cached instance.

    Attributes:
        environment: Current environment (development, staging, production).
        debug: Enable debug mode.
        log_level: Logging level.
        database: Quota store database settings.
        redis: Redis settings.
        llm: LLM provider settings.
        quota: Quota ledger settings.
        voice: Voice session settings.
        assistant: Conversation orchestrator settings.
        cors: CORS settings.
        api: API server settings.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "DEBUG"

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    llm: LLMSettings = Field(default_factory=LLMSettings)
    quota: QuotaSettings = Field(default_factory=QuotaSettings)
    voice: VoiceSettings = Field(default_factory=VoiceSettings)
    assistant: AssistantSettings = Field(default_factory=AssistantSettings)
    cors: CORSSettings = Field(default_factory=CORSSettings)
    api: APISettings = Field(default_factory=APISettings)

    @model_validator(mode="after")
    def validate_production_settings(self) -> Self:
        """Validate that production settings are properly configured.

        Raises:
            ValueError: If running in production with insecure defaults.
        """
        if self.environment == "production":
            if not self.voice.token_url and not self.voice.static_token.get_secret_value():
                raise ValueError(
                    "Voice sessions need credentials in production. "
                    "Set VOICE_TOKEN_URL or VOICE_STATIC_TOKEN."
                )
        return self

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    Call clear_settings_cache() if you need to reload settings.

    Returns:
        Cached Settings instance.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Call this if you need to reload settings from environment.
    Useful for testing or dynamic configuration updates.
    """
    get_settings.cache_clear()
