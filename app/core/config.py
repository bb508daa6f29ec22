from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Provider API keys; a provider without one is unavailable
    openai_api_key: str = ""
    anthropic_api_key: str = ""
    perplexity_api_key: str = ""
    deepseek_api_key: str = ""

    # Provider models
    openai_model: str = "gpt-4o"
    anthropic_model: str = "claude-sonnet-4-20250514"
    perplexity_model: str = "sonar"
    deepseek_model: str = "deepseek-chat"

    # Provider used when the request does not name one
    default_provider: str = "openai"

    # Chunking
    max_chunk_size: int = 6000
    chunk_unit: str = "chars"  # chars | words

    # Three-phase protocol
    pushback_threshold: int = 95
    phase1_max_tokens: int = 2000
    phase2_max_tokens: int = 2000
    phase3_max_tokens: int = 1500
    comparative_max_tokens: int = 4000
    feedback_max_tokens: int = 2000

    # Max chunks of one passage evaluated at the same time
    chunk_concurrency: int = 4

    # Seconds between client-disconnect checks while an evaluation runs
    disconnect_poll_interval: float = 0.5

    # App
    app_env: str = "development"
    app_debug: bool = True
    app_host: str = "0.0.0.0"
    app_port: int = 8000

    # CORS
    allowed_origins: str = "*"  # comma-separated, e.g. "https://app.example.com,https://admin.example.com"

    # Inbound rate limit per client address (slowapi syntax)
    api_rate_limit: str = "30/minute"

    # Logging
    log_level: str = "INFO"
    log_json: bool = False  # set True in production for structured JSON logs

    # Sentry
    sentry_dsn: str = ""  # leave empty to disable

    def provider_keys(self) -> dict[str, str]:
        """Mapping of provider name → configured API key (may be empty)."""
        return {
            "openai": self.openai_api_key,
            "anthropic": self.anthropic_api_key,
            "perplexity": self.perplexity_api_key,
            "deepseek": self.deepseek_api_key,
        }

    def provider_models(self) -> dict[str, str]:
        return {
            "openai": self.openai_model,
            "anthropic": self.anthropic_model,
            "perplexity": self.perplexity_model,
            "deepseek": self.deepseek_model,
        }


settings = Settings()


def validate_settings_for_production() -> None:
    """Validate critical settings. Called on startup in non-test environments."""
    errors: list[str] = []

    if settings.chunk_unit not in ("chars", "words"):
        errors.append("CHUNK_UNIT must be 'chars' or 'words'")

    if settings.max_chunk_size <= 0:
        errors.append("MAX_CHUNK_SIZE must be positive")

    if settings.chunk_concurrency <= 0:
        errors.append("CHUNK_CONCURRENCY must be positive")

    if settings.app_env == "production":
        if settings.allowed_origins == "*":
            errors.append("ALLOWED_ORIGINS must not be '*' in production")
        if settings.app_debug:
            errors.append("APP_DEBUG must be false in production")
        if not any(settings.provider_keys().values()):
            errors.append("At least one provider API key must be set in production")

    if errors:
        raise SystemExit("Configuration errors:\n  - " + "\n  - ".join(errors))
