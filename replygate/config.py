"""Configuration loaded from environment (.env) and defaults."""

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

# Project root .env, independent of CWD
_THIS_DIR = Path(__file__).resolve().parent          # replygate/
_PROJECT_ROOT = _THIS_DIR.parent
_ENV_FILE = _PROJECT_ROOT / ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=str(_ENV_FILE) if _ENV_FILE.exists() else ".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Persistent store: "file" (single host) or "postgres"
    replygate_store_backend: str = "file"
    replygate_database_url: str | None = None

    # Data directory for the file store
    replygate_data_dir: str = "./data"

    # Job queue backend: "polling" (atop the store) or "redis"
    replygate_queue_backend: str = "polling"
    redis_url: str = "redis://localhost:6379/0"
    replygate_redis_prefix: str = "replygate:queue"

    # Worker
    replygate_poll_interval: float = 1.0

    # Prompt resolver cache TTL (seconds)
    replygate_prompt_cache_ttl: float = 300.0

    # LLM providers (tenant settings pick one per tenant)
    openai_api_key: str | None = None
    replygate_openai_model: str = "gpt-4-turbo"
    anthropic_api_key: str | None = None
    replygate_anthropic_model: str = "claude-3-5-sonnet-20241022"
    # Caller-side timeout for a single completion call
    replygate_llm_timeout: float = 30.0

    # WhatsApp Cloud API (messaging provider). Unset = no transmission.
    whatsapp_access_token: str | None = None
    whatsapp_phone_number_id: str | None = None
    whatsapp_api_base: str = "https://graph.facebook.com/v19.0"

    # Backend bearer tokens (comma-separated)
    replygate_api_tokens: str = ""

    log_level: str = "INFO"

    @property
    def data_dir(self) -> Path:
        """Data directory as an absolute Path.

        Relative paths are resolved against the project root (not CWD).
        """
        p = Path(self.replygate_data_dir)
        if not p.is_absolute():
            return (_PROJECT_ROOT / p).resolve()
        return p.resolve()

    @property
    def store_dir(self) -> Path:
        return self.data_dir / "store"

    @property
    def api_token_set(self) -> set[str]:
        """Parse comma-separated API tokens."""
        return {t.strip() for t in self.replygate_api_tokens.split(",") if t.strip()}

    def ensure_dirs(self) -> None:
        """Ensure all data directories exist."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.store_dir.mkdir(parents=True, exist_ok=True)


def get_settings() -> Settings:
    settings = Settings()
    settings.ensure_dirs()
    return settings
