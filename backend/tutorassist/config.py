"""Settings for the API, the job runner and migrations, read from the environment or .env.

Invariants:
    - Secrets (API keys, JWT and token-encryption keys) default to placeholders that
      only work locally; an empty cron secret disables the cron trigger
    - get_settings() builds Settings once per process
    - database_url always names an async driver (postgresql+asyncpg or sqlite+aiosqlite)

Design Decisions:
    - Non-secret settings default to the docker-compose stack
    - Grouped by integration in one class; services call get_settings() rather than
      receiving settings objects
"""

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    """Field names map to upper-case environment variables (DATABASE_URL, CRON_SECRET, ...)."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Database
    database_url: str = (
        "postgresql+asyncpg://tutor:tutor@db:5432/tutorassist"
    )

    @field_validator("database_url", mode="before")
    @classmethod
    def convert_postgres_url(cls, v: str) -> str:
        """Accept the plain postgresql:// URLs hosting providers hand out."""
        if isinstance(v, str) and v.startswith("postgresql://"):
            return v.replace("postgresql://", "postgresql+asyncpg://", 1)
        return v

    database_pool_size: int = 20
    database_max_overflow: int = 10

    # Anthropic (question generation, flag triage, material analysis)
    anthropic_api_key: str = "sk-ant-placeholder"
    anthropic_max_retries: int = 3
    anthropic_timeout_seconds: int = 120
    anthropic_base_delay_ms: int = 1000
    anthropic_max_delay_ms: int = 60_000
    llm_model: str = "claude-sonnet-4-5"
    llm_fast_model: str = "claude-haiku-4-5-20251001"

    # OpenAI (embeddings only)
    openai_api_key: str = "sk-placeholder"
    embedding_model: str = "text-embedding-3-small"

    # Auth
    jwt_secret: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24 * 7
    token_encryption_key: str = "change-me-too"

    # Google OAuth + Calendar
    google_client_id: str = ""
    google_client_secret: str = ""
    app_url: str = "http://localhost:3000"

    # Object storage (Cloudflare R2, S3-compatible)
    r2_account_id: str = ""
    r2_access_key_id: str = ""
    r2_secret_access_key: str = ""
    r2_bucket_name: str = "tutorassist"
    r2_public_url: str | None = None

    # Outbound email (invites); unset credentials disable sending
    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    smtp_sender_name: str = "TutorAssist"

    # Job processing: bearer secret for the cron trigger
    cron_secret: str = ""

    # API
    cors_origins: list[str] = ["http://localhost:3000"]

    # Observability
    log_level: str = "INFO"
    log_format: str = "json"

    @property
    def google_redirect_uri(self) -> str:
        return f"{self.app_url.rstrip('/')}/api/v1/auth/google/callback"


@lru_cache
def get_settings() -> Settings:
    return Settings()
