"""
Application settings loaded from environment variables.

Uses pydantic-settings for validation and type safety.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    """
    Application settings.

    All values loaded from .env file or environment variables.
    Validation happens automatically on startup.
    """

    model_config = SettingsConfigDict(
        env_file=(".env", "../.env"),  # Check current dir, then parent
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"  # Ignore extra env vars
    )

    # ===================
    # SUPABASE
    # ===================
    supabase_url: str = Field(
        ...,
        description="Supabase project URL"
    )
    supabase_key: str = Field(
        ...,
        description="Supabase anon/public key"
    )
    supabase_service_key: Optional[str] = Field(
        None,
        description="Supabase service role key (for admin operations)"
    )

    # ===================
    # OBJECT STORAGE
    # ===================
    storage_bucket: str = Field(
        default="swipe-select",
        description="Storage bucket holding workbooks and extracted images"
    )
    storage_public_url: Optional[str] = Field(
        None,
        description="Public base URL of the bucket (derived from supabase_url if unset)"
    )

    # ===================
    # ENRICHMENT (LLM)
    # ===================
    anthropic_api_key: Optional[str] = Field(
        None,
        description="Default Anthropic API key used when a request carries none"
    )
    enrichment_model: str = Field(
        default="claude-sonnet-4-20250514",
        description="Model used for Chinese name / usage scenario enrichment"
    )
    enrichment_batch_size: int = Field(
        default=30,
        ge=1,
        le=100,
        description="Titles sent per enrichment request"
    )
    enrichment_max_tokens: int = Field(
        default=4096,
        ge=256,
        le=16384,
        description="Maximum tokens for an enrichment response"
    )

    # ===================
    # EXPORT
    # ===================
    image_fetch_concurrency: int = Field(
        default=10,
        ge=1,
        le=50,
        description="Image downloads in flight per export batch"
    )
    image_fetch_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        le=120,
        description="Timeout per image / workbook download"
    )

    # ===================
    # SELECTION
    # ===================
    selection_creators: list[str] = Field(
        default=["flz", "lyy"],
        min_length=2,
        max_length=2,
        description="The two selectors whose completed records are intersected"
    )

    # ===================
    # APP SETTINGS
    # ===================
    environment: str = Field(
        default="development",
        pattern="^(development|staging|production)$",
        description="Application environment"
    )
    debug: bool = Field(
        default=True,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Logging level"
    )
    api_host: str = Field(
        default="0.0.0.0",
        description="API host"
    )
    api_port: int = Field(
        default=8000,
        ge=1000,
        le=65535,
        description="API port"
    )
    cors_origins: list[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173"],
        description="Origins allowed by the CORS middleware"
    )

    # ===================
    # COMPUTED PROPERTIES
    # ===================
    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == "production"

    @property
    def public_storage_url(self) -> str:
        """Public base URL for objects in the storage bucket, without trailing slash."""
        if self.storage_public_url:
            return self.storage_public_url.rstrip("/")
        base = self.supabase_url.rstrip("/")
        return f"{base}/storage/v1/object/public/{self.storage_bucket}"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload.

    Returns:
        Settings: Application settings

    Raises:
        ValidationError: If required env vars are missing or invalid
    """
    return Settings()


# For convenient imports: from config.settings import settings
settings = get_settings()
