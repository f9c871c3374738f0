"""
Configuration Management

This module provides application-wide configuration settings using
Pydantic Settings for The Reader chat QA service.

Environment variables are loaded from .env file and can be overridden
by system environment variables.

Author: The Reader Team
Date: 2026-10-19
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application configuration settings.

    All settings can be overridden via environment variables.
    Settings are loaded from .env file by default.
    """

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Database configuration
    database_url: str | None = None
    db_pool_size: int = 10
    db_max_overflow: int = 20

    # S3/Object storage configuration (Supabase storage speaks S3)
    s3_bucket: str = "uploads"
    s3_endpoint: str | None = None  # Optional endpoint for Supabase/MinIO
    s3_access_key: str | None = None
    s3_secret_key: str | None = None
    s3_region: str = "us-east-1"
    presign_expiry_seconds: int = 3600

    # LLM provider configuration
    openai_api_key: str | None = None  # Decrypted credential from the secret store
    openai_base_url: str = "https://api.openai.com/v1"
    llm_timeout_seconds: float = 60.0
    llm_max_tokens: int = 900

    # Scoring limits
    rubric_prompt_chars: int = 8000
    transcript_max_chars: int = 20000
    scoring_max_limit: int = 1000

    # HTTP / logging
    log_level: str = "INFO"
    cors_allow_origins: list[str] = ["*"]


# Global settings instance
settings = Settings()
