"""
Application Configuration
Loads settings from environment variables.
"""

from typing import Literal
from pydantic_settings import BaseSettings
from pydantic import field_validator, model_validator
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App
    APP_NAME: str = "StyleMate Outfits API"
    BUILD: str = "outfits__2026-10-19__v1"
    DEBUG: bool = False
    PUBLIC_BASE_URL: str = "http://localhost:8000"  # Base URL for stored file links

    # Database - SQLite for local dev, PostgreSQL for production
    DATABASE_URL: str = "sqlite:///./outfits.db"

    # Redis / RQ (only used when JOB_DISPATCH_MODE == "rq")
    REDIS_URL: str = "redis://localhost:6379"
    JOB_DISPATCH_MODE: Literal["inline", "rq"] = "inline"
    JOB_QUEUE: str = "outfits"
    JOB_TIMEOUT: int = 900

    # Image generation (OpenAI-compatible images/edits endpoint)
    OPENAI_API_KEY: str = ""
    OPENAI_BASE_URL: str = "https://api.openai.com/v1"
    IMAGE_MODEL: str = "gpt-image-1"
    IMAGE_QUALITY: str = "high"

    # Archetype classification (Gemini vision)
    GEMINI_API_KEY: str = ""
    GEMINI_VISION_MODEL: str = "gemini-2.5-flash"

    # Outfit jobs
    OUTFIT_SIZE: str = "1024x1024"
    OUTFIT_COUNT: int = 1
    MAX_FILE_MB: int = 4
    MAX_PNG_MB: int = 4

    # Storage
    STORAGE_BACKEND: Literal["local", "s3", "gcs"] = "local"
    LOCAL_STORAGE_PATH: str = "./uploads"

    # S3 compatible storage (AWS S3, Cloudflare R2)
    S3_BUCKET: str = ""
    S3_ENDPOINT: str = ""
    S3_ACCESS_KEY: str = ""
    S3_SECRET_KEY: str = ""
    S3_REGION: str = "auto"

    # Google Cloud Storage
    GCS_BUCKET: str = ""
    GCP_PROJECT_ID: str = ""

    # CORS
    ALLOWED_ORIGIN: str = "https://aistylemate.ru"

    # External call timeouts (seconds)
    FETCH_TIMEOUT: float = 60.0
    GENERATION_TIMEOUT: float = 300.0
    STORAGE_TIMEOUT: float = 60.0

    # Job router
    ACTOR_CACHE_SIZE: int = 1024

    @field_validator('OPENAI_API_KEY', 'GEMINI_API_KEY', 'S3_SECRET_KEY', mode='before')
    @classmethod
    def strip_api_keys(cls, v):
        """Strip whitespace and newlines from API keys loaded from secrets."""
        if isinstance(v, str):
            return v.strip()
        return v

    @field_validator('OUTFIT_COUNT')
    @classmethod
    def clamp_outfit_count(cls, v):
        """Generation supports one or two candidates per job."""
        return min(2, max(1, v))

    @model_validator(mode='after')
    def check_job_timeout(self):
        """A live attempt must never look abandoned: JOB_TIMEOUT has to outlast every external call of one attempt."""
        attempt_budget = 2 * self.FETCH_TIMEOUT + self.GENERATION_TIMEOUT + 2 * self.STORAGE_TIMEOUT
        if self.JOB_TIMEOUT <= attempt_budget:
            raise ValueError(
                f"JOB_TIMEOUT ({self.JOB_TIMEOUT}s) must exceed the attempt budget "
                f"2*FETCH_TIMEOUT + GENERATION_TIMEOUT + 2*STORAGE_TIMEOUT ({attempt_budget:.0f}s)"
            )
        return self

    class Config:
        env_file = ".env"
        case_sensitive = True
        frozen = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
