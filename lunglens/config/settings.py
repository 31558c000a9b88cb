"""Application settings loaded from the environment."""

from functools import lru_cache
from typing import Annotated, List, Optional
from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration for the Lung Lens API.

    Values come from the environment or a .env file; empty variables fall
    back to the defaults below.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", env_ignore_empty=True, extra="ignore")

    APP_NAME: str = "Lung Lens API"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: Annotated[List[str], NoDecode] = Field(default_factory=lambda: ["*"])

    # Document store
    MONGODB_URL: str = "mongodb://localhost:27017"
    MONGODB_DB: str = "lunglens"
    PATIENTS_COLLECTION: str = "patients"
    USERS_COLLECTION: str = "users"
    SEARCH_RESULT_LIMIT: int = Field(default=20, ge=1, le=100)

    # Object storage
    CLOUDINARY_CLOUD_NAME: str = ""
    CLOUDINARY_API_KEY: str = ""
    CLOUDINARY_API_SECRET: str = ""
    CLOUDINARY_FOLDER: str = "lunglens/patients"
    UPLOAD_URL_TTL: int = 7 * 24 * 60 * 60
    DOWNLOAD_URL_TTL: int = 5 * 60
    MAX_UPLOAD_BYTES: int = 10 * 1024 * 1024

    # Classifier
    CLASSIFIER_URL: str = "http://localhost:7860"
    CLASSIFIER_TIMEOUT: float = 60.0
    CLASSIFIER_RETRY_LIMIT: int = Field(default=2, ge=0)
    CLASSIFIER_RETRY_DELAY: float = 1.0

    # Chat completion
    LLM_BASE_URL: str = "https://api.studio.nebius.com/v1"
    # Older deployments only set the provider-specific key
    LLM_API_KEY: Optional[str] = Field(default=None, validation_alias=AliasChoices("LLM_API_KEY", "NEBIUS_API_KEY"))
    LLM_MODEL: str = "meta-llama/Llama-3.3-70B-Instruct"
    LLM_MAX_TOKENS: int = 2048
    LLM_TEMPERATURE: float = 0.6
    LLM_TOP_P: float = 0.9
    LLM_TOP_K: int = 50
    LLM_TIMEOUT: float = 120.0

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    @field_validator("LLM_BASE_URL", "CLASSIFIER_URL")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.strip().rstrip("/")

    @field_validator("LLM_API_KEY")
    @classmethod
    def strip_api_key(cls, v: Optional[str]) -> Optional[str]:
        return v.strip() if v else v


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
