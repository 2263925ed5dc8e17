import os
from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    openai_api_key: Optional[str] = Field(None, alias="OPENAI_API_KEY")
    extraction_model: str = Field("gpt-4o-mini", alias="STUDY_BUDDY_EXTRACTION_MODEL")
    extraction_max_tokens: int = Field(400, ge=1, alias="STUDY_BUDDY_EXTRACTION_MAX_TOKENS")
    extraction_temperature: float = Field(0.1, ge=0.0, le=2.0, alias="STUDY_BUDDY_EXTRACTION_TEMPERATURE")
    chat_model: str = Field("gpt-4o-mini", alias="STUDY_BUDDY_CHAT_MODEL")
    chat_max_tokens: int = Field(150, ge=1, alias="STUDY_BUDDY_CHAT_MAX_TOKENS")
    chat_temperature: float = Field(0.7, ge=0.0, le=2.0, alias="STUDY_BUDDY_CHAT_TEMPERATURE")
    persistence_mode: Literal["database", "firestore", "legacy"] = Field(
        "database",
        alias="STUDY_BUDDY_PERSISTENCE_MODE",
    )
    database_url: Optional[str] = Field(None, alias="STUDY_BUDDY_DATABASE_URL")
    database_pool_size: int = Field(10, alias="STUDY_BUDDY_DATABASE_POOL_SIZE")
    database_max_overflow: int = Field(10, alias="STUDY_BUDDY_DATABASE_MAX_OVERFLOW")
    database_echo: bool = Field(False, alias="STUDY_BUDDY_DATABASE_ECHO")
    legacy_store_path: Optional[str] = Field(None, alias="STUDY_BUDDY_LEGACY_STORE_PATH")
    firebase_project_id: Optional[str] = Field(None, alias="STUDY_BUDDY_FIREBASE_PROJECT_ID")
    firebase_credentials_path: Optional[str] = Field(None, alias="GOOGLE_APPLICATION_CREDENTIALS")
    apply_max_attempts: int = Field(3, ge=1, alias="STUDY_BUDDY_APPLY_MAX_ATTEMPTS")
    auth_disabled: bool = Field(False, alias="STUDY_BUDDY_AUTH_DISABLED")

    class Config:
        env_file = os.getenv("ENV_FILE", ".env")
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"
        populate_by_name = True


@lru_cache
def get_settings() -> Settings:
    try:
        settings = Settings()  # type: ignore[arg-type]
        if settings.openai_api_key and not os.getenv("OPENAI_API_KEY"):
            os.environ["OPENAI_API_KEY"] = settings.openai_api_key
        return settings
    except ValidationError as exc:
        raise RuntimeError(f"Invalid backend configuration: {exc}") from exc
