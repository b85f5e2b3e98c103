from pathlib import Path
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional
import logging
from functools import lru_cache


class Settings(BaseSettings):
    """
    Centralized application configuration with type validation.
    Automatically reads variables from the environment and an optional .env file.
    """

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # --- Credentials (issued elsewhere, never refreshed here) ---
    DRIVE_ACCESS_TOKEN: Optional[str] = None

    # --- Remote API ---
    DRIVE_API_BASE_URL: str = "https://www.googleapis.com/drive/v3"
    DRIVE_UPLOAD_BASE_URL: str = "https://www.googleapis.com/upload/drive/v3"
    DRIVE_FOLDER_ID: Optional[str] = None  # default container for list and upload
    LIST_PAGE_SIZE: int = Field(100, ge=1, le=1000)

    # --- HTTP ---
    HTTP_CONNECT_TIMEOUT: float = 10.0
    HTTP_READ_TIMEOUT: float = 300.0  # per chunk, not total

    # --- Logging ---
    LOG_LEVEL: str = "INFO"

    # --- Constants and Computed Paths ---
    BASE_DIR: Path = Path(__file__).resolve().parent

    @field_validator("DRIVE_API_BASE_URL", "DRIVE_UPLOAD_BASE_URL")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("DRIVE_FOLDER_ID", "DRIVE_ACCESS_TOKEN")
    @classmethod
    def empty_to_none(cls, value: Optional[str]) -> Optional[str]:
        # An empty env var means "not configured", not an empty folder id or token.
        if value is not None and not value.strip():
            return None
        return value

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        level = value.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Invalid LOG_LEVEL '{value}'.")
        return level

    @property
    def LOG_FILE(self) -> Path:
        return self.BASE_DIR / "drivegate.log"


@lru_cache()
def get_settings() -> Settings:
    """
    Returns a cached instance of the application settings.
    The first call to this function will initialize the settings.
    """
    return Settings()
