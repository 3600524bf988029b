import logging
import os
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    APP_NAME: str = "Album Tracker"
    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"

    # Library
    LIBRARY_ROOT_PATH: Path | None = None
    SIMILARITY_THRESHOLD: float = 0.80

    # Cors
    CORS_ORIGINS: list[str] = ["http://localhost:5173", "http://localhost:3000"]

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    @field_validator("LIBRARY_ROOT_PATH", mode="before")
    @classmethod
    def _normalize_root(cls, value: str | Path | None) -> Path | None:
        if value is None or str(value).strip() == "":
            return None
        path = Path(value).expanduser()
        if not path.is_absolute():
            raise ValueError("Library root must be an absolute path")
        # Normalized, not resolved: symlinked roots stay as configured
        return Path(os.path.normpath(path))

    @field_validator("LOG_LEVEL")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level not in logging.getLevelNamesMapping():
            raise ValueError(f"Unknown log level: {value}")
        return level

    @field_validator("SIMILARITY_THRESHOLD")
    @classmethod
    def _check_threshold(cls, value: float) -> float:
        if not 0.0 <= value <= 1.0:
            raise ValueError("Similarity threshold must be between 0 and 1")
        return value

settings = Settings()
