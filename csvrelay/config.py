from typing import Literal, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="CSVRELAY_",
        case_sensitive=True,
        extra="ignore",
    )

    PROJECT_NAME: str = "csv-relay"
    VERSION: str = "0.1.0"
    LOG_LEVEL: str = "INFO"

    # Compute endpoint
    COMPUTE_URL: str = "http://127.0.0.1:8000/pyigrf"
    COMPUTE_TIMEOUT: Optional[float] = None  # no timeout
    COMPUTE_MAX_ROWS: Optional[int] = None  # None sends every row

    # Export
    EXPORT_PREFIX: str = "igrf_results"
    ALBUM_NAME: str = "CSV Exports"
    PRIMARY_DIR: str = "./out/documents"
    FALLBACK_DIR: str = "./out/cache"
    MEDIA_DIR: str = "./out/media"
    PLATFORM: Literal["web", "android", "ios"] = "web"

    # Answers given on the user's behalf when no one is there to ask
    SHARE_TEXT_ON_EXHAUSTION: bool = True
    SHARE_AFTER_SAVE: bool = False

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def upper_log_level(cls, v: str) -> str:
        return v.upper() if isinstance(v, str) else v

    @property
    def has_media_gallery(self) -> bool:
        return self.PLATFORM != "web"


settings = Settings()
