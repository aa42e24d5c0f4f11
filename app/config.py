"""
Service configuration

Values come from environment variables prefixed with STRUCTURE_
(e.g. STRUCTURE_CACHE_DIR=/srv/cif).
"""
from functools import lru_cache
from pathlib import Path
from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Project root: structure-service/
BASE_DIR = Path(__file__).resolve().parents[1]  # app/config.py -> app/ -> structure-service/


class Settings(BaseSettings):
    """Runtime settings for the structure service"""

    model_config = SettingsConfigDict(
        env_prefix="STRUCTURE_",
        case_sensitive=False,
        extra="ignore",
    )

    remote_base_url: str = Field(
        "https://files.rcsb.org/download",
        description="Remote download root; files are fetched from <root>/<ID>.cif",
    )
    cache_dir: Path = Field(
        BASE_DIR / "data" / "structures",
        description="Directory holding cached <ID>.cif files",
    )
    public_base_url: str = Field(
        "http://localhost:8080",
        description="Externally visible base URL used to build fileUrl",
    )
    cors_origins: List[str] = Field(
        ["http://localhost:5173"],
        description="Frontend origins allowed to call the API",
    )
    host: str = "0.0.0.0"
    port: int = Field(8080, ge=1, le=65535)
    log_level: str = "INFO"

    @field_validator("remote_base_url", "public_base_url")
    @classmethod
    def _strip_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, v: str) -> str:
        return v.upper()


@lru_cache()
def get_settings() -> Settings:
    return Settings()
