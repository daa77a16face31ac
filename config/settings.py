"""Configuration management using pydantic-settings."""
from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Section resolver settings loaded from environment variables."""

    # Cache settings
    cache_ttl_seconds: int = 360
    cache_prefix: str = "sections-"
    cache_backend: str = "memory"  # "memory" or "sqlite"
    cache_db_path: Path = Path("./cache/sections.db")

    # Batching
    # Window during which load requests are coalesced into one loader call
    debounce_seconds: float = 0.005

    class Config:
        env_prefix = "SECTIONS_"
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
