"""
ratecache Configuration Management

Settings come from RATECACHE_* environment variables or a local .env file.
CLI flags override them where they overlap.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings

ProviderKind = Literal["cbr_xml", "cbr_json"]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # === Cache Store ===
    cache_path: Path = Field(
        default=Path.home() / ".cache" / "currency" / "cache",
        description="Cache database file (parent directory is created on open)"
    )
    bucket_name: str = Field(default="cache")
    lock_timeout: float = Field(
        default=30.0,
        description="Seconds to wait for another process holding the write lock"
    )

    # === Rate Provider ===
    provider: ProviderKind = Field(
        default="cbr_xml",
        description="cbr_xml: daily bulletin, cbr_json: single-currency weekly feed"
    )
    cbr_xml_url: str = Field(default="https://www.cbr.ru/scripts/XML_daily.asp")
    cbr_json_url: str = Field(default="https://www.cbr.ru/cursonweek/")
    request_timeout: float = Field(default=2.0, gt=0)
    user_agent: str = Field(
        default=(
            "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/116.0.0.0 Safari/537.36"
        )
    )

    # === Logging ===
    log_level: str = Field(default="WARNING")

    model_config = {
        "env_prefix": "RATECACHE_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
    }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
