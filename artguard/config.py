"""Duplicate guard tunables."""

import tempfile
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

MIB = 1024 * 1024


class DedupSettings(BaseSettings):
    """Tunables loaded from ARTGUARD_* environment variables."""

    # Remote fetch limits
    fetch_max_bytes: int = Field(default=5 * MIB, gt=0)
    fetch_max_redirects: int = Field(default=3, ge=0)
    fetch_timeout: float = Field(default=10.0, gt=0)  # Wall-clock seconds
    fetch_chunk_size: int = Field(default=64 * 1024, gt=0)

    # Near-duplicate matching
    similarity_threshold: int = Field(default=8, ge=0, le=64)
    corpus_cap: int = Field(default=2000, ge=1)

    # Where direct uploads are staged before hashing
    staging_dir: Path = Path(tempfile.gettempdir()) / "artguard-staging"

    model_config = SettingsConfigDict(
        env_prefix="ARTGUARD_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",  # Ignore extra fields from .env
    )


# Global settings instance
settings = DedupSettings()
