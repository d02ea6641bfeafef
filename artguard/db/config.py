"""Database configuration."""

from typing import Optional

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Catalog database settings loaded from environment variables."""

    # PostgreSQL connection
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_user: str = "pg"
    postgres_password: str = "artguard"
    postgres_db: str = "artguard"

    # Full URL override (e.g. sqlite:///artguard.db for local runs)
    database_url_override: Optional[str] = None

    # SQLAlchemy settings
    sql_echo: bool = False  # Set to True to log all SQL queries

    @property
    def database_url(self) -> str:
        """Construct database URL."""
        if self.database_url_override:
            return self.database_url_override
        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",  # Ignore extra fields from .env
    )


# Global settings instance
settings = Settings()
