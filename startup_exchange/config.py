"""Application configuration via environment variables."""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # SQLite for local dev, PostgreSQL for production
    database_url: str = "sqlite:///./startup_exchange.db"
    log_level: str = "INFO"
    cors_origins: list[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]

    # Ranking
    recompute_passes: int = Field(default=3, ge=1)
    candidate_pool_size: int = Field(default=100, ge=2)

    # Economy
    starting_balance: float = 10000.0
    free_gifts_per_user: int = Field(default=5, ge=0)

    model_config = {"env_prefix": "SX_", "env_file": ".env"}

    @field_validator("database_url")
    @classmethod
    def _normalize_postgres_scheme(cls, value: str) -> str:
        # Render and Heroku hand out postgres:// URLs
        if value.startswith("postgres://"):
            return value.replace("postgres://", "postgresql://", 1)
        return value


settings = Settings()
