"""Database configuration using Pydantic Settings.

The routing core only reads from the hosted data platform. PostgreSQL is
used in production and SQLite for development and tests.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """
    Database configuration settings for the signal source.

    Example environment variables:
        DB_DRIVER=postgresql+asyncpg
        DB_HOST=localhost
        DB_NAME=clarity
        DB_USER=clarity_ro
    """

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    driver: str = Field(
        default="sqlite+aiosqlite",
        description="Database driver (postgresql+asyncpg or sqlite+aiosqlite)"
    )

    host: str = Field(default="localhost", description="Database host")
    port: int = Field(default=5432, description="Database port")
    name: str = Field(default="clarity", description="Database name")
    user: str = Field(default="", description="Database user")
    password: str = Field(default="", description="Database password")

    sqlite_path: Path = Field(
        default=Path("data/routing.db"),
        description="Path to SQLite database file"
    )

    pool_size: int = Field(default=10, ge=1, le=100, description="Connections kept in the pool")
    max_overflow: int = Field(default=20, ge=0, le=100, description="Max connections above pool_size")
    pool_pre_ping: bool = Field(default=True, description="Test connections before using them")

    echo_sql: bool = Field(default=False, description="Log all SQL statements")
    query_timeout: int = Field(default=30, ge=1, description="Default query timeout in seconds")

    @computed_field
    @property
    def is_sqlite(self) -> bool:
        """Check if using SQLite."""
        return "sqlite" in self.driver.lower()

    @computed_field
    @property
    def async_url(self) -> str:
        """Get the async database URL."""
        if self.is_sqlite:
            self.sqlite_path.parent.mkdir(parents=True, exist_ok=True)
            return f"sqlite+aiosqlite:///{self.sqlite_path.absolute()}"

        auth = ""
        if self.user:
            auth = f"{self.user}"
            if self.password:
                auth += f":{self.password}"
            auth += "@"

        return f"{self.driver}://{auth}{self.host}:{self.port}/{self.name}"

    def get_connect_args(self) -> dict:
        """Get database-specific connection arguments."""
        if self.is_sqlite:
            return {"timeout": self.query_timeout}
        return {"command_timeout": self.query_timeout}


@lru_cache
def get_database_settings() -> DatabaseSettings:
    """
    Get cached database settings instance.

    Returns:
        DatabaseSettings: Cached settings loaded from environment.
    """
    return DatabaseSettings()
