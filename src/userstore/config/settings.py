from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator
from pathlib import Path
from typing import Literal
from functools import lru_cache
from ..validators.sanitize import to_uppercase, to_lowercase


class Settings(BaseSettings):
    """
    Settings loaded from the environment (and an optional `.env` file).

    Nothing in the repositories reads this object globally: the bootstrap code builds
    engines, the cache handle and the password hasher from it and passes them in.
    Every field has a default so the test suite runs without a `.env`.
    """

    # Environment
    ENV: Literal["development", "testing", "staging", "production"] = "development"

    # Database configuration
    POSTGRES_DRIVER: str = "asyncpg"
    POSTGRES_USERNAME: str = "postgres"
    POSTGRES_PASSWORD: str = "postgres"
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "userstore"
    # libpq-style transport security mode: disable / allow / prefer / require / verify-ca / verify-full
    POSTGRES_SSLMODE: str | None = None

    # Test database configuration
    TEST_POSTGRES_DB: str | None = None
    TESTING: bool = False

    # SQLAlchemy
    SQLALCHEMY_ECHO: bool = False

    # Cache
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_PASSWORD: str | None = None
    REDIS_DB: int = 0

    # Credentials: argon2 time cost (work factor)
    PASSWORD_HASH_ROUNDS: int = 3

    # Listing
    PAGINATION_DEFAULT_LIMIT: int = 50
    PAGINATION_MAX_LIMIT: int = 100

    # Logging
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    LOG_FORMAT: Literal["json", "text"] = "json"
    LOG_TO_STDOUT: bool = True
    LOG_DIR: Path = Path("/var/log/userstore")
    LOG_MAX_BYTES: int = 10_000_000  # 10 MB
    LOG_BACKUP_COUNT: int = 5
    LOG_USE_QUEUE: bool = False
    ENABLE_SQL_LOGGING: bool = False

    # --- Derived settings ---
    @property
    def DATABASE_URL(self) -> str:
        """
        Database URL for the current environment.

        - `TESTING=True` with `TEST_POSTGRES_DB` set points at the test database, so a
          test run never touches the regular one.
        - `POSTGRES_SSLMODE` is appended as `ssl=` for asyncpg (which does not know
          `sslmode`) and as `sslmode=` for every other driver.
        """
        database = self.POSTGRES_DB
        if self.TESTING and self.TEST_POSTGRES_DB:
            database = self.TEST_POSTGRES_DB

        url = (
            f"postgresql+{self.POSTGRES_DRIVER}://"
            f"{self.POSTGRES_USERNAME}:{self.POSTGRES_PASSWORD}@"
            f"{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/"
            f"{database}"
        )

        if self.POSTGRES_SSLMODE:
            key = "ssl" if self.POSTGRES_DRIVER == "asyncpg" else "sslmode"
            url = f"{url}?{key}={self.POSTGRES_SSLMODE}"
        return url

    @property
    def REDIS_URL(self) -> str:
        auth = f":{self.REDIS_PASSWORD}@" if self.REDIS_PASSWORD else ""
        return f"redis://{auth}{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    # --- Validators ---
    @field_validator("LOG_LEVEL", mode="before")
    def normalize_log_level(cls, v: str | None) -> str | None:
        """
        Normalize LOG_LEVEL to uppercase before Literal validation, since the logging
        module expects level names like "DEBUG" and "INFO".
        """
        return to_uppercase(v)

    @field_validator("LOG_FORMAT", "POSTGRES_SSLMODE", mode="before")
    def normalize_lowercase(cls, v: str | None) -> str | None:
        return to_lowercase(v)

    @field_validator("PAGINATION_DEFAULT_LIMIT", "PAGINATION_MAX_LIMIT", "PASSWORD_HASH_ROUNDS")
    def must_be_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("must be a positive integer")
        return v

    # --- Config ---
    model_config = SettingsConfigDict(
        # .env next to the package root (src/userstore/.env)
        env_file=str(Path(__file__).parent.parent / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )


# get_settings() takes no arguments and always returns the same settings from the
# environment, so cache it.
@lru_cache()
def get_settings() -> Settings:
    return Settings()
