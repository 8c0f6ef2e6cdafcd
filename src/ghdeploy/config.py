"""Configuration management for ghdeploy."""

import re
from functools import lru_cache

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ghdeploy import constants

_REPO_RE = re.compile(r"^[^/]+/[^/]+$")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # GitHub
    github_token: SecretStr | None = Field(
        default=None, description="Token used for every GitHub API call"
    )
    github_api_url: str = Field(default=constants.GITHUB_API_URL, description="REST API base URL")
    github_web_url: str = Field(
        default=constants.GITHUB_WEB_URL, description="Base URL for links printed to the user"
    )
    github_host: str = Field(
        default=constants.GITHUB_HOST, description="Host a git remote must point at"
    )
    http_timeout: float = Field(
        default=constants.HTTP_TIMEOUT, description="Timeout for each HTTP request (seconds)"
    )

    # Self-update
    release_repo: str = Field(
        default=constants.RELEASE_REPO, description="Repository the tool's releases live in"
    )
    bin_name: str = Field(default=constants.BIN_NAME, description="Release asset name prefix")
    executable_path: str | None = Field(
        default=None, description="Executable to replace on update (defaults to the running one)"
    )

    # Deployment watching
    watch_poll_interval: float = Field(
        default=constants.WATCH_POLL_INTERVAL, description="Seconds between status polls"
    )
    watch_timeout: float = Field(
        default=constants.WATCH_TIMEOUT, description="Give up waiting after this many seconds"
    )

    # Application
    environment: str = Field(default="production", description="Environment name")
    log_level: str = Field(default="WARNING", description="Logging level")

    @field_validator("http_timeout", "watch_poll_interval", "watch_timeout")
    @classmethod
    def _positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("must be greater than zero")
        return value

    @field_validator("release_repo")
    @classmethod
    def _owner_and_name(cls, value: str) -> str:
        if not _REPO_RE.match(value):
            raise ValueError("release_repo must look like 'owner/name'")
        return value

    @field_validator("github_api_url", "github_web_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment.lower() == "development"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
