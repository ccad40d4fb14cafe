"""Configuration management using Pydantic Settings."""

import fnmatch
from typing import Dict, List, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables from .env file if it exists
# In Docker/production, environment variables are set directly
from pathlib import Path

from dotenv import load_dotenv

ENV_FILE_OPT: str | None = None

# Only load .env if it exists (for local development)
_env_path = Path(".env")
if _env_path.exists():
    load_dotenv(dotenv_path=_env_path)
    ENV_FILE_OPT = str(_env_path)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)


class HostCredentials(BaseModel):
    """HTTP Basic credentials for a private documentation host.

    Example:
        PRIVATE_HOSTS='{"docs.internal.example": {"username": "reader", "password": "s3cret"}}'
    """

    username: str
    password: SecretStr


def find_host_credentials(
    url: str, private_hosts: Dict[str, HostCredentials]
) -> Optional[HostCredentials]:
    """Return the credentials whose host pattern matches the URL's host, if any.

    Patterns are shell-style globs (``*.example.org``) compared case-insensitively
    against the hostname only; the first matching pattern wins.
    """
    host = (urlparse(url).hostname or "").lower()
    if not host:
        return None

    for pattern, credentials in private_hosts.items():
        if fnmatch.fnmatch(host, pattern.lower()):
            return credentials
    return None


class Settings(BaseSettings):
    """Application configuration.

    Loads settings from environment variables. In local development, these can be
    provided via a .env file. In Docker/production, they should be set directly.
    """

    model_config = SettingsConfigDict(
        # Only hint an env file to pydantic if it actually exists
        env_file=ENV_FILE_OPT,
        env_file_encoding="utf-8",
        extra="ignore",
        # Don't error if .env file is missing (Docker/production use env vars directly)
        env_ignore_empty=True,
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")

    # Redis
    redis_url: SecretStr = Field(
        default="redis://localhost:6379/0", description="Redis connection URL"
    )
    redis_password: Optional[SecretStr] = Field(default=None, description="Redis password")

    # Search index
    default_index_name: str = Field(
        default="docusaurus_ja",
        description="Index used when the site config has no [index] section",
    )
    analyzer_profile: str = Field(
        default="cjk", description="Analyzer profile used when creating an index"
    )

    # Crawling
    request_delay: float = Field(
        default=1.0, description="Delay before each page fetch (seconds)"
    )
    fetch_timeout: float = Field(default=10.0, description="Page fetch timeout (seconds)")
    sitemap_timeout: float = Field(
        default=30.0,
        description="Sitemap connect and per-read timeout (seconds). "
        "A large sitemap may stream for longer as long as data keeps arriving.",
    )
    max_sitemap_depth: int = Field(
        default=2, description="How many levels of sitemap index files to follow"
    )
    source_concurrency: int = Field(
        default=1,
        description="Number of sitemap sources processed at once. "
        "Entries within a source are always processed one at a time.",
    )
    update_window_days: int = Field(
        default=3, description="Default day window for incremental updates"
    )

    # Browser-like request headers
    user_agent: str = Field(default=DEFAULT_USER_AGENT, description="User-Agent header")
    accept: str = Field(
        default="text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        description="Accept header",
    )
    accept_language: str = Field(
        default="ja,en-US;q=0.9,en;q=0.8", description="Accept-Language header"
    )
    referrer: Optional[str] = Field(
        default="https://www.google.com/", description="Referer header"
    )

    # Content extraction
    content_selectors: List[str] = Field(
        default_factory=lambda: ["div[class*='docItemCol_']"],
        description="CSS selectors for the main content region, tried in order. "
        "The whole <body> text is used when none of them matches.",
    )

    # Authenticated hosts
    private_hosts: Dict[str, HostCredentials] = Field(
        default_factory=dict,
        description="HTTP Basic credentials keyed by host pattern. "
        "Example: {'intranet.example.org': {'username': 'u', 'password': 'p'}}",
    )

    def credentials_for(self, url: str) -> Optional[HostCredentials]:
        """Credentials configured for the host of ``url``."""
        return find_host_credentials(url, self.private_hosts)


# Global settings instance
settings = Settings()
