from __future__ import annotations

import logging
import os
from dataclasses import dataclass

log = logging.getLogger(__name__)

CLOUD_API_URL    = "https://api.bitbucket.org/2.0"
ENTERPRISE_API   = "/rest/api/1.0"
REQUEST_TIMEOUT  = 30.0
MAX_RETRIES      = 3
RETRY_BASE_DELAY = 1.0
RETRY_MAX_DELAY  = 30.0
PAGE_SIZE        = 50

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff: base_delay, 2x, 4x ... capped at max_delay."""
    max_attempts: int = MAX_RETRIES
    base_delay:   float = RETRY_BASE_DELAY
    max_delay:    float = RETRY_MAX_DELAY

    def delay(self, attempt: int) -> float:
        return min(self.base_delay * (2 ** attempt), self.max_delay)


@dataclass(frozen=True)
class Settings:
    login:         str | None = None
    password:      str | None = None
    host:          str | None = None
    is_enterprise: bool = False
    cloud_api_url: str = CLOUD_API_URL
    timeout:       float = REQUEST_TIMEOUT
    page_size:     int = PAGE_SIZE
    retry:         RetryPolicy = RetryPolicy()


def _env_bool(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() in _TRUTHY


def load_settings() -> Settings:
    """Read settings from BITBUCKET_* environment variables."""
    max_retries = int(os.environ.get("BITBUCKET_MAX_RETRIES", MAX_RETRIES))
    settings = Settings(
        login         = os.environ.get("BITBUCKET_LOGIN"),
        password      = os.environ.get("BITBUCKET_PASSWORD"),
        host          = os.environ.get("BITBUCKET_HOST"),
        is_enterprise = _env_bool("BITBUCKET_ENTERPRISE"),
        cloud_api_url = os.environ.get("BITBUCKET_API_URL", CLOUD_API_URL),
        timeout       = float(os.environ.get("BITBUCKET_TIMEOUT", REQUEST_TIMEOUT)),
        retry         = RetryPolicy(max_attempts=max(1, max_retries)),
    )
    log.debug("Loaded settings | enterprise=%s | host=%s", settings.is_enterprise, settings.host)
    return settings
