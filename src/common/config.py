from __future__ import annotations

import os
from typing import Optional

from pydantic import BaseModel, Field

from securestore.s3_store import ENV_BUCKET, ENV_FERNET_KEY, ENV_PREFIX, S3SecureStore
from session.auth import DEFAULT_IDLE_LIMIT_MS
from session.cache import SessionCache

from .crm_api import DEFAULT_BASE_URL, CrmApiClient


ENV_API_BASE_URL = "CRM_API_BASE_URL"
ENV_API_TIMEOUT = "CRM_API_TIMEOUT"
ENV_IDLE_LIMIT_MS = "CRM_IDLE_LIMIT_MS"


def _getenv(name: str, default: Optional[str] = None) -> Optional[str]:
    val = os.environ.get(name)
    return val if val not in (None, "") else default


def _require(v: Optional[str], what: str) -> str:
    if not v:
        raise RuntimeError(f"Missing required configuration: {what}")
    return v


class Settings(BaseModel):
    """
    Runtime configuration, normally read from the environment.

    - api_base_url / api_timeout: CRM backend location and request timeout (seconds).
    - store_bucket / store_prefix / fernet_key: S3 secure store for session items.
    - idle_limit_ms: inactivity after which a stored session expires.
    """

    api_base_url: str = DEFAULT_BASE_URL
    api_timeout: float = Field(default=30.0, gt=0)
    store_bucket: str
    store_prefix: str = ""
    fernet_key: str
    idle_limit_ms: int = Field(default=DEFAULT_IDLE_LIMIT_MS, gt=0)

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            api_base_url=_getenv(ENV_API_BASE_URL, DEFAULT_BASE_URL),
            api_timeout=_getenv(ENV_API_TIMEOUT, "30"),
            store_bucket=_require(_getenv(ENV_BUCKET), ENV_BUCKET),
            store_prefix=_getenv(ENV_PREFIX, ""),
            fernet_key=_require(_getenv(ENV_FERNET_KEY), ENV_FERNET_KEY),
            idle_limit_ms=_getenv(ENV_IDLE_LIMIT_MS, str(DEFAULT_IDLE_LIMIT_MS)),
        )


def build_session_cache(settings: Settings, *, s3: Optional[object] = None) -> SessionCache:
    """Wire an S3 secure store, a CRM client using it, and the session cache."""
    store = S3SecureStore(
        s3=s3,
        bucket=settings.store_bucket,
        prefix=settings.store_prefix,
        fernet_key=settings.fernet_key,
    )
    client = CrmApiClient(settings.api_base_url, store=store, timeout=settings.api_timeout)
    return SessionCache(store, client, idle_limit_ms=settings.idle_limit_ms)
