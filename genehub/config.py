"""
Runtime configuration for the GeneHub gateway.

Everything is read from the environment once, at process start, through
`Settings.from_env()`. Components receive the values they need explicitly so
tests can build isolated instances without touching os.environ.

Environment toggles
-------------------
LOG_LEVEL             (default: INFO)
APP_TITLE / APP_VERSION / ROOT_PATH / CORS_ALLOW_ORIGINS
REDIS_URL             (unset -> in-process memory store)
STORE_NAMESPACE       (default: genehub)
BIOCYC_EMAIL / BIOCYC_PASSWORD   credentials for the authenticated upstream
NCBI_API_KEY          elevated E-utilities rate (10 req/s instead of 3)
HTTP_RETRIES          (default: 1)
HTTP_BACKOFF          (default: 0.25 seconds base)
OUTBOUND_USER_AGENT
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import List, Optional


def _env(name: str, default: str = "") -> str:
    return os.getenv(name, default)


def _float_env(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except ValueError:
        return default


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


def _optional_env(name: str) -> Optional[str]:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    return value.strip()


@dataclass(frozen=True)
class Settings:
    log_level: str = "INFO"
    app_title: str = "GeneHub Gateway"
    app_version: str = "2025.10"
    root_path: str = ""
    cors_allow_origins: List[str] = field(default_factory=lambda: ["*"])

    redis_url: Optional[str] = None
    store_namespace: str = "genehub"

    biocyc_email: Optional[str] = None
    biocyc_password: Optional[str] = None
    ncbi_api_key: Optional[str] = None

    http_retries: int = 1
    http_backoff: float = 0.25
    user_agent: str = "GeneHub/1.0 (+https://github.com/genehub/genehub-gateway)"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            log_level=_env("LOG_LEVEL", "INFO").upper(),
            app_title=_env("APP_TITLE", "GeneHub Gateway"),
            app_version=_env("APP_VERSION", "2025.10"),
            root_path=_env("ROOT_PATH", ""),
            cors_allow_origins=[o for o in _env("CORS_ALLOW_ORIGINS", "*").split(",") if o],
            redis_url=_optional_env("REDIS_URL"),
            store_namespace=_env("STORE_NAMESPACE", "genehub"),
            biocyc_email=_optional_env("BIOCYC_EMAIL"),
            biocyc_password=_optional_env("BIOCYC_PASSWORD"),
            ncbi_api_key=_optional_env("NCBI_API_KEY"),
            http_retries=_int_env("HTTP_RETRIES", 1),
            http_backoff=_float_env("HTTP_BACKOFF", 0.25),
            user_agent=_env("OUTBOUND_USER_AGENT", cls.user_agent),
        )
