from __future__ import annotations

import os
from typing import Optional

from pydantic import BaseModel

from . import env  # noqa: F401  # ensures .env is loaded


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Settings(BaseModel):
    """Runtime tunables, read once at startup."""

    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o-mini"
    completion_max_attempts: int = 3
    completion_backoff_seconds: float = 1.0
    completion_max_backoff_seconds: float = 10.0
    resume_timeout_seconds: float = 180.0
    render_max_concurrent: int = 2
    render_queue_timeout_seconds: float = 30.0
    browser_sandbox: bool = True
    api_key: Optional[str] = None
    rate_limit_per_min: int = 60
    rate_limit_local_per_min: int = 1000
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            openai_api_key=os.getenv("OPENAI_API_KEY") or None,
            openai_model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
            completion_max_attempts=int(os.getenv("COMPLETION_MAX_ATTEMPTS", "3")),
            completion_backoff_seconds=float(os.getenv("COMPLETION_BACKOFF_SECONDS", "1.0")),
            completion_max_backoff_seconds=float(os.getenv("COMPLETION_MAX_BACKOFF_SECONDS", "10.0")),
            resume_timeout_seconds=float(os.getenv("RESUME_TIMEOUT_SECONDS", "180")),
            render_max_concurrent=int(os.getenv("RENDER_MAX_CONCURRENT", "2")),
            render_queue_timeout_seconds=float(os.getenv("RENDER_QUEUE_TIMEOUT_SECONDS", "30")),
            browser_sandbox=_env_bool("BROWSER_SANDBOX", True),
            api_key=os.getenv("API_KEY") or None,
            rate_limit_per_min=int(os.getenv("RATE_LIMIT_PER_MIN", "60")),
            rate_limit_local_per_min=int(os.getenv("RATE_LIMIT_LOCAL_PER_MIN", "1000")),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )
