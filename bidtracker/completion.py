from __future__ import annotations

import logging
import time
from typing import Optional

from openai import (
    APIConnectionError,
    APITimeoutError,
    InternalServerError,
    OpenAI,
    OpenAIError,
    RateLimitError,
)
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    stop_after_delay,
    wait_exponential,
)

from .errors import CompletionServiceError, DeadlineExceededError

logger = logging.getLogger(__name__)

TRANSIENT_ERRORS = (APIConnectionError, APITimeoutError, RateLimitError, InternalServerError)


class CompletionClient:
    """
    Chat-completion client for resume bodies.

    Sends the prompt as a single user message and returns the first choice's
    content. Connection errors, timeouts, rate limits and 5xx responses are
    retried with exponential backoff; anything else fails on the first try.
    """

    def __init__(
        self,
        client: Optional[OpenAI] = None,
        *,
        model: str = "gpt-4o-mini",
        api_key: Optional[str] = None,
        max_attempts: int = 3,
        backoff_seconds: float = 1.0,
        max_backoff_seconds: float = 10.0,
    ) -> None:
        # The SDK's own retries are disabled so that tenacity owns the policy.
        self._client = client or OpenAI(api_key=api_key, max_retries=0)
        self.model = model
        self.max_attempts = max(1, max_attempts)
        self.backoff_seconds = backoff_seconds
        self.max_backoff_seconds = max_backoff_seconds

    def _retrying(self, timeout: Optional[float]) -> Retrying:
        stop = stop_after_attempt(self.max_attempts)
        if timeout is not None:
            stop = stop | stop_after_delay(timeout)
        return Retrying(
            stop=stop,
            wait=wait_exponential(multiplier=self.backoff_seconds, max=self.max_backoff_seconds),
            retry=retry_if_exception_type(TRANSIENT_ERRORS),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )

    def complete(self, prompt: str, timeout: Optional[float] = None) -> str:
        """
        `timeout` bounds the whole call, retries and backoff included. Each
        attempt only gets what is left of it; running out raises
        DeadlineExceededError rather than a service error.
        """
        deadline = None if timeout is None else time.monotonic() + timeout

        def time_left() -> Optional[float]:
            if deadline is None:
                return None
            left = deadline - time.monotonic()
            if left <= 0:
                raise DeadlineExceededError("Deadline exceeded during completion", stage="completion")
            return left

        try:
            for attempt in self._retrying(timeout):
                with attempt:
                    resp = self._client.chat.completions.create(
                        model=self.model,
                        messages=[{"role": "user", "content": prompt}],
                        timeout=time_left(),
                    )
        except OpenAIError as exc:
            if deadline is not None and time.monotonic() >= deadline:
                logger.error("Completion ran out of time after retries: %s", exc)
                raise DeadlineExceededError("Deadline exceeded during completion", stage="completion") from exc
            logger.error("Completion request failed: %s", exc)
            raise CompletionServiceError(f"Completion service failure: {exc}") from exc

        choices = getattr(resp, "choices", None) or []
        if not choices:
            return ""
        message = getattr(choices[0], "message", None)
        return (getattr(message, "content", None) or "") if message else ""

    def close(self) -> None:
        close = getattr(self._client, "close", None)
        if callable(close):
            close()
