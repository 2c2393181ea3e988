from __future__ import annotations

from typing import Optional


class ResumeGenerationError(Exception):
    """Base error for a failed resume generation; `stage` names where it failed."""

    stage = "pipeline"

    def __init__(self, message: str, stage: Optional[str] = None) -> None:
        super().__init__(message)
        if stage:
            self.stage = stage


class CompletionServiceError(ResumeGenerationError):
    """Completion API unreachable, rate-limited past retries, or rejected the request."""

    stage = "completion"


class RenderingError(ResumeGenerationError):
    """Browser launch, page load, or PDF printing failed."""

    stage = "rendering"


class RendererBusyError(RenderingError):
    def __init__(self, message: str, retry_after: int = 5) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class DeadlineExceededError(ResumeGenerationError):
    pass


class InvalidStyleError(ValueError):
    def __init__(self, field: str, value: object) -> None:
        super().__init__(f"Invalid {field.replace('_', ' ')}: {value!r}")
        self.field = field
        self.value = value
