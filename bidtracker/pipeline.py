from __future__ import annotations

import logging
import re
import time
from datetime import date
from typing import Optional

from .completion import CompletionClient
from .errors import (
    CompletionServiceError,
    DeadlineExceededError,
    RenderingError,
    ResumeGenerationError,
)
from .models import Profile
from .prompt import compose_prompt
from .renderer import DocumentRenderer
from .settings import Settings
from .styles import resolve_style

logger = logging.getLogger(__name__)


def sanitize_name_part(text: str) -> str:
    return re.sub(r"[^A-Za-z0-9]", "_", text or "")


def resume_file_name(full_name: str, company_name: str, job_title: str, on: Optional[date] = None) -> str:
    """`<fullName>_<company>_<jobTitle>_<dayOfMonth>.pdf`, non-alphanumerics as `_`."""
    day = (on or date.today()).day
    parts = [sanitize_name_part(full_name), sanitize_name_part(company_name), sanitize_name_part(job_title)]
    return "_".join(parts) + f"_{day}.pdf"


class Deadline:
    def __init__(self, seconds: Optional[float]) -> None:
        self._expires = None if seconds is None else time.monotonic() + seconds

    def remaining(self, stage: str) -> Optional[float]:
        """Seconds left, or raise DeadlineExceededError naming the stage about to start."""
        if self._expires is None:
            return None
        left = self._expires - time.monotonic()
        if left <= 0:
            raise DeadlineExceededError(f"Deadline exceeded before {stage}", stage=stage)
        return left


class ResumePipeline:
    """
    Prompt -> completion -> render, once per call.

    No stage is retried here (the completion client retries transient errors
    itself) and nothing is cached. A failure in either external stage is
    re-raised as that stage's error type.
    """

    def __init__(
        self,
        completion_client: CompletionClient,
        renderer: DocumentRenderer,
        *,
        timeout: Optional[float] = 180.0,
    ) -> None:
        self.completion_client = completion_client
        self.renderer = renderer
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "ResumePipeline":
        client = CompletionClient(
            model=settings.openai_model,
            api_key=settings.openai_api_key,
            max_attempts=settings.completion_max_attempts,
            backoff_seconds=settings.completion_backoff_seconds,
            max_backoff_seconds=settings.completion_max_backoff_seconds,
        )
        renderer = DocumentRenderer(
            max_concurrent=settings.render_max_concurrent,
            queue_timeout=settings.render_queue_timeout_seconds,
            sandbox=settings.browser_sandbox,
        )
        return cls(client, renderer, timeout=settings.resume_timeout_seconds)

    def generate_resume_document(
        self,
        job_title: str,
        job_description: str,
        profile: Profile,
        timeout: Optional[float] = None,
    ) -> bytes:
        deadline = Deadline(timeout if timeout is not None else self.timeout)
        started = time.monotonic()
        style = resolve_style(profile.style_settings)
        prompt = compose_prompt(job_title, job_description, profile)
        logger.info("Generating resume for profile %s (%r, prompt %d chars)", profile.id, job_title, len(prompt))

        try:
            fragment = self.completion_client.complete(prompt, timeout=deadline.remaining("completion"))
        except ResumeGenerationError:
            raise
        except Exception as exc:
            raise CompletionServiceError(f"Completion service failure: {exc}") from exc
        if not fragment.strip():
            logger.warning("Completion returned an empty fragment for profile %s", profile.id)

        try:
            pdf_bytes = self.renderer.render(fragment, style, timeout=deadline.remaining("rendering"))
        except ResumeGenerationError:
            raise
        except Exception as exc:
            raise RenderingError(f"Rendering failed: {exc}") from exc

        logger.info(
            "Resume for profile %s ready: %d bytes in %.2fs", profile.id, len(pdf_bytes), time.monotonic() - started
        )
        return pdf_bytes

    def close(self) -> None:
        self.completion_client.close()
