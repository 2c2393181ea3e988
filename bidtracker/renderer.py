from __future__ import annotations

import logging
import threading
import time
from typing import Optional

from playwright.sync_api import sync_playwright

from .errors import DeadlineExceededError, RendererBusyError, RenderingError
from .styles import ResolvedStyle

logger = logging.getLogger(__name__)

PDF_MARGIN = {"top": "25mm", "right": "25mm", "bottom": "25mm", "left": "25mm"}
DEFAULT_RENDER_TIMEOUT = 60.0  # seconds


def build_resume_html(fragment: str, style: ResolvedStyle) -> str:
    """Wrap a completion fragment in a complete, styled HTML document.

    The fragment is inserted verbatim; an empty or malformed fragment still
    yields a well-formed document shell.
    """
    return f"""<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8" />
  <style>
    body {{
      font-family: {style.text_font};
      color: {style.text_color};
      background-color: {style.bg_color};
      font-size: {style.font_size};
      line-height: {style.line_height};
      padding: 25px;
      margin: 0;
    }}
    h1 {{
      text-align: center;
      color: {style.h1_color};
      margin-bottom: 20px;
      page-break-after: avoid;
      font-family: {style.heading_font};
    }}
    h2 {{
      text-align: center;
      color: {style.h2_color};
      page-break-after: avoid;
      font-family: {style.heading_font};
    }}
    h3 {{
      text-align: center;
      color: {style.h3_color};
      page-break-after: avoid;
      font-family: {style.heading_font};
    }}
    h4 {{
      text-align: center;
      color: {style.h4_color};
      page-break-after: avoid;
      font-family: {style.heading_font};
    }}
    pre {{ background: #f4f4f4; padding: 10px; white-space: pre-wrap; word-wrap: break-word; }}
    .page-break {{ page-break-before: always; break-before: page; }}
  </style>
</head>
<body>{fragment or ""}</body>
</html>"""


class DocumentRenderer:
    """
    Prints HTML documents to PDF with headless Chromium.

    At most `max_concurrent` browsers are alive at once. A render that cannot
    get a slot within `queue_timeout` seconds is rejected with
    RendererBusyError instead of spawning another process.
    """

    def __init__(
        self,
        *,
        max_concurrent: int = 2,
        queue_timeout: float = 30.0,
        sandbox: bool = True,
    ) -> None:
        self.max_concurrent = max(1, max_concurrent)
        self.queue_timeout = queue_timeout
        self.sandbox = sandbox
        self._slots = threading.BoundedSemaphore(self.max_concurrent)
        self._active = 0
        self._active_lock = threading.Lock()

    @property
    def active_renders(self) -> int:
        with self._active_lock:
            return self._active

    def render(self, fragment: str, style: ResolvedStyle, timeout: Optional[float] = None) -> bytes:
        return self.print_pdf(build_resume_html(fragment, style), timeout=timeout)

    def print_pdf(self, html_doc: str, timeout: Optional[float] = None) -> bytes:
        """`timeout` covers the wait for a slot as well as page load and printing."""
        queued_at = time.monotonic()
        deadline_bound = timeout is not None and timeout < self.queue_timeout
        wait = max(0.0, timeout) if deadline_bound else self.queue_timeout
        if not self._slots.acquire(timeout=wait):
            if deadline_bound:
                raise DeadlineExceededError("Deadline exceeded waiting for a render slot", stage="rendering")
            logger.warning("Renderer at capacity (%d slots), rejecting request", self.max_concurrent)
            raise RendererBusyError(
                f"All {self.max_concurrent} render slots are busy", retry_after=max(1, int(self.queue_timeout))
            )
        try:
            remaining = None
            if timeout is not None:
                remaining = timeout - (time.monotonic() - queued_at)
                if remaining <= 0:
                    raise DeadlineExceededError("Deadline exceeded waiting for a render slot", stage="rendering")
            with self._active_lock:
                self._active += 1
            try:
                return self._print(html_doc, remaining)
            finally:
                with self._active_lock:
                    self._active -= 1
        finally:
            self._slots.release()

    def _print(self, html_doc: str, timeout: Optional[float]) -> bytes:
        timeout_ms = (timeout if timeout is not None else DEFAULT_RENDER_TIMEOUT) * 1000
        started = time.monotonic()
        try:
            with sync_playwright() as p:
                browser = p.chromium.launch(headless=True, chromium_sandbox=self.sandbox)
                try:
                    page = browser.new_page()
                    page.set_default_timeout(timeout_ms)
                    page.set_content(html_doc, wait_until="networkidle", timeout=timeout_ms)
                    pdf_bytes = page.pdf(
                        format="A4",
                        margin=PDF_MARGIN,
                        print_background=True,
                        display_header_footer=False,
                    )
                finally:
                    browser.close()
        except Exception as exc:
            logger.error("PDF rendering failed: %s", exc)
            raise RenderingError(f"Rendering failed: {exc}") from exc

        logger.info("Rendered %d byte PDF in %.2fs", len(pdf_bytes), time.monotonic() - started)
        return pdf_bytes
