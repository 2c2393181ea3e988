import threading
import unittest
from unittest.mock import patch

import bidtracker.renderer as renderer_module
from bidtracker.errors import DeadlineExceededError, RendererBusyError, RenderingError
from bidtracker.renderer import PDF_MARGIN, DocumentRenderer
from bidtracker.styles import ResolvedStyle


def _wire_browser(mock_sync_playwright):
    playwright = mock_sync_playwright.return_value.__enter__.return_value
    browser = playwright.chromium.launch.return_value
    page = browser.new_page.return_value
    return playwright, browser, page


class TestDocumentRenderer(unittest.TestCase):
    def test_prints_a4_with_uniform_margins_and_closes_browser(self):
        with patch.object(renderer_module, "sync_playwright") as mock_sp:
            playwright, browser, page = _wire_browser(mock_sp)
            page.pdf.return_value = b"%PDF-1.7 fake"

            renderer = DocumentRenderer(max_concurrent=1, queue_timeout=1)
            pdf_bytes = renderer.render("<h1>Jane Doe</h1>", ResolvedStyle(), timeout=5)

        self.assertTrue(pdf_bytes.startswith(b"%PDF"))
        playwright.chromium.launch.assert_called_once_with(headless=True, chromium_sandbox=True)
        html_doc = page.set_content.call_args.args[0]
        self.assertIn("<body><h1>Jane Doe</h1></body>", html_doc)
        self.assertEqual(page.set_content.call_args.kwargs["wait_until"], "networkidle")
        self.assertTrue(4500 < page.set_content.call_args.kwargs["timeout"] <= 5000)
        page.pdf.assert_called_once_with(
            format="A4",
            margin=PDF_MARGIN,
            print_background=True,
            display_header_footer=False,
        )
        self.assertEqual(PDF_MARGIN, {"top": "25mm", "right": "25mm", "bottom": "25mm", "left": "25mm"})
        browser.close.assert_called_once()
        self.assertEqual(renderer.active_renders, 0)

    def test_browser_closed_and_slot_released_when_printing_fails(self):
        with patch.object(renderer_module, "sync_playwright") as mock_sp:
            _, browser, page = _wire_browser(mock_sp)
            page.pdf.side_effect = RuntimeError("printer on fire")

            renderer = DocumentRenderer(max_concurrent=1, queue_timeout=0)
            with self.assertRaises(RenderingError) as ctx:
                renderer.print_pdf("<html></html>")
            self.assertEqual(ctx.exception.stage, "rendering")
            browser.close.assert_called_once()

            page.pdf.side_effect = None
            page.pdf.return_value = b"%PDF-1.7"
            self.assertEqual(renderer.print_pdf("<html></html>"), b"%PDF-1.7")

    def test_launch_failure_is_a_rendering_error(self):
        with patch.object(renderer_module, "sync_playwright") as mock_sp:
            playwright, _, _ = _wire_browser(mock_sp)
            playwright.chromium.launch.side_effect = RuntimeError("no chromium")

            with self.assertRaises(RenderingError):
                DocumentRenderer(queue_timeout=0).print_pdf("<html></html>")

    def test_rejects_when_all_slots_are_busy(self):
        renderer = DocumentRenderer(max_concurrent=1, queue_timeout=0)
        renderer._slots.acquire()
        try:
            with patch.object(renderer_module, "sync_playwright") as mock_sp:
                with self.assertRaises(RendererBusyError) as ctx:
                    renderer.print_pdf("<html></html>")
                mock_sp.assert_not_called()
            self.assertGreaterEqual(ctx.exception.retry_after, 1)
        finally:
            renderer._slots.release()

    def test_time_spent_queued_comes_out_of_the_render_timeout(self):
        renderer = DocumentRenderer(max_concurrent=1, queue_timeout=30)
        renderer._slots.acquire()
        releaser = threading.Timer(0.4, renderer._slots.release)
        releaser.start()
        try:
            with patch.object(renderer_module, "sync_playwright") as mock_sp:
                _, _, page = _wire_browser(mock_sp)
                page.pdf.return_value = b"%PDF"
                renderer.print_pdf("<html></html>", timeout=1.0)
        finally:
            releaser.join()

        load_timeout_ms = page.set_content.call_args.kwargs["timeout"]
        self.assertGreater(load_timeout_ms, 0)
        self.assertLessEqual(load_timeout_ms, 650)

    def test_deadline_running_out_in_queue_is_not_reported_as_busy(self):
        renderer = DocumentRenderer(max_concurrent=1, queue_timeout=30)
        renderer._slots.acquire()
        try:
            with patch.object(renderer_module, "sync_playwright") as mock_sp:
                with self.assertRaises(DeadlineExceededError) as ctx:
                    renderer.print_pdf("<html></html>", timeout=0.1)
                mock_sp.assert_not_called()
            self.assertEqual(ctx.exception.stage, "rendering")
        finally:
            renderer._slots.release()

    def test_sandbox_flag_is_configurable(self):
        with patch.object(renderer_module, "sync_playwright") as mock_sp:
            playwright, _, page = _wire_browser(mock_sp)
            page.pdf.return_value = b"%PDF"
            DocumentRenderer(sandbox=False).print_pdf("<html></html>")
        playwright.chromium.launch.assert_called_once_with(headless=True, chromium_sandbox=False)


if __name__ == "__main__":
    unittest.main()
