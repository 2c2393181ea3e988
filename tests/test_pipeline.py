import unittest

from bidtracker.errors import (
    CompletionServiceError,
    DeadlineExceededError,
    RenderingError,
    ResumeGenerationError,
)
from bidtracker.models import Profile, StyleSettings
from bidtracker.pipeline import ResumePipeline
from bidtracker.renderer import build_resume_html

FAKE_PDF = b"%PDF-1.7\n%fake resume\n%%EOF"


class StubCompletion:
    def __init__(self, fragment="<h1>Jane Doe</h1><h2>Software Engineer</h2>", error=None):
        self.fragment = fragment
        self.error = error
        self.prompts = []
        self.timeouts = []

    def complete(self, prompt, timeout=None):
        self.prompts.append(prompt)
        self.timeouts.append(timeout)
        if self.error is not None:
            raise self.error
        return self.fragment

    def close(self):
        pass


class SpyRenderer:
    def __init__(self, error=None):
        self.error = error
        self.calls = []

    def render(self, fragment, style, timeout=None):
        self.calls.append((fragment, style, timeout))
        if self.error is not None:
            raise self.error
        return FAKE_PDF


def _profile(**overrides):
    data = {
        "id": "p_jane",
        "user_id": "u1",
        "full_name": "Jane Doe",
        "email": "jane@example.com",
        "current_role": "Software Engineer",
    }
    data.update(overrides)
    return Profile(**data)


class TestResumePipeline(unittest.TestCase):
    def test_generates_pdf_from_composed_prompt_and_default_style(self):
        completion = StubCompletion()
        renderer = SpyRenderer()
        pipeline = ResumePipeline(completion, renderer, timeout=30)

        pdf_bytes = pipeline.generate_resume_document("Backend Engineer", "Build APIs", _profile())

        self.assertTrue(pdf_bytes.startswith(b"%PDF"))
        self.assertGreater(len(pdf_bytes), 0)
        self.assertEqual(len(completion.prompts), 1)
        prompt = completion.prompts[0]
        self.assertIn('job titled "Backend Engineer"', prompt)
        self.assertIn('My job title must be "Software Engineer"', prompt)
        self.assertIn("Build APIs", prompt)

        self.assertEqual(len(renderer.calls), 1)
        fragment, style, _ = renderer.calls[0]
        self.assertIn("Jane Doe", fragment)
        html_doc = build_resume_html(fragment, style)
        self.assertIn("color: #1a1a1a;", html_doc)
        self.assertIn("Jane Doe", html_doc)

    def test_profile_style_reaches_renderer(self):
        renderer = SpyRenderer()
        profile = _profile(style_settings=StyleSettings(full_name_color="#123456", line_height="1.2"))

        ResumePipeline(StubCompletion(), renderer).generate_resume_document("T", "D", profile)

        style = renderer.calls[0][1]
        self.assertEqual(style.h1_color, "#123456")
        self.assertEqual(style.line_height, "1.2")
        self.assertEqual(style.h2_color, "#4f46e5")

    def test_completion_failure_skips_rendering(self):
        completion = StubCompletion(error=CompletionServiceError("upstream down"))
        renderer = SpyRenderer()

        with self.assertRaises(CompletionServiceError) as ctx:
            ResumePipeline(completion, renderer).generate_resume_document("T", "D", _profile())

        self.assertEqual(ctx.exception.stage, "completion")
        self.assertEqual(renderer.calls, [])

    def test_unexpected_completion_error_is_wrapped(self):
        renderer = SpyRenderer()
        completion = StubCompletion(error=ConnectionResetError("reset"))

        with self.assertRaises(CompletionServiceError):
            ResumePipeline(completion, renderer).generate_resume_document("T", "D", _profile())
        self.assertEqual(renderer.calls, [])

    def test_render_failure_reports_rendering_stage(self):
        renderer = SpyRenderer(error=RuntimeError("chromium crashed"))

        with self.assertRaises(RenderingError) as ctx:
            ResumePipeline(StubCompletion(), renderer).generate_resume_document("T", "D", _profile())

        self.assertEqual(ctx.exception.stage, "rendering")
        self.assertIsInstance(ctx.exception, ResumeGenerationError)

    def test_empty_fragment_still_renders(self):
        renderer = SpyRenderer()
        pdf_bytes = ResumePipeline(StubCompletion(fragment=""), renderer).generate_resume_document(
            "T", "D", _profile()
        )
        self.assertEqual(pdf_bytes, FAKE_PDF)
        self.assertEqual(renderer.calls[0][0], "")

    def test_expired_deadline_fails_before_calling_out(self):
        completion = StubCompletion()
        renderer = SpyRenderer()

        with self.assertRaises(DeadlineExceededError) as ctx:
            ResumePipeline(completion, renderer).generate_resume_document("T", "D", _profile(), timeout=0)

        self.assertEqual(ctx.exception.stage, "completion")
        self.assertEqual(completion.prompts, [])
        self.assertEqual(renderer.calls, [])

    def test_remaining_time_is_passed_to_each_stage(self):
        completion = StubCompletion()
        renderer = SpyRenderer()

        ResumePipeline(completion, renderer, timeout=120).generate_resume_document("T", "D", _profile())

        completion_timeout = completion.timeouts[0]
        render_timeout = renderer.calls[0][2]
        self.assertTrue(0 < completion_timeout <= 120)
        self.assertTrue(0 < render_timeout <= completion_timeout)

    def test_same_inputs_give_same_prompt_each_call(self):
        completion = StubCompletion()
        pipeline = ResumePipeline(completion, SpyRenderer())
        profile = _profile()

        pipeline.generate_resume_document("T", "D", profile)
        pipeline.generate_resume_document("T", "D", profile)

        self.assertEqual(completion.prompts[0], completion.prompts[1])


if __name__ == "__main__":
    unittest.main()
