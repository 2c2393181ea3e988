from __future__ import annotations

from typing import List

from .models import Profile

PROMPT_PREAMBLE = (
    "Forget anything you learned before. You are a professional resume writer.\n"
    "Act as a senior-level resume strategist and ATS optimization expert.\n"
    "Create a competitive, ATS-optimized resume for the job below.\n"
    "Use realistic but fictional work history. Render the resume in HTML format "
    "(only the contents of the body element), using appropriate HTML syntax for "
    "headings, lists, and emphasis. Put the candidate's full name in an h1 and "
    "the candidate's job title in an h2.\n"
)


def _clause(label: str, value: str) -> str:
    value = (value or "").strip()
    return f"{label} {value}" if value else ""


def compose_prompt(job_title: str, job_description: str, profile: Profile) -> str:
    """Build the completion prompt for one job and profile.

    Each populated profile field contributes one labeled clause; empty fields
    contribute nothing. The candidate's title is always the profile's stored
    `current_role`, never the posting's title.
    """
    skills = ", ".join(s.strip() for s in profile.skills if (s or "").strip())
    clauses: List[str] = [
        _clause("name is", profile.full_name),
        _clause("email is", profile.email),
        _clause("phone is", profile.phone_number),
        _clause("address is", profile.address),
        _clause("education is", profile.education),
        _clause("work experience is", profile.company_history),
        _clause("here is some more info about the resume:", profile.extra_note),
        _clause("my skills also include", skills),
    ]
    lines = [
        PROMPT_PREAMBLE,
        f'I want to make a resume to apply for the job titled "{job_title}".',
        f'My job title must be "{profile.current_role}".',
        f"The job description is as follows: {job_description}",
    ]
    lines.extend(clause + "." for clause in clauses if clause)
    return "\n".join(lines) + "\n"
