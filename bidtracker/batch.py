from __future__ import annotations

import logging
import sqlite3
from datetime import date
from typing import List, Optional, Sequence

from . import db, storage
from .errors import InvalidStyleError, ResumeGenerationError
from .models import BatchItemFailure, BatchJobRow, BatchResult, Profile
from .pipeline import ResumePipeline, resume_file_name

logger = logging.getLogger(__name__)


def generate_batch(
    pipeline: ResumePipeline,
    profile: Profile,
    jobs: Sequence[BatchJobRow],
    today: Optional[date] = None,
) -> BatchResult:
    """
    Generate one resume per job row, strictly one after another.

    Rows whose link already has a bid or pending bid for this profile are
    skipped. A failing row is recorded in `failed` with the stage that broke
    and the remaining rows still run.
    """
    result = BatchResult(total=len(jobs))
    seen: List[str] = []

    for index, job in enumerate(jobs):
        if job.link in seen or db.pending_bid_exists(profile.id, job.link) or db.bid_exists(profile.id, job.link):
            result.skipped.append(job.link)
            continue
        seen.append(job.link)

        try:
            pdf_bytes = pipeline.generate_resume_document(job.job_title, job.job_description, profile)
        except ResumeGenerationError as exc:
            logger.error("Batch row %d (%s) failed at %s: %s", index, job.link, exc.stage, exc)
            result.failed.append(_failure(index, job, exc.stage, str(exc)))
            continue
        except InvalidStyleError as exc:
            logger.error("Batch row %d (%s) has an unusable style: %s", index, job.link, exc)
            result.failed.append(_failure(index, job, "style", str(exc)))
            continue

        file_name = resume_file_name(profile.full_name, job.company_name, job.job_title, today)
        try:
            path = storage.save_resume_pdf(file_name, pdf_bytes)
            pending = db.create_pending_bid(
                profile.id,
                job_title=job.job_title,
                company_name=job.company_name,
                job_description=job.job_description,
                link=job.link,
                resume_file_name=file_name,
            )
        except (OSError, sqlite3.Error) as exc:
            logger.error("Batch row %d (%s) could not be stored: %s", index, job.link, exc)
            result.failed.append(_failure(index, job, "storage", str(exc)))
            continue

        result.created.append(pending)
        logger.info("PDF saved to %s (%d/%d)", path, index + 1, len(jobs))

    logger.info(
        "Batch for profile %s done: %d created, %d skipped, %d failed",
        profile.id,
        len(result.created),
        len(result.skipped),
        len(result.failed),
    )
    return result


def _failure(index: int, job: BatchJobRow, stage: str, error: str) -> BatchItemFailure:
    return BatchItemFailure(
        row=index,
        link=job.link,
        job_title=job.job_title,
        company_name=job.company_name,
        stage=stage,
        error=error,
    )
