from __future__ import annotations

import logging
import math
import threading
import time
from collections import defaultdict, deque
from typing import Deque, Dict, List, Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from .batch import generate_batch
from .db import (
    approve_pending_bid,
    create_bid,
    create_profile,
    delete_pending_bid,
    delete_profile,
    get_pending_bid,
    get_profile,
    get_profile_by_id,
    get_statistics,
    init_db,
    list_bids,
    list_pending_bids,
    list_profiles,
    pending_resume_files,
    set_bid_reported,
    set_pending_status,
    update_profile,
    update_style_settings,
)
from .errors import (
    CompletionServiceError,
    DeadlineExceededError,
    InvalidStyleError,
    RendererBusyError,
    ResumeGenerationError,
)
from .models import (
    BatchGenerateRequest,
    BatchResult,
    Bid,
    BidCreate,
    GenerateResumeRequest,
    PendingBidPage,
    Profile,
    ProfileCreate,
    ProfileUpdate,
    Statistics,
    StyleSettings,
)
from .pipeline import ResumePipeline, resume_file_name
from .settings import Settings
from .storage import delete_resume_pdf, ensure_data_dirs, save_resume_pdf
from .styles import resolve_style

SETTINGS = Settings.from_env()

logging.basicConfig(
    level=SETTINGS.log_level,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Bid Tracker", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

API_KEY = SETTINGS.api_key
RATE_LIMIT_PER_MIN = SETTINGS.rate_limit_per_min
RATE_LIMIT_LOCAL_PER_MIN = SETTINGS.rate_limit_local_per_min
RATE_LIMIT_WINDOW = 60  # seconds
_REQUEST_BUCKETS: Dict[str, Deque[float]] = defaultdict(deque)
_LAST_SWEEP = 0.0

_PIPELINE: Optional[ResumePipeline] = None
_PIPELINE_LOCK = threading.Lock()


class ReportRequest(BaseModel):
    reported: bool = True


class PendingBidActionRequest(BaseModel):
    action: str = "approve"  # approve | update


def get_pipeline() -> ResumePipeline:
    global _PIPELINE
    with _PIPELINE_LOCK:
        if _PIPELINE is None:
            _PIPELINE = ResumePipeline.from_settings(SETTINGS)
        return _PIPELINE


@app.on_event("startup")
def startup() -> None:
    ensure_data_dirs()
    init_db()
    get_pipeline()
    logger.info(
        "Resume pipeline ready (model=%s, render slots=%d)",
        SETTINGS.openai_model,
        SETTINGS.render_max_concurrent,
    )


@app.on_event("shutdown")
def shutdown() -> None:
    global _PIPELINE
    with _PIPELINE_LOCK:
        if _PIPELINE is not None:
            _PIPELINE.close()
            _PIPELINE = None


UNGUARDED_PATHS = ("/health", "/favicon", "/docs", "/openapi", "/redoc")
LOCAL_HOSTS = {"127.0.0.1", "::1", "localhost"}


def _bearer_token(request) -> Optional[str]:
    header = request.headers.get("authorization") or ""
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def _auth_failure(request) -> Optional[JSONResponse]:
    if not API_KEY:
        return None
    token = _bearer_token(request)
    if not token:
        return JSONResponse({"detail": "No token provided"}, status_code=401)
    if token != API_KEY:
        return JSONResponse({"detail": "Invalid or expired token"}, status_code=401)
    return None


def _sweep_idle_buckets(now: float) -> None:
    global _LAST_SWEEP
    if now - _LAST_SWEEP < RATE_LIMIT_WINDOW:
        return
    _LAST_SWEEP = now
    cutoff = now - RATE_LIMIT_WINDOW
    for key in [k for k, dq in _REQUEST_BUCKETS.items() if not dq or dq[-1] < cutoff]:
        del _REQUEST_BUCKETS[key]


def _throttle(client_host: str) -> Optional[int]:
    """Record a request from `client_host`; return a retry-after in seconds when over the limit."""
    limit = RATE_LIMIT_LOCAL_PER_MIN if client_host in LOCAL_HOSTS else RATE_LIMIT_PER_MIN
    now = time.monotonic()
    _sweep_idle_buckets(now)

    window = _REQUEST_BUCKETS[client_host]
    while window and window[0] < now - RATE_LIMIT_WINDOW:
        window.popleft()
    if len(window) >= limit:
        if not window:
            return 1
        return max(1, int(math.ceil(window[0] + RATE_LIMIT_WINDOW - now)))
    window.append(now)
    return None


@app.middleware("http")
async def guard_requests(request, call_next):
    if not request.url.path.startswith(UNGUARDED_PATHS):
        denied = _auth_failure(request)
        if denied is not None:
            return denied
        client = request.client
        retry_after = _throttle((client.host if client else None) or "anon")
        if retry_after is not None:
            return JSONResponse(
                {"detail": "rate limit exceeded", "retry_after": retry_after},
                status_code=429,
                headers={"Retry-After": str(retry_after)},
            )
    return await call_next(request)


def _require_profile(user_id: str, profile_id: str) -> Profile:
    profile = get_profile(user_id, profile_id)
    if not profile:
        raise HTTPException(status_code=404, detail=f"profile {profile_id} not found")
    return profile


def _check_style(profile: Profile) -> None:
    try:
        resolve_style(profile.style_settings)
    except InvalidStyleError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


def _generation_http_error(exc: ResumeGenerationError) -> HTTPException:
    detail = {"message": str(exc), "stage": exc.stage}
    if isinstance(exc, RendererBusyError):
        return HTTPException(status_code=503, detail=detail, headers={"Retry-After": str(exc.retry_after)})
    if isinstance(exc, DeadlineExceededError):
        return HTTPException(status_code=504, detail=detail)
    if isinstance(exc, CompletionServiceError):
        return HTTPException(status_code=502, detail=detail)
    return HTTPException(status_code=500, detail=detail)


@app.get("/health")
def health() -> dict:
    status = {"status": "ok", "pipeline_ready": _PIPELINE is not None}
    if _PIPELINE is not None:
        status["render_slots"] = _PIPELINE.renderer.max_concurrent
        status["active_renders"] = _PIPELINE.renderer.active_renders
    return status


@app.get("/profiles")
def get_profiles(user_id: str) -> List[Profile]:
    return list_profiles(user_id)


@app.post("/profiles", status_code=201)
def post_profile(user_id: str, payload: ProfileCreate) -> Profile:
    return create_profile(user_id, payload)


@app.get("/profiles/{profile_id}")
def get_profile_by_path(profile_id: str, user_id: str) -> Profile:
    return _require_profile(user_id, profile_id)


@app.put("/profiles/{profile_id}")
def put_profile(profile_id: str, user_id: str, payload: ProfileUpdate) -> Profile:
    profile = update_profile(user_id, profile_id, payload)
    if not profile:
        raise HTTPException(status_code=404, detail=f"profile {profile_id} not found")
    return profile


@app.patch("/profiles/{profile_id}/style")
def patch_profile_style(profile_id: str, user_id: str, payload: StyleSettings) -> StyleSettings:
    profile = update_style_settings(user_id, profile_id, payload)
    if not profile:
        raise HTTPException(status_code=404, detail=f"profile {profile_id} not found")
    return profile.style_settings


@app.delete("/profiles/{profile_id}")
def remove_profile(profile_id: str, user_id: str) -> dict:
    _require_profile(user_id, profile_id)
    files = pending_resume_files(profile_id)
    if not delete_profile(user_id, profile_id):
        raise HTTPException(status_code=404, detail=f"profile {profile_id} not found")
    removed = sum(1 for name in files if delete_resume_pdf(name))
    return {"id": profile_id, "deleted": True, "pending_bids_removed": len(files), "files_removed": removed}


@app.get("/bids")
def get_bids(user_id: str, limit: int = 50, offset: int = 0, profile_id: Optional[str] = None) -> List[Bid]:
    return list_bids(user_id, limit=limit, offset=offset, profile_id=profile_id)


@app.post("/bids", status_code=201)
def post_bid(user_id: str, payload: BidCreate) -> Bid:
    _require_profile(user_id, payload.profile_id)
    return create_bid(user_id, payload)


@app.put("/bids/{bid_id}/report")
def report_bid(bid_id: str, user_id: str, payload: ReportRequest) -> Bid:
    bid = set_bid_reported(user_id, bid_id, payload.reported)
    if not bid:
        raise HTTPException(status_code=404, detail=f"bid {bid_id} not found")
    return bid


@app.post("/resumes/generate")
def generate_resume(user_id: str, payload: GenerateResumeRequest) -> Response:
    profile = _require_profile(user_id, payload.profile_id)
    _check_style(profile)
    try:
        pdf_bytes = get_pipeline().generate_resume_document(payload.job_title, payload.job_description, profile)
    except ResumeGenerationError as exc:
        raise _generation_http_error(exc)

    file_name = resume_file_name(profile.full_name, payload.company_name, payload.job_title)
    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{file_name}"'},
    )


@app.post("/resumes/batch")
def generate_resume_batch(user_id: str, payload: BatchGenerateRequest) -> BatchResult:
    profile = _require_profile(user_id, payload.profile_id)
    _check_style(profile)
    return generate_batch(get_pipeline(), profile, payload.jobs)


@app.get("/statistics")
def get_bid_statistics(user_id: str) -> Statistics:
    return get_statistics(user_id)


@app.get("/pending-bids")
def get_pending_bids(user_id: str, page: int = 1, page_size: int = 10) -> PendingBidPage:
    items, total = list_pending_bids(user_id, page=page, page_size=page_size)
    return PendingBidPage(data=items, total=total, page=page, page_size=page_size)


@app.put("/pending-bids/{pending_id}")
def act_on_pending_bid(pending_id: str, user_id: str, payload: PendingBidActionRequest) -> dict:
    pending = get_pending_bid(user_id, pending_id)
    if not pending:
        raise HTTPException(status_code=404, detail=f"pending bid {pending_id} not found")

    action = (payload.action or "").strip().lower()
    if action not in {"approve", "update"}:
        raise HTTPException(status_code=400, detail="action must be approve or update")

    if action == "approve":
        bid = approve_pending_bid(user_id, pending)
        return {"action": action, "bid": bid.model_dump()}

    profile = get_profile_by_id(pending.profile_id)
    if not profile:
        raise HTTPException(status_code=404, detail=f"profile {pending.profile_id} not found")
    _check_style(profile)

    set_pending_status(pending, "in_progress")
    try:
        pdf_bytes = get_pipeline().generate_resume_document(pending.job_title, pending.job_description, profile)
        save_resume_pdf(pending.resume_file_name, pdf_bytes)
    except ResumeGenerationError as exc:
        raise _generation_http_error(exc)
    except OSError as exc:
        logger.error("Could not store regenerated PDF %s: %s", pending.resume_file_name, exc)
        raise HTTPException(status_code=500, detail={"message": str(exc), "stage": "storage"})
    finally:
        pending = set_pending_status(pending, "pending")
    logger.info("PDF updated for pending bid %s (%s)", pending.id, pending.resume_file_name)
    return {"action": action, "pending_bid": pending.model_dump()}


@app.delete("/pending-bids/{pending_id}")
def remove_pending_bid(pending_id: str, user_id: str) -> dict:
    pending = get_pending_bid(user_id, pending_id)
    if not pending:
        raise HTTPException(status_code=404, detail=f"pending bid {pending_id} not found")
    delete_resume_pdf(pending.resume_file_name)
    delete_pending_bid(pending.id)
    return {"id": pending_id, "deleted": True}
