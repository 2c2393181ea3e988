from __future__ import annotations

import re
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from .styles import check_color, check_font, check_line_height

EMAIL_RE = re.compile(r"^\w+([.-]?\w+)*@\w+([.-]?\w+)*(\.\w{2,3})+$")
LINK_RE = re.compile(r"^https?://.+")

PENDING_STATUSES = ("pending", "in_progress", "completed", "cancelled")


def _check_email(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    cleaned = value.strip().lower()
    if not EMAIL_RE.match(cleaned):
        raise ValueError("Please provide a valid email")
    return cleaned


def _check_link(value: str) -> str:
    cleaned = (value or "").strip()
    if not LINK_RE.match(cleaned):
        raise ValueError("Please provide a valid URL starting with http:// or https://")
    return cleaned


class StyleSettings(BaseModel):
    full_name_color: Optional[str] = None
    current_role_color: Optional[str] = None
    text_color: Optional[str] = None
    bg_color: Optional[str] = None
    heading_font: Optional[str] = None
    text_font: Optional[str] = None
    line_height: Optional[str] = None

    @field_validator("full_name_color", "current_role_color", "text_color", "bg_color")
    @classmethod
    def _color(cls, value: Optional[str], info) -> Optional[str]:
        return check_color(info.field_name, value)

    @field_validator("heading_font", "text_font")
    @classmethod
    def _font(cls, value: Optional[str], info) -> Optional[str]:
        return check_font(info.field_name, value)

    @field_validator("line_height")
    @classmethod
    def _line_height(cls, value: Optional[str]) -> Optional[str]:
        return check_line_height(value)

    def merged(self, update: "StyleSettings") -> "StyleSettings":
        """Overlay the fields explicitly set on `update` onto this bundle."""
        data = self.model_dump()
        data.update(update.model_dump(exclude_unset=True))
        return StyleSettings(**data)


class ProfileCreate(BaseModel):
    full_name: str = Field(min_length=1, max_length=100)
    email: str
    phone_number: str = ""
    address: str = ""
    education: str = ""
    company_history: str = ""
    extra_note: str = ""
    skills: List[str] = Field(default_factory=list)
    current_role: str = ""
    is_primary: bool = False
    style_settings: StyleSettings = Field(default_factory=StyleSettings)

    @field_validator("email")
    @classmethod
    def _email(cls, value: str) -> str:
        return _check_email(value)


class ProfileUpdate(BaseModel):
    full_name: Optional[str] = Field(default=None, max_length=100)
    email: Optional[str] = None
    phone_number: Optional[str] = None
    address: Optional[str] = None
    education: Optional[str] = None
    company_history: Optional[str] = None
    extra_note: Optional[str] = None
    skills: Optional[List[str]] = None
    current_role: Optional[str] = None
    is_primary: Optional[bool] = None
    style_settings: Optional[StyleSettings] = None

    @field_validator("email")
    @classmethod
    def _email(cls, value: Optional[str]) -> Optional[str]:
        return _check_email(value)


class Profile(ProfileCreate):
    id: str
    user_id: str
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class JobPosting(BaseModel):
    job_title: str = Field(min_length=1)
    company_name: str = ""
    job_description: str = Field(min_length=1)
    link: Optional[str] = None

    @field_validator("link")
    @classmethod
    def _link(cls, value: Optional[str]) -> Optional[str]:
        if not value:
            return None
        return _check_link(value)


class GenerateResumeRequest(JobPosting):
    profile_id: str


class BatchJobRow(JobPosting):
    company_name: str = Field(min_length=1)
    link: str

    @field_validator("link")
    @classmethod
    def _link(cls, value: str) -> str:
        return _check_link(value)


class BatchGenerateRequest(BaseModel):
    profile_id: str
    jobs: List[BatchJobRow] = Field(min_length=1)


class BidCreate(BaseModel):
    profile_id: str
    company_name: str = Field(min_length=1, max_length=100)
    job_title: str = Field(min_length=1, max_length=200)
    job_description: str = Field(min_length=1)
    link: str
    extra_note: str = ""
    resume_file_name: str = ""

    @field_validator("link")
    @classmethod
    def _link(cls, value: str) -> str:
        return _check_link(value)


class Bid(BidCreate):
    id: str
    user_id: str
    reported: bool = False
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class PendingBid(BaseModel):
    id: str
    profile_id: str
    job_title: str
    company_name: str
    job_description: str
    link: str
    resume_file_name: str
    status: str = "pending"  # pending | in_progress | completed | cancelled
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class PendingBidPage(BaseModel):
    data: List[PendingBid] = Field(default_factory=list)
    total: int = 0
    page: int = 1
    page_size: int = 10


class BatchItemFailure(BaseModel):
    row: int
    link: str
    job_title: str
    company_name: str
    stage: str
    error: str


class BatchResult(BaseModel):
    total: int = 0
    created: List[PendingBid] = Field(default_factory=list)
    skipped: List[str] = Field(default_factory=list)
    failed: List[BatchItemFailure] = Field(default_factory=list)


class StatisticsOverview(BaseModel):
    total_bids: int = 0
    total_profiles: int = 0
    recent_bids: int = 0  # last 30 days
    weekly_bids: int = 0  # last 7 days
    today_bids: int = 0
    monthly_growth_rate: float = 0.0  # percent, current month vs previous


class ProfileBidCount(BaseModel):
    profile_id: str
    full_name: str
    current_role: str = ""
    count: int


class CompanyBidCount(BaseModel):
    company_name: str
    count: int


class MonthlyBidCount(BaseModel):
    month: str  # YYYY-MM
    count: int


class RecentBid(BaseModel):
    id: str
    company_name: str
    job_title: str
    created_at: Optional[str] = None
    profile_name: str = "Unknown Profile"
    profile_role: str = ""


class Statistics(BaseModel):
    overview: StatisticsOverview = Field(default_factory=StatisticsOverview)
    top_profiles: List[ProfileBidCount] = Field(default_factory=list)
    top_companies: List[CompanyBidCount] = Field(default_factory=list)
    monthly_trends: List[MonthlyBidCount] = Field(default_factory=list)
    recent_bids: List[RecentBid] = Field(default_factory=list)
