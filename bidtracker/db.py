from __future__ import annotations

import sqlite3
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional, Tuple

from .models import (
    Bid,
    BidCreate,
    CompanyBidCount,
    MonthlyBidCount,
    PendingBid,
    Profile,
    ProfileBidCount,
    ProfileCreate,
    ProfileUpdate,
    RecentBid,
    Statistics,
    StatisticsOverview,
    StyleSettings,
)

DATA_DIR = Path(__file__).resolve().parent.parent / "data"
DB_PATH = DATA_DIR / "bidtracker.db"


def _conn() -> sqlite3.Connection:
    DB_PATH.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(DB_PATH)
    conn.row_factory = sqlite3.Row
    return conn


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def init_db() -> None:
    with _conn() as conn:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS profiles (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                full_name TEXT,
                email TEXT,
                is_primary INTEGER NOT NULL DEFAULT 0,
                raw_json TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
            """
        )
        # One primary profile per user
        conn.execute(
            """
            CREATE UNIQUE INDEX IF NOT EXISTS idx_profiles_primary
            ON profiles(user_id) WHERE is_primary = 1
            """
        )

        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS bids (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                profile_id TEXT NOT NULL,
                company_name TEXT,
                job_title TEXT,
                link TEXT,
                reported INTEGER NOT NULL DEFAULT 0,
                raw_json TEXT NOT NULL,
                created_at TEXT NOT NULL
            )
            """
        )
        conn.execute("CREATE INDEX IF NOT EXISTS idx_bids_user ON bids(user_id, created_at)")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_bids_profile_link ON bids(profile_id, link)")

        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS pending_bids (
                id TEXT PRIMARY KEY,
                profile_id TEXT NOT NULL,
                link TEXT,
                status TEXT NOT NULL,
                raw_json TEXT NOT NULL,
                created_at TEXT NOT NULL
            )
            """
        )
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_pending_profile_status ON pending_bids(profile_id, status)"
        )
        conn.commit()


# Profiles


def _write_profile(conn: sqlite3.Connection, profile: Profile) -> None:
    conn.execute(
        """
        INSERT INTO profiles (id, user_id, full_name, email, is_primary, raw_json, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT(id) DO UPDATE SET
            full_name=excluded.full_name,
            email=excluded.email,
            is_primary=excluded.is_primary,
            raw_json=excluded.raw_json,
            updated_at=excluded.updated_at
        """,
        (
            profile.id,
            profile.user_id,
            profile.full_name,
            profile.email,
            1 if profile.is_primary else 0,
            profile.model_dump_json(),
            profile.created_at,
            profile.updated_at,
        ),
    )


def _unset_primary(conn: sqlite3.Connection, user_id: str, keep_id: Optional[str] = None) -> None:
    rows = conn.execute(
        "SELECT raw_json FROM profiles WHERE user_id = ? AND is_primary = 1 AND id != ?",
        (user_id, keep_id or ""),
    ).fetchall()
    for row in rows:
        other = Profile.model_validate_json(row["raw_json"])
        other.is_primary = False
        other.updated_at = _now()
        _write_profile(conn, other)


def create_profile(user_id: str, data: ProfileCreate) -> Profile:
    init_db()
    now = _now()
    profile = Profile(id=_new_id("prof"), user_id=user_id, created_at=now, updated_at=now, **data.model_dump())
    with _conn() as conn:
        if profile.is_primary:
            _unset_primary(conn, user_id, keep_id=profile.id)
        _write_profile(conn, profile)
        conn.commit()
    return profile


def get_profile(user_id: str, profile_id: str) -> Optional[Profile]:
    init_db()
    with _conn() as conn:
        row = conn.execute(
            "SELECT raw_json FROM profiles WHERE id = ? AND user_id = ?", (profile_id, user_id)
        ).fetchone()
    if not row:
        return None
    return Profile.model_validate_json(row["raw_json"])


def get_profile_by_id(profile_id: str) -> Optional[Profile]:
    init_db()
    with _conn() as conn:
        row = conn.execute("SELECT raw_json FROM profiles WHERE id = ?", (profile_id,)).fetchone()
    if not row:
        return None
    return Profile.model_validate_json(row["raw_json"])


def list_profiles(user_id: str) -> List[Profile]:
    """Primary profile first, then newest."""
    init_db()
    with _conn() as conn:
        rows = conn.execute(
            "SELECT raw_json FROM profiles WHERE user_id = ? ORDER BY is_primary DESC, created_at DESC",
            (user_id,),
        ).fetchall()
    return [Profile.model_validate_json(row["raw_json"]) for row in rows]


def update_profile(user_id: str, profile_id: str, update: ProfileUpdate) -> Optional[Profile]:
    profile = get_profile(user_id, profile_id)
    if not profile:
        return None

    changes = update.model_dump(exclude_unset=True, exclude={"style_settings"})
    for key, value in changes.items():
        if value is None:
            continue
        if key in {"full_name", "email"} and not value:
            continue
        setattr(profile, key, value)
    if update.style_settings is not None:
        profile.style_settings = profile.style_settings.merged(update.style_settings)
    profile.updated_at = _now()

    with _conn() as conn:
        if profile.is_primary:
            _unset_primary(conn, user_id, keep_id=profile.id)
        _write_profile(conn, profile)
        conn.commit()
    return profile


def update_style_settings(user_id: str, profile_id: str, style: StyleSettings) -> Optional[Profile]:
    profile = get_profile(user_id, profile_id)
    if not profile:
        return None
    profile.style_settings = profile.style_settings.merged(style)
    profile.updated_at = _now()
    with _conn() as conn:
        _write_profile(conn, profile)
        conn.commit()
    return profile


def delete_profile(user_id: str, profile_id: str) -> bool:
    """Delete a profile together with its pending bids. Bids are history and stay."""
    init_db()
    with _conn() as conn:
        cur = conn.execute("DELETE FROM profiles WHERE id = ? AND user_id = ?", (profile_id, user_id))
        if cur.rowcount > 0:
            conn.execute("DELETE FROM pending_bids WHERE profile_id = ?", (profile_id,))
        conn.commit()
    return cur.rowcount > 0


def pending_resume_files(profile_id: str) -> List[str]:
    init_db()
    with _conn() as conn:
        rows = conn.execute("SELECT raw_json FROM pending_bids WHERE profile_id = ?", (profile_id,)).fetchall()
    return [PendingBid.model_validate_json(row["raw_json"]).resume_file_name for row in rows]


# Bids


def _write_bid(conn: sqlite3.Connection, bid: Bid) -> None:
    conn.execute(
        """
        INSERT INTO bids (id, user_id, profile_id, company_name, job_title, link, reported, raw_json, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT(id) DO UPDATE SET
            reported=excluded.reported,
            raw_json=excluded.raw_json
        """,
        (
            bid.id,
            bid.user_id,
            bid.profile_id,
            bid.company_name,
            bid.job_title,
            bid.link,
            1 if bid.reported else 0,
            bid.model_dump_json(),
            bid.created_at,
        ),
    )


def create_bid(user_id: str, data: BidCreate) -> Bid:
    init_db()
    now = _now()
    bid = Bid(id=_new_id("bid"), user_id=user_id, created_at=now, updated_at=now, **data.model_dump())
    with _conn() as conn:
        _write_bid(conn, bid)
        conn.commit()
    return bid


def get_bid(user_id: str, bid_id: str) -> Optional[Bid]:
    init_db()
    with _conn() as conn:
        row = conn.execute("SELECT raw_json FROM bids WHERE id = ? AND user_id = ?", (bid_id, user_id)).fetchone()
    if not row:
        return None
    return Bid.model_validate_json(row["raw_json"])


def list_bids(user_id: str, limit: int = 50, offset: int = 0, profile_id: Optional[str] = None) -> List[Bid]:
    """Newest first."""
    init_db()
    with _conn() as conn:
        if profile_id:
            rows = conn.execute(
                """
                SELECT raw_json FROM bids WHERE user_id = ? AND profile_id = ?
                ORDER BY created_at DESC LIMIT ? OFFSET ?
                """,
                (user_id, profile_id, limit, offset),
            ).fetchall()
        else:
            rows = conn.execute(
                "SELECT raw_json FROM bids WHERE user_id = ? ORDER BY created_at DESC LIMIT ? OFFSET ?",
                (user_id, limit, offset),
            ).fetchall()
    return [Bid.model_validate_json(row["raw_json"]) for row in rows]


def set_bid_reported(user_id: str, bid_id: str, reported: bool) -> Optional[Bid]:
    bid = get_bid(user_id, bid_id)
    if not bid:
        return None
    bid.reported = reported
    bid.updated_at = _now()
    with _conn() as conn:
        _write_bid(conn, bid)
        conn.commit()
    return bid


def bid_exists(profile_id: str, link: str) -> bool:
    init_db()
    with _conn() as conn:
        row = conn.execute(
            "SELECT 1 FROM bids WHERE profile_id = ? AND link = ?", (profile_id, link)
        ).fetchone()
    return row is not None


# Pending bids


def _write_pending_bid(conn: sqlite3.Connection, pending: PendingBid) -> None:
    conn.execute(
        """
        INSERT INTO pending_bids (id, profile_id, link, status, raw_json, created_at)
        VALUES (?, ?, ?, ?, ?, ?)
        ON CONFLICT(id) DO UPDATE SET
            status=excluded.status,
            raw_json=excluded.raw_json
        """,
        (
            pending.id,
            pending.profile_id,
            pending.link,
            pending.status,
            pending.model_dump_json(),
            pending.created_at,
        ),
    )


def create_pending_bid(
    profile_id: str,
    *,
    job_title: str,
    company_name: str,
    job_description: str,
    link: str,
    resume_file_name: str,
) -> PendingBid:
    init_db()
    now = _now()
    pending = PendingBid(
        id=_new_id("pend"),
        profile_id=profile_id,
        job_title=job_title,
        company_name=company_name,
        job_description=job_description,
        link=link,
        resume_file_name=resume_file_name,
        status="pending",
        created_at=now,
        updated_at=now,
    )
    with _conn() as conn:
        _write_pending_bid(conn, pending)
        conn.commit()
    return pending


def pending_bid_exists(profile_id: str, link: str) -> bool:
    init_db()
    with _conn() as conn:
        row = conn.execute(
            "SELECT 1 FROM pending_bids WHERE profile_id = ? AND link = ?", (profile_id, link)
        ).fetchone()
    return row is not None


def get_pending_bid(user_id: str, pending_id: str) -> Optional[PendingBid]:
    init_db()
    with _conn() as conn:
        row = conn.execute(
            """
            SELECT pb.raw_json FROM pending_bids pb
            JOIN profiles p ON p.id = pb.profile_id
            WHERE pb.id = ? AND p.user_id = ?
            """,
            (pending_id, user_id),
        ).fetchone()
    if not row:
        return None
    return PendingBid.model_validate_json(row["raw_json"])


def list_pending_bids(user_id: str, page: int = 1, page_size: int = 10) -> Tuple[List[PendingBid], int]:
    """One page of a user's pending bids, newest first, plus the total count."""
    init_db()
    page = max(1, page)
    page_size = max(1, page_size)
    with _conn() as conn:
        total = conn.execute(
            """
            SELECT COUNT(*) AS n FROM pending_bids pb
            JOIN profiles p ON p.id = pb.profile_id
            WHERE p.user_id = ?
            """,
            (user_id,),
        ).fetchone()["n"]
        rows = conn.execute(
            """
            SELECT pb.raw_json FROM pending_bids pb
            JOIN profiles p ON p.id = pb.profile_id
            WHERE p.user_id = ?
            ORDER BY pb.created_at DESC LIMIT ? OFFSET ?
            """,
            (user_id, page_size, (page - 1) * page_size),
        ).fetchall()
    return [PendingBid.model_validate_json(row["raw_json"]) for row in rows], total


def set_pending_status(pending: PendingBid, status: str) -> PendingBid:
    pending.status = status
    pending.updated_at = _now()
    with _conn() as conn:
        _write_pending_bid(conn, pending)
        conn.commit()
    return pending


def delete_pending_bid(pending_id: str) -> None:
    init_db()
    with _conn() as conn:
        conn.execute("DELETE FROM pending_bids WHERE id = ?", (pending_id,))
        conn.commit()


def approve_pending_bid(user_id: str, pending: PendingBid) -> Bid:
    """Promote a pending bid to a bid and drop the pending record in one transaction."""
    init_db()
    now = _now()
    bid = Bid(
        id=_new_id("bid"),
        user_id=user_id,
        profile_id=pending.profile_id,
        company_name=pending.company_name,
        job_title=pending.job_title,
        job_description=pending.job_description,
        link=pending.link,
        resume_file_name=pending.resume_file_name,
        created_at=now,
        updated_at=now,
    )
    with _conn() as conn:
        _write_bid(conn, bid)
        conn.execute("DELETE FROM pending_bids WHERE id = ?", (pending.id,))
        conn.commit()
    return bid


# Statistics


def _month_start(moment: datetime, months_back: int = 0) -> datetime:
    year, month = moment.year, moment.month - months_back
    while month <= 0:
        month += 12
        year -= 1
    return datetime(year, month, 1, tzinfo=timezone.utc)


def _count_bids(conn: sqlite3.Connection, user_id: str, since: str, until: Optional[str] = None) -> int:
    if until is None:
        row = conn.execute(
            "SELECT COUNT(*) AS n FROM bids WHERE user_id = ? AND created_at >= ?", (user_id, since)
        ).fetchone()
    else:
        row = conn.execute(
            "SELECT COUNT(*) AS n FROM bids WHERE user_id = ? AND created_at >= ? AND created_at < ?",
            (user_id, since, until),
        ).fetchone()
    return row["n"]


def get_statistics(user_id: str, now: Optional[datetime] = None) -> Statistics:
    """
    Dashboard numbers for one user's bids.

    Windows are computed in UTC: today since midnight, the last 7 and 30 days,
    and calendar months for the six-month trend and the growth rate.
    """
    init_db()
    now = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    current_month = _month_start(now)
    previous_month = _month_start(now, 1)

    with _conn() as conn:
        total_bids = conn.execute("SELECT COUNT(*) AS n FROM bids WHERE user_id = ?", (user_id,)).fetchone()["n"]
        total_profiles = conn.execute(
            "SELECT COUNT(*) AS n FROM profiles WHERE user_id = ?", (user_id,)
        ).fetchone()["n"]
        recent = _count_bids(conn, user_id, (now - timedelta(days=30)).isoformat())
        weekly = _count_bids(conn, user_id, (now - timedelta(days=7)).isoformat())
        today_count = _count_bids(conn, user_id, today.isoformat(), (today + timedelta(days=1)).isoformat())
        this_month = _count_bids(conn, user_id, current_month.isoformat())
        last_month = _count_bids(conn, user_id, previous_month.isoformat(), current_month.isoformat())

        profile_rows = conn.execute(
            """
            SELECT b.profile_id, p.raw_json, COUNT(*) AS n FROM bids b
            JOIN profiles p ON p.id = b.profile_id
            WHERE b.user_id = ?
            GROUP BY b.profile_id
            ORDER BY n DESC, p.full_name ASC
            LIMIT 5
            """,
            (user_id,),
        ).fetchall()
        company_rows = conn.execute(
            """
            SELECT company_name, COUNT(*) AS n FROM bids
            WHERE user_id = ?
            GROUP BY company_name
            ORDER BY n DESC, company_name ASC
            LIMIT 5
            """,
            (user_id,),
        ).fetchall()
        trend_rows = conn.execute(
            """
            SELECT substr(created_at, 1, 7) AS month, COUNT(*) AS n FROM bids
            WHERE user_id = ? AND created_at >= ?
            GROUP BY month
            ORDER BY month ASC
            """,
            (user_id, _month_start(now, 6).isoformat()),
        ).fetchall()
        recent_rows = conn.execute(
            """
            SELECT b.raw_json AS bid_json, p.raw_json AS profile_json FROM bids b
            LEFT JOIN profiles p ON p.id = b.profile_id
            WHERE b.user_id = ?
            ORDER BY b.created_at DESC
            LIMIT 5
            """,
            (user_id,),
        ).fetchall()

    if last_month > 0:
        growth = (this_month - last_month) / last_month * 100
    else:
        growth = 100.0 if this_month > 0 else 0.0

    top_profiles = []
    for row in profile_rows:
        profile = Profile.model_validate_json(row["raw_json"])
        top_profiles.append(
            ProfileBidCount(
                profile_id=row["profile_id"],
                full_name=profile.full_name,
                current_role=profile.current_role,
                count=row["n"],
            )
        )

    recent_bids = []
    for row in recent_rows:
        bid = Bid.model_validate_json(row["bid_json"])
        item = RecentBid(id=bid.id, company_name=bid.company_name, job_title=bid.job_title, created_at=bid.created_at)
        if row["profile_json"]:
            profile = Profile.model_validate_json(row["profile_json"])
            item.profile_name = profile.full_name
            item.profile_role = profile.current_role
        recent_bids.append(item)

    return Statistics(
        overview=StatisticsOverview(
            total_bids=total_bids,
            total_profiles=total_profiles,
            recent_bids=recent,
            weekly_bids=weekly,
            today_bids=today_count,
            monthly_growth_rate=round(growth, 2),
        ),
        top_profiles=top_profiles,
        top_companies=[CompanyBidCount(company_name=row["company_name"], count=row["n"]) for row in company_rows],
        monthly_trends=[MonthlyBidCount(month=row["month"], count=row["n"]) for row in trend_rows],
        recent_bids=recent_bids,
    )
