"""
Read views over community_activities. Pure queries; no state of their own.
"""
from collections import OrderedDict
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import List, Optional
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

from learnfeed.activities.models import (
    CommunityActivity,
    REFLECTION_KINDS,
    KIND_QUIZ,
    KIND_COURSE_COMPLETION,
    KIND_GOAL_ACHIEVED,
    KIND_NEW_GOAL_STARTED,
)
from learnfeed.catalog.models import Track, TrackGoal, TRACK_SAAS
from learnfeed.core.config import ACTIVITY_TIMEZONE
from learnfeed.profiles.models import Profile


def _tz() -> ZoneInfo:
    return ZoneInfo(ACTIVITY_TIMEZONE)


def activity_date(created_at: datetime) -> date:
    """Calendar day of an activity in the platform timezone."""
    if created_at.tzinfo is None:
        # SQLite hands back naive values; they are stored as UTC
        created_at = created_at.replace(tzinfo=timezone.utc)
    return created_at.astimezone(_tz()).date()


def _day_bounds(day: date):
    start = datetime.combine(day, datetime.min.time(), tzinfo=_tz())
    end = start + timedelta(days=1)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def daily_activities(db: Session, user_id: int, day: date) -> List[CommunityActivity]:
    """One user's activities on one platform-local day, oldest first."""
    start, end = _day_bounds(day)
    return (
        db.query(CommunityActivity)
        .filter(
            CommunityActivity.user_id == user_id,
            CommunityActivity.created_at >= start,
            CommunityActivity.created_at < end,
        )
        .order_by(CommunityActivity.created_at.asc(), CommunityActivity.id.asc())
        .all()
    )


def activities_by_day(db: Session, user_id: int, days: int = 7, today: Optional[date] = None) -> List[dict]:
    """Last `days` days of activity grouped per day: newest day first, oldest activity first within a day."""
    today = today or activity_date(datetime.now(timezone.utc))
    start, _ = _day_bounds(today - timedelta(days=days))
    rows = (
        db.query(CommunityActivity)
        .filter(CommunityActivity.user_id == user_id, CommunityActivity.created_at >= start)
        .order_by(CommunityActivity.created_at.asc(), CommunityActivity.id.asc())
        .all()
    )

    grouped = OrderedDict()
    for row in rows:
        grouped.setdefault(activity_date(row.created_at), []).append(row.to_dict())

    return [
        {"date": day.isoformat(), "activity_count": len(items), "activities": items}
        for day, items in sorted(grouped.items(), key=lambda kv: kv[0], reverse=True)
    ]


def video_journey(db: Session, media_file_id: int, user_id: Optional[int] = None) -> List[CommunityActivity]:
    """Activities pinned to one video, in playback order."""
    query = db.query(CommunityActivity).filter(CommunityActivity.media_file_id == media_file_id)
    if user_id is not None:
        query = query.filter(CommunityActivity.user_id == user_id)
    return query.order_by(
        CommunityActivity.timestamp_seconds.is_(None),
        CommunityActivity.timestamp_seconds.asc(),
        CommunityActivity.created_at.asc(),
    ).all()


def goal_activity_summary(db: Session, user_id: int, public_only: bool = False) -> List[dict]:
    """Per-goal rollup of a user's timeline, most recently active goal first."""
    query = db.query(CommunityActivity).filter(
        CommunityActivity.user_id == user_id,
        CommunityActivity.goal_id.isnot(None),
    )
    if public_only:
        query = query.filter(CommunityActivity.is_public.is_(True))
    rows = query.order_by(CommunityActivity.created_at.desc(), CommunityActivity.id.desc()).all()

    goals = OrderedDict()
    for row in rows:
        entry = goals.get(row.goal_id)
        if entry is None:
            entry = goals[row.goal_id] = {
                "goal_id": row.goal_id,
                "goal_name": row.goal_title,
                "goal_started_at": None,
                "goal_achieved_at": None,
                "total_activities": 0,
                "reflections_count": 0,
                "quizzes_count": 0,
                "courses_completed": 0,
                "activities": [],
            }
        entry["total_activities"] += 1
        if row.activity_type in REFLECTION_KINDS:
            entry["reflections_count"] += 1
        elif row.activity_type == KIND_QUIZ:
            entry["quizzes_count"] += 1
        elif row.activity_type == KIND_COURSE_COMPLETION:
            entry["courses_completed"] += 1
        elif row.activity_type == KIND_NEW_GOAL_STARTED:
            entry["goal_started_at"] = row.created_at.isoformat()
        elif row.activity_type == KIND_GOAL_ACHIEVED:
            entry["goal_achieved_at"] = row.created_at.isoformat()
        entry["activities"].append(row.to_dict())

    return list(goals.values())


def goal_progress(db: Session, user_id: int) -> Optional[dict]:
    """Revenue-based progress towards the user's current goal target."""
    profile = db.get(Profile, user_id)
    if profile is None:
        raise LookupError(f"Profile {user_id} not found")
    if profile.current_goal_id is None:
        return None

    goal = db.get(TrackGoal, profile.current_goal_id)
    track = db.get(Track, profile.current_track_id) if profile.current_track_id else None
    if track is not None and track.track_type == TRACK_SAAS:
        earned = profile.current_mrr or Decimal("0")
    else:
        earned = profile.total_revenue_earned or Decimal("0")

    target = goal.target_amount if goal is not None else None
    percent = None
    if target:
        percent = min(100, int(Decimal(earned) * 100 / Decimal(target)))

    return {
        "goal_id": profile.current_goal_id,
        "goal_name": goal.name if goal else None,
        "goal_status": profile.goal_status,
        "target_amount": float(target) if target is not None else None,
        "earned": float(earned),
        "progress_percent": percent,
    }
