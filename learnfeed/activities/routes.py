from datetime import date, datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from learnfeed.activities import feed, views
from learnfeed.core.deps import can_view_student, get_current_profile, get_instructor, http_errors
from learnfeed.db.session import get_db
from learnfeed.profiles.models import Profile

router = APIRouter(prefix="/activities", tags=["activities"])


def _resolve_student(viewer: Profile, user_id: Optional[int]) -> int:
    student_id = user_id if user_id is not None else viewer.id
    if not can_view_student(viewer, student_id):
        raise HTTPException(status_code=403, detail="Access denied")
    return student_id


# ======================================================
# TIMELINES
# ======================================================
@router.get("/me")
def my_activities(
    kinds: Optional[List[str]] = Query(None),
    goal_id: Optional[int] = None,
    since: Optional[datetime] = None,
    until: Optional[datetime] = None,
    is_public: Optional[bool] = None,
    before: Optional[datetime] = None,
    limit: int = Query(feed.DEFAULT_PAGE_SIZE, ge=1, le=feed.MAX_PAGE_SIZE),
    db: Session = Depends(get_db),
    profile: Profile = Depends(get_current_profile),
):
    """The caller's own timeline, public and private."""
    rows = feed.list_for_user(
        db, profile.id, kinds=kinds, goal_id=goal_id, since=since, until=until,
        is_public=is_public, before=before, limit=limit,
    )
    return {"activities": [r.to_dict() for r in rows]}


@router.get("/users/{user_id}")
def user_activities(
    user_id: int,
    kinds: Optional[List[str]] = Query(None),
    goal_id: Optional[int] = None,
    before: Optional[datetime] = None,
    limit: int = Query(feed.DEFAULT_PAGE_SIZE, ge=1, le=feed.MAX_PAGE_SIZE),
    db: Session = Depends(get_db),
    profile: Profile = Depends(get_current_profile),
):
    """Another user's timeline; strangers only see public entries."""
    is_public = None if can_view_student(profile, user_id) else True
    rows = feed.list_for_user(
        db, user_id, kinds=kinds, goal_id=goal_id, is_public=is_public, before=before, limit=limit,
    )
    return {"activities": [r.to_dict() for r in rows]}


@router.get("/public")
def public_activities(
    kinds: Optional[List[str]] = Query(None),
    before: Optional[datetime] = None,
    limit: int = Query(feed.DEFAULT_PAGE_SIZE, ge=1, le=feed.MAX_PAGE_SIZE),
    db: Session = Depends(get_db),
):
    """Community feed. No authentication; public entries only."""
    rows = feed.list_public(db, kinds=kinds, before=before, limit=limit)
    return {"activities": [r.to_dict() for r in rows]}


# ======================================================
# READ VIEWS
# ======================================================
@router.get("/by-day")
def activities_by_day(
    user_id: Optional[int] = None,
    days: int = Query(7, ge=1, le=90),
    db: Session = Depends(get_db),
    profile: Profile = Depends(get_current_profile),
):
    student_id = _resolve_student(profile, user_id)
    return {"days": views.activities_by_day(db, student_id, days=days)}


@router.get("/day/{day}")
def activities_on_day(
    day: date,
    user_id: Optional[int] = None,
    db: Session = Depends(get_db),
    profile: Profile = Depends(get_current_profile),
):
    student_id = _resolve_student(profile, user_id)
    rows = views.daily_activities(db, student_id, day)
    return {"date": day.isoformat(), "activities": [r.to_dict() for r in rows]}


@router.get("/goals")
def goal_activities(
    user_id: Optional[int] = None,
    db: Session = Depends(get_db),
    profile: Profile = Depends(get_current_profile),
):
    student_id = user_id if user_id is not None else profile.id
    public_only = not can_view_student(profile, student_id)
    return {"goals": views.goal_activity_summary(db, student_id, public_only=public_only)}


@router.get("/goal-progress")
def current_goal_progress(
    user_id: Optional[int] = None,
    db: Session = Depends(get_db),
    profile: Profile = Depends(get_current_profile),
):
    student_id = _resolve_student(profile, user_id)
    with http_errors():
        return {"progress": views.goal_progress(db, student_id)}


@router.get("/video/{media_file_id}")
def video_activities(
    media_file_id: int,
    user_id: Optional[int] = None,
    db: Session = Depends(get_db),
    instructor: Profile = Depends(get_instructor),
):
    """Student journey on one video (instructors only)."""
    rows = views.video_journey(db, media_file_id, user_id=user_id)
    return {"activities": [r.to_dict() for r in rows]}
