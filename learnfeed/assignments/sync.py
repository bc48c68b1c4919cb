"""
Goal/track assignment synchronizer.

Rules:
  - At most one student_track_assignments row per user is 'active'.
  - profiles.(current_goal_id, current_track_id, goal_assigned_at) equals the
    active row's (goal_id, track_id, assigned_at), or is all NULL.
  - Inserting or re-activating a row demotes every other active row to
    'changed' and moves the pointer onto it.
  - Deactivating or deleting the active row moves the pointer to the newest
    remaining active row, or clears it.

Every write locks the profile row, then the user's assignment rows
(SELECT ... FOR UPDATE), so concurrent activations for one user serialise.
SQLite has no row locks; there the database writer lock makes it
last-writer-wins.

_write_pointer() is the only code that writes the pointer columns.
"""
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from learnfeed.activities.projection import GoalSnapshot, project_goal_change
from learnfeed.assignments.models import (
    StudentTrackAssignment,
    ASSIGNMENT_STATUSES,
    STATUS_ACTIVE,
    STATUS_CHANGED,
)
from learnfeed.catalog.models import Track, TrackGoal
from learnfeed.core.errors import InvariantViolationError
from learnfeed.core.log import get_logger
from learnfeed.db.base import utc_now
from learnfeed.profiles.models import Profile, GOAL_IN_PROGRESS

logger = get_logger("learnfeed.assignments", "SYNC")


# ---------------------------------------------------------------------------
# LOCKING
# ---------------------------------------------------------------------------

def _lock_user(db: Session, user_id: int) -> Profile:
    profile = (
        db.query(Profile)
        .filter(Profile.id == user_id)
        .with_for_update()
        .one_or_none()
    )
    if profile is None:
        raise LookupError(f"Profile {user_id} not found")
    # Pin the assignment rows too; the demotion below rewrites them.
    (
        db.query(StudentTrackAssignment.id)
        .filter(StudentTrackAssignment.user_id == user_id)
        .with_for_update()
        .all()
    )
    return profile


def _get_assignment(db: Session, assignment_id: int) -> StudentTrackAssignment:
    assignment = db.get(StudentTrackAssignment, assignment_id)
    if assignment is None:
        raise LookupError(f"Assignment {assignment_id} not found")
    return assignment


def _check_status(status: str) -> None:
    if status not in ASSIGNMENT_STATUSES:
        raise ValueError(f"Invalid assignment status: {status!r}")


# ---------------------------------------------------------------------------
# POINTER (single writer)
# ---------------------------------------------------------------------------

def _write_pointer(
    db: Session,
    profile: Profile,
    goal_id: Optional[int],
    track_id: Optional[int],
    assigned_at: Optional[datetime],
) -> None:
    previous = GoalSnapshot(
        goal_id=profile.current_goal_id,
        goal_status=profile.goal_status,
        goal_progress=profile.goal_progress,
        goal_started_at=profile.goal_started_at,
        goal_completed_at=profile.goal_completed_at,
    )

    profile.current_goal_id = goal_id
    profile.current_track_id = track_id
    profile.goal_assigned_at = assigned_at

    if previous.goal_id == goal_id:
        return

    # Goal state belongs to the goal the pointer now names.
    if goal_id is None:
        profile.goal_status = None
        profile.goal_started_at = None
    else:
        profile.goal_status = GOAL_IN_PROGRESS
        profile.goal_started_at = assigned_at
    profile.goal_progress = 0
    profile.goal_completed_at = None

    logger.info("user=%s goal %s -> %s", profile.id, previous.goal_id, goal_id)
    project_goal_change(db, profile.id, previous, goal_id)


def _activate(db: Session, profile: Profile, assignment: StudentTrackAssignment) -> int:
    demoted = (
        db.query(StudentTrackAssignment)
        .filter(
            StudentTrackAssignment.user_id == assignment.user_id,
            StudentTrackAssignment.id != assignment.id,
            StudentTrackAssignment.status == STATUS_ACTIVE,
        )
        .update({StudentTrackAssignment.status: STATUS_CHANGED}, synchronize_session="fetch")
    )
    still_active = (
        db.query(func.count(StudentTrackAssignment.id))
        .filter(
            StudentTrackAssignment.user_id == assignment.user_id,
            StudentTrackAssignment.status == STATUS_ACTIVE,
        )
        .scalar()
    )
    if still_active != 1:
        raise InvariantViolationError(f"user={assignment.user_id} has {still_active} active assignments")
    _write_pointer(db, profile, assignment.goal_id, assignment.track_id, assignment.assigned_at)
    return demoted


def _repoint_after_deactivation(db: Session, profile: Profile, excluded_id: int) -> None:
    next_active = (
        db.query(StudentTrackAssignment)
        .filter(
            StudentTrackAssignment.user_id == profile.id,
            StudentTrackAssignment.id != excluded_id,
            StudentTrackAssignment.status == STATUS_ACTIVE,
        )
        .order_by(StudentTrackAssignment.assigned_at.desc(), StudentTrackAssignment.id.desc())
        .first()
    )
    if next_active is not None:
        _write_pointer(db, profile, next_active.goal_id, next_active.track_id, next_active.assigned_at)
        logger.info("user=%s switched to assignment=%s", profile.id, next_active.id)
    else:
        _write_pointer(db, profile, None, None, None)
        logger.info("user=%s has no active goal; pointer cleared", profile.id)


# ---------------------------------------------------------------------------
# WRITES
# ---------------------------------------------------------------------------

def assign_goal(
    db: Session,
    user_id: int,
    track_id: int,
    goal_id: int,
    assigned_at: Optional[datetime] = None,
    status: str = STATUS_ACTIVE,
) -> StudentTrackAssignment:
    """Record a new assignment; an active one becomes the user's current goal."""
    _check_status(status)
    goal = db.get(TrackGoal, goal_id)
    if goal is None:
        raise LookupError(f"Goal {goal_id} not found")
    if goal.track_id != track_id:
        raise ValueError(f"Goal {goal_id} does not belong to track {track_id}")

    profile = _lock_user(db, user_id)
    assignment = StudentTrackAssignment(
        user_id=user_id,
        track_id=track_id,
        goal_id=goal_id,
        status=status,
        assigned_at=assigned_at or utc_now(),
    )
    db.add(assignment)
    db.flush()

    if status == STATUS_ACTIVE:
        demoted = _activate(db, profile, assignment)
        logger.info("user=%s assigned goal=%s (demoted %s)", user_id, goal_id, demoted)

    db.commit()
    db.refresh(assignment)
    return assignment


def set_assignment_status(db: Session, assignment_id: int, status: str) -> StudentTrackAssignment:
    """Move an assignment between active / changed / abandoned and resync the pointer."""
    _check_status(status)
    assignment = _get_assignment(db, assignment_id)
    profile = _lock_user(db, assignment.user_id)
    db.refresh(assignment)

    old_status = assignment.status
    if old_status == status:
        db.commit()
        return assignment

    assignment.status = status
    db.flush()

    if status == STATUS_ACTIVE:
        _activate(db, profile, assignment)
        logger.info("user=%s assignment=%s reactivated", assignment.user_id, assignment.id)
    elif old_status == STATUS_ACTIVE:
        _repoint_after_deactivation(db, profile, assignment.id)

    db.commit()
    db.refresh(assignment)
    return assignment


def delete_assignment(db: Session, assignment_id: int) -> None:
    assignment = _get_assignment(db, assignment_id)
    profile = _lock_user(db, assignment.user_id)
    db.refresh(assignment)

    was_active = assignment.status == STATUS_ACTIVE
    db.delete(assignment)
    db.flush()

    if was_active:
        _repoint_after_deactivation(db, profile, assignment_id)

    db.commit()


# ---------------------------------------------------------------------------
# READS
# ---------------------------------------------------------------------------

def get_current_assignment(db: Session, user_id: int) -> Optional[dict]:
    """The profile pointer, with names; None when no goal is active."""
    profile = db.get(Profile, user_id)
    if profile is None:
        raise LookupError(f"Profile {user_id} not found")
    if profile.current_goal_id is None:
        return None

    goal = db.get(TrackGoal, profile.current_goal_id)
    track = db.get(Track, profile.current_track_id) if profile.current_track_id else None
    return {
        "goal_id": profile.current_goal_id,
        "goal_name": goal.name if goal else None,
        "track_id": profile.current_track_id,
        "track_name": track.name if track else None,
        "assigned_at": profile.goal_assigned_at.isoformat() if profile.goal_assigned_at else None,
        "goal_status": profile.goal_status,
    }


def get_assignment_history(db: Session, user_id: int) -> List[dict]:
    """All assignments for a user, newest first, with track and goal names."""
    rows = (
        db.query(StudentTrackAssignment, TrackGoal.name, Track.name)
        .outerjoin(TrackGoal, TrackGoal.id == StudentTrackAssignment.goal_id)
        .outerjoin(Track, Track.id == StudentTrackAssignment.track_id)
        .filter(StudentTrackAssignment.user_id == user_id)
        .order_by(StudentTrackAssignment.assigned_at.desc(), StudentTrackAssignment.id.desc())
        .all()
    )
    return [
        {
            "id": a.id,
            "track_id": a.track_id,
            "track_name": track_name,
            "goal_id": a.goal_id,
            "goal_name": goal_name,
            "status": a.status,
            "assigned_at": a.assigned_at.isoformat() if a.assigned_at else None,
        }
        for a, goal_name, track_name in rows
    ]


def _as_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands datetimes back naive, Postgres aware; compare on one footing
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def check_assignment_consistency(db: Session) -> List[dict]:
    """
    Report users whose data breaks the single-active / pointer rules.

    Any hit is a data-integrity incident to reconcile by hand; nothing is
    repaired here.
    """
    problems = []

    multi_active = (
        db.query(StudentTrackAssignment.user_id, func.count(StudentTrackAssignment.id))
        .filter(StudentTrackAssignment.status == STATUS_ACTIVE)
        .group_by(StudentTrackAssignment.user_id)
        .having(func.count(StudentTrackAssignment.id) > 1)
        .all()
    )
    for user_id, count in multi_active:
        problems.append({"user_id": user_id, "problem": "multiple_active", "active_count": count})

    flagged = {p["user_id"] for p in problems}
    active_by_user = {
        a.user_id: a
        for a in db.query(StudentTrackAssignment).filter(StudentTrackAssignment.status == STATUS_ACTIVE)
    }
    for profile in db.query(Profile).all():
        if profile.id in flagged:
            continue
        active = active_by_user.get(profile.id)
        if active is not None:
            expected = (active.goal_id, active.track_id, _as_naive_utc(active.assigned_at))
        else:
            expected = (None, None, None)
        actual = (profile.current_goal_id, profile.current_track_id, _as_naive_utc(profile.goal_assigned_at))
        if expected == actual:
            continue
        problem = {
            "user_id": profile.id,
            "problem": "pointer_out_of_sync",
            "profile_goal_id": profile.current_goal_id,
            "assignment_goal_id": expected[0],
        }
        if expected[:2] == actual[:2]:
            problem["profile_assigned_at"] = actual[2].isoformat() if actual[2] else None
            problem["assignment_assigned_at"] = expected[2].isoformat() if expected[2] else None
        problems.append(problem)

    for problem in problems:
        logger.warning("consistency: %s", problem)
    return problems
