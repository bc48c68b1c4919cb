from typing import Optional

from fastapi import APIRouter, Depends, Form, HTTPException
from sqlalchemy.orm import Session

from learnfeed.assignments import sync
from learnfeed.assignments.models import StudentTrackAssignment, STATUS_ACTIVE
from learnfeed.core.deps import can_view_student, get_current_profile, get_instructor, http_errors
from learnfeed.db.session import get_db
from learnfeed.profiles.models import Profile
from learnfeed.profiles.service import mark_goal_completed

router = APIRouter(prefix="/assignments", tags=["assignments"])


def _assignment_dict(a: StudentTrackAssignment) -> dict:
    return {
        "id": a.id,
        "user_id": a.user_id,
        "track_id": a.track_id,
        "goal_id": a.goal_id,
        "status": a.status,
        "assigned_at": a.assigned_at.isoformat() if a.assigned_at else None,
    }


def _owned_or_instructor(db: Session, profile: Profile, assignment_id: int) -> None:
    assignment = db.get(StudentTrackAssignment, assignment_id)
    if assignment is None:
        raise HTTPException(status_code=404, detail="Assignment not found")
    if not can_view_student(profile, assignment.user_id):
        raise HTTPException(status_code=403, detail="Access denied")


# =========================
# WRITES
# =========================
@router.post("")
def create_assignment(
    track_id: int = Form(...),
    goal_id: int = Form(...),
    user_id: Optional[int] = Form(None),
    status: str = Form(STATUS_ACTIVE),
    db: Session = Depends(get_db),
    profile: Profile = Depends(get_current_profile),
):
    """Students pick their own goal; instructors may assign one to any student."""
    student_id = user_id if user_id is not None else profile.id
    if not can_view_student(profile, student_id):
        raise HTTPException(status_code=403, detail="Access denied")
    with http_errors():
        assignment = sync.assign_goal(db, student_id, track_id, goal_id, status=status)
    return _assignment_dict(assignment)


@router.patch("/{assignment_id}")
def update_assignment_status(
    assignment_id: int,
    status: str = Form(...),
    db: Session = Depends(get_db),
    profile: Profile = Depends(get_current_profile),
):
    _owned_or_instructor(db, profile, assignment_id)
    with http_errors():
        assignment = sync.set_assignment_status(db, assignment_id, status)
    return _assignment_dict(assignment)


@router.delete("/{assignment_id}")
def remove_assignment(
    assignment_id: int,
    db: Session = Depends(get_db),
    profile: Profile = Depends(get_current_profile),
):
    _owned_or_instructor(db, profile, assignment_id)
    with http_errors():
        sync.delete_assignment(db, assignment_id)
    return {"deleted": assignment_id}


@router.post("/goal-completed")
def complete_current_goal(
    user_id: int = Form(...),
    db: Session = Depends(get_db),
    instructor: Profile = Depends(get_instructor),
):
    """Instructor confirms the student reached their current goal."""
    with http_errors():
        profile = mark_goal_completed(db, user_id)
    return {"user_id": profile.id, "goal_id": profile.current_goal_id, "goal_status": profile.goal_status}


# =========================
# READS
# =========================
@router.get("/current")
def current_assignment(
    user_id: Optional[int] = None,
    db: Session = Depends(get_db),
    profile: Profile = Depends(get_current_profile),
):
    student_id = user_id if user_id is not None else profile.id
    if not can_view_student(profile, student_id):
        raise HTTPException(status_code=403, detail="Access denied")
    with http_errors():
        return {"current": sync.get_current_assignment(db, student_id)}


@router.get("/history")
def assignment_history(
    user_id: Optional[int] = None,
    db: Session = Depends(get_db),
    profile: Profile = Depends(get_current_profile),
):
    student_id = user_id if user_id is not None else profile.id
    if not can_view_student(profile, student_id):
        raise HTTPException(status_code=403, detail="Access denied")
    return {"history": sync.get_assignment_history(db, student_id)}


@router.get("/consistency")
def assignment_consistency(
    db: Session = Depends(get_db),
    instructor: Profile = Depends(get_instructor),
):
    problems = sync.check_assignment_consistency(db)
    return {"ok": not problems, "problems": problems}
