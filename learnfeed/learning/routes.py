from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Form, HTTPException
from sqlalchemy.orm import Session

from learnfeed.activities.models import SOURCE_KINDS
from learnfeed.core.deps import get_current_profile, http_errors
from learnfeed.db.session import get_db
from learnfeed.learning import service
from learnfeed.learning.models import Enrollment
from learnfeed.profiles.models import Profile

router = APIRouter(prefix="/learning", tags=["learning"])


def _stamp(row) -> Optional[str]:
    return row.created_at.isoformat() if row.created_at else None


# ======================================================
# REFLECTIONS / QUIZZES / AI CHATS / DAILY NOTES
# ======================================================
@router.post("/reflections")
def submit_reflection(
    reflection_type: str = Form(...),
    reflection_text: Optional[str] = Form(None),
    course_id: Optional[int] = Form(None),
    video_id: Optional[int] = Form(None),
    reflection_prompt: Optional[str] = Form(None),
    file_url: Optional[str] = Form(None),
    duration_seconds: Optional[float] = Form(None),
    video_timestamp_seconds: Optional[float] = Form(None),
    video_timestamp_frames: Optional[int] = Form(None),
    db: Session = Depends(get_db),
    profile: Profile = Depends(get_current_profile),
):
    with http_errors():
        reflection = service.record_reflection(
            db,
            profile.id,
            reflection_type,
            reflection_text=reflection_text,
            course_id=course_id,
            video_id=video_id,
            reflection_prompt=reflection_prompt,
            file_url=file_url,
            duration_seconds=duration_seconds,
            video_timestamp_seconds=video_timestamp_seconds,
            video_timestamp_frames=video_timestamp_frames,
        )
    return {"id": reflection.id, "reflection_type": reflection.reflection_type, "created_at": _stamp(reflection)}


@router.post("/quiz-attempts")
def submit_quiz_attempt(
    score: int = Form(...),
    total_questions: int = Form(...),
    course_id: Optional[int] = Form(None),
    video_id: Optional[int] = Form(None),
    quiz_duration_seconds: Optional[int] = Form(None),
    video_timestamp: Optional[float] = Form(None),
    db: Session = Depends(get_db),
    profile: Profile = Depends(get_current_profile),
):
    with http_errors():
        attempt = service.record_quiz_attempt(
            db,
            profile.id,
            score,
            total_questions,
            course_id=course_id,
            video_id=video_id,
            quiz_duration_seconds=quiz_duration_seconds,
            video_timestamp=video_timestamp,
        )
    return {"id": attempt.id, "percentage": attempt.percentage, "created_at": _stamp(attempt)}


@router.post("/ai-chats")
def log_ai_chat(
    user_message: str = Form(...),
    ai_response: Optional[str] = Form(None),
    media_file_id: Optional[int] = Form(None),
    model_used: Optional[str] = Form(None),
    video_timestamp: Optional[float] = Form(None),
    db: Session = Depends(get_db),
    profile: Profile = Depends(get_current_profile),
):
    """Record an exchange that already happened; no model is called here."""
    with http_errors():
        exchange = service.record_ai_conversation(
            db,
            profile.id,
            user_message,
            ai_response=ai_response,
            media_file_id=media_file_id,
            model_used=model_used,
            video_timestamp=video_timestamp,
        )
    return {"id": exchange.id, "created_at": _stamp(exchange)}


@router.post("/daily-notes")
def submit_daily_note(
    note: str = Form(...),
    note_date: Optional[date] = Form(None),
    goal_id: Optional[int] = Form(None),
    db: Session = Depends(get_db),
    profile: Profile = Depends(get_current_profile),
):
    with http_errors():
        daily_note = service.record_daily_note(db, profile.id, note, note_date=note_date, goal_id=goal_id)
    return {
        "id": daily_note.id,
        "note_date": daily_note.note_date.isoformat(),
        "goal_id": daily_note.goal_id,
        "created_at": _stamp(daily_note),
    }


# ======================================================
# PROGRESS
# ======================================================
@router.post("/enrollments")
def enroll_in_course(
    course_id: int = Form(...),
    db: Session = Depends(get_db),
    profile: Profile = Depends(get_current_profile),
):
    with http_errors():
        enrollment = service.enroll(db, profile.id, course_id)
    return _enrollment_dict(enrollment)


@router.patch("/enrollments/{enrollment_id}")
def save_enrollment_progress(
    enrollment_id: int,
    progress_percent: int = Form(...),
    db: Session = Depends(get_db),
    profile: Profile = Depends(get_current_profile),
):
    enrollment = db.get(Enrollment, enrollment_id)
    if enrollment is None or enrollment.user_id != profile.id:
        raise HTTPException(status_code=404, detail="Enrollment not found")
    with http_errors():
        enrollment = service.update_enrollment_progress(db, enrollment_id, progress_percent=progress_percent)
    return _enrollment_dict(enrollment)


@router.post("/video-progress")
def save_video_progress(
    video_id: int = Form(...),
    progress_percent: int = Form(...),
    db: Session = Depends(get_db),
    profile: Profile = Depends(get_current_profile),
):
    with http_errors():
        progress = service.record_video_progress(db, profile.id, video_id, progress_percent)
    return {"video_id": progress.video_id, "progress_percent": progress.progress_percent}


def _enrollment_dict(enrollment: Enrollment) -> dict:
    return {
        "id": enrollment.id,
        "course_id": enrollment.course_id,
        "progress_percent": enrollment.progress_percent,
        "completed_videos": enrollment.completed_videos,
        "total_videos": enrollment.total_videos,
        "completed_at": enrollment.completed_at.isoformat() if enrollment.completed_at else None,
    }


# ======================================================
# DELETE A SOURCE EVENT (and its activity)
# ======================================================
@router.delete("/{source_kind}/{source_id}")
def delete_learning_event(
    source_kind: str,
    source_id: int,
    db: Session = Depends(get_db),
    profile: Profile = Depends(get_current_profile),
):
    if source_kind not in SOURCE_KINDS:
        raise HTTPException(status_code=404, detail="Unknown event kind")
    row = service.get_source_event(db, source_kind, source_id)
    # Messages are owned by their sender, everything else by user_id
    owner_id = getattr(row, "user_id", None) or getattr(row, "sender_id", None)
    if row is None or owner_id != profile.id:
        raise HTTPException(status_code=404, detail="Not found")
    with http_errors():
        service.delete_source_event(db, source_kind, source_id)
    return {"deleted": {"kind": source_kind, "id": source_id}}
