"""
Write paths for learning source events.

Each record_* call writes the source row and its activity in one
transaction: insert, flush (assigns the id), project, commit.
"""
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from learnfeed.activities import feed
from learnfeed.activities.models import (
    CommunityActivity,
    SourceRef,
    SOURCE_REFLECTION,
    SOURCE_QUIZ_ATTEMPT,
    SOURCE_AI_CONVERSATION,
    SOURCE_CONVERSATION_MESSAGE,
    SOURCE_DAILY_NOTE,
    SOURCE_ENROLLMENT,
)
from learnfeed.activities.projection import (
    project_ai_conversation,
    project_course_completion,
    project_daily_note,
    project_quiz_attempt,
    project_reflection,
)
from learnfeed.catalog.models import Course, MediaFile, TrackGoal
from learnfeed.conversations.models import ConversationMessage
from learnfeed.core.config import COURSE_COMPLETION_PERCENT, VIDEO_COMPLETED_PERCENT, VIDEO_FPS
from learnfeed.core.errors import CascadeDeletionError
from learnfeed.core.log import get_logger
from learnfeed.db.base import utc_now
from learnfeed.learning.models import (
    AiConversation,
    DailyNote,
    Enrollment,
    QuizAttempt,
    Reflection,
    VideoProgress,
    REFLECTION_TYPES,
)
from learnfeed.profiles.models import Profile

logger = get_logger("learnfeed.learning", "LEARNING")

_SOURCE_MODELS = {
    SOURCE_REFLECTION: Reflection,
    SOURCE_QUIZ_ATTEMPT: QuizAttempt,
    SOURCE_AI_CONVERSATION: AiConversation,
    SOURCE_DAILY_NOTE: DailyNote,
    SOURCE_CONVERSATION_MESSAGE: ConversationMessage,
    SOURCE_ENROLLMENT: Enrollment,
}


def _require_profile(db: Session, user_id: int) -> Profile:
    profile = db.get(Profile, user_id)
    if profile is None:
        raise LookupError(f"Profile {user_id} not found")
    return profile


def _require_ref(db: Session, model, row_id: Optional[int], label: str) -> None:
    if row_id is not None and db.get(model, row_id) is None:
        raise LookupError(f"{label} {row_id} not found")


def frames_to_seconds(frames: int) -> Decimal:
    return (Decimal(frames) / Decimal(VIDEO_FPS)).quantize(Decimal("0.01"))


# ======================================================
# SOURCE EVENTS
# ======================================================

def record_reflection(
    db: Session,
    user_id: int,
    reflection_type: str,
    reflection_text: Optional[str] = None,
    course_id: Optional[int] = None,
    video_id: Optional[int] = None,
    reflection_prompt: Optional[str] = None,
    file_url: Optional[str] = None,
    duration_seconds: Optional[float] = None,
    video_timestamp_seconds: Optional[float] = None,
    video_timestamp_frames: Optional[int] = None,
    created_at: Optional[datetime] = None,
) -> Reflection:
    if reflection_type not in REFLECTION_TYPES:
        raise ValueError(f"Invalid reflection type: {reflection_type!r}")
    if reflection_type == "text" and not (reflection_text or "").strip():
        raise ValueError("Text reflections need reflection_text")
    _require_profile(db, user_id)
    _require_ref(db, Course, course_id, "Course")
    _require_ref(db, MediaFile, video_id, "Video")

    if video_timestamp_seconds is None and video_timestamp_frames is not None:
        video_timestamp_seconds = frames_to_seconds(video_timestamp_frames)

    reflection = Reflection(
        user_id=user_id,
        reflection_type=reflection_type,
        reflection_text=reflection_text,
        course_id=course_id,
        video_id=video_id,
        reflection_prompt=reflection_prompt,
        file_url=file_url,
        duration_seconds=duration_seconds,
        video_timestamp_seconds=video_timestamp_seconds,
        created_at=created_at or utc_now(),
    )
    db.add(reflection)
    db.flush()
    project_reflection(db, reflection)
    db.commit()
    db.refresh(reflection)
    return reflection


def record_quiz_attempt(
    db: Session,
    user_id: int,
    score: int,
    total_questions: int,
    percentage: Optional[int] = None,
    course_id: Optional[int] = None,
    video_id: Optional[int] = None,
    quiz_duration_seconds: Optional[int] = None,
    video_timestamp: Optional[float] = None,
    created_at: Optional[datetime] = None,
) -> QuizAttempt:
    if total_questions <= 0:
        raise ValueError("total_questions must be positive")
    if score < 0 or score > total_questions:
        raise ValueError("score must be between 0 and total_questions")
    _require_profile(db, user_id)
    _require_ref(db, Course, course_id, "Course")
    _require_ref(db, MediaFile, video_id, "Video")

    if percentage is None:
        percentage = round(score / total_questions * 100)

    attempt = QuizAttempt(
        user_id=user_id,
        score=score,
        total_questions=total_questions,
        percentage=percentage,
        course_id=course_id,
        video_id=video_id,
        quiz_duration_seconds=quiz_duration_seconds,
        video_timestamp=video_timestamp,
        created_at=created_at or utc_now(),
    )
    db.add(attempt)
    db.flush()
    project_quiz_attempt(db, attempt)
    db.commit()
    db.refresh(attempt)
    return attempt


def record_ai_conversation(
    db: Session,
    user_id: int,
    user_message: str,
    ai_response: Optional[str] = None,
    media_file_id: Optional[int] = None,
    model_used: Optional[str] = None,
    conversation_context: Optional[dict] = None,
    video_timestamp: Optional[float] = None,
    created_at: Optional[datetime] = None,
) -> AiConversation:
    if not (user_message or "").strip():
        raise ValueError("user_message is required")
    _require_profile(db, user_id)
    _require_ref(db, MediaFile, media_file_id, "Video")

    exchange = AiConversation(
        user_id=user_id,
        user_message=user_message,
        ai_response=ai_response,
        media_file_id=media_file_id,
        model_used=model_used,
        conversation_context=conversation_context,
        video_timestamp=video_timestamp,
        created_at=created_at or utc_now(),
    )
    db.add(exchange)
    db.flush()
    project_ai_conversation(db, exchange)
    db.commit()
    db.refresh(exchange)
    return exchange


def record_daily_note(
    db: Session,
    user_id: int,
    note: str,
    note_date: Optional[date] = None,
    goal_id: Optional[int] = None,
    created_at: Optional[datetime] = None,
) -> DailyNote:
    if not (note or "").strip():
        raise ValueError("note is required")
    profile = _require_profile(db, user_id)
    _require_ref(db, TrackGoal, goal_id, "Goal")

    created_at = created_at or utc_now()
    daily_note = DailyNote(
        user_id=user_id,
        note=note,
        note_date=note_date or created_at.date(),
        goal_id=goal_id if goal_id is not None else profile.current_goal_id,
        created_at=created_at,
    )
    db.add(daily_note)
    db.flush()
    project_daily_note(db, daily_note)
    db.commit()
    db.refresh(daily_note)
    return daily_note


# ======================================================
# ENROLLMENT PROGRESS (course-completion transitions)
# ======================================================

def _get_or_create_enrollment(db: Session, user_id: int, course_id: int) -> Enrollment:
    enrollment = (
        db.query(Enrollment)
        .filter(Enrollment.user_id == user_id, Enrollment.course_id == course_id)
        .first()
    )
    if enrollment is None:
        total = db.query(MediaFile).filter(MediaFile.course_id == course_id).count()
        enrollment = Enrollment(
            user_id=user_id,
            course_id=course_id,
            total_videos=total,
            completed_videos=0,
            progress_percent=0,
        )
        db.add(enrollment)
        db.flush()
    return enrollment


def enroll(db: Session, user_id: int, course_id: int) -> Enrollment:
    """Get or create the user's enrollment in a course."""
    _require_profile(db, user_id)
    if db.get(Course, course_id) is None:
        raise LookupError(f"Course {course_id} not found")

    enrollment = _get_or_create_enrollment(db, user_id, course_id)
    db.commit()
    db.refresh(enrollment)
    return enrollment


def _is_completion_edge(old_percent, new_percent, old_completed_at, new_completed_at) -> bool:
    crossed_percent = old_percent < COURSE_COMPLETION_PERCENT <= new_percent
    stamped = old_completed_at is None and new_completed_at is not None
    return crossed_percent or stamped


def _apply_enrollment_progress(
    db: Session,
    enrollment: Enrollment,
    progress_percent: Optional[int],
    completed_at: Optional[datetime],
) -> None:
    old_percent = enrollment.progress_percent or 0
    old_completed_at = enrollment.completed_at

    if progress_percent is not None:
        enrollment.progress_percent = max(0, min(100, int(progress_percent)))
    if completed_at is not None:
        enrollment.completed_at = completed_at
    if enrollment.progress_percent >= COURSE_COMPLETION_PERCENT and enrollment.completed_at is None:
        enrollment.completed_at = utc_now()
    enrollment.last_accessed_at = utc_now()
    db.flush()

    if _is_completion_edge(old_percent, enrollment.progress_percent, old_completed_at, enrollment.completed_at):
        logger.info("user=%s completed course=%s", enrollment.user_id, enrollment.course_id)
        project_course_completion(db, enrollment, enrollment.completed_at)


def update_enrollment_progress(
    db: Session,
    enrollment_id: int,
    progress_percent: Optional[int] = None,
    completed_at: Optional[datetime] = None,
) -> Enrollment:
    """
    Save new progress on an enrollment.

    A course_completion activity is projected only on the crossing edge
    (below the threshold -> at/above it, or completed_at first set).
    Re-saving an already-completed enrollment projects nothing.
    """
    enrollment = db.get(Enrollment, enrollment_id)
    if enrollment is None:
        raise LookupError(f"Enrollment {enrollment_id} not found")
    _apply_enrollment_progress(db, enrollment, progress_percent, completed_at)
    db.commit()
    db.refresh(enrollment)
    return enrollment


def record_video_progress(db: Session, user_id: int, video_id: int, progress_percent: int) -> VideoProgress:
    """Upsert watch progress for one video and recompute the course enrollment."""
    video = db.get(MediaFile, video_id)
    if video is None:
        raise LookupError(f"Video {video_id} not found")
    _require_profile(db, user_id)

    progress = (
        db.query(VideoProgress)
        .filter(VideoProgress.user_id == user_id, VideoProgress.video_id == video_id)
        .first()
    )
    percent = max(0, min(100, int(progress_percent)))
    if progress is None:
        progress = VideoProgress(user_id=user_id, video_id=video_id, course_id=video.course_id)
        db.add(progress)
    # Never move backwards: rewatching the intro shouldn't un-complete a video
    progress.progress_percent = max(progress.progress_percent or 0, percent)
    db.flush()

    if video.course_id is not None:
        enrollment = _get_or_create_enrollment(db, user_id, video.course_id)
        total = db.query(MediaFile).filter(MediaFile.course_id == video.course_id).count()
        completed = (
            db.query(VideoProgress)
            .filter(
                VideoProgress.user_id == user_id,
                VideoProgress.course_id == video.course_id,
                VideoProgress.progress_percent >= VIDEO_COMPLETED_PERCENT,
            )
            .count()
        )
        enrollment.total_videos = total
        enrollment.completed_videos = completed
        course_percent = int(completed * 100 / total) if total else 0
        _apply_enrollment_progress(db, enrollment, course_percent, None)

    db.commit()
    db.refresh(progress)
    return progress


# ======================================================
# DELETES (cascade to the activity feed)
# ======================================================

def get_source_event(db: Session, source_kind: str, source_id: int):
    ref = SourceRef(source_kind, source_id)
    return db.get(_SOURCE_MODELS[ref.kind], ref.id)


def delete_source_event(db: Session, source_kind: str, source_id: int) -> None:
    """
    Delete a source row and its activity in one transaction.

    Only deletes that come through here remove the activity. source_id is
    polymorphic and carries no foreign key, so rows removed by the database
    itself (a course delete cascading to its enrollments, say) leave their
    activity behind until purge_orphan_activities() runs.
    """
    ref = SourceRef(source_kind, source_id)
    row = get_source_event(db, ref.kind, ref.id)
    if row is None:
        raise LookupError(f"{ref.kind} {ref.id} not found")

    removed = feed.delete_for_source(db, ref)
    db.delete(row)
    db.flush()

    if feed.find_by_source(db, ref) is not None:
        db.rollback()
        raise CascadeDeletionError(f"activity for {ref.kind}:{ref.id} survived delete")

    db.commit()
    logger.info("deleted %s:%s (activities removed=%s)", ref.kind, ref.id, removed)


def purge_orphan_activities(db: Session) -> dict:
    """Delete activities whose source row no longer exists. Returns counts per source kind."""
    removed = {}
    for source_kind, model in _SOURCE_MODELS.items():
        removed[source_kind] = (
            db.query(CommunityActivity)
            .filter(
                CommunityActivity.source_kind == source_kind,
                CommunityActivity.source_id.not_in(select(model.id)),
            )
            .delete(synchronize_session=False)
        )
    db.commit()
    if any(removed.values()):
        logger.info("purged orphan activities %s", removed)
    return removed

