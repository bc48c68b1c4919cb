"""
Projection writer: derive one community_activities row per source event.

Each project_* function is called by the service that wrote the source row,
inside that service's transaction. The insert runs in a SAVEPOINT so that a
duplicate, a bad lookup or any other fault rolls back only the projection;
the source write still commits.
"""
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import and_, exists
from sqlalchemy.orm import Session

from learnfeed.activities import feed
from learnfeed.activities.models import (
    CommunityActivity,
    SourceRef,
    REFLECTION_KINDS,
    KIND_REFLECTION_TEXT,
    KIND_REFLECTION_SCREENSHOT,
    KIND_REFLECTION_VOICE,
    KIND_REFLECTION_LOOM,
    KIND_QUIZ,
    KIND_AI_CHAT,
    KIND_COURSE_COMPLETION,
    KIND_DAILY_NOTE,
    KIND_REVENUE_PROOF,
    KIND_GOAL_ACHIEVED,
    KIND_NEW_GOAL_STARTED,
    SOURCE_REFLECTION,
    SOURCE_QUIZ_ATTEMPT,
    SOURCE_AI_CONVERSATION,
    SOURCE_CONVERSATION_MESSAGE,
    SOURCE_DAILY_NOTE,
    SOURCE_ENROLLMENT,
)
from learnfeed.catalog.models import Course, MediaFile, TrackGoal
from learnfeed.conversations.models import (
    ConversationMessage,
    MESSAGE_DAILY_NOTE,
    MESSAGE_REVENUE_SUBMISSION,
)
from learnfeed.core.config import (
    AI_CHAT_PREVIEW_LENGTH,
    COURSE_COMPLETION_PERCENT,
    PREFIXED_PREVIEW_LENGTH,
    PREVIEW_LENGTH,
)
from learnfeed.core.errors import DuplicateProjectionError, ReferenceResolutionError
from learnfeed.core.log import get_logger
from learnfeed.db.base import utc_now
from learnfeed.learning.models import AiConversation, DailyNote, Enrollment, QuizAttempt, Reflection
from learnfeed.profiles.models import Profile, GOAL_COMPLETED

logger = get_logger("learnfeed.projection", "PROJECTION")

_PREFIXED_REFLECTIONS = {
    KIND_REFLECTION_VOICE: ("Voice memo: ", "No transcript"),
    KIND_REFLECTION_SCREENSHOT: ("Screenshot: ", "No description"),
    KIND_REFLECTION_LOOM: ("Loom video: ", "No description"),
}


@dataclass(frozen=True)
class GoalSnapshot:
    """Goal fields of a profile captured just before the pointer moves."""
    goal_id: Optional[int]
    goal_status: Optional[str] = None
    goal_progress: Optional[int] = None
    goal_started_at: Optional[datetime] = None
    goal_completed_at: Optional[datetime] = None


# ---------------------------------------------------------------------------
# Preview text
# ---------------------------------------------------------------------------

def reflection_preview(reflection_type: str, text: Optional[str]) -> str:
    if reflection_type in _PREFIXED_REFLECTIONS:
        prefix, fallback = _PREFIXED_REFLECTIONS[reflection_type]
        return prefix + (text[:PREFIXED_PREVIEW_LENGTH] if text else fallback)
    return (text or "")[:PREVIEW_LENGTH]


def quiz_preview(score: int, total_questions: int, percentage: int) -> str:
    return f"Quiz completed: {score}/{total_questions} correct ({percentage}%)"


def ai_chat_preview(user_message: str) -> str:
    text = user_message or ""
    if len(text) > AI_CHAT_PREVIEW_LENGTH:
        return "AI Chat: " + text[:AI_CHAT_PREVIEW_LENGTH] + "..."
    return "AI Chat: " + text


def daily_note_preview(note: str) -> str:
    return "Daily note: " + (note or "")[:PREVIEW_LENGTH]


# ---------------------------------------------------------------------------
# Point-in-time lookups (stale titles are accepted; missing rows give None)
# ---------------------------------------------------------------------------

def _lookup(db: Session, model, row_id: Optional[int], attr: str) -> Optional[str]:
    if row_id is None:
        return None
    row = db.get(model, row_id)
    if row is None:
        raise ReferenceResolutionError(f"{model.__tablename__}:{row_id} not found")
    return getattr(row, attr)


def _title(db: Session, model, row_id: Optional[int], attr: str = "name") -> Optional[str]:
    try:
        return _lookup(db, model, row_id, attr)
    except ReferenceResolutionError as exc:
        logger.info("title lookup degraded to null: %s", exc)
        return None


def _goal_context(db: Session, user_id: int, goal_id: Optional[int] = None):
    """(goal_id, goal_title) for an event: its own goal, else the user's current goal."""
    if goal_id is None:
        profile = db.get(Profile, user_id)
        goal_id = profile.current_goal_id if profile is not None else None
    return goal_id, _title(db, TrackGoal, goal_id)


def _jsonable(payload: dict) -> dict:
    out = {}
    for key, value in payload.items():
        if isinstance(value, Decimal):
            value = float(value)
        elif isinstance(value, (datetime, date)):
            value = value.isoformat()
        out[key] = value
    return out


def _append(db: Session, activity: CommunityActivity) -> Optional[CommunityActivity]:
    """Append inside a savepoint; never raises."""
    ref = activity.source
    try:
        with db.begin_nested():
            feed.append(db, activity)
    except DuplicateProjectionError as exc:
        logger.info("skip: %s", exc)
        return feed.find_by_source(db, ref)
    except Exception as exc:
        logger.warning(
            "projection failed user=%s type=%s source=%s: %r",
            activity.user_id, activity.activity_type, ref, exc,
        )
        return None
    logger.info(
        "user=%s type=%s source=%s -> activity=%s",
        activity.user_id, activity.activity_type, ref, activity.id,
    )
    return activity


# ---------------------------------------------------------------------------
# Per-source projections
# ---------------------------------------------------------------------------

def project_reflection(db: Session, reflection: Reflection) -> Optional[CommunityActivity]:
    kind = reflection.reflection_type if reflection.reflection_type in REFLECTION_KINDS else KIND_REFLECTION_TEXT
    goal_id, goal_title = _goal_context(db, reflection.user_id)
    activity = CommunityActivity(
        user_id=reflection.user_id,
        activity_type=kind,
        content=reflection_preview(kind, reflection.reflection_text),
        goal_id=goal_id,
        goal_title=goal_title,
        media_file_id=reflection.video_id,
        video_title=_title(db, MediaFile, reflection.video_id),
        course_id=reflection.course_id,
        timestamp_seconds=reflection.video_timestamp_seconds,
        activity_metadata=_jsonable({
            "file_url": reflection.file_url,
            "duration_seconds": reflection.duration_seconds,
            "reflection_prompt": reflection.reflection_prompt,
        }),
        is_public=False,
        created_at=reflection.created_at,
    )
    activity.source = SourceRef(SOURCE_REFLECTION, reflection.id)
    return _append(db, activity)


def project_quiz_attempt(db: Session, attempt: QuizAttempt) -> Optional[CommunityActivity]:
    goal_id, goal_title = _goal_context(db, attempt.user_id)
    activity = CommunityActivity(
        user_id=attempt.user_id,
        activity_type=KIND_QUIZ,
        content=quiz_preview(attempt.score, attempt.total_questions, attempt.percentage),
        goal_id=goal_id,
        goal_title=goal_title,
        media_file_id=attempt.video_id,
        video_title=_title(db, MediaFile, attempt.video_id),
        course_id=attempt.course_id,
        timestamp_seconds=attempt.video_timestamp,
        activity_metadata=_jsonable({
            "percentage": attempt.percentage,
            "score": attempt.score,
            "total_questions": attempt.total_questions,
            "quiz_duration_seconds": attempt.quiz_duration_seconds,
        }),
        is_public=False,
        created_at=attempt.created_at,
    )
    activity.source = SourceRef(SOURCE_QUIZ_ATTEMPT, attempt.id)
    return _append(db, activity)


def project_ai_conversation(db: Session, exchange: AiConversation) -> Optional[CommunityActivity]:
    goal_id, goal_title = _goal_context(db, exchange.user_id)
    activity = CommunityActivity(
        user_id=exchange.user_id,
        activity_type=KIND_AI_CHAT,
        content=ai_chat_preview(exchange.user_message),
        goal_id=goal_id,
        goal_title=goal_title,
        media_file_id=exchange.media_file_id,
        video_title=_title(db, MediaFile, exchange.media_file_id),
        timestamp_seconds=exchange.video_timestamp,
        activity_metadata=_jsonable({
            "model_used": exchange.model_used,
            "conversation_context": exchange.conversation_context,
        }),
        is_public=False,
        created_at=exchange.created_at,
    )
    activity.source = SourceRef(SOURCE_AI_CONVERSATION, exchange.id)
    return _append(db, activity)


def project_daily_note(db: Session, note: DailyNote) -> Optional[CommunityActivity]:
    goal_id, goal_title = _goal_context(db, note.user_id, note.goal_id)
    activity = CommunityActivity(
        user_id=note.user_id,
        activity_type=KIND_DAILY_NOTE,
        content=daily_note_preview(note.note),
        goal_id=goal_id,
        goal_title=goal_title,
        activity_metadata=_jsonable({"note_date": note.note_date}),
        is_public=False,
        created_at=note.created_at,
    )
    activity.source = SourceRef(SOURCE_DAILY_NOTE, note.id)
    return _append(db, activity)


def project_message(db: Session, message: ConversationMessage) -> Optional[CommunityActivity]:
    """Revenue proofs and daily-note messages reach the feed; other messages and drafts do not."""
    if message.is_draft:
        return None
    if message.message_type == MESSAGE_REVENUE_SUBMISSION:
        kind, content = KIND_REVENUE_PROOF, message.content
    elif message.message_type == MESSAGE_DAILY_NOTE:
        kind, content = KIND_DAILY_NOTE, daily_note_preview(message.content)
    else:
        return None

    goal_id, goal_title = _goal_context(db, message.sender_id)
    activity = CommunityActivity(
        user_id=message.sender_id,
        activity_type=kind,
        content=content,
        goal_id=goal_id,
        goal_title=goal_title,
        activity_metadata=_jsonable(dict(message.message_metadata or {})),
        is_public=False,
        created_at=message.created_at,
    )
    activity.source = SourceRef(SOURCE_CONVERSATION_MESSAGE, message.id)
    return _append(db, activity)


def project_course_completion(
    db: Session, enrollment: Enrollment, completed_at: Optional[datetime] = None,
) -> Optional[CommunityActivity]:
    """Called once per completion edge; the enrollment reference dedupes re-fires."""
    course_title = _title(db, Course, enrollment.course_id, attr="title")
    goal_id, goal_title = _goal_context(db, enrollment.user_id)
    activity = CommunityActivity(
        user_id=enrollment.user_id,
        activity_type=KIND_COURSE_COMPLETION,
        content=f"Completed course: {course_title or 'Unknown Course'}",
        goal_id=goal_id,
        goal_title=goal_title,
        course_id=enrollment.course_id,
        activity_metadata=_jsonable({
            "course_title": course_title,
            "completed_videos": enrollment.completed_videos,
            "total_videos": enrollment.total_videos,
        }),
        is_public=True,
        created_at=completed_at or enrollment.completed_at or utc_now(),
    )
    activity.source = SourceRef(SOURCE_ENROLLMENT, enrollment.id)
    return _append(db, activity)


def project_goal_change(
    db: Session,
    user_id: int,
    previous: GoalSnapshot,
    new_goal_id: Optional[int],
    changed_at: Optional[datetime] = None,
) -> List[CommunityActivity]:
    """
    Pointer moved from previous.goal_id to new_goal_id.

    Emits "goal_achieved" for the old goal when it had been completed, and
    "new_goal_started" for the new goal. Both share the transition timestamp.
    """
    if previous.goal_id == new_goal_id:
        return []

    changed_at = changed_at or utc_now()
    old_title = _title(db, TrackGoal, previous.goal_id)
    created = []

    if previous.goal_id is not None and previous.goal_status == GOAL_COMPLETED:
        achieved = _append(db, CommunityActivity(
            user_id=user_id,
            activity_type=KIND_GOAL_ACHIEVED,
            content=f"Achieved goal: {old_title or 'Unknown'}",
            goal_id=previous.goal_id,
            goal_title=old_title,
            activity_metadata=_jsonable({
                "goal_id": previous.goal_id,
                "goal_title": old_title,
                "goal_progress": previous.goal_progress,
                "started_at": previous.goal_started_at,
                "completed_at": previous.goal_completed_at,
            }),
            is_public=True,
            created_at=changed_at,
        ))
        if achieved is not None:
            created.append(achieved)

    if new_goal_id is not None:
        new_title = _title(db, TrackGoal, new_goal_id)
        started = _append(db, CommunityActivity(
            user_id=user_id,
            activity_type=KIND_NEW_GOAL_STARTED,
            content=f"Started new goal: {new_title or 'Unknown'}",
            goal_id=new_goal_id,
            goal_title=new_title,
            activity_metadata=_jsonable({
                "goal_id": new_goal_id,
                "goal_title": new_title,
                "previous_goal_id": previous.goal_id,
                "previous_goal_title": old_title,
            }),
            is_public=True,
            created_at=changed_at,
        ))
        if started is not None:
            created.append(started)

    return created


# ---------------------------------------------------------------------------
# BACKFILL (rows written before projection existed, or whose projection failed)
# ---------------------------------------------------------------------------

def _unprojected(db: Session, model, source_kind: str):
    projected = exists().where(and_(
        CommunityActivity.source_kind == source_kind,
        CommunityActivity.source_id == model.id,
    ))
    return db.query(model).filter(~projected)


def backfill_activities(db: Session) -> dict:
    """
    Project every source row that has no activity yet. Safe to re-run.
    Returns the number of activities created per source kind.
    """
    counts = {}

    def _run(source_kind, rows, projector):
        created = 0
        for row in rows:
            if projector(db, row) is not None:
                created += 1
        counts[source_kind] = created

    _run(SOURCE_REFLECTION, _unprojected(db, Reflection, SOURCE_REFLECTION).all(), project_reflection)
    _run(SOURCE_QUIZ_ATTEMPT, _unprojected(db, QuizAttempt, SOURCE_QUIZ_ATTEMPT).all(), project_quiz_attempt)
    _run(SOURCE_AI_CONVERSATION, _unprojected(db, AiConversation, SOURCE_AI_CONVERSATION).all(), project_ai_conversation)
    _run(SOURCE_DAILY_NOTE, _unprojected(db, DailyNote, SOURCE_DAILY_NOTE).all(), project_daily_note)

    messages = (
        _unprojected(db, ConversationMessage, SOURCE_CONVERSATION_MESSAGE)
        .filter(
            ConversationMessage.is_draft.is_(False),
            ConversationMessage.message_type.in_([MESSAGE_REVENUE_SUBMISSION, MESSAGE_DAILY_NOTE]),
        )
        .all()
    )
    _run(SOURCE_CONVERSATION_MESSAGE, messages, project_message)

    completed = (
        _unprojected(db, Enrollment, SOURCE_ENROLLMENT)
        .filter(
            (Enrollment.progress_percent >= COURSE_COMPLETION_PERCENT)
            | Enrollment.completed_at.isnot(None)
        )
        .all()
    )
    _run(SOURCE_ENROLLMENT, completed, project_course_completion)

    db.commit()
    logger.info("backfill complete: %s", counts)
    return counts
