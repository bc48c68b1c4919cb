"""
Profile lifecycle, goal completion and revenue counters.

The current-assignment pointer is NOT written here; see
learnfeed.assignments.sync.
"""
from decimal import Decimal, InvalidOperation
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from learnfeed.activities.models import CommunityActivity
from learnfeed.assignments.models import StudentTrackAssignment
from learnfeed.catalog.models import TRACK_AGENCY, TRACK_SAAS
from learnfeed.conversations.models import Conversation, ConversationMessage
from learnfeed.core.log import get_logger
from learnfeed.db.base import utc_now
from learnfeed.learning.models import (
    AiConversation,
    DailyNote,
    Enrollment,
    QuizAttempt,
    Reflection,
    VideoProgress,
)
from learnfeed.profiles.models import Profile, GOAL_COMPLETED

logger = get_logger("learnfeed.profiles", "PROFILE")


def create_profile(db: Session, email: str, full_name: Optional[str] = None, role: str = "student") -> Profile:
    if db.query(Profile).filter(Profile.email == email).first():
        raise ValueError("Email already registered")
    profile = Profile(email=email, full_name=full_name, role=role, goal_progress=0)
    db.add(profile)
    db.commit()
    db.refresh(profile)
    return profile


def get_profile(db: Session, user_id: int) -> Profile:
    profile = db.get(Profile, user_id)
    if profile is None:
        raise LookupError(f"Profile {user_id} not found")
    return profile


def delete_profile(db: Session, user_id: int) -> None:
    """
    Delete a user and everything they own. Irreversible.

    Rows are removed child-first so the result is the same whether or not the
    database enforces ON DELETE CASCADE.
    """
    profile = get_profile(db, user_id)

    db.query(CommunityActivity).filter(CommunityActivity.user_id == user_id).delete(synchronize_session=False)
    db.query(StudentTrackAssignment).filter(StudentTrackAssignment.user_id == user_id).delete(synchronize_session=False)

    for model in (Reflection, QuizAttempt, AiConversation, DailyNote, VideoProgress, Enrollment):
        db.query(model).filter(model.user_id == user_id).delete(synchronize_session=False)

    own_threads = select(Conversation.id).where(Conversation.student_id == user_id)
    db.query(ConversationMessage).filter(
        (ConversationMessage.sender_id == user_id)
        | ConversationMessage.conversation_id.in_(own_threads)
    ).delete(synchronize_session=False)
    db.query(Conversation).filter(Conversation.student_id == user_id).delete(synchronize_session=False)
    db.query(Conversation).filter(Conversation.instructor_id == user_id).update(
        {Conversation.instructor_id: None}, synchronize_session=False
    )

    db.delete(profile)
    db.commit()
    db.expire_all()
    logger.info("deleted user=%s and all owned rows", user_id)


def mark_goal_completed(db: Session, user_id: int) -> Profile:
    """Flag the current goal as achieved; the achievement is announced when the goal changes."""
    profile = get_profile(db, user_id)
    if profile.current_goal_id is None:
        raise ValueError("User has no current goal")
    profile.goal_status = GOAL_COMPLETED
    profile.goal_completed_at = utc_now()
    profile.goal_progress = 100
    db.commit()
    db.refresh(profile)
    logger.info("user=%s completed goal=%s", user_id, profile.current_goal_id)
    return profile


def parse_revenue_amount(amount) -> Decimal:
    """Validate a submitted revenue figure: a finite, non-negative number."""
    if isinstance(amount, bool):
        raise ValueError("Revenue amount must be a number")
    try:
        value = Decimal(str(amount).strip())
    except InvalidOperation:
        raise ValueError(f"Revenue amount must be a number, got {amount!r}")
    if not value.is_finite():
        raise ValueError("Revenue amount must be finite")
    if value < 0:
        raise ValueError("Revenue amount cannot be negative")
    return value


def apply_revenue(db: Session, user_id: int, track_type: str, amount) -> Profile:
    """
    Agency tracks accumulate total revenue; SaaS tracks keep the best MRR seen.
    Does not commit; callers decide the transaction.
    """
    value = parse_revenue_amount(amount)
    profile = get_profile(db, user_id)
    if track_type == TRACK_AGENCY:
        profile.total_revenue_earned = (profile.total_revenue_earned or Decimal("0")) + value
    elif track_type == TRACK_SAAS:
        profile.current_mrr = max(profile.current_mrr or Decimal("0"), value)
    else:
        raise ValueError('Invalid track type. Must be "agency" or "saas"')
    profile.revenue_updated_at = utc_now()
    db.flush()
    return profile
