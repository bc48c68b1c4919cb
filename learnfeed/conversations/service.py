"""
Student/instructor conversation threads.

Drafts stay private to their sender and never reach the activity feed;
publishing a draft is the moment it is "sent" and projected.
"""
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from learnfeed.activities.projection import project_message
from learnfeed.catalog.models import Track, TrackGoal
from learnfeed.conversations.models import (
    Conversation,
    ConversationMessage,
    MESSAGE_PLAIN,
    MESSAGE_REVENUE_SUBMISSION,
    MESSAGE_TYPES,
)
from learnfeed.core.log import get_logger
from learnfeed.db.base import utc_now
from learnfeed.profiles.models import Profile
from learnfeed.profiles.service import apply_revenue, get_profile, parse_revenue_amount

logger = get_logger("learnfeed.conversations", "CONVERSATION")


def open_conversation(db: Session, student_id: int, instructor_id: Optional[int] = None) -> Conversation:
    """Return the student's thread with this instructor, creating it on first use."""
    get_profile(db, student_id)
    if instructor_id is not None:
        get_profile(db, instructor_id)

    conversation = (
        db.query(Conversation)
        .filter(Conversation.student_id == student_id, Conversation.instructor_id == instructor_id)
        .first()
    )
    if conversation is None:
        conversation = Conversation(student_id=student_id, instructor_id=instructor_id)
        db.add(conversation)
        db.commit()
        db.refresh(conversation)
    return conversation


def _is_participant(conversation: Conversation, user_id: int) -> bool:
    return user_id in (conversation.student_id, conversation.instructor_id)


def _get_conversation(db: Session, conversation_id: int) -> Conversation:
    conversation = db.get(Conversation, conversation_id)
    if conversation is None:
        raise LookupError(f"Conversation {conversation_id} not found")
    return conversation


def _apply_revenue_from(db: Session, message: ConversationMessage) -> None:
    amount = (message.message_metadata or {}).get("amount")
    if amount is None:
        return
    profile = db.get(Profile, message.sender_id)
    track = db.get(Track, profile.current_track_id) if profile.current_track_id else None
    if track is None:
        logger.info("user=%s revenue proof without a current track; counters unchanged", message.sender_id)
        return
    apply_revenue(db, message.sender_id, track.track_type, amount)


def _on_sent(db: Session, message: ConversationMessage) -> None:
    if message.message_type == MESSAGE_REVENUE_SUBMISSION:
        _apply_revenue_from(db, message)
    project_message(db, message)


def send_message(
    db: Session,
    conversation_id: int,
    sender_id: int,
    content: str,
    message_type: str = MESSAGE_PLAIN,
    metadata: Optional[dict] = None,
    is_draft: bool = False,
) -> ConversationMessage:
    if message_type not in MESSAGE_TYPES:
        raise ValueError(f"Invalid message type: {message_type!r}")
    conversation = _get_conversation(db, conversation_id)
    if not _is_participant(conversation, sender_id):
        raise PermissionError("Sender is not part of this conversation")
    if message_type == MESSAGE_REVENUE_SUBMISSION and (metadata or {}).get("amount") is not None:
        # Validated before the insert; nothing is written for a bad figure
        parse_revenue_amount(metadata["amount"])

    message = ConversationMessage(
        conversation_id=conversation_id,
        sender_id=sender_id,
        message_type=message_type,
        content=content or "",
        message_metadata=metadata or {},
        is_draft=is_draft,
        created_at=utc_now(),
    )
    db.add(message)
    db.flush()

    if not is_draft:
        _on_sent(db, message)

    db.commit()
    db.refresh(message)
    return message


def publish_draft(db: Session, message_id: int, sender_id: int) -> ConversationMessage:
    message = db.get(ConversationMessage, message_id)
    if message is None or message.sender_id != sender_id:
        raise LookupError(f"Draft {message_id} not found")
    if not message.is_draft:
        return message

    message.is_draft = False
    # A published draft is dated when it is sent, not when it was started
    message.created_at = utc_now()
    db.flush()
    _on_sent(db, message)

    db.commit()
    db.refresh(message)
    return message


def conversation_timeline(db: Session, conversation_id: int, viewer_id: int) -> List[dict]:
    """Messages oldest first. Other people's drafts are hidden."""
    conversation = _get_conversation(db, conversation_id)
    if not _is_participant(conversation, viewer_id):
        raise PermissionError("Viewer is not part of this conversation")

    rows = (
        db.query(ConversationMessage, Profile.full_name)
        .outerjoin(Profile, Profile.id == ConversationMessage.sender_id)
        .filter(
            ConversationMessage.conversation_id == conversation_id,
            (ConversationMessage.is_draft.is_(False)) | (ConversationMessage.sender_id == viewer_id),
        )
        .order_by(ConversationMessage.created_at.asc(), ConversationMessage.id.asc())
        .all()
    )
    return [
        {
            "id": m.id,
            "sender_id": m.sender_id,
            "sender_name": sender_name,
            "message_type": m.message_type,
            "content": m.content,
            "metadata": m.message_metadata or {},
            "is_draft": m.is_draft,
            "created_at": m.created_at.isoformat() if m.created_at else None,
        }
        for m, sender_name in rows
    ]


def instructor_review_queue(db: Session, instructor_id: int) -> List[dict]:
    """
    Threads assigned to an instructor, newest first. Each row carries the
    student's name and current goal so the instructor can triage it, plus
    a count of the messages the student has sent.

    Drafts are not counted; the instructor cannot see them.
    """
    student_messages = (
        db.query(
            ConversationMessage.conversation_id.label("conversation_id"),
            func.count(ConversationMessage.id).label("message_count"),
        )
        .join(Conversation, Conversation.id == ConversationMessage.conversation_id)
        .filter(
            ConversationMessage.sender_id == Conversation.student_id,
            ConversationMessage.is_draft.is_(False),
        )
        .group_by(ConversationMessage.conversation_id)
        .subquery()
    )

    rows = (
        db.query(
            Conversation,
            Profile.full_name,
            Profile.email,
            TrackGoal.name,
            Track.name,
            student_messages.c.message_count,
        )
        .join(Profile, Profile.id == Conversation.student_id)
        .outerjoin(TrackGoal, TrackGoal.id == Profile.current_goal_id)
        .outerjoin(Track, Track.id == Profile.current_track_id)
        .outerjoin(student_messages, student_messages.c.conversation_id == Conversation.id)
        .filter(Conversation.instructor_id == instructor_id)
        .order_by(Conversation.created_at.desc(), Conversation.id.desc())
        .all()
    )
    return [
        {
            "conversation_id": c.id,
            "student_id": c.student_id,
            "instructor_id": c.instructor_id,
            "created_at": c.created_at.isoformat() if c.created_at else None,
            "student_name": student_name,
            "student_email": student_email,
            "goal_name": goal_name,
            "track_name": track_name,
            "message_count": message_count or 0,
        }
        for c, student_name, student_email, goal_name, track_name, message_count in rows
    ]
