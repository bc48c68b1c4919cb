import json
from typing import Optional

from fastapi import APIRouter, Depends, Form, HTTPException
from sqlalchemy.orm import Session

from learnfeed.conversations import service
from learnfeed.conversations.models import ConversationMessage, MESSAGE_PLAIN
from learnfeed.core.deps import get_current_profile, get_instructor, http_errors
from learnfeed.db.session import get_db
from learnfeed.profiles.models import Profile

router = APIRouter(prefix="/conversations", tags=["conversations"])


def _message_dict(m: ConversationMessage) -> dict:
    return {
        "id": m.id,
        "conversation_id": m.conversation_id,
        "message_type": m.message_type,
        "is_draft": m.is_draft,
        "created_at": m.created_at.isoformat() if m.created_at else None,
    }


@router.post("")
def open_conversation(
    instructor_id: Optional[int] = Form(None),
    db: Session = Depends(get_db),
    profile: Profile = Depends(get_current_profile),
):
    with http_errors():
        conversation = service.open_conversation(db, profile.id, instructor_id)
    return {
        "id": conversation.id,
        "student_id": conversation.student_id,
        "instructor_id": conversation.instructor_id,
    }


@router.post("/{conversation_id}/messages")
def send_message(
    conversation_id: int,
    content: str = Form(""),
    message_type: str = Form(MESSAGE_PLAIN),
    metadata: Optional[str] = Form(None),
    is_draft: bool = Form(False),
    db: Session = Depends(get_db),
    profile: Profile = Depends(get_current_profile),
):
    """`metadata` is a JSON object, e.g. {"amount": 1500} for revenue submissions."""
    parsed = None
    if metadata:
        try:
            parsed = json.loads(metadata)
        except json.JSONDecodeError:
            raise HTTPException(status_code=400, detail="metadata must be JSON")
        if not isinstance(parsed, dict):
            raise HTTPException(status_code=400, detail="metadata must be a JSON object")

    with http_errors():
        message = service.send_message(
            db,
            conversation_id,
            profile.id,
            content,
            message_type=message_type,
            metadata=parsed,
            is_draft=is_draft,
        )
    return _message_dict(message)


@router.post("/messages/{message_id}/publish")
def publish_draft(
    message_id: int,
    db: Session = Depends(get_db),
    profile: Profile = Depends(get_current_profile),
):
    with http_errors():
        message = service.publish_draft(db, message_id, profile.id)
    return _message_dict(message)


@router.get("/review-queue")
def review_queue(
    db: Session = Depends(get_db),
    instructor: Profile = Depends(get_instructor),
):
    """Threads waiting on the calling instructor."""
    return {"conversations": service.instructor_review_queue(db, instructor.id)}


@router.get("/{conversation_id}")
def conversation_timeline(
    conversation_id: int,
    db: Session = Depends(get_db),
    profile: Profile = Depends(get_current_profile),
):
    with http_errors():
        messages = service.conversation_timeline(db, conversation_id, profile.id)
    return {"conversation_id": conversation_id, "messages": messages}
