from sqlalchemy import Column, Integer, String, Text, DateTime, Boolean, JSON, ForeignKey, Index, false

from learnfeed.db.base import Base, utc_now

MESSAGE_PLAIN = "message"
MESSAGE_DAILY_NOTE = "daily_note"
MESSAGE_INSTRUCTOR_RESPONSE = "instructor_response"
MESSAGE_REVENUE_SUBMISSION = "revenue_submission"

MESSAGE_TYPES = (
    MESSAGE_PLAIN,
    MESSAGE_DAILY_NOTE,
    MESSAGE_INSTRUCTOR_RESPONSE,
    MESSAGE_REVENUE_SUBMISSION,
)


class Conversation(Base):
    """A student's thread with their instructor."""
    __tablename__ = "conversations"

    id = Column(Integer, primary_key=True, index=True)

    student_id = Column(Integer, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    instructor_id = Column(Integer, ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utc_now)


class ConversationMessage(Base):
    __tablename__ = "conversation_messages"

    id = Column(Integer, primary_key=True, index=True)

    conversation_id = Column(Integer, ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False)
    sender_id = Column(Integer, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)

    # message | daily_note | instructor_response | revenue_submission
    message_type = Column(String(32), nullable=False, default=MESSAGE_PLAIN)
    content = Column(Text, nullable=False, default="")
    # "metadata" is reserved on declarative classes
    message_metadata = Column("metadata", JSON, nullable=True)

    # Drafts are visible to their sender only and are never projected
    is_draft = Column(Boolean, nullable=False, default=False, server_default=false())

    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    __table_args__ = (
        Index("ix_conversation_messages_timeline", "conversation_id", "created_at"),
    )
