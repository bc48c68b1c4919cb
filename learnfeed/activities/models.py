"""
community_activities: the denormalised activity timeline.

Every row is the projection of exactly one source event. The back reference
is a tagged pair (source_kind, source_id) instead of one nullable FK per
source table, so "at most one reference" holds by construction and
"one row per source" is a unique constraint.
"""
from dataclasses import dataclass

from sqlalchemy import (
    Column, Integer, String, Text, DateTime, Boolean, Numeric, JSON, ForeignKey,
    CheckConstraint, Index, UniqueConstraint,
)

from learnfeed.db.base import Base, utc_now

# ===============================
# ACTIVITY KINDS
# ===============================
KIND_REFLECTION_TEXT = "text"
KIND_REFLECTION_SCREENSHOT = "screenshot"
KIND_REFLECTION_VOICE = "voice"
KIND_REFLECTION_LOOM = "loom"
KIND_QUIZ = "quiz"
KIND_AI_CHAT = "ai_chat"
KIND_COURSE_COMPLETION = "course_completion"
KIND_DAILY_NOTE = "daily_note"
KIND_REVENUE_PROOF = "revenue_proof"
KIND_GOAL_ACHIEVED = "goal_achieved"
KIND_NEW_GOAL_STARTED = "new_goal_started"

REFLECTION_KINDS = (
    KIND_REFLECTION_TEXT,
    KIND_REFLECTION_SCREENSHOT,
    KIND_REFLECTION_VOICE,
    KIND_REFLECTION_LOOM,
)

ACTIVITY_KINDS = REFLECTION_KINDS + (
    KIND_QUIZ,
    KIND_AI_CHAT,
    KIND_COURSE_COMPLETION,
    KIND_DAILY_NOTE,
    KIND_REVENUE_PROOF,
    KIND_GOAL_ACHIEVED,
    KIND_NEW_GOAL_STARTED,
)

# ===============================
# SOURCE KINDS
# ===============================
SOURCE_REFLECTION = "reflection"
SOURCE_QUIZ_ATTEMPT = "quiz_attempt"
SOURCE_AI_CONVERSATION = "ai_conversation"
SOURCE_CONVERSATION_MESSAGE = "conversation_message"
SOURCE_DAILY_NOTE = "daily_note"
SOURCE_ENROLLMENT = "enrollment"

SOURCE_KINDS = (
    SOURCE_REFLECTION,
    SOURCE_QUIZ_ATTEMPT,
    SOURCE_AI_CONVERSATION,
    SOURCE_CONVERSATION_MESSAGE,
    SOURCE_DAILY_NOTE,
    SOURCE_ENROLLMENT,
)


@dataclass(frozen=True)
class SourceRef:
    """Typed back reference from an activity to the row it was projected from."""
    kind: str
    id: int

    def __post_init__(self):
        if self.kind not in SOURCE_KINDS:
            raise ValueError(f"Unknown source kind: {self.kind!r}")


class CommunityActivity(Base):
    __tablename__ = "community_activities"

    id = Column(Integer, primary_key=True, index=True)

    user_id = Column(Integer, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    activity_type = Column(String(32), nullable=False)

    source_kind = Column(String(32), nullable=True)
    source_id = Column(Integer, nullable=True)

    # Denormalised display fields, captured at projection time
    media_file_id = Column(Integer, ForeignKey("media_files.id", ondelete="SET NULL"), nullable=True)
    video_title = Column(Text, nullable=True)
    timestamp_seconds = Column(Numeric(10, 2), nullable=True)
    course_id = Column(Integer, ForeignKey("courses.id", ondelete="SET NULL"), nullable=True)
    goal_id = Column(Integer, ForeignKey("track_goals.id", ondelete="SET NULL"), nullable=True)
    goal_title = Column(Text, nullable=True)

    content = Column(Text, nullable=True)
    activity_metadata = Column("metadata", JSON, nullable=True)

    is_public = Column(Boolean, nullable=False, default=False)

    # Copied from the source event, not the insert time
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    __table_args__ = (
        UniqueConstraint("source_kind", "source_id", name="uq_activity_source"),
        CheckConstraint(
            "(source_kind IS NULL) = (source_id IS NULL)",
            name="ck_activity_source_pair",
        ),
        Index("ix_activities_user_created", "user_id", "created_at"),
        Index("ix_activities_user_goal_created", "user_id", "goal_id", "created_at"),
        Index("ix_activities_public_created", "is_public", "created_at"),
        Index("ix_activities_user_media_ts", "user_id", "media_file_id", "timestamp_seconds"),
        Index("ix_activities_type_created", "activity_type", "created_at"),
    )

    @property
    def source(self):
        if self.source_kind is None:
            return None
        return SourceRef(self.source_kind, self.source_id)

    @source.setter
    def source(self, ref):
        if ref is None:
            self.source_kind = None
            self.source_id = None
        else:
            self.source_kind = ref.kind
            self.source_id = ref.id

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "activity_type": self.activity_type,
            "source_kind": self.source_kind,
            "source_id": self.source_id,
            "media_file_id": self.media_file_id,
            "video_title": self.video_title,
            "timestamp_seconds": float(self.timestamp_seconds) if self.timestamp_seconds is not None else None,
            "course_id": self.course_id,
            "goal_id": self.goal_id,
            "goal_title": self.goal_title,
            "content": self.content,
            "metadata": self.activity_metadata or {},
            "is_public": self.is_public,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
