from sqlalchemy import (
    Column, Integer, String, Text, DateTime, Date, Numeric, JSON, ForeignKey, UniqueConstraint,
)

from learnfeed.db.base import Base, utc_now

REFLECTION_TYPES = ("text", "screenshot", "voice", "loom")


class Enrollment(Base):
    __tablename__ = "enrollments"

    id = Column(Integer, primary_key=True, index=True)

    user_id = Column(Integer, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    course_id = Column(Integer, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False)

    progress_percent = Column(Integer, nullable=False, default=0)
    completed_videos = Column(Integer, nullable=False, default=0)
    total_videos = Column(Integer, nullable=False, default=0)

    completed_at = Column(DateTime(timezone=True), nullable=True)
    last_accessed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now)

    __table_args__ = (
        UniqueConstraint("user_id", "course_id", name="uq_enrollment_user_course"),
    )


class VideoProgress(Base):
    __tablename__ = "video_progress"

    id = Column(Integer, primary_key=True, index=True)

    user_id = Column(Integer, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    video_id = Column(Integer, ForeignKey("media_files.id", ondelete="CASCADE"), nullable=False)
    course_id = Column(Integer, ForeignKey("courses.id", ondelete="CASCADE"), nullable=True)

    progress_percent = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    __table_args__ = (
        UniqueConstraint("user_id", "video_id", name="uq_video_progress_user_video"),
    )


# ======================================================
# SOURCE EVENTS
# Each row below is projected into community_activities
# when it is written.
# ======================================================
class Reflection(Base):
    __tablename__ = "reflections"

    id = Column(Integer, primary_key=True, index=True)

    user_id = Column(Integer, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    course_id = Column(Integer, ForeignKey("courses.id", ondelete="SET NULL"), nullable=True)
    video_id = Column(Integer, ForeignKey("media_files.id", ondelete="SET NULL"), nullable=True)

    # text | screenshot | voice | loom
    reflection_type = Column(String(32), nullable=False, default="text")
    reflection_prompt = Column(Text, nullable=True)
    reflection_text = Column(Text, nullable=True)

    file_url = Column(Text, nullable=True)
    duration_seconds = Column(Numeric(10, 2), nullable=True)
    video_timestamp_seconds = Column(Numeric(10, 2), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utc_now)


class QuizAttempt(Base):
    __tablename__ = "quiz_attempts"

    id = Column(Integer, primary_key=True, index=True)

    user_id = Column(Integer, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    course_id = Column(Integer, ForeignKey("courses.id", ondelete="SET NULL"), nullable=True)
    video_id = Column(Integer, ForeignKey("media_files.id", ondelete="SET NULL"), nullable=True)

    score = Column(Integer, nullable=False)
    total_questions = Column(Integer, nullable=False)
    percentage = Column(Integer, nullable=False)
    quiz_duration_seconds = Column(Integer, nullable=True)
    video_timestamp = Column(Numeric(10, 2), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utc_now)


class AiConversation(Base):
    """One question/answer exchange with the video AI assistant."""
    __tablename__ = "video_ai_conversations"

    id = Column(Integer, primary_key=True, index=True)

    user_id = Column(Integer, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    media_file_id = Column(Integer, ForeignKey("media_files.id", ondelete="SET NULL"), nullable=True)

    user_message = Column(Text, nullable=False)
    ai_response = Column(Text, nullable=True)
    model_used = Column(String(128), nullable=True)
    conversation_context = Column(JSON, nullable=True)
    video_timestamp = Column(Numeric(10, 2), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utc_now)


class DailyNote(Base):
    __tablename__ = "daily_notes"

    id = Column(Integer, primary_key=True, index=True)

    user_id = Column(Integer, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    goal_id = Column(Integer, ForeignKey("track_goals.id", ondelete="SET NULL"), nullable=True)

    note = Column(Text, nullable=False)
    note_date = Column(Date, nullable=False)

    created_at = Column(DateTime(timezone=True), default=utc_now)
