from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index

from learnfeed.db.base import Base, utc_now

STATUS_ACTIVE = "active"
STATUS_CHANGED = "changed"        # superseded by a newer active assignment
STATUS_ABANDONED = "abandoned"    # ended without a replacement

ASSIGNMENT_STATUSES = (STATUS_ACTIVE, STATUS_CHANGED, STATUS_ABANDONED)


class StudentTrackAssignment(Base):
    """
    History of a student's goal-within-track claims.

    At most one row per student is 'active'; learnfeed.assignments.sync
    enforces that and mirrors the active row onto the profile.
    """
    __tablename__ = "student_track_assignments"

    id = Column(Integer, primary_key=True, index=True)

    user_id = Column(Integer, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    track_id = Column(Integer, ForeignKey("tracks.id", ondelete="CASCADE"), nullable=False)
    goal_id = Column(Integer, ForeignKey("track_goals.id", ondelete="CASCADE"), nullable=False)

    # active | changed | abandoned
    status = Column(String(16), nullable=False, default=STATUS_ACTIVE)

    assigned_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    __table_args__ = (
        Index("ix_student_track_assignments_user_status", "user_id", "status"),
    )
