from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Numeric
from sqlalchemy.sql import func

from learnfeed.db.base import Base

GOAL_IN_PROGRESS = "in_progress"
GOAL_COMPLETED = "completed"


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(Integer, primary_key=True, index=True)

    email = Column(String, unique=True, index=True, nullable=False)
    full_name = Column(String, nullable=True)

    # "student" (default), "instructor", "admin"
    role = Column(String, default="student", nullable=False)

    # ======================================================
    # CURRENT ASSIGNMENT POINTER
    # Written only by learnfeed.assignments.sync; mirrors the
    # user's single active student_track_assignments row.
    # ======================================================
    current_goal_id = Column(Integer, ForeignKey("track_goals.id", ondelete="SET NULL"), nullable=True)
    current_track_id = Column(Integer, ForeignKey("tracks.id", ondelete="SET NULL"), nullable=True)
    goal_assigned_at = Column(DateTime(timezone=True), nullable=True)

    # Goal state for the current goal: in_progress | completed
    goal_status = Column(String, nullable=True)
    goal_progress = Column(Integer, nullable=False, default=0)
    goal_started_at = Column(DateTime(timezone=True), nullable=True)
    goal_completed_at = Column(DateTime(timezone=True), nullable=True)

    # Revenue tracking: agency tracks add up, saas tracks keep the best MRR
    total_revenue_earned = Column(Numeric(10, 2), nullable=False, default=0)
    current_mrr = Column(Numeric(10, 2), nullable=False, default=0)
    revenue_updated_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
