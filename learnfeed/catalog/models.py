"""
Catalog rows referenced by source events and activity records.
The feed only reads their titles; managing them is another service's job.
"""
from sqlalchemy import Column, Integer, String, Text, Numeric, ForeignKey

from learnfeed.db.base import Base

TRACK_AGENCY = "agency"
TRACK_SAAS = "saas"


class Course(Base):
    __tablename__ = "courses"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)


class MediaFile(Base):
    """A course video."""
    __tablename__ = "media_files"

    id = Column(Integer, primary_key=True, index=True)
    course_id = Column(Integer, ForeignKey("courses.id", ondelete="CASCADE"), nullable=True, index=True)
    name = Column(String(255), nullable=False)
    duration_seconds = Column(Numeric(10, 2), nullable=True)


class Track(Base):
    __tablename__ = "tracks"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    # agency | saas
    track_type = Column(String(32), nullable=False, default=TRACK_AGENCY)


class TrackGoal(Base):
    __tablename__ = "track_goals"

    id = Column(Integer, primary_key=True, index=True)
    track_id = Column(Integer, ForeignKey("tracks.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)

    # Revenue target in whole currency units, e.g. 1000 for "first $1k"
    target_amount = Column(Numeric(10, 2), nullable=True)
    currency = Column(String(8), nullable=False, default="USD")
