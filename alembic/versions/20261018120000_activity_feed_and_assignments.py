"""activity feed, learning events and goal assignments

Revision ID: 20261018120000
Revises:
Create Date: 2026-10-18 12:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '20261018120000'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id() -> sa.Column:
    return sa.Column('id', sa.Integer(), primary_key=True)


def _user_fk(name: str = 'user_id') -> sa.Column:
    return sa.Column(name, sa.Integer(), sa.ForeignKey('profiles.id', ondelete='CASCADE'), nullable=False)


def _ts(name: str, nullable: bool = True) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable)


def upgrade() -> None:
    """Create catalog, profile, learning, conversation, assignment and activity tables."""
    # ---- catalog ----
    op.create_table(
        'courses',
        _id(),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
    )
    op.create_table(
        'media_files',
        _id(),
        sa.Column('course_id', sa.Integer(), sa.ForeignKey('courses.id', ondelete='CASCADE'), nullable=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('duration_seconds', sa.Numeric(10, 2), nullable=True),
    )
    op.create_index('ix_media_files_course_id', 'media_files', ['course_id'])
    op.create_table(
        'tracks',
        _id(),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('track_type', sa.String(32), nullable=False),
    )
    op.create_table(
        'track_goals',
        _id(),
        sa.Column('track_id', sa.Integer(), sa.ForeignKey('tracks.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('target_amount', sa.Numeric(10, 2), nullable=True),
        sa.Column('currency', sa.String(8), nullable=False),
    )
    op.create_index('ix_track_goals_track_id', 'track_goals', ['track_id'])

    # ---- profiles ----
    op.create_table(
        'profiles',
        _id(),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('full_name', sa.String(), nullable=True),
        sa.Column('role', sa.String(), nullable=False),
        sa.Column('current_goal_id', sa.Integer(), sa.ForeignKey('track_goals.id', ondelete='SET NULL'), nullable=True),
        sa.Column('current_track_id', sa.Integer(), sa.ForeignKey('tracks.id', ondelete='SET NULL'), nullable=True),
        _ts('goal_assigned_at'),
        sa.Column('goal_status', sa.String(), nullable=True),
        sa.Column('goal_progress', sa.Integer(), nullable=False),
        _ts('goal_started_at'),
        _ts('goal_completed_at'),
        sa.Column('total_revenue_earned', sa.Numeric(10, 2), nullable=False),
        sa.Column('current_mrr', sa.Numeric(10, 2), nullable=False),
        _ts('revenue_updated_at'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_profiles_email', 'profiles', ['email'], unique=True)

    # ---- learning ----
    op.create_table(
        'enrollments',
        _id(),
        _user_fk(),
        sa.Column('course_id', sa.Integer(), sa.ForeignKey('courses.id', ondelete='CASCADE'), nullable=False),
        sa.Column('progress_percent', sa.Integer(), nullable=False),
        sa.Column('completed_videos', sa.Integer(), nullable=False),
        sa.Column('total_videos', sa.Integer(), nullable=False),
        _ts('completed_at'),
        _ts('last_accessed_at'),
        _ts('created_at'),
        sa.UniqueConstraint('user_id', 'course_id', name='uq_enrollment_user_course'),
    )
    op.create_index('ix_enrollments_user_id', 'enrollments', ['user_id'])
    op.create_table(
        'video_progress',
        _id(),
        _user_fk(),
        sa.Column('video_id', sa.Integer(), sa.ForeignKey('media_files.id', ondelete='CASCADE'), nullable=False),
        sa.Column('course_id', sa.Integer(), sa.ForeignKey('courses.id', ondelete='CASCADE'), nullable=True),
        sa.Column('progress_percent', sa.Integer(), nullable=False),
        _ts('updated_at'),
        sa.UniqueConstraint('user_id', 'video_id', name='uq_video_progress_user_video'),
    )
    op.create_table(
        'reflections',
        _id(),
        _user_fk(),
        sa.Column('course_id', sa.Integer(), sa.ForeignKey('courses.id', ondelete='SET NULL'), nullable=True),
        sa.Column('video_id', sa.Integer(), sa.ForeignKey('media_files.id', ondelete='SET NULL'), nullable=True),
        sa.Column('reflection_type', sa.String(32), nullable=False),
        sa.Column('reflection_prompt', sa.Text(), nullable=True),
        sa.Column('reflection_text', sa.Text(), nullable=True),
        sa.Column('file_url', sa.Text(), nullable=True),
        sa.Column('duration_seconds', sa.Numeric(10, 2), nullable=True),
        sa.Column('video_timestamp_seconds', sa.Numeric(10, 2), nullable=True),
        _ts('created_at'),
    )
    op.create_index('ix_reflections_user_id', 'reflections', ['user_id'])
    op.create_table(
        'quiz_attempts',
        _id(),
        _user_fk(),
        sa.Column('course_id', sa.Integer(), sa.ForeignKey('courses.id', ondelete='SET NULL'), nullable=True),
        sa.Column('video_id', sa.Integer(), sa.ForeignKey('media_files.id', ondelete='SET NULL'), nullable=True),
        sa.Column('score', sa.Integer(), nullable=False),
        sa.Column('total_questions', sa.Integer(), nullable=False),
        sa.Column('percentage', sa.Integer(), nullable=False),
        sa.Column('quiz_duration_seconds', sa.Integer(), nullable=True),
        sa.Column('video_timestamp', sa.Numeric(10, 2), nullable=True),
        _ts('created_at'),
    )
    op.create_index('ix_quiz_attempts_user_id', 'quiz_attempts', ['user_id'])
    op.create_table(
        'video_ai_conversations',
        _id(),
        _user_fk(),
        sa.Column('media_file_id', sa.Integer(), sa.ForeignKey('media_files.id', ondelete='SET NULL'), nullable=True),
        sa.Column('user_message', sa.Text(), nullable=False),
        sa.Column('ai_response', sa.Text(), nullable=True),
        sa.Column('model_used', sa.String(128), nullable=True),
        sa.Column('conversation_context', sa.JSON(), nullable=True),
        sa.Column('video_timestamp', sa.Numeric(10, 2), nullable=True),
        _ts('created_at'),
    )
    op.create_index('ix_video_ai_conversations_user_id', 'video_ai_conversations', ['user_id'])
    op.create_table(
        'daily_notes',
        _id(),
        _user_fk(),
        sa.Column('goal_id', sa.Integer(), sa.ForeignKey('track_goals.id', ondelete='SET NULL'), nullable=True),
        sa.Column('note', sa.Text(), nullable=False),
        sa.Column('note_date', sa.Date(), nullable=False),
        _ts('created_at'),
    )
    op.create_index('ix_daily_notes_user_id', 'daily_notes', ['user_id'])

    # ---- conversations ----
    op.create_table(
        'conversations',
        _id(),
        _user_fk('student_id'),
        sa.Column('instructor_id', sa.Integer(), sa.ForeignKey('profiles.id', ondelete='SET NULL'), nullable=True),
        _ts('created_at'),
    )
    op.create_index('ix_conversations_student_id', 'conversations', ['student_id'])
    op.create_table(
        'conversation_messages',
        _id(),
        sa.Column('conversation_id', sa.Integer(), sa.ForeignKey('conversations.id', ondelete='CASCADE'), nullable=False),
        _user_fk('sender_id'),
        sa.Column('message_type', sa.String(32), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('is_draft', sa.Boolean(), nullable=False, server_default=sa.false()),
        _ts('created_at'),
        _ts('updated_at'),
    )
    op.create_index('ix_conversation_messages_timeline', 'conversation_messages', ['conversation_id', 'created_at'])

    # ---- goal assignments ----
    op.create_table(
        'student_track_assignments',
        _id(),
        _user_fk(),
        sa.Column('track_id', sa.Integer(), sa.ForeignKey('tracks.id', ondelete='CASCADE'), nullable=False),
        sa.Column('goal_id', sa.Integer(), sa.ForeignKey('track_goals.id', ondelete='CASCADE'), nullable=False),
        sa.Column('status', sa.String(16), nullable=False),
        _ts('assigned_at', nullable=False),
        _ts('updated_at'),
    )
    op.create_index('ix_student_track_assignments_user_status', 'student_track_assignments', ['user_id', 'status'])

    # ---- activity feed ----
    op.create_table(
        'community_activities',
        _id(),
        _user_fk(),
        sa.Column('activity_type', sa.String(32), nullable=False),
        sa.Column('source_kind', sa.String(32), nullable=True),
        sa.Column('source_id', sa.Integer(), nullable=True),
        sa.Column('media_file_id', sa.Integer(), sa.ForeignKey('media_files.id', ondelete='SET NULL'), nullable=True),
        sa.Column('video_title', sa.Text(), nullable=True),
        sa.Column('timestamp_seconds', sa.Numeric(10, 2), nullable=True),
        sa.Column('course_id', sa.Integer(), sa.ForeignKey('courses.id', ondelete='SET NULL'), nullable=True),
        sa.Column('goal_id', sa.Integer(), sa.ForeignKey('track_goals.id', ondelete='SET NULL'), nullable=True),
        sa.Column('goal_title', sa.Text(), nullable=True),
        sa.Column('content', sa.Text(), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('is_public', sa.Boolean(), nullable=False),
        _ts('created_at', nullable=False),
        _ts('updated_at'),
        sa.UniqueConstraint('source_kind', 'source_id', name='uq_activity_source'),
        sa.CheckConstraint('(source_kind IS NULL) = (source_id IS NULL)', name='ck_activity_source_pair'),
    )
    op.create_index('ix_activities_user_created', 'community_activities', ['user_id', 'created_at'])
    op.create_index('ix_activities_user_goal_created', 'community_activities', ['user_id', 'goal_id', 'created_at'])
    op.create_index('ix_activities_public_created', 'community_activities', ['is_public', 'created_at'])
    op.create_index('ix_activities_user_media_ts', 'community_activities', ['user_id', 'media_file_id', 'timestamp_seconds'])
    op.create_index('ix_activities_type_created', 'community_activities', ['activity_type', 'created_at'])


def downgrade() -> None:
    """Drop everything, children first."""
    for table in (
        'community_activities',
        'student_track_assignments',
        'conversation_messages',
        'conversations',
        'daily_notes',
        'video_ai_conversations',
        'quiz_attempts',
        'reflections',
        'video_progress',
        'enrollments',
        'profiles',
        'track_goals',
        'tracks',
        'media_files',
        'courses',
    ):
        op.drop_table(table)
