"""
Activity Feed Store.

Append-only from the caller's point of view: rows go in through append()
(called by the projection writer) and leave only when their source event or
owning profile is deleted.
"""
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from learnfeed.activities.models import CommunityActivity, SourceRef
from learnfeed.core.errors import DuplicateProjectionError

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200


def find_by_source(db: Session, ref: SourceRef) -> Optional[CommunityActivity]:
    return (
        db.query(CommunityActivity)
        .filter(
            CommunityActivity.source_kind == ref.kind,
            CommunityActivity.source_id == ref.id,
        )
        .first()
    )


def append(db: Session, activity: CommunityActivity) -> CommunityActivity:
    """
    Insert one activity and flush it.

    Raises DuplicateProjectionError when the activity's source already has a
    row, either found up front or reported by the unique constraint when two
    writers race. Callers should run this inside a savepoint.
    """
    ref = activity.source
    if ref is not None and find_by_source(db, ref) is not None:
        raise DuplicateProjectionError(ref.kind, ref.id)

    db.add(activity)
    try:
        db.flush()
    except IntegrityError as exc:
        if ref is not None:
            raise DuplicateProjectionError(ref.kind, ref.id) from exc
        raise
    return activity


def _apply_window(query, since, until, before, limit):
    if since is not None:
        query = query.filter(CommunityActivity.created_at >= since)
    if until is not None:
        query = query.filter(CommunityActivity.created_at < until)
    if before is not None:
        # keyset pagination: pass the created_at of the last row you saw
        query = query.filter(CommunityActivity.created_at < before)
    limit = max(1, min(int(limit or DEFAULT_PAGE_SIZE), MAX_PAGE_SIZE))
    return (
        query.order_by(CommunityActivity.created_at.desc(), CommunityActivity.id.desc())
        .limit(limit)
    )


def list_for_user(
    db: Session,
    user_id: int,
    kinds: Optional[Iterable[str]] = None,
    goal_id: Optional[int] = None,
    since: Optional[datetime] = None,
    until: Optional[datetime] = None,
    is_public: Optional[bool] = None,
    before: Optional[datetime] = None,
    limit: int = DEFAULT_PAGE_SIZE,
) -> List[CommunityActivity]:
    """One user's timeline, newest first."""
    query = db.query(CommunityActivity).filter(CommunityActivity.user_id == user_id)
    if kinds:
        query = query.filter(CommunityActivity.activity_type.in_(list(kinds)))
    if goal_id is not None:
        query = query.filter(CommunityActivity.goal_id == goal_id)
    if is_public is not None:
        query = query.filter(CommunityActivity.is_public.is_(is_public))
    return _apply_window(query, since, until, before, limit).all()


def list_public(
    db: Session,
    kinds: Optional[Iterable[str]] = None,
    since: Optional[datetime] = None,
    until: Optional[datetime] = None,
    before: Optional[datetime] = None,
    limit: int = DEFAULT_PAGE_SIZE,
) -> List[CommunityActivity]:
    """Global community feed: public activities from every user, newest first."""
    query = db.query(CommunityActivity).filter(CommunityActivity.is_public.is_(True))
    if kinds:
        query = query.filter(CommunityActivity.activity_type.in_(list(kinds)))
    return _apply_window(query, since, until, before, limit).all()


def delete_for_source(db: Session, ref: SourceRef) -> int:
    """Cascade step of a source delete. Not exposed outside the services."""
    return (
        db.query(CommunityActivity)
        .filter(
            CommunityActivity.source_kind == ref.kind,
            CommunityActivity.source_id == ref.id,
        )
        .delete(synchronize_session=False)
    )
