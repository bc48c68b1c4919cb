from datetime import datetime, timedelta

import pytest

from learnfeed.activities import feed
from learnfeed.activities.models import CommunityActivity, SourceRef
from learnfeed.core.errors import DuplicateProjectionError
from learnfeed.learning import service


def _seed_week(db, user_id):
    start = datetime(2026, 5, 1, 12, 0)
    for day in range(7):
        service.record_reflection(
            db, user_id, "text", reflection_text=f"day {day}", created_at=start + timedelta(days=day),
        )
    return start


def test_timeline_is_newest_first(db, student):
    _seed_week(db, student.id)
    rows = feed.list_for_user(db, student.id)
    assert [r.content for r in rows] == [f"day {d}" for d in range(6, -1, -1)]


def test_keyset_pagination_with_before(db, student):
    _seed_week(db, student.id)

    page_one = feed.list_for_user(db, student.id, limit=3)
    page_two = feed.list_for_user(db, student.id, before=page_one[-1].created_at, limit=3)

    assert [r.content for r in page_one] == ["day 6", "day 5", "day 4"]
    assert [r.content for r in page_two] == ["day 3", "day 2", "day 1"]


def test_since_until_window(db, student):
    start = _seed_week(db, student.id)
    rows = feed.list_for_user(
        db, student.id, since=start + timedelta(days=2), until=start + timedelta(days=4),
    )
    assert [r.content for r in rows] == ["day 3", "day 2"]


def test_kind_and_visibility_filters(db, student):
    service.record_reflection(db, student.id, "text", reflection_text="note to self")
    service.record_quiz_attempt(db, student.id, score=1, total_questions=2)

    quizzes = feed.list_for_user(db, student.id, kinds=["quiz"])
    assert [r.activity_type for r in quizzes] == ["quiz"]
    assert feed.list_for_user(db, student.id, is_public=True) == []


def test_limit_is_clamped(db, student):
    _seed_week(db, student.id)
    assert len(feed.list_for_user(db, student.id, limit=0)) == 7
    assert len(feed.list_for_user(db, student.id, limit=10_000)) == 7


def test_public_feed_only_has_public_rows(db, student, other_student):
    service.record_reflection(db, student.id, "text", reflection_text="private")
    db.add(CommunityActivity(
        user_id=other_student.id,
        activity_type="goal_achieved",
        content="Achieved goal: First $1k",
        is_public=True,
    ))
    db.commit()

    rows = feed.list_public(db)
    assert [r.user_id for r in rows] == [other_student.id]


def test_append_rejects_second_row_for_same_source(db, student):
    reflection = service.record_reflection(db, student.id, "text", reflection_text="once")

    duplicate = CommunityActivity(user_id=student.id, activity_type="text", content="twice")
    duplicate.source = SourceRef("reflection", reflection.id)

    with pytest.raises(DuplicateProjectionError):
        feed.append(db, duplicate)


def test_source_ref_rejects_unknown_kind():
    with pytest.raises(ValueError):
        SourceRef("submission", 1)
