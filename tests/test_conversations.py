from decimal import Decimal

import pytest

from learnfeed.activities import feed
from learnfeed.activities.models import SourceRef
from learnfeed.assignments.sync import assign_goal
from learnfeed.conversations import service
from learnfeed.conversations.models import ConversationMessage
from learnfeed.profiles.service import parse_revenue_amount


@pytest.fixture
def thread(db, student, instructor):
    return service.open_conversation(db, student.id, instructor.id)


def test_open_conversation_is_reused(db, student, instructor, thread):
    again = service.open_conversation(db, student.id, instructor.id)
    assert again.id == thread.id


def test_plain_messages_stay_out_of_the_feed(db, student, thread):
    service.send_message(db, thread.id, student.id, "How do I price a retainer?")
    assert feed.list_for_user(db, student.id) == []


def test_daily_note_message_is_projected(db, student, thread):
    message = service.send_message(db, thread.id, student.id, "Booked a call", message_type="daily_note")

    activity = feed.find_by_source(db, SourceRef("conversation_message", message.id))
    assert activity.activity_type == "daily_note"
    assert activity.content == "Daily note: Booked a call"


def test_draft_is_private_until_published(db, student, instructor, thread):
    draft = service.send_message(
        db, thread.id, student.id, "Closed $1,500", message_type="revenue_submission", is_draft=True,
    )
    assert feed.list_for_user(db, student.id) == []
    assert service.conversation_timeline(db, thread.id, instructor.id) == []
    assert len(service.conversation_timeline(db, thread.id, student.id)) == 1

    published = service.publish_draft(db, draft.id, student.id)

    assert published.is_draft is False
    activity = feed.find_by_source(db, SourceRef("conversation_message", draft.id))
    assert activity.activity_type == "revenue_proof"
    assert activity.content == "Closed $1,500"
    assert [m["content"] for m in service.conversation_timeline(db, thread.id, instructor.id)] == ["Closed $1,500"]


def test_outsiders_cannot_post(db, other_student, thread):
    with pytest.raises(PermissionError):
        service.send_message(db, thread.id, other_student.id, "hi")


def test_unknown_message_type_rejected(db, student, thread):
    with pytest.raises(ValueError):
        service.send_message(db, thread.id, student.id, "hi", message_type="sticker")


def test_agency_revenue_accumulates(db, student, thread, catalog):
    assign_goal(db, student.id, catalog["agency"].id, catalog["first_k"].id)

    for amount in (400, 700):
        service.send_message(
            db, thread.id, student.id, f"Invoice paid: ${amount}",
            message_type="revenue_submission", metadata={"amount": amount},
        )

    db.refresh(student)
    assert student.total_revenue_earned == Decimal("1100")
    assert len(feed.list_for_user(db, student.id, kinds=["revenue_proof"])) == 2


def test_saas_revenue_keeps_best_mrr(db, student, thread, catalog):
    assign_goal(db, student.id, catalog["saas"].id, catalog["mrr"].id)

    for amount in (300, 250):
        service.send_message(
            db, thread.id, student.id, f"MRR now ${amount}",
            message_type="revenue_submission", metadata={"amount": amount},
        )

    db.refresh(student)
    assert student.current_mrr == Decimal("300")
    assert student.total_revenue_earned == Decimal("0")


def test_revenue_without_a_track_changes_nothing(db, student, thread):
    service.send_message(
        db, thread.id, student.id, "Got paid", message_type="revenue_submission", metadata={"amount": 50},
    )
    db.refresh(student)
    assert student.total_revenue_earned == Decimal("0")


@pytest.mark.parametrize("amount", ["lots", True, "Infinity", "NaN", -5])
def test_bad_revenue_amount_writes_nothing(db, student, thread, catalog, amount):
    assign_goal(db, student.id, catalog["agency"].id, catalog["first_k"].id)

    with pytest.raises(ValueError):
        service.send_message(
            db, thread.id, student.id, "Got paid", message_type="revenue_submission", metadata={"amount": amount},
        )

    assert db.query(ConversationMessage).count() == 0
    assert feed.list_for_user(db, student.id, kinds=["revenue_proof"]) == []
    db.refresh(student)
    assert student.total_revenue_earned == Decimal("0")


def test_revenue_amount_accepts_numeric_strings():
    assert parse_revenue_amount(" 1500.50 ") == Decimal("1500.50")
    assert parse_revenue_amount(0) == Decimal("0")


def test_timeline_names_senders(db, student, instructor, thread):
    service.send_message(db, thread.id, student.id, "Is $2k too much?")
    service.send_message(db, thread.id, instructor.id, "Charge it", message_type="instructor_response")

    timeline = service.conversation_timeline(db, thread.id, student.id)
    assert [m["sender_name"] for m in timeline] == ["student", "coach"]


def test_review_queue_lists_instructor_threads(db, student, other_student, instructor, thread, catalog):
    assign_goal(db, student.id, catalog["agency"].id, catalog["first_k"].id)
    service.send_message(db, thread.id, student.id, "Day 1: sent 10 emails", message_type="daily_note")
    service.send_message(db, thread.id, student.id, "Day 2: two replies", message_type="daily_note")
    service.send_message(db, thread.id, student.id, "Unfinished", is_draft=True)
    service.send_message(db, thread.id, instructor.id, "Nice work", message_type="instructor_response")
    service.open_conversation(db, other_student.id, None)

    queue = service.instructor_review_queue(db, instructor.id)

    assert len(queue) == 1
    row = queue[0]
    assert row["conversation_id"] == thread.id
    assert row["student_id"] == student.id
    assert row["instructor_id"] == instructor.id
    assert row["student_name"] == "student"
    assert row["student_email"] == "student@example.com"
    assert row["goal_name"] == "First $1k"
    assert row["track_name"] == "Agency"
    assert row["message_count"] == 2
    assert row["created_at"] is not None


def test_review_queue_without_goal_or_messages(db, instructor, thread):
    row = service.instructor_review_queue(db, instructor.id)[0]
    assert row["goal_name"] is None
    assert row["track_name"] is None
    assert row["message_count"] == 0
