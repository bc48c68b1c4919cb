import pytest

from learnfeed.activities import feed
from learnfeed.activities.models import CommunityActivity, SourceRef
from learnfeed.assignments.models import StudentTrackAssignment
from learnfeed.assignments.sync import assign_goal
from learnfeed.catalog.models import Course
from learnfeed.conversations import service as conversations
from learnfeed.conversations.models import Conversation, ConversationMessage
from learnfeed.learning import service
from learnfeed.learning.models import DailyNote, Enrollment, QuizAttempt, Reflection
from learnfeed.profiles.models import Profile
from learnfeed.profiles.service import delete_profile


def test_deleting_a_reflection_removes_its_activity(db, student):
    keep = service.record_reflection(db, student.id, "text", reflection_text="keep me")
    drop = service.record_reflection(db, student.id, "text", reflection_text="drop me")

    service.delete_source_event(db, "reflection", drop.id)

    assert db.get(Reflection, drop.id) is None
    assert feed.find_by_source(db, SourceRef("reflection", drop.id)) is None
    assert feed.find_by_source(db, SourceRef("reflection", keep.id)) is not None


def test_deleting_a_message_removes_its_activity(db, student, instructor):
    thread = conversations.open_conversation(db, student.id, instructor.id)
    message = conversations.send_message(
        db, thread.id, student.id, "Closed my first client", message_type="revenue_submission",
    )
    assert feed.find_by_source(db, SourceRef("conversation_message", message.id)) is not None

    service.delete_source_event(db, "conversation_message", message.id)

    assert feed.find_by_source(db, SourceRef("conversation_message", message.id)) is None


def test_deleting_unknown_source_raises(db):
    with pytest.raises(LookupError):
        service.delete_source_event(db, "quiz_attempt", 999)


def test_deleting_user_removes_everything_they_own(db, student, other_student, instructor, catalog):
    assign_goal(db, student.id, catalog["agency"].id, catalog["first_k"].id)
    service.record_reflection(db, student.id, "text", reflection_text="mine")
    service.record_quiz_attempt(db, student.id, score=5, total_questions=5)
    service.record_daily_note(db, student.id, "worked on outreach")
    enrollment = service.enroll(db, student.id, catalog["course"].id)
    service.update_enrollment_progress(db, enrollment.id, progress_percent=100)
    thread = conversations.open_conversation(db, student.id, instructor.id)
    conversations.send_message(db, thread.id, instructor.id, "Nice work")

    service.record_reflection(db, other_student.id, "text", reflection_text="not mine")

    student_id = student.id
    delete_profile(db, student_id)

    assert db.get(Profile, student_id) is None
    for model in (CommunityActivity, StudentTrackAssignment, Reflection, QuizAttempt, DailyNote, Enrollment):
        assert db.query(model).filter(model.user_id == student_id).count() == 0
    assert db.query(Conversation).count() == 0
    assert db.query(ConversationMessage).count() == 0

    # Other users are untouched
    assert db.query(CommunityActivity).filter(CommunityActivity.user_id == other_student.id).count() == 1
    assert db.get(Profile, instructor.id) is not None


def test_deleting_instructor_keeps_student_threads(db, student, instructor):
    thread = conversations.open_conversation(db, student.id, instructor.id)
    conversations.send_message(db, thread.id, student.id, "Question about pricing")
    conversations.send_message(db, thread.id, instructor.id, "Charge more")

    delete_profile(db, instructor.id)

    remaining = db.get(Conversation, thread.id)
    assert remaining is not None
    assert remaining.instructor_id is None
    assert [m.content for m in db.query(ConversationMessage).all()] == ["Question about pricing"]


def test_course_delete_leaves_orphan_until_purged(db, student, catalog):
    course = catalog["course"]
    enrollment = service.enroll(db, student.id, course.id)
    service.update_enrollment_progress(db, enrollment.id, progress_percent=100)
    ref = SourceRef("enrollment", enrollment.id)
    assert feed.find_by_source(db, ref) is not None

    # The database cascades the course to its enrollments; the activity has no FK to follow
    db.query(Course).filter(Course.id == course.id).delete(synchronize_session=False)
    db.commit()
    db.expire_all()
    assert db.get(Enrollment, enrollment.id) is None
    assert feed.find_by_source(db, ref) is not None

    removed = service.purge_orphan_activities(db)

    assert removed["enrollment"] == 1
    assert feed.find_by_source(db, ref) is None
    assert service.purge_orphan_activities(db)["enrollment"] == 0
