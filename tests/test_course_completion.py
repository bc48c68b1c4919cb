from learnfeed.activities import feed
from learnfeed.db.base import utc_now
from learnfeed.learning import service
from learnfeed.learning.models import Enrollment


def _completions(db, user_id):
    return feed.list_for_user(db, user_id, kinds=["course_completion"])


def test_crossing_to_100_fires_once(db, student, catalog):
    enrollment = service.enroll(db, student.id, catalog["course"].id)
    service.update_enrollment_progress(db, enrollment.id, progress_percent=95)
    assert _completions(db, student.id) == []

    service.update_enrollment_progress(db, enrollment.id, progress_percent=100)

    rows = _completions(db, student.id)
    assert len(rows) == 1
    assert rows[0].is_public is True
    assert rows[0].content == "Completed course: Cold Outreach 101"
    assert rows[0].course_id == catalog["course"].id


def test_resaving_completed_enrollment_adds_nothing(db, student, catalog):
    enrollment = service.enroll(db, student.id, catalog["course"].id)
    service.update_enrollment_progress(db, enrollment.id, progress_percent=100)

    service.update_enrollment_progress(db, enrollment.id, progress_percent=100)
    service.update_enrollment_progress(db, enrollment.id, progress_percent=120)

    assert len(_completions(db, student.id)) == 1
    db.refresh(enrollment)
    assert enrollment.progress_percent == 100
    assert enrollment.completed_at is not None


def test_setting_completed_at_counts_as_completion(db, student, catalog):
    enrollment = service.enroll(db, student.id, catalog["course"].id)
    service.update_enrollment_progress(db, enrollment.id, progress_percent=60)
    assert _completions(db, student.id) == []

    service.update_enrollment_progress(db, enrollment.id, completed_at=utc_now())

    assert len(_completions(db, student.id)) == 1


def test_dropping_below_and_recrossing_does_not_duplicate(db, student, catalog):
    enrollment = service.enroll(db, student.id, catalog["course"].id)
    service.update_enrollment_progress(db, enrollment.id, progress_percent=100)
    service.update_enrollment_progress(db, enrollment.id, progress_percent=40)
    service.update_enrollment_progress(db, enrollment.id, progress_percent=100)

    assert len(_completions(db, student.id)) == 1


def test_watching_every_video_completes_the_course(db, student, catalog):
    videos = catalog["videos"]

    service.record_video_progress(db, student.id, videos[0].id, 100)
    service.record_video_progress(db, student.id, videos[1].id, 96)
    # 94% is not "watched"
    service.record_video_progress(db, student.id, videos[2].id, 94)

    enrollment = db.query(Enrollment).filter(Enrollment.user_id == student.id).one()
    assert enrollment.completed_videos == 2
    assert enrollment.total_videos == 3
    assert enrollment.progress_percent == 66
    assert _completions(db, student.id) == []

    service.record_video_progress(db, student.id, videos[2].id, 95)

    db.refresh(enrollment)
    assert enrollment.completed_videos == 3
    assert enrollment.progress_percent == 100
    assert len(_completions(db, student.id)) == 1


def test_video_progress_never_goes_backwards(db, student, catalog):
    video = catalog["videos"][0]
    service.record_video_progress(db, student.id, video.id, 80)
    progress = service.record_video_progress(db, student.id, video.id, 10)
    assert progress.progress_percent == 80
