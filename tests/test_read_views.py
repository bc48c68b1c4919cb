from datetime import date, datetime

from learnfeed.activities import views
from learnfeed.assignments.sync import assign_goal
from learnfeed.learning import service
from learnfeed.profiles.service import apply_revenue


def test_activity_date_uses_platform_timezone():
    # 02:00 UTC on May 3rd is still May 2nd in New York
    assert views.activity_date(datetime(2026, 5, 3, 2, 0)) == date(2026, 5, 2)
    assert views.activity_date(datetime(2026, 5, 3, 14, 0)) == date(2026, 5, 3)


def _reflect(db, user_id, text, at):
    return service.record_reflection(db, user_id, "text", reflection_text=text, created_at=at)


def test_activities_grouped_by_local_day(db, student):
    _reflect(db, student.id, "morning", datetime(2026, 5, 2, 13, 0))
    _reflect(db, student.id, "late night", datetime(2026, 5, 3, 2, 0))
    _reflect(db, student.id, "next day", datetime(2026, 5, 3, 14, 0))

    days = views.activities_by_day(db, student.id, days=7, today=date(2026, 5, 3))

    assert [d["date"] for d in days] == ["2026-05-03", "2026-05-02"]
    assert [d["activity_count"] for d in days] == [1, 2]
    assert [a["content"] for a in days[1]["activities"]] == ["morning", "late night"]


def test_daily_activities_window(db, student):
    _reflect(db, student.id, "before", datetime(2026, 5, 2, 3, 0))
    _reflect(db, student.id, "inside", datetime(2026, 5, 2, 13, 0))
    _reflect(db, student.id, "still inside", datetime(2026, 5, 3, 2, 0))

    rows = views.daily_activities(db, student.id, date(2026, 5, 2))
    assert [r.content for r in rows] == ["inside", "still inside"]


def test_video_journey_in_playback_order(db, student, catalog):
    video = catalog["videos"][0]
    for text, seconds in (("late", 300), ("early", 12), ("middle", 95)):
        service.record_reflection(
            db, student.id, "text", reflection_text=text, video_id=video.id, video_timestamp_seconds=seconds,
        )
    service.record_reflection(db, student.id, "text", reflection_text="other video", video_id=catalog["videos"][1].id)

    journey = views.video_journey(db, video.id, user_id=student.id)
    assert [r.content for r in journey] == ["early", "middle", "late"]


def test_goal_summary_counts(db, student, catalog):
    assign_goal(db, student.id, catalog["agency"].id, catalog["first_k"].id)
    service.record_reflection(db, student.id, "text", reflection_text="scripted my pitch")
    service.record_quiz_attempt(db, student.id, score=4, total_questions=5)

    summary = views.goal_activity_summary(db, student.id)

    assert len(summary) == 1
    goal = summary[0]
    assert goal["goal_id"] == catalog["first_k"].id
    assert goal["goal_name"] == "First $1k"
    assert goal["total_activities"] == 3
    assert goal["reflections_count"] == 1
    assert goal["quizzes_count"] == 1
    assert goal["goal_started_at"] is not None

    public = views.goal_activity_summary(db, student.id, public_only=True)
    assert public[0]["total_activities"] == 1


def test_goal_progress_against_target(db, student, catalog):
    assert views.goal_progress(db, student.id) is None

    assign_goal(db, student.id, catalog["agency"].id, catalog["first_k"].id)
    apply_revenue(db, student.id, "agency", 250)
    db.commit()

    progress = views.goal_progress(db, student.id)
    assert progress["goal_name"] == "First $1k"
    assert progress["earned"] == 250.0
    assert progress["progress_percent"] == 25
