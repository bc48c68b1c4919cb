import os

# Ensure SECRET_KEY / DATABASE_URL are set before the app modules are imported.
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from learnfeed.main import app  # noqa: E402
from learnfeed.db.base import Base  # noqa: E402
from learnfeed.db.session import get_db  # noqa: E402
from learnfeed.catalog.models import Course, MediaFile, Track, TrackGoal, TRACK_AGENCY, TRACK_SAAS  # noqa: E402
from learnfeed.core.security import create_access_token  # noqa: E402
from learnfeed.profiles.models import Profile  # noqa: E402


@pytest.fixture
def db():
    """Fresh in-memory database per test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def catalog(db):
    """Two tracks with goals, one course with three videos."""
    agency = Track(name="Agency", track_type=TRACK_AGENCY)
    saas = Track(name="SaaS", track_type=TRACK_SAAS)
    db.add_all([agency, saas])
    db.flush()

    first_k = TrackGoal(track_id=agency.id, name="First $1k", target_amount=1000)
    ten_k = TrackGoal(track_id=agency.id, name="$10k month", target_amount=10000)
    mrr = TrackGoal(track_id=saas.id, name="$500 MRR", target_amount=500)
    course = Course(title="Cold Outreach 101")
    db.add_all([first_k, ten_k, mrr, course])
    db.flush()

    videos = [MediaFile(course_id=course.id, name=f"Lesson {i}") for i in (1, 2, 3)]
    db.add_all(videos)
    db.commit()

    return {
        "agency": agency,
        "saas": saas,
        "first_k": first_k,
        "ten_k": ten_k,
        "mrr": mrr,
        "course": course,
        "videos": videos,
    }


def _profile(db, email, role="student"):
    profile = Profile(email=email, full_name=email.split("@")[0], role=role, goal_progress=0)
    db.add(profile)
    db.commit()
    db.refresh(profile)
    return profile


@pytest.fixture
def student(db):
    return _profile(db, "student@example.com")


@pytest.fixture
def other_student(db):
    return _profile(db, "other@example.com")


@pytest.fixture
def instructor(db):
    return _profile(db, "coach@example.com", role="instructor")


@pytest.fixture
def client(db):
    """TestClient whose requests run on the test's own session."""
    def _override_get_db():
        yield db

    app.dependency_overrides[get_db] = _override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.pop(get_db, None)


@pytest.fixture
def auth_headers():
    def _headers(profile):
        token = create_access_token({"sub": str(profile.id)})
        return {"Authorization": f"Bearer {token}"}
    return _headers
