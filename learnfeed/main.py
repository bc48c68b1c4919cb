from fastapi import FastAPI

from learnfeed.db.base import Base, engine, log_startup

# Import models so create_all picks them up
from learnfeed.profiles.models import Profile  # noqa: F401
from learnfeed.catalog.models import Course, MediaFile, Track, TrackGoal  # noqa: F401
from learnfeed.learning.models import (  # noqa: F401
    AiConversation,
    DailyNote,
    Enrollment,
    QuizAttempt,
    Reflection,
    VideoProgress,
)
from learnfeed.conversations.models import Conversation, ConversationMessage  # noqa: F401
from learnfeed.assignments.models import StudentTrackAssignment  # noqa: F401
from learnfeed.activities.models import CommunityActivity  # noqa: F401

from learnfeed.profiles.routes import router as profiles_router
from learnfeed.learning.routes import router as learning_router
from learnfeed.conversations.routes import router as conversations_router
from learnfeed.assignments.routes import router as assignments_router
from learnfeed.activities.routes import router as activities_router


app = FastAPI(title="LearnFeed", version="0.1.0")

# Create database tables (still useful in dev; in production prefer Alembic)
Base.metadata.create_all(bind=engine)

log_startup()

# Include routers
app.include_router(profiles_router)
app.include_router(learning_router)
app.include_router(conversations_router)
app.include_router(assignments_router)
app.include_router(activities_router)


@app.get("/", include_in_schema=False)
def root():
    return {"name": "LearnFeed", "docs": "/docs"}
