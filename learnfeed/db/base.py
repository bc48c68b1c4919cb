import os
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from learnfeed.core.log import get_logger

# Absolute path to project root
BASE_DIR = Path(__file__).resolve().parent.parent.parent

logger = get_logger("learnfeed.db", "DB")


def _build_database_url() -> str:
    """
    Determine the database URL.

    - Prefer DATABASE_URL from the environment (production Postgres).
    - Fallback to a local SQLite file for development.
    - Normalize legacy postgres:// URLs to SQLAlchemy's postgresql+psycopg2://.
    """
    url = os.getenv("DATABASE_URL", "sqlite:///./learnfeed.db").strip()

    if url.startswith("postgres://"):
        # SQLAlchemy 2.x expects a driver-qualified URL
        url = url.replace("postgres://", "postgresql+psycopg2://", 1)

    return url


@event.listens_for(Engine, "connect")
def _sqlite_on_connect(dbapi_connection, connection_record):
    # Cascades rely on FK enforcement, which SQLite leaves off per connection.
    if type(dbapi_connection).__module__.startswith("sqlite3"):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


@event.listens_for(Engine, "begin")
def _sqlite_on_begin(conn):
    # pysqlite defers BEGIN; emit it ourselves so SAVEPOINTs nest correctly.
    if conn.dialect.name == "sqlite":
        conn.exec_driver_sql("BEGIN")


DATABASE_URL = _build_database_url()

connect_args = {}
if DATABASE_URL.startswith("sqlite"):
    # Needed for SQLite when used with FastAPI in a single process
    connect_args = {"check_same_thread": False}

engine = create_engine(DATABASE_URL, connect_args=connect_args, future=True)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def log_startup() -> None:
    """Print database diagnostics once; never raises."""
    try:
        url_safe = engine.url.render_as_string(hide_password=True)
        backend = engine.url.get_backend_name()
        logger.info("Using database backend=%s url=%s", backend, url_safe)

        if backend == "sqlite" and engine.url.database:
            db_path = Path(engine.url.database).resolve()
            exists = db_path.exists()
            size = db_path.stat().st_size if exists else 0
            logger.info("SQLite path=%s exists=%s size_bytes=%s", db_path, exists, size)
    except Exception as exc:
        logger.warning("Failed to log DB diagnostics: %r", exc)
