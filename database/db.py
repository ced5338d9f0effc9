# database/db.py
# SkillTrack — SQLite engine, session factory, and table initialisation.
# Imports from: database/models.py, utils/logger.py
# All other modules obtain a DB session via get_db() or db_session().

import os
from contextlib import contextmanager
from typing import Generator

from dotenv import load_dotenv
from sqlalchemy import create_engine, event, func, select, text
from sqlalchemy.orm import Session, sessionmaker

from database.models import Base, Topic
from utils.logger import get_logger

load_dotenv()

log = get_logger("database.db")

# ─────────────────────────────────────────────
# Engine configuration
# ─────────────────────────────────────────────

DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./skilltrack.db")

# check_same_thread=False is required for SQLite when used with FastAPI
# (multiple threads share the same connection pool).
engine = create_engine(
    DATABASE_URL,
    connect_args={"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {},
    echo=False,        # set True for SQL query debugging
)


# ─────────────────────────────────────────────
# WAL mode + foreign keys for every new SQLite connection.
# Foreign key enforcement is OFF by default in SQLite; must be set per-connection.
# ─────────────────────────────────────────────

def configure_sqlite(bind) -> None:
    """Attach the per-connection PRAGMAs to an engine (also used by tests)."""

    @event.listens_for(bind, "connect")
    def _on_connect(dbapi_connection, connection_record) -> None:
        cursor = dbapi_connection.cursor()
        if bind.url.database not in (None, "", ":memory:"):
            cursor.execute("PRAGMA journal_mode=WAL;")
        cursor.execute("PRAGMA foreign_keys=ON;")
        cursor.close()


if DATABASE_URL.startswith("sqlite"):
    configure_sqlite(engine)


# ─────────────────────────────────────────────
# Session factory
# ─────────────────────────────────────────────

SessionLocal: sessionmaker[Session] = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,   # objects stay usable after commit
)


# ─────────────────────────────────────────────
# Dependency-injection helper for FastAPI routes
# Usage in a route:
#   def my_route(db: Session = Depends(get_db)): ...
# ─────────────────────────────────────────────

def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


# ─────────────────────────────────────────────
# Context-manager variant for non-route usage
# Usage:
#   with db_session() as db:
#       db.query(Learner).all()
# ─────────────────────────────────────────────

@contextmanager
def db_session() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


# ─────────────────────────────────────────────
# Table initialisation — called once on startup
# ─────────────────────────────────────────────

def init_db() -> None:
    """
    Creates all tables that do not yet exist, then seeds the topic catalog
    if the topics table is empty.
    """
    log.info("db_init_start", database_url=DATABASE_URL)
    try:
        Base.metadata.create_all(bind=engine)
        log.info("db_tables_created")
        with db_session() as db:
            maybe_seed(db)
    except Exception as exc:
        log.exception("db_init_failed", error=str(exc))
        raise


def maybe_seed(db: Session) -> int:
    """
    Runs the seeder only if the topics table is empty.
    Returns the number of topics present afterwards.
    Deferred import avoids a circular dependency at module load time.
    """
    count = db.execute(select(func.count()).select_from(Topic)).scalar_one()
    if count == 0:
        log.info("db_seed_start", reason="topics_table_empty")
        from database.seed import seed_topics
        seed_topics(db)
        count = db.execute(select(func.count()).select_from(Topic)).scalar_one()
        log.info("db_seed_complete", topics=count)
    else:
        log.info("db_seed_skipped", existing_topics=count)
    return count


# ─────────────────────────────────────────────
# Health-check utility — used by main.py
# ─────────────────────────────────────────────

def check_db_health(db: Session) -> bool:
    """Returns True if the DB behind `db` is reachable."""
    try:
        db.execute(text("SELECT 1"))
        return True
    except Exception as exc:
        log.error("db_health_check_failed", error=str(exc))
        return False
