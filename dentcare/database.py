import logging

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from dentcare.config import DATABASE_URL

logger = logging.getLogger(__name__)


def build_engine(url: str):
    """Create an engine for ``url``.

    SQLite needs ``check_same_thread`` disabled because FastAPI serves sync
    dependencies from a threadpool; server databases get pre-ping so stale
    pooled connections are replaced.
    """
    if url.startswith("sqlite"):
        return create_engine(url, connect_args={"check_same_thread": False})
    return create_engine(url, pool_pre_ping=True, pool_recycle=300)


engine = build_engine(DATABASE_URL)
logger.info(f"Database engine created for {engine.url.drivername}")

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def contains(column, text: str):
    """Case-insensitive substring match; % and _ in ``text`` are literal."""
    escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return column.ilike(f"%{escaped}%", escape="\\")
