from sqlalchemy import create_engine, text
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker, Session
from typing import Generator
from pathlib import Path
import tempfile
import structlog
from testpilot.config.settings import settings

logger = structlog.get_logger()


def _create_engine_from_url(db_url: str):
    connect_args = {"check_same_thread": False} if "sqlite" in db_url else {}
    return create_engine(db_url, connect_args=connect_args)


# Make sure the sqlite parent dir exists, falling back to a temp file when it is not writable
def _resolve_database_url(original_url: str) -> str:
    try:
        url = make_url(original_url)
    except Exception as e:
        logger.debug("Failed to parse database url", error=str(e), original=original_url)
        return original_url

    if not (url.drivername.startswith("sqlite") and url.database) or url.database == ":memory:":
        return original_url

    db_path = Path(url.database)
    if not db_path.is_absolute():
        db_path = (Path.cwd() / db_path).resolve()
    logger.info("Resolved sqlite path", resolved=str(db_path), original=original_url)

    try:
        db_path.parent.mkdir(parents=True, exist_ok=True)
        marker = db_path.parent / ".writable_test"
        with open(marker, "w") as f:
            f.write("ok")
        marker.unlink()
        return original_url
    except OSError as e:
        logger.error("Configured sqlite path not writable; falling back to temp file", error=str(e), path=str(db_path))
        fallback = f"sqlite:///{(Path(tempfile.gettempdir()) / 'testpilot_fallback.db').as_posix()}"
        logger.info("Using fallback sqlite path", fallback=fallback)
        return fallback


resolved_db_url = _resolve_database_url(settings.database_url)
engine = _create_engine_from_url(resolved_db_url)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_database() -> Generator[Session, None, None]:
    """Dependency to get database session"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def create_tables():
    """Create all database tables"""
    try:
        from testpilot.models.database import Base

        Base.metadata.create_all(bind=engine)
        logger.info("Database tables created successfully")
    except Exception as e:
        logger.error("Failed to create database tables", error=str(e))
        raise


def check_database() -> bool:
    """Run a trivial query to confirm the database answers"""
    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.warning("Database check failed", error=str(e))
        return False
