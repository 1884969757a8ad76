from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker, declarative_base

from zapshift.config import settings

DATABASE_URL = settings.database_url


def build_engine(url: str):
    if url.startswith("sqlite"):
        # sqlite busy timeout; other engines bound the pool checkout instead
        return create_engine(
            url,
            connect_args={"check_same_thread": False, "timeout": settings.db_timeout},
        )
    return create_engine(url, pool_pre_ping=True, pool_timeout=settings.db_timeout)


engine = build_engine(DATABASE_URL)

SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)
Base = declarative_base()


def get_db() -> Generator[Session, None, None]:
    """
    FastAPI dependency that provides a request-scoped session.

    Commits when the handler returns, rolls back if it raises.
    """
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
