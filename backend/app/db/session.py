from __future__ import annotations
from contextlib import contextmanager
from typing import Generator, Iterator
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session

from app.core.config import settings

# Set DATABASE_URL in your environment.
DATABASE_URL = settings.database_url

engine = create_engine(
    DATABASE_URL,
    future=True,
    pool_pre_ping=True,
    echo=settings.sql_echo,
)

SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)

def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

@contextmanager
def transaction(db: Session) -> Iterator[Session]:
    """Commit the unit of work on exit, roll it back if anything raises."""
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
