"""
Database Module

SQLAlchemy engine, session factory and ORM models for the alumni user
table and the pending password-reset codes.
"""

import logging
from datetime import datetime
from functools import lru_cache
from typing import Any, Dict, Generator, Optional

from sqlalchemy import DateTime, Integer, MetaData, String, create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker

from society_auth.config import get_settings

logger = logging.getLogger(__name__)

# Naming convention for constraints
convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""

    metadata = MetaData(naming_convention=convention)


# ============================================================================
# Models
# ============================================================================

class SocietyUser(Base):
    """Registered alumni account. ``password`` holds a bcrypt hash."""

    __tablename__ = "society_users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(320), unique=True, index=True)
    password: Mapped[str] = mapped_column(String(255), default="")

    def __repr__(self) -> str:
        return f"<SocietyUser id={self.id} email={self.email!r}>"


class SocietyResetPassword(Base):
    """Outstanding password reset code; at most one row per email."""

    __tablename__ = "society_reset_passwords"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(128), index=True)
    email: Mapped[str] = mapped_column(String(320), unique=True, index=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))

    def __repr__(self) -> str:
        return f"<SocietyResetPassword email={self.email!r} expires_at={self.expires_at}>"


# ============================================================================
# Engine / Session
# ============================================================================

def get_engine_kwargs(database_url: str) -> Dict[str, Any]:
    """
    Get engine keyword arguments based on database type.
    """
    kwargs: Dict[str, Any] = {"echo": False}

    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
    else:
        kwargs.update({
            "pool_pre_ping": True,
            "pool_recycle": 300,
        })

    return kwargs


@lru_cache()
def get_engine() -> Engine:
    database_url = get_settings().DATABASE_URL
    return create_engine(database_url, **get_engine_kwargs(database_url))


@lru_cache()
def get_session_factory() -> sessionmaker:
    return sessionmaker(bind=get_engine(), autocommit=False, autoflush=False, expire_on_commit=False)


def get_db() -> Generator[Session, None, None]:
    """
    FastAPI dependency yielding a database session.

    The session is rolled back on error and always closed.
    """
    session = get_session_factory()()
    try:
        yield session
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db(engine: Optional[Engine] = None) -> None:
    """Create any missing tables."""
    engine = engine or get_engine()
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables ensured", extra={"tables": sorted(Base.metadata.tables)})
