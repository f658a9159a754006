# FILE: blender_agent/db.py
"""
Engines and sessions.

The conversation store lives in DATABASE_URL (SQLite by default). The
knowledge store builds its own engine through make_engine() against
KNOWLEDGE_DATABASE_URL, which must be Postgres with pgvector.
"""
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from blender_agent import config


def make_engine(url: str, **kwargs) -> Engine:
    """SQLite gets a thread-agnostic connection (and one shared pool for :memory:)."""
    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs.setdefault("poolclass", StaticPool)
    else:
        kwargs.setdefault("pool_pre_ping", True)
    return create_engine(url, echo=False, **kwargs)


def make_session_factory(bind: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=bind)


engine = make_engine(config.DATABASE_URL)

SessionLocal = make_session_factory(engine)

Base = declarative_base()


def get_db():
    """FastAPI dependency that yields a DB session and closes it after the request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind: Engine = None):
    """Create the conversation tables. Call once at startup."""
    from blender_agent.memory import models  # noqa: F401
    Base.metadata.create_all(bind=bind or engine)
