"""
Database Engine & Session Management
SQLAlchemy setup with dependency injection for FastAPI.
"""
import os
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool

from certrbac.config import get_settings

settings = get_settings()

_engine_kwargs = {"echo": settings.DEBUG}

if settings.DATABASE_URL.startswith("sqlite"):
    _engine_kwargs["connect_args"] = {"check_same_thread": False}  # Required for SQLite
    if ":memory:" in settings.DATABASE_URL:
        # One shared connection, otherwise every session sees an empty database
        _engine_kwargs["poolclass"] = StaticPool
    else:
        # Ensure data directory exists
        db_dir = os.path.dirname(settings.DATABASE_URL.replace("sqlite:///", ""))
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)

engine = create_engine(settings.DATABASE_URL, **_engine_kwargs)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """FastAPI dependency: yields a database session, auto-closes on finish."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """Create all tables. Called once at application startup."""
    from certrbac.models import user as _user_model                 # noqa: F401
    from certrbac.models import certificate as _certificate_model   # noqa: F401
    from certrbac.models import audit as _audit_model               # noqa: F401

    Base.metadata.create_all(bind=engine)
