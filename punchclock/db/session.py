from __future__ import annotations

from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session, sessionmaker

from punchclock.core.config import get_settings

settings = get_settings()


def _normalize_database_url(database_url: str) -> str:
    # Hosted PostgreSQL URLs usually come without an explicit driver.
    if database_url.startswith("postgresql://"):
        return f"postgresql+psycopg://{database_url[len('postgresql://'):]}"
    if database_url.startswith("postgres://"):
        return f"postgresql+psycopg://{database_url[len('postgres://'):]}"
    return database_url


def _engine_kwargs(database_url: str) -> dict:
    url = make_url(database_url)
    if url.get_backend_name() != "sqlite":
        return {"pool_pre_ping": True}
    if url.database and url.database != ":memory:":
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)
    # Kiosk punches arrive on request threads; sqlite must tolerate that.
    return {"connect_args": {"check_same_thread": False, "timeout": 15}}


_database_url = _normalize_database_url(settings.database_url)
engine = create_engine(_database_url, future=True, **_engine_kwargs(_database_url))
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False, class_=Session)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
