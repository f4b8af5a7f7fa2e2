from functools import lru_cache

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.config import get_settings


@lru_cache(maxsize=1)
def get_engine():
    settings = get_settings()
    database_url = settings.database_url
    timeout = max(settings.database_timeout_seconds, 1)
    connect_args = {}
    engine_kwargs = {"pool_pre_ping": True}

    if database_url.startswith("sqlite"):
        # sqlite3 busy timeout bounds lock waits between the worker and manual runs.
        connect_args = {"check_same_thread": False, "timeout": timeout}
        if ":memory:" in database_url:
            engine_kwargs["poolclass"] = StaticPool
    else:
        engine_kwargs["pool_timeout"] = timeout
        if database_url.startswith("postgresql"):
            connect_args = {"connect_timeout": timeout, "options": f"-c statement_timeout={timeout * 1000}"}
        elif database_url.startswith("mysql"):
            connect_args = {"connect_timeout": timeout, "read_timeout": timeout, "write_timeout": timeout}

    return create_engine(database_url, connect_args=connect_args, **engine_kwargs)


@lru_cache(maxsize=1)
def get_session_factory():
    return sessionmaker(bind=get_engine(), autocommit=False, autoflush=False, expire_on_commit=False, class_=Session)


def get_db():
    db = get_session_factory()()
    try:
        yield db
    finally:
        db.close()
