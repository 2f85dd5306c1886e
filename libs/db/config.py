from functools import lru_cache

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

from libs.common.config import get_settings


def create_db_engine(url: str) -> Engine:
    """Create a sync engine for the local store.

    SQLite connections are shared with the event loop thread, so the
    same-thread check is turned off for them.
    """
    connect_args = {}
    if url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    return create_engine(
        url,
        echo=False,
        future=True,
        pool_pre_ping=True,
        connect_args=connect_args,
    )


@lru_cache
def get_engine() -> Engine:
    """Engine for the configured STORAGE_URL, cached."""
    return create_db_engine(get_settings().STORAGE_URL)


def make_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, expire_on_commit=False, autoflush=False)
