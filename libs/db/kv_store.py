"""Key-value persistence port for client-side state.

The balance cache and the transaction ledger persist through this port only,
so the storage medium can change without touching checkout logic. Values are
opaque strings (the callers store JSON).

Implementations:
- ``MemoryKeyValueStore``: process-local dict, for tests and ephemeral sessions
- ``SqlKeyValueStore``: a single ``kv_entries`` table through SQLAlchemy
"""

from datetime import datetime
from typing import Optional, Protocol

from sqlalchemy import DateTime, Engine, String, Text, delete, select
from sqlalchemy.orm import Mapped, mapped_column

from libs.common.config import Settings, get_settings
from libs.common.datetime_utils import utc_now
from libs.common.logging import get_logger
from libs.db.base import Base
from libs.db.config import get_engine, make_session_factory

logger = get_logger(__name__)


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def clear(self, key: str) -> None: ...


class MemoryKeyValueStore:
    """Dict-backed store. Not shared across processes."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def clear(self, key: str) -> None:
        self._data.pop(key, None)


class KeyValueEntry(Base):
    __tablename__ = "kv_entries"

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )


class SqlKeyValueStore:
    """Store rows in ``kv_entries``. Each call runs in its own short transaction."""

    def __init__(self, engine: Engine, *, create_tables: bool = True):
        self._session_factory = make_session_factory(engine)
        if create_tables:
            Base.metadata.create_all(engine, tables=[KeyValueEntry.__table__])

    def get(self, key: str) -> Optional[str]:
        with self._session_factory() as session:
            return session.execute(
                select(KeyValueEntry.value).where(KeyValueEntry.key == key)
            ).scalar_one_or_none()

    def set(self, key: str, value: str) -> None:
        with self._session_factory.begin() as session:
            entry = session.get(KeyValueEntry, key)
            if entry is None:
                session.add(KeyValueEntry(key=key, value=value))
            else:
                entry.value = value
                entry.updated_at = utc_now()

    def clear(self, key: str) -> None:
        with self._session_factory.begin() as session:
            session.execute(delete(KeyValueEntry).where(KeyValueEntry.key == key))


class NamespacedStore:
    """Prefix every key, so several users can share one physical store."""

    def __init__(self, inner: KeyValueStore, namespace: str):
        self._inner = inner
        self._prefix = f"{namespace}:"

    def get(self, key: str) -> Optional[str]:
        return self._inner.get(self._prefix + key)

    def set(self, key: str, value: str) -> None:
        self._inner.set(self._prefix + key, value)

    def clear(self, key: str) -> None:
        self._inner.clear(self._prefix + key)


def build_kv_store(settings: Optional[Settings] = None) -> KeyValueStore:
    """Build the store selected by STORAGE_BACKEND."""
    settings = settings or get_settings()
    if settings.STORAGE_BACKEND == "memory":
        return MemoryKeyValueStore()
    logger.info("Using SQL key-value store at %s", settings.STORAGE_URL)
    return SqlKeyValueStore(get_engine())
