from datetime import datetime
from typing import Callable, Optional, Protocol

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from database import SessionLocal, session_scope
from models import KeyValueEntry


class KeyValueBackend(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...


class MemoryBackend:
    def __init__(self, initial: Optional[dict[str, str]] = None) -> None:
        self.data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value

    def remove(self, key: str) -> None:
        self.data.pop(key, None)


class SQLAlchemyBackend:
    """String values stored as rows of the ``kv_entries`` table."""

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal) -> None:
        self.session_factory = session_factory

    def get(self, key: str) -> Optional[str]:
        with session_scope(self.session_factory) as session:
            return session.scalar(
                select(KeyValueEntry.value).where(KeyValueEntry.key == key)
            )

    def set(self, key: str, value: str) -> None:
        with session_scope(self.session_factory) as session:
            entry = session.get(KeyValueEntry, key)
            if entry is None:
                session.add(KeyValueEntry(key=key, value=value))
            else:
                entry.value = value
                entry.updated_at = datetime.utcnow()

    def remove(self, key: str) -> None:
        with session_scope(self.session_factory) as session:
            session.execute(delete(KeyValueEntry).where(KeyValueEntry.key == key))
