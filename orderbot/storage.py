# orderbot/storage.py
from datetime import datetime, timezone
from typing import Any, Dict, Generic, Optional, Protocol, TypeVar

from .models import Session

T = TypeVar("T")


class KeyValueStore(Protocol[T]):
    """
    Minimal store keyed by chat id. The in-memory version below is the only
    one shipped; anything with the same three methods can replace it.
    """

    def get(self, key: str) -> Optional[T]: ...

    def set(self, key: str, value: T) -> None: ...

    def delete(self, key: str) -> None: ...


class InMemoryStore(Generic[T]):
    def __init__(self) -> None:
        self._data: Dict[str, T] = {}

    def get(self, key: str) -> Optional[T]:
        return self._data.get(key)

    def set(self, key: str, value: T) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def __contains__(self, key: str) -> bool:
        return key in self._data

    def __len__(self) -> int:
        return len(self._data)


class SessionStore:
    def __init__(self, store: Optional[KeyValueStore[Session]] = None):
        self.store = store if store is not None else InMemoryStore()

    def get_or_create(self, chat_id: str) -> Session:
        session = self.store.get(chat_id)
        if session is None:
            session = Session(chat_id=chat_id)
            self.store.set(chat_id, session)
        return session

    def save(self, session: Session) -> None:
        session.updated_at = datetime.now(timezone.utc)
        self.store.set(session.chat_id, session)

    def reset(self, chat_id: str) -> Session:
        session = self.get_or_create(chat_id)
        session.reset()
        self.save(session)
        return session


class HandoffStore:
    """Chat ids currently answered by a human operator."""

    def __init__(self, store: Optional[KeyValueStore[Any]] = None):
        self.store = store if store is not None else InMemoryStore()

    def add(self, chat_id: str) -> bool:
        if self.store.get(chat_id):
            return False
        self.store.set(chat_id, datetime.now(timezone.utc))
        return True

    def remove(self, chat_id: str) -> bool:
        if not self.store.get(chat_id):
            return False
        self.store.delete(chat_id)
        return True

    def __contains__(self, chat_id: str) -> bool:
        return bool(self.store.get(chat_id))
