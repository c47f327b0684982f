"""
Session Store — хранение SessionState и транскрипта между ходами.

Движок не держит глобальных словарей сессий: хранилище передаётся
в сервис явно, а создание и удаление сессий остаётся за вызывающим.
InMemorySessionStore — реализация для одного процесса и тестов.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

from mpt_engine.logger import logger
from mpt_engine.models import SessionState
from mpt_engine.schemas import ChatMessage


@dataclass
class SessionRecord:
    """Закреплённое состояние сессии и её транскрипт (user/assistant)."""
    state: SessionState
    transcript: List[ChatMessage] = field(default_factory=list)
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.to_dict(),
            "transcript": [m.model_dump() for m in self.transcript],
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SessionRecord":
        return cls(
            state=SessionState.from_dict(data["state"]),
            transcript=[ChatMessage.model_validate(m) for m in data.get("transcript", [])],
            created_at=data.get("created_at", time.time()),
            updated_at=data.get("updated_at", time.time()),
        )


class SessionStore(Protocol):
    def get(self, session_id: str) -> Optional[SessionRecord]:
        ...

    def put(self, session_id: str, record: SessionRecord) -> None:
        ...

    def delete(self, session_id: str) -> None:
        ...


class InMemorySessionStore:
    """
    Хранилище в памяти процесса.

    Записи хранятся сериализованными (to_dict), поэтому изменение
    объекта после put() не влияет на закреплённое состояние.
    """

    def __init__(self, ttl_seconds: Optional[int] = None):
        self._records: Dict[str, Dict[str, Any]] = {}
        self._ttl = ttl_seconds
        self._lock = threading.Lock()

    def get(self, session_id: str) -> Optional[SessionRecord]:
        with self._lock:
            data = self._records.get(session_id)
        if data is None:
            return None
        return SessionRecord.from_dict(data)

    def put(self, session_id: str, record: SessionRecord) -> None:
        record.updated_at = time.time()
        data = record.to_dict()
        with self._lock:
            self._records[session_id] = data

    def delete(self, session_id: str) -> None:
        with self._lock:
            self._records.pop(session_id, None)

    def __contains__(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._records

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def cleanup_expired(self, now: Optional[float] = None) -> int:
        """Remove sessions idle for longer than ttl_seconds."""
        if self._ttl is None:
            return 0
        now = time.time() if now is None else now
        with self._lock:
            expired = [
                sid for sid, data in self._records.items()
                if now - data["updated_at"] >= self._ttl
            ]
            for sid in expired:
                del self._records[sid]

        if expired:
            logger.info("Cleaned up expired sessions", count=len(expired))
        return len(expired)
