from __future__ import annotations

import asyncio
import sqlite3
import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import AsyncIterator, Dict, Optional, Protocol

from .schemas import SessionContext


def create_session_id() -> str:
    return uuid.uuid4().hex


class SessionStore(Protocol):
    async def get_or_create(self, session_id: str) -> SessionContext:
        ...

    async def save(self, context: SessionContext) -> None:
        ...

    async def clear(self, session_id: Optional[str] = None) -> int:
        ...

    def lock(self, session_id: str):
        ...


class _SessionLocks:
    """One asyncio.Lock per session id so turns of the same session run one at a time."""

    def __init__(self) -> None:
        self._locks: Dict[str, asyncio.Lock] = {}

    @asynccontextmanager
    async def lock(self, session_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(session_id, asyncio.Lock())
        async with lock:
            yield

    def discard(self, session_id: Optional[str] = None) -> None:
        if session_id is None:
            self._locks = {key: value for key, value in self._locks.items() if value.locked()}
        elif session_id in self._locks and not self._locks[session_id].locked():
            del self._locks[session_id]


class InMemorySessionStore(_SessionLocks):
    def __init__(self) -> None:
        super().__init__()
        self._sessions: Dict[str, SessionContext] = {}

    async def get_or_create(self, session_id: str) -> SessionContext:
        context = self._sessions.get(session_id)
        if context is None:
            context = SessionContext(session_id=session_id)
            self._sessions[session_id] = context
        return context

    async def save(self, context: SessionContext) -> None:
        context.updated_at = datetime.utcnow()
        self._sessions[context.session_id] = context

    async def clear(self, session_id: Optional[str] = None) -> int:
        if session_id:
            removed = 1 if self._sessions.pop(session_id, None) is not None else 0
        else:
            removed = len(self._sessions)
            self._sessions.clear()
        self.discard(session_id)
        return removed


class SqliteSessionStore(_SessionLocks):
    def __init__(self, path: Path) -> None:
        super().__init__()
        self._path = path
        self.ensure_session_db()

    def ensure_session_db(self) -> None:
        conn = sqlite3.connect(self._path)
        cur = conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS chat_sessions (
                session_id TEXT PRIMARY KEY,
                payload TEXT,
                updated_at TEXT
            )
            """
        )
        conn.commit()
        conn.close()

    def _load(self, session_id: str) -> Optional[SessionContext]:
        conn = sqlite3.connect(self._path)
        cur = conn.cursor()
        cur.execute("SELECT payload FROM chat_sessions WHERE session_id = ?", (session_id,))
        row = cur.fetchone()
        conn.close()
        return SessionContext.model_validate_json(row[0]) if row else None

    def _store(self, context: SessionContext) -> None:
        conn = sqlite3.connect(self._path)
        cur = conn.cursor()
        cur.execute(
            "INSERT OR REPLACE INTO chat_sessions VALUES (?, ?, ?)",
            (context.session_id, context.model_dump_json(), context.updated_at.isoformat()),
        )
        conn.commit()
        conn.close()

    def _delete(self, session_id: Optional[str]) -> int:
        conn = sqlite3.connect(self._path)
        cur = conn.cursor()
        if session_id:
            cur.execute("DELETE FROM chat_sessions WHERE session_id = ?", (session_id,))
        else:
            cur.execute("DELETE FROM chat_sessions")
        count = cur.rowcount
        conn.commit()
        conn.close()
        return count

    async def get_or_create(self, session_id: str) -> SessionContext:
        context = await asyncio.to_thread(self._load, session_id)
        if context is None:
            context = SessionContext(session_id=session_id)
            await self.save(context)
        return context

    async def save(self, context: SessionContext) -> None:
        context.updated_at = datetime.utcnow()
        await asyncio.to_thread(self._store, context)

    async def clear(self, session_id: Optional[str] = None) -> int:
        count = await asyncio.to_thread(self._delete, session_id)
        self.discard(session_id)
        return count
