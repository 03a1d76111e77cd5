# chatrooms/services/room_repository.py

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, List, Optional

import asyncpg

from chatrooms.core.errors import RepositoryError, RoomExists
from chatrooms.models.models import Message, Room
from chatrooms.services.database import get_pool

logger = logging.getLogger(__name__)

DB_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError)

PoolProvider = Callable[[], Awaitable[asyncpg.pool.Pool]]


class RoomRepository:
    """
    Persists room definitions and their message history.

    Every operation is a coroutine; storage failures raise RepositoryError.
    """

    async def create_room(self, name: str, capacity: int) -> Room:
        raise NotImplementedError

    async def find_room(self, name: str) -> Optional[Room]:
        raise NotImplementedError

    async def delete_room_cascade(self, name: str) -> None:
        """Remove the room and all of its messages. Safe on a missing room."""
        raise NotImplementedError

    async def append_message(self, room: str, author: str, text: str) -> datetime:
        raise NotImplementedError

    async def recent_messages(self, room: str, limit: int = 20) -> List[Message]:
        """The ``limit`` most recent messages of ``room``, oldest first."""
        raise NotImplementedError


# ============================================================================
# IN-MEMORY STORE
# ============================================================================

class MemoryRoomRepository(RoomRepository):
    """Process-local store used for development runs and tests."""

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self.rooms: Dict[str, Room] = {}
        self.messages: Dict[str, List[Message]] = {}

    async def create_room(self, name: str, capacity: int) -> Room:
        async with self._lock:
            if name in self.rooms:
                raise RoomExists()
            room = Room(name=name, capacity=capacity)
            self.rooms[name] = room
            return room

    async def find_room(self, name: str) -> Optional[Room]:
        async with self._lock:
            return self.rooms.get(name)

    async def delete_room_cascade(self, name: str) -> None:
        async with self._lock:
            self.messages.pop(name, None)
            self.rooms.pop(name, None)

    async def append_message(self, room: str, author: str, text: str) -> datetime:
        async with self._lock:
            created_at = datetime.now(timezone.utc)
            # List order is insertion order, which breaks timestamp ties
            self.messages.setdefault(room, []).append(
                Message(author=author, text=text, room=room, created_at=created_at)
            )
            return created_at

    async def recent_messages(self, room: str, limit: int = 20) -> List[Message]:
        if limit <= 0:
            return []
        async with self._lock:
            return list(self.messages.get(room, [])[-limit:])


# ============================================================================
# POSTGRES STORE
# ============================================================================

class PostgresRoomRepository(RoomRepository):
    """Repository backed by asyncpg (tables from ``services.database.SCHEMA``)."""

    def __init__(self, pool_provider: PoolProvider = get_pool) -> None:
        self._pool_provider = pool_provider

    async def create_room(self, name: str, capacity: int) -> Room:
        try:
            pool = await self._pool_provider()
            async with pool.acquire() as conn:
                await conn.execute(
                    "INSERT INTO rooms (room_name, user_limit) VALUES ($1, $2)",
                    name,
                    capacity,
                )
        except asyncpg.UniqueViolationError as exc:
            raise RoomExists() from exc
        except DB_ERRORS as exc:
            logger.error("Create room %s failed: %s", name, exc)
            raise RepositoryError() from exc
        return Room(name=name, capacity=capacity)

    async def find_room(self, name: str) -> Optional[Room]:
        try:
            pool = await self._pool_provider()
            async with pool.acquire() as conn:
                row = await conn.fetchrow(
                    "SELECT room_name, user_limit FROM rooms WHERE room_name = $1",
                    name,
                )
        except DB_ERRORS as exc:
            logger.error("Room lookup %s failed: %s", name, exc)
            raise RepositoryError() from exc
        if row is None:
            return None
        return Room(name=row["room_name"], capacity=row["user_limit"] or 10)

    async def delete_room_cascade(self, name: str) -> None:
        try:
            pool = await self._pool_provider()
            async with pool.acquire() as conn:
                async with conn.transaction():
                    await conn.execute("DELETE FROM messages WHERE room = $1", name)
                    await conn.execute("DELETE FROM rooms WHERE room_name = $1", name)
        except DB_ERRORS as exc:
            logger.error("Cleanup of room %s failed: %s", name, exc)
            raise RepositoryError() from exc

    async def append_message(self, room: str, author: str, text: str) -> datetime:
        try:
            pool = await self._pool_provider()
            async with pool.acquire() as conn:
                return await conn.fetchval(
                    """
                    INSERT INTO messages (username, message_text, room)
                    VALUES ($1, $2, $3)
                    RETURNING created_at
                    """,
                    author,
                    text,
                    room,
                )
        except DB_ERRORS as exc:
            logger.error("Storing message in %s failed: %s", room, exc)
            raise RepositoryError() from exc

    async def recent_messages(self, room: str, limit: int = 20) -> List[Message]:
        try:
            pool = await self._pool_provider()
            async with pool.acquire() as conn:
                rows = await conn.fetch(
                    """
                    SELECT username, message_text, room, created_at
                    FROM messages WHERE room = $1
                    ORDER BY created_at DESC, id DESC LIMIT $2
                    """,
                    room,
                    limit,
                )
        except DB_ERRORS as exc:
            logger.error("History fetch for %s failed: %s", room, exc)
            raise RepositoryError() from exc
        # Fetched newest first so LIMIT keeps the most recent ones
        return [
            Message(
                author=row["username"],
                text=row["message_text"],
                room=row["room"],
                created_at=row["created_at"],
            )
            for row in reversed(rows)
        ]
