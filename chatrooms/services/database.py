"""AsyncPG pool management and schema bootstrap for the postgres backend."""

from __future__ import annotations

import logging
import ssl
from typing import Optional

import asyncpg

from chatrooms.core.config import settings

logger = logging.getLogger(__name__)

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS users (
        id SERIAL PRIMARY KEY,
        username TEXT UNIQUE NOT NULL,
        password TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS rooms (
        id SERIAL PRIMARY KEY,
        room_name TEXT UNIQUE NOT NULL,
        user_limit INTEGER DEFAULT 10
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS messages (
        id SERIAL PRIMARY KEY,
        username TEXT NOT NULL,
        message_text TEXT NOT NULL,
        room TEXT NOT NULL,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
)

_pool: Optional[asyncpg.pool.Pool] = None


def _ssl_context() -> ssl.SSLContext | bool:
    if not settings.DATABASE_SSL:
        return False
    # Hosted Postgres providers hand out certificates we cannot verify
    context = ssl.create_default_context()
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    return context


async def init_pool() -> asyncpg.pool.Pool:
    global _pool
    if _pool is None:
        _pool = await asyncpg.create_pool(
            dsn=settings.DATABASE_URL,
            min_size=0,
            max_size=settings.DB_POOL_MAX_SIZE,
            ssl=_ssl_context(),
        )
    return _pool


def set_pool(pool: Optional[asyncpg.pool.Pool]) -> None:
    global _pool
    _pool = pool


async def get_pool() -> asyncpg.pool.Pool:
    if _pool is None:
        return await init_pool()
    return _pool


async def close_pool() -> None:
    global _pool
    if _pool is not None:
        await _pool.close()
        _pool = None


async def init_schema() -> None:
    """Create the users/rooms/messages tables when they are missing."""
    pool = await get_pool()
    async with pool.acquire() as conn:
        for statement in SCHEMA:
            await conn.execute(statement)
    logger.info("✓ Postgres tables ready")
