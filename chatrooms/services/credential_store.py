# chatrooms/services/credential_store.py

from __future__ import annotations

import asyncio
import logging
import secrets
from typing import Dict

import asyncpg

from chatrooms.core.errors import DeleteError, InvalidCredentials, RepositoryError, UsernameTaken
from chatrooms.models.models import Account
from chatrooms.services.database import get_pool
from chatrooms.services.room_repository import DB_ERRORS, PoolProvider

logger = logging.getLogger(__name__)


class CredentialStore:
    """
    Account records keyed by username.

    The secret is opaque: it is stored and compared as given.
    """

    async def register(self, username: str, secret: str) -> None:
        raise NotImplementedError

    async def verify(self, username: str, secret: str) -> str:
        """Return the username on an exact match, else raise InvalidCredentials."""
        raise NotImplementedError

    async def delete(self, username: str) -> None:
        raise NotImplementedError


class MemoryCredentialStore(CredentialStore):
    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self.accounts: Dict[str, Account] = {}

    async def register(self, username: str, secret: str) -> None:
        async with self._lock:
            if username in self.accounts:
                raise UsernameTaken()
            self.accounts[username] = Account(username=username, secret=secret)

    async def verify(self, username: str, secret: str) -> str:
        async with self._lock:
            account = self.accounts.get(username)
        if account is None or not secrets.compare_digest(account.secret, secret):
            raise InvalidCredentials()
        return account.username

    async def delete(self, username: str) -> None:
        async with self._lock:
            self.accounts.pop(username, None)


class PostgresCredentialStore(CredentialStore):
    def __init__(self, pool_provider: PoolProvider = get_pool) -> None:
        self._pool_provider = pool_provider

    async def register(self, username: str, secret: str) -> None:
        try:
            pool = await self._pool_provider()
            async with pool.acquire() as conn:
                await conn.execute(
                    "INSERT INTO users (username, password) VALUES ($1, $2)",
                    username,
                    secret,
                )
        except asyncpg.UniqueViolationError as exc:
            raise UsernameTaken() from exc
        except DB_ERRORS as exc:
            logger.error("Register %s failed: %s", username, exc)
            raise RepositoryError() from exc

    async def verify(self, username: str, secret: str) -> str:
        try:
            pool = await self._pool_provider()
            async with pool.acquire() as conn:
                row = await conn.fetchrow(
                    "SELECT username FROM users WHERE username = $1 AND password = $2",
                    username,
                    secret,
                )
        except DB_ERRORS as exc:
            logger.error("Login lookup for %s failed: %s", username, exc)
            raise RepositoryError() from exc
        if row is None:
            raise InvalidCredentials()
        return row["username"]

    async def delete(self, username: str) -> None:
        try:
            pool = await self._pool_provider()
            async with pool.acquire() as conn:
                await conn.execute("DELETE FROM users WHERE username = $1", username)
        except DB_ERRORS as exc:
            logger.error("Delete account %s failed: %s", username, exc)
            raise DeleteError() from exc
