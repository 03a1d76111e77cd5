# chatrooms/core/state.py
from __future__ import annotations

from datetime import datetime, timezone

from chatrooms.core.config import settings
from chatrooms.services.chat_hub import ChatHub
from chatrooms.services.connection_manager import ConnectionManager
from chatrooms.services.credential_store import (
    CredentialStore,
    MemoryCredentialStore,
    PostgresCredentialStore,
)
from chatrooms.services.room_repository import (
    MemoryRoomRepository,
    PostgresRoomRepository,
    RoomRepository,
)


def build_hub() -> ChatHub:
    """Wire a ChatHub to the storage backend selected by STORAGE_BACKEND."""
    credentials: CredentialStore
    repository: RoomRepository
    if settings.STORAGE_BACKEND == "postgres":
        credentials = PostgresCredentialStore()
        repository = PostgresRoomRepository()
    else:
        credentials = MemoryCredentialStore()
        repository = MemoryRoomRepository()

    return ChatHub(
        credentials=credentials,
        repository=repository,
        connections=ConnectionManager(),
        grace_seconds=settings.ROOM_DELETE_GRACE_SECONDS,
        history_limit=settings.HISTORY_LIMIT,
        default_room_limit=settings.DEFAULT_ROOM_LIMIT,
    )


# Global singletons for app state
hub = build_hub()

app_start_time: datetime = datetime.now(timezone.utc)
