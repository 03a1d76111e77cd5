# chatrooms/services/connection_manager.py

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from fastapi import WebSocket

logger = logging.getLogger(__name__)


# ============================================================================
# SESSION
# ============================================================================

@dataclass(eq=False)
class Session:
    """
    Server-side state of one open WebSocket.

    Lifecycle: connected -> authenticated -> joined(room). ``username`` is
    bound by a successful register/login or by joining a room;
    ``current_room`` holds at most one room at a time.
    """

    connection_id: str
    websocket: WebSocket
    username: Optional[str] = None
    current_room: Optional[str] = None
    authenticated: bool = False

    @property
    def status(self) -> str:
        if self.current_room is not None:
            return "joined"
        if self.authenticated:
            return "authenticated"
        return "connected"

    async def send(self, event: str, data: Any = None) -> None:
        await self.websocket.send_json({"event": event, "data": data})


# ============================================================================
# WEBSOCKET CONNECTION MANAGER
# ============================================================================

class ConnectionManager:
    """
    Registry of open connections and room-scoped multicast.

    Room membership for delivery is read from each Session's
    ``current_room`` at send time, never from a cached snapshot, so a
    broadcast reaches exactly the sessions bound to the room right now.

    Data Structures:
        sessions: Maps connection_id -> Session
                  Example: {"3f2a...": Session(username="alice", current_room="lobby")}
    """

    def __init__(self) -> None:
        self.sessions: Dict[str, Session] = {}

    async def connect(self, websocket: WebSocket) -> Session:
        """
        Accept a new WebSocket connection and open a Session for it.

        Note:
            The session is not in any room. The client must send
            "join room" first.
        """
        await websocket.accept()

        session = Session(connection_id=uuid.uuid4().hex, websocket=websocket)
        self.sessions[session.connection_id] = session

        logger.info("✓ Connection %s opened. Total: %d", session.connection_id, len(self.sessions))
        return session

    def disconnect(self, session: Session) -> None:
        if self.sessions.pop(session.connection_id, None) is not None:
            logger.info(
                "✗ Connection %s (%s) closed. Total: %d",
                session.connection_id,
                session.username or "anonymous",
                len(self.sessions),
            )

    def get_room_sessions(self, room: str) -> List[Session]:
        return [s for s in self.sessions.values() if s.current_room == room]

    async def broadcast_to_room(
        self,
        room: str,
        event: str,
        data: Any = None,
        exclude: Optional[Session] = None,
    ) -> int:
        """
        Send an event to every session currently joined to ``room``.

        Args:
            room: Target room name
            event: Outbound event name
            data: JSON-serializable payload
            exclude: Session to skip (the sender, for typing indicators)

        Returns:
            Number of sessions the event was delivered to.

        Error Handling:
            A failed send is logged and skipped. The failing connection's own
            receive loop notices the disconnect and cleans up.
        """
        targets = [s for s in self.get_room_sessions(room) if s is not exclude]
        if not targets:
            logger.debug("[routing] Skipped %s: room=%s has 0 recipients", event, room)
            return 0
        return await self.send_to_sessions(targets, event, data)

    async def send_to_sessions(self, targets: List[Session], event: str, data: Any = None) -> int:
        """Send an event to each of ``targets``, skipping sockets that fail."""
        delivered = 0
        for session in targets:
            try:
                await session.send(event, data)
                delivered += 1
            except Exception as e:
                logger.error("Send to %s failed: %s", session.connection_id, e)
        return delivered
