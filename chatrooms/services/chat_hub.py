# chatrooms/services/chat_hub.py

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, Type, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from chatrooms.core.errors import ChatError, InvalidPayload, RepositoryError, RoomNotFound
from chatrooms.models.models import (
    ChatLine,
    ChatMessagePayload,
    CreateRoomPayload,
    CredentialsPayload,
    DeleteAccountPayload,
    DeleteRoomPayload,
    JoinRoomPayload,
    RoomCreated,
    TypingPayload,
    display_time,
    system_line,
)
from chatrooms.services.connection_manager import ConnectionManager, Session
from chatrooms.services.credential_store import CredentialStore
from chatrooms.services.presence import PresenceTracker
from chatrooms.services.reclaimer import RoomReclaimer
from chatrooms.services.room_repository import RoomRepository

logger = logging.getLogger(__name__)

ERROR_EVENT = "error message"

P = TypeVar("P", bound=BaseModel)
Handler = Callable[[Session, Any], Awaitable[None]]


def parse_payload(model: Type[P], data: Any) -> P:
    try:
        return model.model_validate(data if data is not None else {})
    except PydanticValidationError as exc:
        raise InvalidPayload() from exc


# ============================================================================
# CHAT HUB
# ============================================================================

class ChatHub:
    """
    Routes inbound events from a Session to the stores, presence and the
    reclaimer, and fans results out to the sessions of a room.

    Event Table (inbound -> outbound):
        register / login   -> "auth-success" | "error message"
        create room        -> "room-created" | "error message"
        join room          -> "room joined" + "load history" to the joiner,
                              System "chat message" to the rest of the room
        chat message       -> "chat message" to the whole room (sender included)
        typing/stop typing -> "typing" / "stop typing" to the rest of the room
        delete room        -> "room kicked" to everyone in the room
        delete account     -> "account deleted" | "error message"

    Each handler runs to completion before the connection's next event is
    read. Presence and reclaimer bookkeeping never awaits, so it cannot
    interleave with another connection's bookkeeping.
    """

    def __init__(
        self,
        credentials: CredentialStore,
        repository: RoomRepository,
        connections: ConnectionManager,
        grace_seconds: float = 300.0,
        history_limit: int = 20,
        default_room_limit: int = 10,
    ) -> None:
        self.credentials = credentials
        self.repository = repository
        self.connections = connections
        self.history_limit = history_limit
        self.default_room_limit = default_room_limit

        self.reclaimer = RoomReclaimer(on_expire=self.reclaim_room, delay=grace_seconds)
        self.presence = PresenceTracker(
            on_room_occupied=self.reclaimer.cancel,
            on_room_empty=self.reclaimer.schedule_deletion,
        )

        self.handlers: Dict[str, Handler] = {
            "register": self.handle_register,
            "login": self.handle_login,
            "create room": self.handle_create_room,
            "join room": self.handle_join_room,
            "chat message": self.handle_chat_message,
            "typing": self.handle_typing,
            "stop typing": self.handle_stop_typing,
            "delete room": self.handle_delete_room,
            "delete account": self.handle_delete_account,
        }

    async def dispatch(self, session: Session, event: str, data: Any = None) -> None:
        """
        Run the handler for one inbound event.

        Error Handling:
            - Unknown event: error message back to the sender
            - ValidationError: its detail back to the sender, nothing changed
            - RepositoryError: logged, generic error back to the sender
            - Anything else: logged, generic error; the connection stays open
        """
        handler = self.handlers.get(event)
        if handler is None:
            await session.send(ERROR_EVENT, f"Unknown event: {event}")
            return

        try:
            await handler(session, data)
        except RepositoryError as e:
            logger.error("'%s' from %s hit a storage failure: %s", event, session.connection_id, e)
            await session.send(ERROR_EVENT, e.detail)
        except ChatError as e:
            logger.info("'%s' from %s rejected: %s", event, session.connection_id, e.detail)
            await session.send(ERROR_EVENT, e.detail)
        except Exception:
            logger.exception("'%s' from %s failed", event, session.connection_id)
            await session.send(ERROR_EVENT, ChatError.detail)

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    async def handle_register(self, session: Session, data: Any) -> None:
        payload = parse_payload(CredentialsPayload, data)
        await self.credentials.register(payload.user, payload.secret)
        self._authenticate(session, payload.user)
        logger.info("✓ Registered account %s", payload.user)
        await session.send("auth-success", payload.user)

    async def handle_login(self, session: Session, data: Any) -> None:
        payload = parse_payload(CredentialsPayload, data)
        username = await self.credentials.verify(payload.user, payload.secret)
        self._authenticate(session, username)
        await session.send("auth-success", username)

    async def handle_delete_account(self, session: Session, data: Any) -> None:
        if isinstance(data, str):
            data = {"username": data}
        payload = parse_payload(DeleteAccountPayload, data)
        await self.credentials.delete(payload.username)
        logger.info("✓ Deleted account %s", payload.username)
        await session.send("account deleted")

    def _authenticate(self, session: Session, username: str) -> None:
        session.username = username
        session.authenticated = True

    # ------------------------------------------------------------------
    # Rooms
    # ------------------------------------------------------------------

    async def handle_create_room(self, session: Session, data: Any) -> None:
        payload = parse_payload(CreateRoomPayload, data)
        capacity = payload.limit or self.default_room_limit
        room = await self.repository.create_room(payload.room_name, capacity)
        logger.info("✓ Created room '%s' (limit %d)", room.name, room.capacity)
        await session.send(
            "room-created",
            RoomCreated(roomName=room.name, time=display_time()).model_dump(),
        )

    async def handle_join_room(self, session: Session, data: Any) -> None:
        payload = parse_payload(JoinRoomPayload, data)
        room = await self.repository.find_room(payload.room)
        if room is None:
            raise RoomNotFound()

        previous = session.current_room
        if previous is not None and previous != room.name:
            await self._leave_room(session, previous)

        # Joining cancels any pending deletion of the room
        member_count = self.presence.join(room.name, session.connection_id)
        session.username = payload.username
        session.current_room = room.name
        logger.info("→ %s joined '%s' (%d members)", payload.username, room.name, member_count)

        await session.send("room joined", room.name)
        history = await self.repository.recent_messages(room.name, self.history_limit)
        await session.send("load history", [m.to_line().model_dump() for m in history])

        await self.connections.broadcast_to_room(
            room.name,
            "chat message",
            system_line(f"{payload.username} joined."),
            exclude=session,
        )

    async def handle_delete_room(self, session: Session, data: Any) -> None:
        if isinstance(data, str):
            data = {"roomName": data}
        payload = parse_payload(DeleteRoomPayload, data)
        await self.destroy_room(payload.room_name)

    async def destroy_room(self, room: str) -> None:
        """
        Delete a room with its messages and kick everyone still in it.

        A pending deletion survives a failed cascade so the room is still
        reclaimed later. Members are unbound and the presence entry dropped
        before anyone is notified, so a disconnect during the notification
        cannot re-arm a timer for the deleted room.
        """
        await self.repository.delete_room_cascade(room)
        logger.info("✗ Room '%s' deleted", room)

        members = self.connections.get_room_sessions(room)
        for member in members:
            member.current_room = None
        self.presence.drop(room)
        self.reclaimer.cancel(room)

        await self.connections.send_to_sessions(members, "room kicked")

    async def reclaim_room(self, room: str) -> None:
        """Deletion callback for the reclaimer: only deletes a still-empty room."""
        if not self.presence.is_empty(room):
            logger.info("Room '%s' was rejoined before reclamation, keeping it", room)
            return
        await self.destroy_room(room)
        logger.info("Room %s auto-deleted.", room)

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def handle_chat_message(self, session: Session, data: Any) -> None:
        room = session.current_room
        if room is None:
            return
        payload = parse_payload(ChatMessagePayload, data)
        author = payload.user or session.username or "anonymous"

        # Persist before broadcasting
        await self.repository.append_message(room, author, payload.text)
        line = ChatLine(user=author, text=payload.text, time=display_time())
        await self.connections.broadcast_to_room(room, "chat message", line.model_dump())

    async def handle_typing(self, session: Session, data: Any) -> None:
        if session.current_room is None:
            return
        payload = parse_payload(TypingPayload, data)
        await self.connections.broadcast_to_room(
            session.current_room,
            "typing",
            {"user": payload.user or session.username},
            exclude=session,
        )

    async def handle_stop_typing(self, session: Session, data: Any) -> None:
        if session.current_room is None:
            return
        await self.connections.broadcast_to_room(
            session.current_room,
            "stop typing",
            {"user": session.username},
            exclude=session,
        )

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def handle_disconnect(self, session: Session) -> None:
        try:
            if session.current_room is not None:
                await self._leave_room(session, session.current_room)
        finally:
            self.connections.disconnect(session)

    async def _leave_room(self, session: Session, room: str) -> None:
        session.current_room = None
        # Bookkeeping before the await; an empty room arms the reclaimer
        self.presence.leave(room, session.connection_id)
        logger.info("← %s left '%s'", session.username, room)
        await self.connections.broadcast_to_room(
            room,
            "chat message",
            system_line(f"{session.username} left."),
        )

    def shutdown(self) -> None:
        self.reclaimer.shutdown()
