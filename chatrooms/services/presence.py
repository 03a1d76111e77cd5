# chatrooms/services/presence.py

from __future__ import annotations

import logging
from typing import Callable, Dict, FrozenSet, Optional, Set

logger = logging.getLogger(__name__)

RoomHook = Callable[[str], object]


class PresenceTracker:
    """
    In-memory record of which connections are joined to which room.

    This is the source of truth for "is this room empty". It is never
    persisted. Two hooks let the owner react to transitions:

        on_room_occupied(room): called on every join (cancels reclamation)
        on_room_empty(room):    called when a leave leaves nobody behind

    Data Structures:
        members: Maps room name -> Set of connection ids in that room
                 Example: {"lobby": {"3f2a...", "9c1b..."}}

    All methods are synchronous and run on the event loop thread, so they
    never interleave with each other.
    """

    def __init__(
        self,
        on_room_occupied: Optional[RoomHook] = None,
        on_room_empty: Optional[RoomHook] = None,
    ) -> None:
        self.members: Dict[str, Set[str]] = {}
        self.on_room_occupied = on_room_occupied
        self.on_room_empty = on_room_empty

    def join(self, room: str, connection_id: str) -> int:
        """Add a connection to a room. Returns the new member count."""
        members = self.members.setdefault(room, set())
        members.add(connection_id)
        if self.on_room_occupied is not None:
            self.on_room_occupied(room)
        return len(members)

    def leave(self, room: str, connection_id: str) -> bool:
        """
        Remove a connection from a room.

        Returns:
            True if the room has no members left (including a room that was
            never tracked), in which case on_room_empty has been called.
        """
        members = self.members.get(room)
        if members is not None:
            members.discard(connection_id)
            if members:
                return False
            del self.members[room]

        logger.info("Room '%s' is now empty", room)
        if self.on_room_empty is not None:
            self.on_room_empty(room)
        return True

    def drop(self, room: str) -> None:
        """Forget a room entirely (after it was deleted). Fires no hook."""
        self.members.pop(room, None)

    def is_empty(self, room: str) -> bool:
        return not self.members.get(room)

    def get_members(self, room: str) -> FrozenSet[str]:
        return frozenset(self.members.get(room, ()))

    def get_rooms_info(self) -> Dict[str, int]:
        """Room name -> member count for rooms with at least one member."""
        return {room: len(members) for room, members in self.members.items()}
