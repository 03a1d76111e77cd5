# chatrooms/api/websocket.py

from __future__ import annotations

import json
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from chatrooms.core import state
from chatrooms.services.chat_hub import ERROR_EVENT

logger = logging.getLogger(__name__)

router = APIRouter()

# ============================================================================
# WEBSOCKET ENDPOINT
# ============================================================================

@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """
    WebSocket endpoint for real-time chat.

    Protocol:
    =========
    Every frame in both directions is a JSON object:
        {"event": "<name>", "data": <payload>}

    Client -> Server Events:
    ------------------------
    register        {"user": "alice", "pass": "secret"}
    login           {"user": "alice", "pass": "secret"}
    create room     {"roomName": "lobby", "limit": 5}
    join room       {"username": "alice", "room": "lobby"}
    chat message    {"user": "alice", "text": "hi"}
    typing          {"room": "lobby", "user": "alice"}
    stop typing     {"room": "lobby"}
    delete room     {"roomName": "lobby"}  (or just "lobby")
    delete account  {"username": "alice"}  (or just "alice")

    Server -> Client Events:
    ------------------------
    auth-success    "alice"
    error message   "Room not found!"
    room-created    {"roomName": "lobby", "time": "03:07 PM"}
    room joined     "lobby"
    load history    [{"user": "alice", "text": "hi", "time": "03:07 PM"}, ...]
    chat message    {"user": "alice", "text": "hi", "time": "03:07 PM"}
    typing          {"user": "alice"}
    stop typing     {"user": "alice"}
    room kicked     null
    account deleted null

    Lifecycle:
    ==========
    1. Connection accepted, Session opened (not in any room)
    2. Frames are handled one at a time, in arrival order
    3. On disconnect the room is told "<user> left." and, if that left it
       empty, the room is scheduled for deletion

    Error Handling:
        - Invalid JSON / missing event name: error message, connection kept
        - Handler failures: reported by the hub, connection kept
        - Connection errors: cleanup and log
    """
    hub = state.hub
    session = await hub.connections.connect(websocket)

    try:
        while True:
            raw = await websocket.receive_text()

            try:
                frame = json.loads(raw)
            except json.JSONDecodeError:
                await session.send(ERROR_EVENT, "Invalid JSON")
                continue

            if not isinstance(frame, dict) or not isinstance(frame.get("event"), str):
                await session.send(ERROR_EVENT, "Invalid JSON")
                continue

            event = frame["event"]
            logger.debug("Websocket input from %s: %s", session.connection_id, event)
            await hub.dispatch(session, event, frame.get("data"))

    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.error("WebSocket error: %s", e)
    finally:
        await hub.handle_disconnect(session)
