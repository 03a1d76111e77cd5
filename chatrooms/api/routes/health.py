# chatrooms/api/routes/health.py

from datetime import datetime, timezone

from fastapi import APIRouter

from chatrooms.core import state

router = APIRouter()

@router.get("/health")
async def health():
    """
    Health check endpoint.

    Returns current status, open connections, rooms with members and rooms
    waiting to be reclaimed. Used by container health probes.
    """
    hub = state.hub
    uptime_seconds = (datetime.now(timezone.utc) - state.app_start_time).total_seconds()
    return {
        "status": "healthy",
        "uptime_seconds": round(uptime_seconds, 1),
        "connections": len(hub.connections.sessions),
        "active_rooms_with_members": hub.presence.get_rooms_info(),
        "pending_deletions": hub.reclaimer.pending(),
    }
