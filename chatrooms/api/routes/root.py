# chatrooms/api/routes/root.py

from pathlib import Path

from fastapi import APIRouter
from fastapi.responses import FileResponse

from chatrooms.core.config import settings

router = APIRouter()


@router.get("/")
async def root():
    """
    Root endpoint - the chat client.

    Serves index.html from the static directory. Without one, returns
    basic info about the service instead.
    """
    index = Path(settings.STATIC_DIR) / "index.html"
    if index.is_file():
        return FileResponse(index)

    return {
        "message": "Chat Rooms",
        "version": "1.0",
        "features": ["rooms", "message_history", "typing_indicators", "empty_room_cleanup"],
        "endpoints": {
            "websocket": "/ws",
            "health": "/health",
            "static": "/static",
        },
    }
