# chatrooms/main.py

from __future__ import annotations

import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from chatrooms.core import state
from chatrooms.core.config import settings
from chatrooms.core.logging import setup_logging, get_logger
from chatrooms.api.routes import root, health
from chatrooms.api import websocket as websocket_module
from chatrooms.services import database

# Configure logging first
setup_logging()
logger = get_logger(__name__)

# FastAPI app
app = FastAPI(title="Chat Rooms")

# CORS (relaxed for now – tighten in prod)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# REST routes
app.include_router(root.router)
app.include_router(health.router)

# WebSocket routes
app.include_router(websocket_module.router)

# Static assets for the browser client
if os.path.isdir(settings.STATIC_DIR):
    app.mount("/static", StaticFiles(directory=settings.STATIC_DIR), name="static")


@app.on_event("startup")
async def startup_event():
    logger.info("🚀 Application starting - storage backend: %s", settings.STORAGE_BACKEND)

    if settings.STORAGE_BACKEND == "postgres":
        try:
            await database.init_pool()
            await database.init_schema()
        except Exception as e:
            # Requests will retry the pool and report storage errors per connection
            logger.error("DB init error: %s", e)

@app.on_event("shutdown")
async def on_shutdown():
    state.hub.shutdown()
    if settings.STORAGE_BACKEND == "postgres":
        await database.close_pool()


def run() -> None:
    import uvicorn
    uvicorn.run("chatrooms.main:app", host=settings.HOST, port=settings.PORT)


if __name__ == "__main__":
    run()
