# chatrooms/core/config.py
import os
from typing import Literal
from dotenv import load_dotenv

class Settings:
    """
    Setup environment variables.
        - STORAGE_BACKEND where accounts, rooms and messages live: "memory" or "postgres"
        - DATABASE_URL the asyncpg DSN used by the postgres backend
        - ROOM_DELETE_GRACE_SECONDS how long an empty room survives before it is reclaimed
    """

    # Load environment variables from the .env file
    load_dotenv()

    STORAGE_BACKEND: Literal["memory", "postgres"] = os.getenv("STORAGE_BACKEND", "memory")

    DATABASE_URL: str = os.getenv("DATABASE_URL", "")
    DATABASE_SSL: bool = os.getenv("DATABASE_SSL", "false").lower() == "true"
    DB_POOL_MAX_SIZE: int = int(os.getenv("DB_POOL_MAX_SIZE", "5"))

    ROOM_DELETE_GRACE_SECONDS: float = float(os.getenv("ROOM_DELETE_GRACE_SECONDS", "300"))
    HISTORY_LIMIT: int = int(os.getenv("HISTORY_LIMIT", "20"))
    DEFAULT_ROOM_LIMIT: int = int(os.getenv("DEFAULT_ROOM_LIMIT", "10"))

    STATIC_DIR: str = os.getenv("STATIC_DIR", "public")

    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = int(os.getenv("PORT", "3000"))

settings = Settings()
