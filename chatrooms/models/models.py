# chatrooms/models/models.py
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

SYSTEM_USER = "System"


def display_time(moment: Optional[datetime] = None) -> str:
    """Wall-clock time as shown in the chat window, e.g. ``03:07 PM``."""
    if moment is None:
        moment = datetime.now()
    elif moment.tzinfo is not None:
        moment = moment.astimezone()
    return moment.strftime("%I:%M %p")


def system_line(text: str) -> dict:
    return ChatLine(user=SYSTEM_USER, text=text, time=display_time()).model_dump()


# ============================================================================
# STORED RECORDS
# ============================================================================

class Account(BaseModel):
    username: str = Field(min_length=1)
    secret: str

class Room(BaseModel):
    name: str = Field(min_length=1)
    capacity: int = Field(default=10, gt=0)

class Message(BaseModel):
    author: str
    text: str
    room: str
    created_at: datetime

    def to_line(self) -> "ChatLine":
        return ChatLine(user=self.author, text=self.text, time=display_time(self.created_at))


# ============================================================================
# INBOUND PAYLOADS
# ============================================================================

class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

class CredentialsPayload(_Payload):
    user: str = Field(min_length=1)
    secret: str = Field(alias="pass")

class CreateRoomPayload(_Payload):
    room_name: str = Field(alias="roomName", min_length=1)
    limit: Optional[int] = Field(default=None, gt=0)

class JoinRoomPayload(_Payload):
    username: str = Field(min_length=1)
    room: str = Field(min_length=1)

class ChatMessagePayload(_Payload):
    user: Optional[str] = None
    text: str

class TypingPayload(_Payload):
    room: Optional[str] = None
    user: Optional[str] = None

class DeleteRoomPayload(_Payload):
    room_name: str = Field(alias="roomName", min_length=1)

class DeleteAccountPayload(_Payload):
    username: str = Field(min_length=1)


# ============================================================================
# OUTBOUND PAYLOADS
# ============================================================================

class ChatLine(BaseModel):
    user: str
    text: str
    time: str

class RoomCreated(BaseModel):
    roomName: str
    time: str
