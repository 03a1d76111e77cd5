from __future__ import annotations

import pytest
import pytest_asyncio

from chatrooms.services.chat_hub import ChatHub
from chatrooms.services.connection_manager import ConnectionManager, Session
from chatrooms.services.credential_store import MemoryCredentialStore
from chatrooms.services.room_repository import MemoryRoomRepository

GRACE_SECONDS = 0.05


class FakeWebSocket:
	"""Collects every frame the server sends."""

	def __init__(self, fail: bool = False) -> None:
		self.accepted = False
		self.fail = fail
		self.sent: list[dict] = []

	async def accept(self) -> None:
		self.accepted = True

	async def send_json(self, data) -> None:
		if self.fail:
			raise RuntimeError("socket closed")
		self.sent.append(data)

	def names(self) -> list[str]:
		return [frame["event"] for frame in self.sent]

	def payloads(self, event: str) -> list:
		return [frame["data"] for frame in self.sent if frame["event"] == event]

	def clear(self) -> None:
		self.sent.clear()


@pytest_asyncio.fixture
async def hub():
	chat_hub = ChatHub(
		credentials=MemoryCredentialStore(),
		repository=MemoryRoomRepository(),
		connections=ConnectionManager(),
		grace_seconds=GRACE_SECONDS,
	)
	try:
		yield chat_hub
	finally:
		chat_hub.shutdown()


@pytest.fixture
def connect(hub):
	async def _connect(fail: bool = False) -> Session:
		return await hub.connections.connect(FakeWebSocket(fail=fail))

	return _connect
