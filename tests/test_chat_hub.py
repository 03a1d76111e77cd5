import asyncio

import pytest

from chatrooms.core.errors import DeleteError, RepositoryError
from chatrooms.models.models import SYSTEM_USER

from conftest import GRACE_SECONDS, FakeWebSocket

WAIT = GRACE_SECONDS * 4


async def login(hub, session, user: str) -> None:
	await hub.dispatch(session, "register", {"user": user, "pass": "pw"})


async def join(hub, session, user: str, room: str) -> None:
	await hub.dispatch(session, "join room", {"username": user, "room": room})


# ============================================================================
# Accounts
# ============================================================================

@pytest.mark.asyncio
async def test_register_twice_reports_username_taken(hub, connect):
	first = await connect()
	second = await connect()

	await hub.dispatch(first, "register", {"user": "alice", "pass": "pw"})
	await hub.dispatch(second, "register", {"user": "alice", "pass": "other"})

	assert first.websocket.payloads("auth-success") == ["alice"]
	assert first.status == "authenticated"
	assert second.websocket.payloads("error message") == ["Username taken!"]
	assert second.status == "connected"
	assert second.username is None


@pytest.mark.asyncio
async def test_login_success_and_failure(hub, connect):
	session = await connect()
	await login(hub, session, "alice")
	other = await connect()

	await hub.dispatch(other, "login", {"user": "alice", "pass": "nope"})
	assert other.websocket.payloads("error message") == ["Invalid credentials!"]
	assert other.status == "connected"

	await hub.dispatch(other, "login", {"user": "alice", "pass": "pw"})
	assert other.websocket.payloads("auth-success") == ["alice"]
	assert other.username == "alice"


@pytest.mark.asyncio
async def test_delete_account_notifies_only_requester(hub, connect):
	alice = await connect()
	bob = await connect()
	await login(hub, alice, "alice")

	await hub.dispatch(alice, "delete account", "alice")

	assert alice.websocket.names()[-1] == "account deleted"
	assert "account deleted" not in bob.websocket.names()
	assert "alice" not in hub.credentials.accounts


@pytest.mark.asyncio
async def test_delete_account_failure_is_reported(hub, connect, monkeypatch):
	session = await connect()

	async def broken(username):
		raise DeleteError()

	monkeypatch.setattr(hub.credentials, "delete", broken)
	await hub.dispatch(session, "delete account", {"username": "alice"})

	assert session.websocket.payloads("error message") == ["Delete failed."]


# ============================================================================
# Rooms
# ============================================================================

@pytest.mark.asyncio
async def test_create_room_twice_reports_room_exists(hub, connect):
	session = await connect()

	await hub.dispatch(session, "create room", {"roomName": "lobby", "limit": 5})
	await hub.dispatch(session, "create room", {"roomName": "lobby", "limit": 5})

	created = session.websocket.payloads("room-created")
	assert len(created) == 1
	assert created[0]["roomName"] == "lobby"
	assert created[0]["time"]
	assert session.websocket.payloads("error message") == ["Room exists!"]


@pytest.mark.asyncio
async def test_create_room_defaults_limit_to_ten(hub, connect):
	session = await connect()

	await hub.dispatch(session, "create room", {"roomName": "lobby"})

	assert (await hub.repository.find_room("lobby")).capacity == 10


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [{"roomName": "", "limit": 5}, {"roomName": "x", "limit": 0}, None, "lobby"])
async def test_create_room_rejects_bad_payload(hub, connect, payload):
	session = await connect()

	await hub.dispatch(session, "create room", payload)

	assert session.websocket.payloads("error message") == ["Invalid request."]
	assert hub.repository.rooms == {}


@pytest.mark.asyncio
async def test_join_missing_room_changes_nothing(hub, connect):
	session = await connect()

	await join(hub, session, "alice", "nowhere")

	assert session.websocket.payloads("error message") == ["Room not found!"]
	assert session.current_room is None
	assert hub.presence.get_rooms_info() == {}


@pytest.mark.asyncio
async def test_join_sends_confirmation_history_and_announces_to_others(hub, connect):
	alice = await connect()
	bob = await connect()
	await hub.dispatch(alice, "create room", {"roomName": "lobby", "limit": 5})
	await join(hub, alice, "alice", "lobby")
	alice.websocket.clear()

	await join(hub, bob, "bob", "lobby")

	assert bob.websocket.names() == ["room joined", "load history"]
	assert bob.websocket.payloads("room joined") == ["lobby"]
	assert bob.websocket.payloads("load history") == [[]]
	announcements = alice.websocket.payloads("chat message")
	assert [(m["user"], m["text"]) for m in announcements] == [(SYSTEM_USER, "bob joined.")]
	assert bob.status == "joined"
	assert hub.presence.get_members("lobby") == {alice.connection_id, bob.connection_id}


@pytest.mark.asyncio
async def test_history_on_join_is_last_twenty_ascending(hub, connect):
	alice = await connect()
	await hub.dispatch(alice, "create room", {"roomName": "lobby"})
	await join(hub, alice, "alice", "lobby")
	for i in range(23):
		await hub.dispatch(alice, "chat message", {"user": "alice", "text": f"m{i}"})

	bob = await connect()
	await join(hub, bob, "bob", "lobby")

	(history,) = bob.websocket.payloads("load history")
	assert [line["text"] for line in history] == [f"m{i}" for i in range(3, 23)]
	assert all(set(line) == {"user", "text", "time"} for line in history)


@pytest.mark.asyncio
async def test_switching_rooms_leaves_the_previous_one(hub, connect):
	alice = await connect()
	bob = await connect()
	for name in ("a", "b"):
		await hub.dispatch(alice, "create room", {"roomName": name})
	await join(hub, alice, "alice", "a")
	await join(hub, bob, "bob", "a")
	bob.websocket.clear()

	await join(hub, alice, "alice", "b")

	assert alice.current_room == "b"
	assert hub.presence.get_members("a") == {bob.connection_id}
	assert [m["text"] for m in bob.websocket.payloads("chat message")] == ["alice left."]

	await join(hub, bob, "bob", "b")
	assert hub.reclaimer.is_pending("a")


@pytest.mark.asyncio
async def test_delete_room_kicks_members_and_removes_messages(hub, connect):
	alice = await connect()
	bob = await connect()
	outsider = await connect()
	await hub.dispatch(alice, "create room", {"roomName": "lobby"})
	await join(hub, alice, "alice", "lobby")
	await join(hub, bob, "bob", "lobby")
	await hub.dispatch(alice, "chat message", {"user": "alice", "text": "hi"})

	await hub.dispatch(outsider, "delete room", {"roomName": "lobby"})

	assert alice.websocket.names()[-1] == "room kicked"
	assert bob.websocket.names()[-1] == "room kicked"
	assert "room kicked" not in outsider.websocket.names()
	assert alice.current_room is None and bob.current_room is None
	assert await hub.repository.find_room("lobby") is None
	assert await hub.repository.recent_messages("lobby") == []
	assert hub.presence.is_empty("lobby")


@pytest.mark.asyncio
async def test_delete_room_cancels_pending_reclamation(hub, connect):
	alice = await connect()
	await hub.dispatch(alice, "create room", {"roomName": "lobby"})
	await join(hub, alice, "alice", "lobby")
	await hub.handle_disconnect(alice)
	assert hub.reclaimer.is_pending("lobby")

	other = await connect()
	await hub.dispatch(other, "delete room", "lobby")

	assert not hub.reclaimer.is_pending("lobby")


@pytest.mark.asyncio
async def test_failed_delete_keeps_pending_reclamation(hub, connect, monkeypatch):
	alice = await connect()
	await hub.dispatch(alice, "create room", {"roomName": "lobby"})
	await join(hub, alice, "alice", "lobby")
	await hub.handle_disconnect(alice)

	async def broken(name):
		raise RepositoryError()

	monkeypatch.setattr(hub.repository, "delete_room_cascade", broken)
	other = await connect()
	await hub.dispatch(other, "delete room", "lobby")

	assert other.websocket.payloads("error message") == [RepositoryError.detail]
	assert hub.reclaimer.is_pending("lobby")

	monkeypatch.undo()
	await asyncio.sleep(WAIT)

	assert await hub.repository.find_room("lobby") is None
	assert not hub.reclaimer.is_pending("lobby")


class HeldWebSocket(FakeWebSocket):
	"""Once armed, holds its next send until released."""

	def __init__(self) -> None:
		super().__init__()
		self.armed = False
		self.reached = asyncio.Event()
		self.release = asyncio.Event()

	async def send_json(self, data) -> None:
		if self.armed and not self.reached.is_set():
			self.reached.set()
			await self.release.wait()
		await super().send_json(data)


@pytest.mark.asyncio
async def test_delete_during_leave_broadcast_arms_no_timer(hub, connect):
	alice = await connect()
	bob_socket = HeldWebSocket()
	bob = await hub.connections.connect(bob_socket)
	other = await connect()
	await hub.dispatch(alice, "create room", {"roomName": "lobby"})
	await join(hub, alice, "alice", "lobby")
	await join(hub, bob, "bob", "lobby")

	bob_socket.armed = True
	leaving = asyncio.create_task(hub.handle_disconnect(alice))
	await bob_socket.reached.wait()

	await hub.dispatch(other, "delete room", {"roomName": "lobby"})
	bob_socket.release.set()
	await leaving

	assert hub.reclaimer.pending() == []
	assert hub.presence.is_empty("lobby")
	assert bob.current_room is None
	assert "room kicked" in bob_socket.names()


# ============================================================================
# Messages and typing
# ============================================================================

@pytest.mark.asyncio
async def test_chat_message_ignored_when_not_joined(hub, connect):
	session = await connect()

	await hub.dispatch(session, "chat message", {"user": "alice", "text": "hi"})

	assert session.websocket.sent == []
	assert hub.repository.messages == {}


@pytest.mark.asyncio
async def test_chat_message_persisted_and_broadcast_to_room_including_sender(hub, connect):
	alice = await connect()
	bob = await connect()
	outsider = await connect()
	await hub.dispatch(alice, "create room", {"roomName": "lobby"})
	await hub.dispatch(alice, "create room", {"roomName": "other"})
	await join(hub, alice, "alice", "lobby")
	await join(hub, bob, "bob", "lobby")
	await join(hub, outsider, "carol", "other")
	for ws in (alice.websocket, bob.websocket, outsider.websocket):
		ws.clear()

	await hub.dispatch(alice, "chat message", {"user": "alice", "text": "hello"})

	for session in (alice, bob):
		(line,) = session.websocket.payloads("chat message")
		assert line["user"] == "alice"
		assert line["text"] == "hello"
	assert outsider.websocket.sent == []
	stored = await hub.repository.recent_messages("lobby")
	assert [(m.author, m.text) for m in stored] == [("alice", "hello")]


@pytest.mark.asyncio
async def test_chat_message_storage_failure_reports_generic_error(hub, connect, monkeypatch):
	alice = await connect()
	bob = await connect()
	await hub.dispatch(alice, "create room", {"roomName": "lobby"})
	await join(hub, alice, "alice", "lobby")
	await join(hub, bob, "bob", "lobby")
	bob.websocket.clear()

	async def broken(room, author, text):
		raise RepositoryError()

	monkeypatch.setattr(hub.repository, "append_message", broken)
	await hub.dispatch(alice, "chat message", {"user": "alice", "text": "lost"})

	assert alice.websocket.payloads("error message") == [RepositoryError.detail]
	assert bob.websocket.sent == []
	assert alice.current_room == "lobby"


@pytest.mark.asyncio
async def test_typing_reaches_everyone_but_the_sender(hub, connect):
	alice = await connect()
	bob = await connect()
	await hub.dispatch(alice, "create room", {"roomName": "lobby"})
	await join(hub, alice, "alice", "lobby")
	await join(hub, bob, "bob", "lobby")
	alice.websocket.clear()
	bob.websocket.clear()

	await hub.dispatch(alice, "typing", {"room": "lobby", "user": "alice"})
	await hub.dispatch(alice, "stop typing", {"room": "lobby"})

	assert alice.websocket.sent == []
	assert bob.websocket.payloads("typing") == [{"user": "alice"}]
	assert bob.websocket.payloads("stop typing") == [{"user": "alice"}]


@pytest.mark.asyncio
async def test_broadcast_survives_a_dead_socket(hub, connect):
	alice = await connect()
	dead = await connect(fail=True)
	await hub.dispatch(alice, "create room", {"roomName": "lobby"})
	dead.current_room = "lobby"
	await join(hub, alice, "alice", "lobby")

	await hub.dispatch(alice, "chat message", {"user": "alice", "text": "still here"})

	assert [m["text"] for m in alice.websocket.payloads("chat message")] == ["still here"]


@pytest.mark.asyncio
async def test_unknown_event_is_reported(hub, connect):
	session = await connect()

	await hub.dispatch(session, "dance", {})

	assert session.websocket.payloads("error message") == ["Unknown event: dance"]


# ============================================================================
# Disconnect and reclamation
# ============================================================================

@pytest.mark.asyncio
async def test_disconnect_announces_leave_and_keeps_occupied_room(hub, connect):
	alice = await connect()
	bob = await connect()
	await hub.dispatch(alice, "create room", {"roomName": "lobby"})
	await join(hub, alice, "alice", "lobby")
	await join(hub, bob, "bob", "lobby")
	bob.websocket.clear()

	await hub.handle_disconnect(alice)

	assert [(m["user"], m["text"]) for m in bob.websocket.payloads("chat message")] == [
		(SYSTEM_USER, "alice left.")
	]
	assert alice.connection_id not in hub.connections.sessions
	assert not hub.reclaimer.is_pending("lobby")


@pytest.mark.asyncio
async def test_empty_room_is_reclaimed_after_grace_period(hub, connect):
	alice = await connect()
	await hub.dispatch(alice, "create room", {"roomName": "lobby"})
	await join(hub, alice, "alice", "lobby")
	await hub.dispatch(alice, "chat message", {"user": "alice", "text": "hi"})

	await hub.handle_disconnect(alice)
	assert hub.reclaimer.is_pending("lobby")
	assert await hub.repository.find_room("lobby") is not None

	await asyncio.sleep(WAIT)

	assert await hub.repository.find_room("lobby") is None
	assert await hub.repository.recent_messages("lobby") == []
	assert not hub.reclaimer.is_pending("lobby")


@pytest.mark.asyncio
async def test_rejoin_before_timer_keeps_room(hub, connect):
	alice = await connect()
	await hub.dispatch(alice, "create room", {"roomName": "lobby"})
	await join(hub, alice, "alice", "lobby")
	await hub.dispatch(alice, "chat message", {"user": "alice", "text": "hi"})
	await hub.handle_disconnect(alice)

	bob = await connect()
	await join(hub, bob, "bob", "lobby")
	assert not hub.reclaimer.is_pending("lobby")

	await asyncio.sleep(WAIT)

	assert await hub.repository.find_room("lobby") is not None
	assert len(await hub.repository.recent_messages("lobby")) == 1


@pytest.mark.asyncio
async def test_reclaim_rechecks_emptiness(hub, connect):
	alice = await connect()
	await hub.dispatch(alice, "create room", {"roomName": "lobby"})
	await join(hub, alice, "alice", "lobby")

	await hub.reclaim_room("lobby")

	assert await hub.repository.find_room("lobby") is not None
	assert alice.current_room == "lobby"


@pytest.mark.asyncio
async def test_lobby_scenario(hub, connect):
	alice = await connect()
	await hub.dispatch(alice, "create room", {"roomName": "lobby", "limit": 5})
	await join(hub, alice, "alice", "lobby")
	assert alice.websocket.payloads("load history") == [[]]

	await hub.dispatch(alice, "chat message", {"user": "alice", "text": "hi"})
	stored = await hub.repository.recent_messages("lobby", 20)
	assert [(m.author, m.text) for m in stored] == [("alice", "hi")]

	await hub.handle_disconnect(alice)
	await asyncio.sleep(WAIT)

	assert await hub.repository.find_room("lobby") is None
