import asyncio
from unittest.mock import AsyncMock

import pytest
import socketio

from campus_ledger.domain.complaints.schemas import ComplaintCreateRequest
from campus_ledger.domain.complaints.service import ComplaintService
from campus_ledger.domain.events.service import EventService
from campus_ledger.infra import jwt as jwt_helper
from campus_ledger.infra.store import document_store
from campus_ledger.live.sockets import LiveNamespace
from campus_ledger.settings import settings


def _namespace(today) -> LiveNamespace:
	server = socketio.AsyncServer(async_mode="asgi")
	namespace = LiveNamespace(events=EventService(today=today))
	server.register_namespace(namespace)
	namespace.emit = AsyncMock()
	return namespace


def _snapshots(namespace):
	return [call.args[1] for call in namespace.emit.await_args_list if call.args[0] == "snapshot"]


async def _wait_for_snapshots(namespace, count, timeout=2.0):
	deadline = asyncio.get_running_loop().time() + timeout
	while len(_snapshots(namespace)) < count:
		if asyncio.get_running_loop().time() > deadline:
			raise AssertionError(f"expected {count} snapshots, got {len(_snapshots(namespace))}")
		await asyncio.sleep(0.02)
	return _snapshots(namespace)


@pytest.mark.asyncio
async def test_connect_requires_identity(today):
	namespace = _namespace(today)

	with pytest.raises(ConnectionRefusedError):
		await namespace.trigger_event("connect", "sid-1", {"asgi.scope": {"headers": []}})

	settings.environment = "prod"
	with pytest.raises(ConnectionRefusedError):
		await namespace.trigger_event("connect", "sid-1", {"asgi.scope": {"headers": [(b"x-user-id", b"ann")]}})


@pytest.mark.asyncio
async def test_connect_with_token(today):
	namespace = _namespace(today)
	token = jwt_helper.encode_access({"sub": "ann"})

	await namespace.trigger_event("connect", "sid-1", {"asgi.scope": {"headers": []}}, {"token": token})

	ack = await namespace.trigger_event("subscribe", "sid-1", {"topic": "user"})
	assert ack == {"ok": True, "key": "user:ann"}


@pytest.mark.asyncio
async def test_subscribe_pushes_snapshot_and_changes(seed, today):
	await seed.event("ev1", capacity=5)
	namespace = _namespace(today)
	await namespace.trigger_event("connect", "sid-1", {"asgi.scope": {"headers": [(b"x-user-id", b"ann")]}})

	ack = await namespace.trigger_event("subscribe", "sid-1", {"topic": "club_events", "id": "chess"})

	assert ack == {"ok": True, "key": "club_events:chess"}
	(initial,) = _snapshots(namespace)
	assert (initial["topic"], initial["id"]) == ("club_events", "chess")
	assert [item["id"] for item in initial["items"]] == ["ev1"]
	assert initial["items"][0]["participants"] == []

	await EventService(today=today).register("ev1", "ann")

	snapshots = await _wait_for_snapshots(namespace, 2)
	assert snapshots[-1]["items"][0]["participants"] == ["ann"]


@pytest.mark.asyncio
async def test_subscribe_validates_topic(today):
	namespace = _namespace(today)
	await namespace.trigger_event("connect", "sid-1", {"asgi.scope": {"headers": [(b"x-user-id", b"ann")]}})

	assert await namespace.trigger_event("subscribe", "sid-1", {"topic": "gossip"}) == {
		"ok": False,
		"error": "unknown_topic",
	}
	assert await namespace.trigger_event("subscribe", "sid-1", {"topic": "proposals"}) == {
		"ok": False,
		"error": "id_required",
	}
	assert await namespace.trigger_event("subscribe", "sid-2", {"topic": "events"}) == {
		"ok": False,
		"error": "unauthorized",
	}


@pytest.mark.asyncio
async def test_user_topic_defaults_to_connected_user(seed, today):
	await seed.user("ann", tokens=12)
	namespace = _namespace(today)
	await namespace.trigger_event("connect", "sid-1", {"asgi.scope": {"headers": [(b"x-user-id", b"ann")]}})

	await namespace.trigger_event("subscribe", "sid-1", {"topic": "user"})

	(snapshot,) = _snapshots(namespace)
	assert snapshot["items"]["id"] == "ann"
	assert snapshot["items"]["tokens"] == 12


@pytest.mark.asyncio
async def test_unsubscribe_and_disconnect_close_subscriptions(seed, today):
	await seed.club("chess")
	namespace = _namespace(today)
	await namespace.trigger_event("connect", "sid-1", {"asgi.scope": {"headers": [(b"x-user-id", b"ann")]}})
	await namespace.trigger_event("subscribe", "sid-1", {"topic": "clubs"})
	await namespace.trigger_event("subscribe", "sid-1", {"topic": "events"})
	assert document_store.active_subscriptions == 2

	closed = await namespace.trigger_event("unsubscribe", "sid-1", {"topic": "clubs"})
	assert closed == {"ok": True, "closed": True}
	assert document_store.active_subscriptions == 1

	await namespace.trigger_event("disconnect", "sid-1")
	assert document_store.active_subscriptions == 0


@pytest.mark.asyncio
async def test_complaints_topic_is_for_club_admins(seed, today):
	await seed.club("chess", admins=["alice"])
	await seed.user("ann")
	namespace = _namespace(today)
	await namespace.trigger_event("connect", "sid-1", {"asgi.scope": {"headers": [(b"x-user-id", b"ann")]}})
	await namespace.trigger_event("connect", "sid-2", {"asgi.scope": {"headers": [(b"x-user-id", b"alice")]}})

	refused = await namespace.trigger_event("subscribe", "sid-1", {"topic": "complaints"})
	assert refused == {"ok": False, "error": "club_admin_required"}
	assert document_store.active_subscriptions == 0

	ack = await namespace.trigger_event("subscribe", "sid-2", {"topic": "complaints"})
	assert ack == {"ok": True, "key": "complaints"}
	(initial,) = _snapshots(namespace)
	assert initial["items"] == []

	await ComplaintService().submit("ann", ComplaintCreateRequest(subject="Noise", message="Too loud"))

	snapshots = await _wait_for_snapshots(namespace, 2)
	(item,) = snapshots[-1]["items"]
	assert (item["subject"], item["user_id"], item["seen"]) == ("Noise", "ann", False)
