"""Socket.IO namespace streaming live snapshots of ledger collections.

Clients emit ``subscribe`` with ``{"topic": ..., "id": ...}`` and then receive
``snapshot`` events carrying the full current listing for that topic, first
immediately and again after every change. ``unsubscribe`` or a disconnect
closes the underlying store subscriptions.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, Optional

import socketio
from fastapi import HTTPException

from campus_ledger.domain.clubs.schemas import ClubResponse
from campus_ledger.domain.clubs.service import TreasuryService
from campus_ledger.domain.complaints.schemas import ComplaintResponse
from campus_ledger.domain.complaints.service import ComplaintService
from campus_ledger.domain.events.schemas import EventResponse
from campus_ledger.domain.events.service import EventService
from campus_ledger.domain.exceptions import LedgerError
from campus_ledger.domain.identity.schemas import UserResponse
from campus_ledger.domain.identity.service import UserService
from campus_ledger.domain.rewards.proposals import ProposalService
from campus_ledger.domain.rewards.schemas import ProposalResponse
from campus_ledger.infra.auth import verify_access_jwt
from campus_ledger.infra.store import Subscription
from campus_ledger.obs import metrics
from campus_ledger.settings import settings

logger = logging.getLogger(__name__)

NAMESPACE = "/live"
TOPICS = ("events", "club_events", "proposals", "clubs", "user", "complaints")


def _header(scope: dict, name: str) -> Optional[str]:
	target = name.encode().lower()
	for key, value in scope.get("headers", []):
		if key.lower() == target:
			return value.decode()
	return None


def resolve_user_id(environ: dict, auth: Optional[dict]) -> str:
	"""Identify the connecting client from a bearer token, or dev headers."""
	scope = environ.get("asgi.scope", environ)
	auth_payload = auth or environ.get("auth") or scope.get("auth") or {}
	token = auth_payload.get("token")
	if token:
		try:
			return verify_access_jwt(str(token)).id
		except HTTPException as exc:
			raise ConnectionRefusedError("invalid_token") from exc
	if settings.is_dev():
		user_id = auth_payload.get("userId") or auth_payload.get("user_id") or _header(scope, "x-user-id")
		if user_id:
			return str(user_id)
	raise ConnectionRefusedError("unauthorized")


class LiveNamespace(socketio.AsyncNamespace):
	def __init__(
		self,
		*,
		events: EventService | None = None,
		proposals: ProposalService | None = None,
		treasury: TreasuryService | None = None,
		users: UserService | None = None,
		complaints: ComplaintService | None = None,
	) -> None:
		super().__init__(NAMESPACE)
		self._events = events or EventService()
		self._proposals = proposals or ProposalService()
		self._treasury = treasury or TreasuryService()
		self._users = users or UserService()
		self._complaints = complaints or ComplaintService()
		self._sessions: Dict[str, str] = {}
		self._subscriptions: Dict[str, Dict[str, Subscription]] = {}

	async def on_connect(self, sid: str, environ: dict, auth: Optional[dict] = None) -> None:
		self._sessions[sid] = resolve_user_id(environ, auth)
		self._subscriptions[sid] = {}
		metrics.socket_connected(NAMESPACE)

	async def on_disconnect(self, sid: str, reason: Optional[str] = None) -> None:
		if self._sessions.pop(sid, None) is None:
			return
		for subscription in self._subscriptions.pop(sid, {}).values():
			await subscription.close()
		metrics.socket_disconnected(NAMESPACE)

	async def on_subscribe(self, sid: str, data: Optional[dict] = None) -> Dict[str, Any]:
		user_id = self._sessions.get(sid)
		if user_id is None:
			return {"ok": False, "error": "unauthorized"}
		topic = str((data or {}).get("topic") or "")
		if topic not in TOPICS:
			return {"ok": False, "error": "unknown_topic"}
		target = (data or {}).get("id")
		if topic == "user":
			target = target or user_id
		elif topic in ("club_events", "proposals") and not target:
			return {"ok": False, "error": "id_required"}
		key = f"{topic}:{target}" if target else topic
		active = self._subscriptions.setdefault(sid, {})
		if key in active:
			return {"ok": True, "key": key}
		listener = self._emitter(sid, user_id, topic, target)
		try:
			active[key] = await self._open(topic, str(target) if target else None, user_id, listener)
		except LedgerError as exc:
			return {"ok": False, "error": exc.detail}
		return {"ok": True, "key": key}

	async def on_unsubscribe(self, sid: str, data: Optional[dict] = None) -> Dict[str, Any]:
		topic = str((data or {}).get("topic") or "")
		target = (data or {}).get("id")
		if topic == "user":
			target = target or self._sessions.get(sid)
		key = f"{topic}:{target}" if target else topic
		subscription = self._subscriptions.get(sid, {}).pop(key, None)
		if subscription is not None:
			await subscription.close()
		return {"ok": True, "closed": subscription is not None}

	def _emitter(self, sid: str, user_id: str, topic: str, target: Any) -> Callable[[Any], Awaitable[None]]:
		async def _emit(items: Any) -> None:
			await self.emit("snapshot", {"topic": topic, "id": target, "items": self._serialize(topic, items, user_id)}, to=sid)
			metrics.socket_event(NAMESPACE, "snapshot")

		return _emit

	async def _open(self, topic: str, target: Optional[str], user_id: str, listener) -> Subscription:
		if topic == "complaints":
			return await self._complaints.subscribe_complaints(user_id, listener)
		if topic == "events":
			return await self._events.subscribe_events(listener)
		if topic == "club_events":
			return await self._events.subscribe_events(listener, club_id=target)
		if topic == "proposals":
			return await self._proposals.subscribe_club_proposals(target, listener)
		if topic == "clubs":
			return await self._treasury.subscribe_clubs(listener)
		return await self._users.subscribe_user(target, listener)

	def _serialize(self, topic: str, items: Any, viewer_id: str) -> Any:
		if topic == "complaints":
			return [ComplaintResponse.from_complaint(item, viewer_id).model_dump(mode="json") for item in items]
		if topic in ("events", "club_events"):
			today = self._events.today()
			return [EventResponse.from_event(event, today).model_dump(mode="json") for event in items]
		if topic == "proposals":
			return [ProposalResponse.from_proposal(proposal).model_dump(mode="json") for proposal in items]
		if topic == "clubs":
			return [ClubResponse.from_club(club).model_dump(mode="json") for club in items]
		return UserResponse.from_user(items).model_dump(mode="json") if items is not None else None

	async def close_all(self) -> None:
		for sid in list(self._sessions):
			await self.on_disconnect(sid)
