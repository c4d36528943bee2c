"""Event registration, bookmarks and lifecycle."""

from __future__ import annotations

import datetime as dt
import logging
from typing import Awaitable, Callable, List, Optional, Tuple

from campus_ledger.domain.clubs.models import CLUBS, Club
from campus_ledger.domain.documents import parse_many
from campus_ledger.domain.events.models import EVENTS, Event, EventStatus
from campus_ledger.domain.events.schemas import EventCreateRequest
from campus_ledger.domain.exceptions import (
    EventFullError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from campus_ledger.domain.identity.models import Role
from campus_ledger.domain.identity.service import read_user
from campus_ledger.infra.store import (
    DocumentStore,
    Subscription,
    Transaction,
    document_store,
    new_id,
)
from campus_ledger.obs import audit, metrics

logger = logging.getLogger(__name__)


def utc_today() -> dt.date:
    return dt.datetime.now(dt.timezone.utc).date()


def _sort_key(event: Event) -> Tuple[dt.date, str, str]:
    return (event.date, event.start_time or "", event.name)


async def _read_event(txn: Transaction, event_id: str) -> Event:
    return Event.from_snapshot(await txn.require(EVENTS, event_id, "event_not_found"))


class EventService:
    def __init__(
        self,
        store: DocumentStore | None = None,
        *,
        today: Callable[[], dt.date] = utc_today,
    ) -> None:
        self._store = store or document_store
        self._today = today

    def today(self) -> dt.date:
        return self._today()

    async def register(self, event_id: str, user_id: str) -> Event:
        """Add ``user_id`` to the participants unless the event is full."""

        async def _txn(txn: Transaction) -> Tuple[Event, bool]:
            event = await _read_event(txn, event_id)
            if user_id in event.participants:
                return event, False
            if event.is_full():
                raise EventFullError()
            event.participants.append(user_id)
            txn.set(EVENTS, event.id, event.to_document())
            return event, True

        try:
            event, added = await self._store.run_transaction(_txn, name="register")
        except EventFullError:
            metrics.inc_registration("full")
            raise
        except NotFoundError:
            metrics.inc_registration("not_found")
            raise
        metrics.inc_registration("registered" if added else "already_registered")
        return event

    async def unregister(self, event_id: str, user_id: str) -> Optional[Event]:
        """Remove ``user_id`` from the participants; missing events are ignored."""

        async def _txn(txn: Transaction) -> Optional[Event]:
            snapshot = await txn.get(EVENTS, event_id)
            if not snapshot.exists:
                return None
            event = Event.from_snapshot(snapshot)
            if user_id not in event.participants:
                return event
            event.participants = [uid for uid in event.participants if uid != user_id]
            txn.set(EVENTS, event.id, event.to_document())
            return event

        event = await self._store.run_transaction(_txn, name="unregister")
        metrics.inc_registration("unregistered")
        return event

    async def add_star(self, event_id: str, user_id: str) -> Event:
        async def _txn(txn: Transaction) -> Event:
            event = await _read_event(txn, event_id)
            if user_id not in event.starred_by:
                event.starred_by.append(user_id)
                txn.set(EVENTS, event.id, event.to_document())
            return event

        return await self._store.run_transaction(_txn, name="add_star")

    async def remove_star(self, event_id: str, user_id: str) -> Event:
        async def _txn(txn: Transaction) -> Event:
            event = await _read_event(txn, event_id)
            if user_id in event.starred_by:
                event.starred_by = [uid for uid in event.starred_by if uid != user_id]
                txn.set(EVENTS, event.id, event.to_document())
            return event

        return await self._store.run_transaction(_txn, name="remove_star")

    async def create_event(self, actor_id: str, payload: EventCreateRequest) -> Event:
        if not payload.name:
            raise ValidationError("name_required")
        if payload.capacity < 0:
            raise ValidationError("capacity_negative")
        if payload.tokens < 0:
            raise ValidationError("tokens_negative")

        async def _txn(txn: Transaction) -> Event:
            actor = await read_user(txn, actor_id)
            if actor.role is Role.CLUB:
                if not actor.club_id:
                    raise UnauthorizedError("club_membership_required")
                if payload.club_id and payload.club_id != actor.club_id:
                    raise UnauthorizedError("not_club_admin")
                club_id = actor.club_id
            elif actor.role is Role.HEAD:
                if not payload.club_id:
                    raise ValidationError("club_id_required")
                club_id = payload.club_id
            else:
                raise UnauthorizedError("club_or_head_required")
            await txn.require(CLUBS, club_id, "club_not_found")
            event = Event(
                id=new_id(),
                **payload.model_dump(exclude={"club_id"}),
                club_id=club_id,
                created_by=actor_id,
            )
            txn.set(EVENTS, event.id, event.to_document())
            return event

        event = await self._store.run_transaction(_txn, name="create_event")
        metrics.inc_event_created()
        logger.info("event_created", extra={"event_id": event.id, "club_id": event.club_id})
        return event

    async def mark_completed(self, actor_id: str, event_id: str) -> Event:
        """Set the forward-only stored "completed" mark."""

        async def _txn(txn: Transaction) -> Event:
            event = await _read_event(txn, event_id)
            actor = await read_user(txn, actor_id)
            allowed = actor.is_head
            if not allowed and event.club_id:
                club_snapshot = await txn.get(CLUBS, event.club_id)
                if club_snapshot.exists:
                    allowed = actor_id in Club.from_snapshot(club_snapshot).admins
            if not allowed:
                raise UnauthorizedError("not_club_admin")
            if event.status is EventStatus.COMPLETED:
                return event
            event.status = EventStatus.COMPLETED
            txn.set(EVENTS, event.id, event.to_document())
            return event

        event = await self._store.run_transaction(_txn, name="mark_completed")
        audit.record("event.completed", actor_id=actor_id, event_id=event_id, club_id=event.club_id)
        return event

    async def get_event(self, event_id: str) -> Event:
        snapshot = await self._store.get(EVENTS, event_id)
        if not snapshot.exists:
            raise NotFoundError("event_not_found")
        return Event.from_snapshot(snapshot)

    async def list_events(self, club_id: Optional[str] = None) -> List[Event]:
        events = parse_many(Event, await self._store.list(EVENTS))
        if club_id is not None:
            events = [event for event in events if event.club_id == club_id]
        return sorted(events, key=_sort_key)

    async def subscribe_events(
        self,
        listener: Callable[[List[Event]], Awaitable[None]],
        club_id: Optional[str] = None,
    ) -> Subscription:
        async def _load() -> List[Event]:
            return await self.list_events(club_id)

        return await self._store.subscribe([EVENTS], _load, listener)
