"""Event API endpoints: creation, registration, stars and completion."""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from campus_ledger.api.errors import to_http_error
from campus_ledger.domain.events.schemas import (
	EventCreateRequest,
	EventResponse,
	RegistrationResponse,
	StarResponse,
)
from campus_ledger.domain.events.service import EventService
from campus_ledger.domain.exceptions import LedgerError
from campus_ledger.infra.auth import AuthenticatedUser, get_current_user

router = APIRouter(tags=["events"])
_service = EventService()


def _view(event) -> EventResponse:
	return EventResponse.from_event(event, _service.today())


@router.post("/events", response_model=EventResponse, status_code=status.HTTP_201_CREATED)
async def create_event_endpoint(
	payload: EventCreateRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> EventResponse:
	try:
		return _view(await _service.create_event(auth_user.id, payload))
	except LedgerError as exc:
		raise to_http_error(exc) from exc


@router.get("/events", response_model=List[EventResponse])
async def list_events_endpoint(club_id: Optional[str] = Query(default=None)) -> List[EventResponse]:
	return [_view(event) for event in await _service.list_events(club_id)]


@router.get("/events/{event_id}", response_model=EventResponse)
async def get_event_endpoint(event_id: str) -> EventResponse:
	try:
		return _view(await _service.get_event(event_id))
	except LedgerError as exc:
		raise to_http_error(exc) from exc


@router.post("/events/{event_id}/registration", response_model=RegistrationResponse)
async def register_endpoint(
	event_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> RegistrationResponse:
	try:
		event = await _service.register(event_id, auth_user.id)
	except LedgerError as exc:
		raise to_http_error(exc) from exc
	return RegistrationResponse(
		event_id=event_id,
		user_id=auth_user.id,
		registered=True,
		participant_count=len(event.participants),
	)


@router.delete("/events/{event_id}/registration", response_model=RegistrationResponse)
async def unregister_endpoint(
	event_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> RegistrationResponse:
	try:
		event = await _service.unregister(event_id, auth_user.id)
	except LedgerError as exc:
		raise to_http_error(exc) from exc
	return RegistrationResponse(
		event_id=event_id,
		user_id=auth_user.id,
		registered=False,
		participant_count=len(event.participants) if event is not None else 0,
	)


@router.put("/events/{event_id}/star", response_model=StarResponse)
async def add_star_endpoint(
	event_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> StarResponse:
	try:
		await _service.add_star(event_id, auth_user.id)
	except LedgerError as exc:
		raise to_http_error(exc) from exc
	return StarResponse(event_id=event_id, user_id=auth_user.id, starred=True)


@router.delete("/events/{event_id}/star", response_model=StarResponse)
async def remove_star_endpoint(
	event_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> StarResponse:
	try:
		await _service.remove_star(event_id, auth_user.id)
	except LedgerError as exc:
		raise to_http_error(exc) from exc
	return StarResponse(event_id=event_id, user_id=auth_user.id, starred=False)


@router.post("/events/{event_id}/complete", response_model=EventResponse)
async def mark_completed_endpoint(
	event_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> EventResponse:
	try:
		return _view(await _service.mark_completed(auth_user.id, event_id))
	except LedgerError as exc:
		raise to_http_error(exc) from exc
