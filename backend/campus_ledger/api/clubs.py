"""Club treasury endpoints. Every mutation requires the head role."""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response, status

from campus_ledger.api.errors import to_http_error
from campus_ledger.domain.clubs import schemas
from campus_ledger.domain.clubs.service import HeadSupply, TreasuryService
from campus_ledger.domain.exceptions import LedgerError
from campus_ledger.domain.identity.schemas import HeadSupplyResponse
from campus_ledger.infra.auth import AuthenticatedUser, get_current_user

router = APIRouter(tags=["clubs"])
_service = TreasuryService()


def _supply_view(supply: HeadSupply) -> HeadSupplyResponse:
	return HeadSupplyResponse(
		head_id=supply.head_id,
		total_supply=supply.total_supply,
		available_supply=supply.available_supply,
	)


@router.post("/clubs", response_model=schemas.ClubResponse, status_code=status.HTTP_201_CREATED)
async def create_club_endpoint(
	payload: schemas.ClubCreateRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> schemas.ClubResponse:
	try:
		return schemas.ClubResponse.from_club(await _service.create_club(auth_user.id, payload.name))
	except LedgerError as exc:
		raise to_http_error(exc) from exc


@router.get("/clubs", response_model=List[schemas.ClubResponse])
async def list_clubs_endpoint() -> List[schemas.ClubResponse]:
	return [schemas.ClubResponse.from_club(club) for club in await _service.list_clubs()]


@router.get("/clubs/{club_id}", response_model=schemas.ClubResponse)
async def get_club_endpoint(club_id: str) -> schemas.ClubResponse:
	try:
		return schemas.ClubResponse.from_club(await _service.get_club(club_id))
	except LedgerError as exc:
		raise to_http_error(exc) from exc


@router.delete(
	"/clubs/{club_id}",
	status_code=status.HTTP_204_NO_CONTENT,
	response_class=Response,
	response_model=None,
)
async def delete_club_endpoint(
	club_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> None:
	try:
		await _service.delete_club(auth_user.id, club_id)
	except LedgerError as exc:
		raise to_http_error(exc) from exc


@router.post("/clubs/{club_id}/allocations", response_model=schemas.AllocationResponse)
async def allocate_endpoint(
	club_id: str,
	payload: schemas.AllocationRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> schemas.AllocationResponse:
	try:
		result = await _service.allocate(auth_user.id, club_id, payload.amount)
	except LedgerError as exc:
		raise to_http_error(exc) from exc
	return schemas.AllocationResponse(
		club=schemas.ClubResponse.from_club(result.club),
		available_supply=result.supply.available_supply,
		total_supply=result.supply.total_supply,
		entry_id=result.entry_id,
	)


@router.put("/clubs/{club_id}/allowance", response_model=schemas.ClubResponse)
async def set_allowance_endpoint(
	club_id: str,
	payload: schemas.AllowanceRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> schemas.ClubResponse:
	try:
		club = await _service.set_allowance(auth_user.id, club_id, payload.amount)
	except LedgerError as exc:
		raise to_http_error(exc) from exc
	return schemas.ClubResponse.from_club(club)


@router.put("/clubs/{club_id}/required-approvals", response_model=schemas.ClubResponse)
async def set_required_approvals_endpoint(
	club_id: str,
	payload: schemas.RequiredApprovalsRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> schemas.ClubResponse:
	try:
		club = await _service.set_required_approvals(auth_user.id, club_id, payload.required)
	except LedgerError as exc:
		raise to_http_error(exc) from exc
	return schemas.ClubResponse.from_club(club)


@router.post("/clubs/{club_id}/admins", response_model=schemas.ClubResponse)
async def add_admin_endpoint(
	club_id: str,
	payload: schemas.AdminRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> schemas.ClubResponse:
	try:
		if payload.email is not None:
			club = await _service.add_admin_by_email(auth_user.id, club_id, payload.email)
		else:
			club = await _service.add_admin(auth_user.id, club_id, payload.user_id)
	except LedgerError as exc:
		raise to_http_error(exc) from exc
	return schemas.ClubResponse.from_club(club)


@router.delete("/clubs/{club_id}/admins/{user_id}", response_model=schemas.ClubResponse)
async def remove_admin_endpoint(
	club_id: str,
	user_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> schemas.ClubResponse:
	try:
		club = await _service.remove_admin(auth_user.id, club_id, user_id)
	except LedgerError as exc:
		raise to_http_error(exc) from exc
	return schemas.ClubResponse.from_club(club)


@router.get("/clubs/{club_id}/ledger", response_model=List[schemas.LedgerEntryResponse])
async def list_ledger_endpoint(
	club_id: str,
	limit: Optional[int] = Query(default=None, ge=1, le=200),
) -> List[schemas.LedgerEntryResponse]:
	try:
		entries = await _service.list_ledger(club_id, limit)
	except LedgerError as exc:
		raise to_http_error(exc) from exc
	return [schemas.LedgerEntryResponse.model_validate(entry.model_dump()) for entry in entries]


@router.get("/head/supply", response_model=HeadSupplyResponse)
async def head_supply_endpoint() -> HeadSupplyResponse:
	try:
		return _supply_view(await _service.get_head_supply())
	except LedgerError as exc:
		raise to_http_error(exc) from exc


@router.post("/head/transfer", response_model=HeadSupplyResponse)
async def transfer_head_endpoint(
	payload: schemas.HeadTransferRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> HeadSupplyResponse:
	try:
		supply = await _service.transfer_head_role(auth_user.id, auth_user.id, payload.to_user_id)
	except LedgerError as exc:
		raise to_http_error(exc) from exc
	return _supply_view(supply)
