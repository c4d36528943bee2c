"""Profile endpoints for the authenticated user."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from campus_ledger.api.errors import to_http_error
from campus_ledger.domain.exceptions import LedgerError
from campus_ledger.domain.identity.schemas import ProfileCreateRequest, UserResponse
from campus_ledger.domain.identity.service import UserService
from campus_ledger.infra.auth import AuthenticatedUser, get_current_user

router = APIRouter(tags=["users"])
_service = UserService()


@router.post("/me", response_model=UserResponse)
async def ensure_profile_endpoint(
	payload: ProfileCreateRequest | None = None,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> UserResponse:
	try:
		user = await _service.ensure_profile(auth_user, payload.name if payload else None)
	except LedgerError as exc:
		raise to_http_error(exc) from exc
	return UserResponse.from_user(user)


@router.get("/me", response_model=UserResponse)
async def me_endpoint(auth_user: AuthenticatedUser = Depends(get_current_user)) -> UserResponse:
	try:
		return UserResponse.from_user(await _service.get_user(auth_user.id))
	except LedgerError as exc:
		raise to_http_error(exc) from exc


@router.get("/users/{user_id}", response_model=UserResponse)
async def get_user_endpoint(user_id: str) -> UserResponse:
	try:
		return UserResponse.from_user(await _service.get_user(user_id))
	except LedgerError as exc:
		raise to_http_error(exc) from exc
