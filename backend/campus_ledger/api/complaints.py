"""Complaint board endpoints."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Response, status

from campus_ledger.api.errors import to_http_error
from campus_ledger.domain.complaints.schemas import ComplaintCreateRequest, ComplaintResponse
from campus_ledger.domain.complaints.service import ComplaintService
from campus_ledger.domain.exceptions import LedgerError
from campus_ledger.infra.auth import AuthenticatedUser, get_current_user

router = APIRouter(tags=["complaints"])
_service = ComplaintService()


@router.post("/complaints", response_model=ComplaintResponse, status_code=status.HTTP_201_CREATED)
async def submit_complaint_endpoint(
	payload: ComplaintCreateRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> ComplaintResponse:
	try:
		complaint = await _service.submit(auth_user.id, payload)
	except LedgerError as exc:
		raise to_http_error(exc) from exc
	return ComplaintResponse.from_complaint(complaint, auth_user.id)


@router.get("/complaints", response_model=List[ComplaintResponse])
async def list_complaints_endpoint(
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> List[ComplaintResponse]:
	try:
		complaints = await _service.list_complaints(auth_user.id)
	except LedgerError as exc:
		raise to_http_error(exc) from exc
	return [ComplaintResponse.from_complaint(item, auth_user.id) for item in complaints]


@router.post("/complaints/{complaint_id}/seen", response_model=ComplaintResponse)
async def mark_seen_endpoint(
	complaint_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> ComplaintResponse:
	try:
		complaint = await _service.mark_seen(auth_user.id, complaint_id)
	except LedgerError as exc:
		raise to_http_error(exc) from exc
	return ComplaintResponse.from_complaint(complaint, auth_user.id)


@router.delete(
	"/complaints/{complaint_id}",
	status_code=status.HTTP_204_NO_CONTENT,
	response_class=Response,
	response_model=None,
)
async def close_complaint_endpoint(
	complaint_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> None:
	try:
		await _service.close(auth_user.id, complaint_id)
	except LedgerError as exc:
		raise to_http_error(exc) from exc
