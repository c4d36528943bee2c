"""Reward proposal and voting endpoints."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Query, status

from campus_ledger.api.errors import to_http_error
from campus_ledger.domain.exceptions import LedgerError
from campus_ledger.domain.rewards.proposals import ProposalService
from campus_ledger.domain.rewards.schemas import (
	ProposalCreateRequest,
	ProposalResponse,
	VoteRequest,
	VoteResponse,
)
from campus_ledger.domain.rewards.voting import VotingService
from campus_ledger.infra.auth import AuthenticatedUser, get_current_user

router = APIRouter(tags=["rewards"])
_proposals = ProposalService()
_voting = VotingService()


@router.post("/proposals", response_model=ProposalResponse, status_code=status.HTTP_201_CREATED)
async def create_proposal_endpoint(
	payload: ProposalCreateRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> ProposalResponse:
	try:
		proposal = await _proposals.create_proposal(
			auth_user.id,
			payload.event_id,
			payload.club_id,
			payload.users,
			tokens_per_user=payload.tokens,
			required_votes=payload.required_votes,
		)
	except LedgerError as exc:
		raise to_http_error(exc) from exc
	return ProposalResponse.from_proposal(proposal)


@router.get("/proposals/{proposal_id}", response_model=ProposalResponse)
async def get_proposal_endpoint(proposal_id: str) -> ProposalResponse:
	try:
		return ProposalResponse.from_proposal(await _proposals.get_proposal(proposal_id))
	except LedgerError as exc:
		raise to_http_error(exc) from exc


@router.get("/clubs/{club_id}/proposals", response_model=List[ProposalResponse])
async def list_club_proposals_endpoint(
	club_id: str,
	pending: bool = Query(default=False),
) -> List[ProposalResponse]:
	proposals = await _proposals.list_club_proposals(club_id, pending_only=pending)
	return [ProposalResponse.from_proposal(proposal) for proposal in proposals]


@router.post("/proposals/{proposal_id}/votes", response_model=VoteResponse)
async def cast_vote_endpoint(
	proposal_id: str,
	payload: VoteRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> VoteResponse:
	try:
		result = await _voting.cast_vote(proposal_id, payload.user_id, auth_user.id)
	except LedgerError as exc:
		raise to_http_error(exc) from exc
	return VoteResponse.from_result(result)
