"""Pydantic schemas for the reward proposals API."""

from __future__ import annotations

import datetime as dt
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from campus_ledger.domain.rewards.models import CandidateState, RewardProposal, VoteResult, VoteStatus


class ProposalCreateRequest(BaseModel):
    event_id: str
    club_id: str
    users: List[str] = Field(default_factory=list)
    tokens: Optional[int] = None
    required_votes: Optional[int] = None


class CandidateView(BaseModel):
    user_id: str
    state: CandidateState
    vote_count: int
    voters: List[str]


class ProposalResponse(BaseModel):
    id: str
    event_id: str
    club_id: str
    tokens: int
    required_votes: int
    approved_users: List[str]
    votes: Dict[str, Dict[str, bool]]
    candidates: List[CandidateView]
    resolved: bool
    created_at: dt.datetime

    @classmethod
    def from_proposal(cls, proposal: RewardProposal) -> "ProposalResponse":
        return cls(
            id=proposal.id,
            event_id=proposal.event_id,
            club_id=proposal.club_id,
            tokens=proposal.tokens,
            required_votes=proposal.required_votes,
            approved_users=proposal.approved_users,
            votes=proposal.votes,
            candidates=[
                CandidateView(
                    user_id=candidate,
                    state=proposal.candidate_state(candidate),
                    vote_count=proposal.vote_count(candidate),
                    voters=sorted(proposal.votes.get(candidate, {})),
                )
                for candidate in proposal.users
            ],
            resolved=proposal.resolved,
            created_at=proposal.created_at,
        )


class VoteRequest(BaseModel):
    user_id: str


class VoteResponse(BaseModel):
    status: VoteStatus
    approved: bool
    vote_count: int

    @classmethod
    def from_result(cls, result: VoteResult) -> "VoteResponse":
        return cls(status=result.status, approved=result.approved, vote_count=result.vote_count)
