"""Domain models for reward proposals and votes."""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

from pydantic import Field, field_validator, model_validator

from campus_ledger.domain.documents import Document, utcnow

PROPOSALS = "rewardProposals"


class CandidateState(str, Enum):
    PENDING = "pending"
    VOTING = "voting"
    APPROVED = "approved"


class VoteStatus(str, Enum):
    OK = "ok"
    ALREADY_VOTED = "already_voted"
    ALREADY_APPROVED = "already_approved"


@dataclass(slots=True, frozen=True)
class VoteResult:
    status: VoteStatus
    approved: bool
    vote_count: int
    settled: bool = False


class RewardProposal(Document):
    event_id: str
    club_id: str
    users: List[str] = Field(min_length=1)
    tokens: int = Field(ge=0)
    # candidate id -> {admin id: True}
    votes: Dict[str, Dict[str, bool]] = Field(default_factory=dict)
    approved_users: List[str] = Field(default_factory=list)
    required_votes: int = Field(default=1, ge=1)
    created_by: Optional[str] = None
    created_at: dt.datetime = Field(default_factory=utcnow)

    @field_validator("users", "approved_users")
    @classmethod
    def _dedupe(cls, value: List[str]) -> List[str]:
        return list(dict.fromkeys(value))

    @model_validator(mode="after")
    def _approved_are_candidates(self) -> "RewardProposal":
        if not set(self.approved_users) <= set(self.users):
            raise ValueError("approved_users must be candidates")
        return self

    def vote_count(self, candidate_id: str) -> int:
        return len(self.votes.get(candidate_id, {}))

    def has_voted(self, candidate_id: str, admin_id: str) -> bool:
        return admin_id in self.votes.get(candidate_id, {})

    def is_approved(self, candidate_id: str) -> bool:
        return candidate_id in self.approved_users

    def candidate_state(self, candidate_id: str) -> CandidateState:
        if self.is_approved(candidate_id):
            return CandidateState.APPROVED
        if self.vote_count(candidate_id) > 0:
            return CandidateState.VOTING
        return CandidateState.PENDING

    @property
    def resolved(self) -> bool:
        return all(self.is_approved(candidate) for candidate in self.users)
