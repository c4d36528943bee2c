"""Pydantic schemas for the clubs and treasury API."""

from __future__ import annotations

import datetime as dt
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from campus_ledger.domain.clubs.models import Club, LedgerEntryType


class ClubCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)


class AllocationRequest(BaseModel):
    amount: int


class AllowanceRequest(BaseModel):
    amount: int


class RequiredApprovalsRequest(BaseModel):
    required: int


class AdminRequest(BaseModel):
    """Names the new admin either by user id or by profile email."""

    user_id: Optional[str] = Field(default=None, min_length=1)
    email: Optional[str] = Field(default=None, min_length=3, max_length=320)

    @model_validator(mode="after")
    def _one_target(self) -> "AdminRequest":
        if (self.user_id is None) == (self.email is None):
            raise ValueError("provide exactly one of user_id or email")
        return self


class HeadTransferRequest(BaseModel):
    to_user_id: str = Field(..., min_length=1)


class ClubResponse(BaseModel):
    id: str
    name: str
    admins: List[str]
    token_balance: int
    token_allowance: int
    required_approvals: int
    created_at: dt.datetime

    @classmethod
    def from_club(cls, club: Club) -> "ClubResponse":
        return cls.model_validate(club.model_dump(exclude={"created_by"}))


class LedgerEntryResponse(BaseModel):
    id: str
    type: LedgerEntryType
    amount: int
    actor: str
    user_id: Optional[str] = None
    event_id: Optional[str] = None
    proposal_id: Optional[str] = None
    created_at: dt.datetime


class AllocationResponse(BaseModel):
    club: ClubResponse
    available_supply: int
    total_supply: int
    entry_id: str
