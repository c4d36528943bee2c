"""Pydantic schemas for the users API."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from campus_ledger.domain.identity.models import Achievement, Role, User


class ProfileCreateRequest(BaseModel):
    name: Optional[str] = Field(default=None, max_length=120)


class UserResponse(BaseModel):
    id: str
    name: str
    email: Optional[str]
    role: Role
    wallet_address: Optional[str]
    club_id: Optional[str]
    tokens: int
    rewarded_events: List[str]
    achievements: List[Achievement]
    created_at: datetime

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls.model_validate(user.model_dump(exclude={"total_supply", "available_supply"}))


class HeadSupplyResponse(BaseModel):
    head_id: str
    total_supply: int
    available_supply: int
