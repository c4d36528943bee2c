"""Domain models for users and roles."""

from __future__ import annotations

import datetime as dt
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from campus_ledger.domain.documents import Document, utcnow

USERS = "users"


class Role(str, Enum):
    STUDENT = "student"
    CLUB = "club"
    HEAD = "head"

    @classmethod
    def parse(cls, value: object) -> "Role":
        """Normalise a stored or submitted role string; unknown values raise ValueError."""
        if isinstance(value, Role):
            return value
        if value is None:
            return cls.STUDENT
        text = str(value).strip().lower()
        if not text:
            return cls.STUDENT
        return cls(text)


class Achievement(BaseModel):
    event_id: str
    tokens: int = Field(ge=0)
    date: dt.date


class User(Document):
    name: str = ""
    email: Optional[str] = None
    role: Role = Role.STUDENT
    wallet_address: Optional[str] = None
    club_id: Optional[str] = None
    tokens: int = Field(default=0, ge=0)
    rewarded_events: List[str] = Field(default_factory=list)
    achievements: List[Achievement] = Field(default_factory=list)
    # Global issuance pool, only meaningful while the user holds the head role
    total_supply: int = Field(default=0, ge=0)
    available_supply: int = Field(default=0, ge=0)
    created_at: dt.datetime = Field(default_factory=utcnow)

    @field_validator("role", mode="before")
    @classmethod
    def _normalise_role(cls, value):
        return Role.parse(value)

    @field_validator("rewarded_events")
    @classmethod
    def _unique_events(cls, value: List[str]) -> List[str]:
        if len(set(value)) != len(value):
            raise ValueError("rewarded_events must not repeat an event")
        return value

    @property
    def is_head(self) -> bool:
        return self.role is Role.HEAD

    def administers(self, club_id: str) -> bool:
        return self.role is Role.CLUB and self.club_id == club_id

    def has_been_rewarded(self, event_id: str) -> bool:
        return event_id in self.rewarded_events
