"""Domain models for clubs and their treasury ledger."""

from __future__ import annotations

import datetime as dt
from enum import Enum
from typing import List, Optional

from pydantic import Field, field_validator

from campus_ledger.domain.documents import Document, utcnow
from campus_ledger.infra.store import subcollection

CLUBS = "clubs"


def ledger_collection(club_id: str) -> str:
    return subcollection(CLUBS, club_id, "ledger")


class Club(Document):
    name: str
    admins: List[str] = Field(default_factory=list)
    token_balance: int = Field(default=0, ge=0)
    # Advisory soft cap on spend; never enforced by the ledger itself
    token_allowance: int = Field(default=0, ge=0)
    required_approvals: int = Field(default=1, ge=1)
    created_by: Optional[str] = None
    created_at: dt.datetime = Field(default_factory=utcnow)

    @field_validator("admins")
    @classmethod
    def _unique_admins(cls, value: List[str]) -> List[str]:
        return list(dict.fromkeys(value))


class LedgerEntryType(str, Enum):
    ALLOCATION = "allocation"
    REWARD = "reward"


class LedgerEntry(Document):
    type: LedgerEntryType
    amount: int = Field(ge=0)
    actor: str
    user_id: Optional[str] = None
    event_id: Optional[str] = None
    proposal_id: Optional[str] = None
    created_at: dt.datetime = Field(default_factory=utcnow)


META = "meta"
HEAD_POINTER_ID = "head"


class HeadPointer(Document):
    """``meta/head``: names the one user holding the head role and supply."""

    user_id: str
    updated_at: dt.datetime = Field(default_factory=utcnow)
