"""Pydantic schemas for the complaints API."""

from __future__ import annotations

import datetime as dt
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from campus_ledger.domain.complaints.models import Complaint


class ComplaintCreateRequest(BaseModel):
    subject: str = Field(default="", max_length=200)
    message: str = Field(..., max_length=4000)
    category: str = Field(default="general", max_length=50)

    @field_validator("subject", "message", "category")
    @classmethod
    def _strip(cls, value: str) -> str:
        return value.strip()


class ComplaintResponse(BaseModel):
    id: str
    user_id: str
    user_name: str
    user_email: Optional[str]
    subject: str
    message: str
    category: str
    seen: bool
    seen_count: int
    created_at: dt.datetime

    @classmethod
    def from_complaint(cls, complaint: Complaint, viewer_id: str) -> "ComplaintResponse":
        return cls(
            **complaint.model_dump(exclude={"seen_by"}),
            seen=complaint.seen(viewer_id),
            seen_count=len(complaint.seen_by),
        )
