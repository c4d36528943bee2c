"""Pydantic schemas for the events API."""

from __future__ import annotations

import datetime as dt
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from campus_ledger.domain.events.models import Event, EventStatus


class EventCreateRequest(BaseModel):
    name: str = Field(..., max_length=200)
    date: dt.date
    description: str = Field(default="", max_length=4000)
    start_time: Optional[str] = Field(default=None, max_length=16)
    end_time: Optional[str] = Field(default=None, max_length=16)
    venue: str = Field(default="", max_length=200)
    capacity: int = 0
    tokens: int = 0
    club_id: Optional[str] = None

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        return value.strip()


class EventResponse(BaseModel):
    id: str
    name: str
    description: str
    date: dt.date
    start_time: Optional[str]
    end_time: Optional[str]
    venue: str
    capacity: int
    tokens: int
    club_id: Optional[str]
    participants: List[str]
    starred_by: List[str]
    status: EventStatus
    created_at: dt.datetime

    @classmethod
    def from_event(cls, event: Event, today: dt.date) -> "EventResponse":
        data = event.model_dump(exclude={"status", "created_by"})
        return cls.model_validate({**data, "status": event.status_on(today)})


class RegistrationResponse(BaseModel):
    event_id: str
    user_id: str
    registered: bool
    participant_count: int


class StarResponse(BaseModel):
    event_id: str
    user_id: str
    starred: bool
