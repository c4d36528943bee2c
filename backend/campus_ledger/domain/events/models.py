"""Domain models for events."""

from __future__ import annotations

import datetime as dt
from enum import Enum
from typing import List, Optional

from pydantic import Field, field_validator

from campus_ledger.domain.documents import Document, utcnow

EVENTS = "events"


class EventStatus(str, Enum):
    UPCOMING = "upcoming"
    ONGOING = "ongoing"
    COMPLETED = "completed"


def compute_status(
    event_date: dt.date, today: dt.date, stored: Optional[EventStatus] = None
) -> EventStatus:
    """Lifecycle status from the date; a stored "completed" mark always wins."""
    if stored is EventStatus.COMPLETED:
        return EventStatus.COMPLETED
    if event_date > today:
        return EventStatus.UPCOMING
    if event_date == today:
        return EventStatus.ONGOING
    return EventStatus.COMPLETED


class Event(Document):
    name: str
    description: str = ""
    date: dt.date
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    venue: str = ""
    # 0 means unlimited
    capacity: int = Field(default=0, ge=0)
    tokens: int = Field(default=0, ge=0)
    club_id: Optional[str] = None
    participants: List[str] = Field(default_factory=list)
    starred_by: List[str] = Field(default_factory=list)
    status: Optional[EventStatus] = None
    created_by: Optional[str] = None
    created_at: dt.datetime = Field(default_factory=utcnow)

    @field_validator("capacity", "tokens", mode="before")
    @classmethod
    def _missing_as_zero(cls, value):
        return 0 if value is None else value

    @field_validator("status", mode="before")
    @classmethod
    def _only_completed_is_stored(cls, value):
        # Only the forward-only "completed" mark is authoritative when stored.
        if value in (None, ""):
            return None
        text = str(value).strip().lower()
        return EventStatus.COMPLETED if text == EventStatus.COMPLETED.value else None

    @property
    def unlimited(self) -> bool:
        return self.capacity == 0

    def is_full(self) -> bool:
        return not self.unlimited and len(self.participants) >= self.capacity

    def status_on(self, today: dt.date) -> EventStatus:
        return compute_status(self.date, today, self.status)
