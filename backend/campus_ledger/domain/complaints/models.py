"""Domain models for complaints."""

from __future__ import annotations

import datetime as dt
from typing import List, Optional

from pydantic import Field

from campus_ledger.domain.documents import Document, utcnow

COMPLAINTS = "complaints"


class Complaint(Document):
    user_id: str
    # Author name and email are copied at submission time
    user_name: str = ""
    user_email: Optional[str] = None
    subject: str = ""
    message: str
    category: str = "general"
    seen_by: List[str] = Field(default_factory=list)
    created_at: dt.datetime = Field(default_factory=utcnow)

    def seen(self, user_id: str) -> bool:
        return user_id in self.seen_by
