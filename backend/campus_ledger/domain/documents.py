"""Base model for documents read from and written to the store."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Type, TypeVar

import pydantic
from pydantic import BaseModel, ConfigDict

from campus_ledger.domain.exceptions import MalformedDocumentError
from campus_ledger.infra.store import Snapshot

logger = logging.getLogger(__name__)

D = TypeVar("D", bound="Document")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Document(BaseModel):
    """A stored record. The id is the document key and is not stored in the body."""

    model_config = ConfigDict(extra="ignore")

    id: str

    @classmethod
    def from_snapshot(cls: Type[D], snapshot: Snapshot) -> D:
        if snapshot.data is None:
            raise MalformedDocumentError(f"missing_document:{snapshot.collection}/{snapshot.id}")
        try:
            return cls.model_validate({**snapshot.data, "id": snapshot.id})
        except pydantic.ValidationError as exc:
            raise MalformedDocumentError(
                f"malformed_document:{snapshot.collection}/{snapshot.id}"
            ) from exc

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude={"id"})


def parse_many(cls: Type[D], snapshots: Iterable[Snapshot]) -> List[D]:
    """Validate a listing, skipping documents that do not match ``cls``."""
    items: List[D] = []
    for snapshot in snapshots:
        if not snapshot.exists:
            continue
        try:
            items.append(cls.from_snapshot(snapshot))
        except MalformedDocumentError:
            logger.warning(
                "skipping_malformed_document",
                extra={"collection": snapshot.collection, "doc_id": snapshot.id},
            )
    return items
