"""Complaint board.

Any signed-in user can file a complaint. Only club admins read the board,
mark entries seen and close them; closing removes the complaint.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, List

from campus_ledger.domain.complaints.models import COMPLAINTS, Complaint
from campus_ledger.domain.complaints.schemas import ComplaintCreateRequest
from campus_ledger.domain.documents import parse_many
from campus_ledger.domain.exceptions import UnauthorizedError, ValidationError
from campus_ledger.domain.identity.models import Role, User
from campus_ledger.domain.identity.service import UserService, read_user
from campus_ledger.infra.store import (
    DocumentStore,
    Subscription,
    Transaction,
    document_store,
    new_id,
)
from campus_ledger.obs import audit, metrics

logger = logging.getLogger(__name__)


def _check_reviewer(user: User) -> None:
    if user.role is not Role.CLUB:
        raise UnauthorizedError("club_admin_required")


async def _read_complaint(txn: Transaction, complaint_id: str) -> Complaint:
    return Complaint.from_snapshot(await txn.require(COMPLAINTS, complaint_id, "complaint_not_found"))


class ComplaintService:
    def __init__(self, store: DocumentStore | None = None) -> None:
        self._store = store or document_store
        self._users = UserService(self._store)

    async def submit(self, author_id: str, payload: ComplaintCreateRequest) -> Complaint:
        if not payload.message:
            raise ValidationError("message_required")

        async def _txn(txn: Transaction) -> Complaint:
            author = await read_user(txn, author_id)
            complaint = Complaint(
                id=new_id(),
                user_id=author_id,
                user_name=author.name,
                user_email=author.email,
                subject=payload.subject,
                message=payload.message,
                category=payload.category or "general",
            )
            txn.set(COMPLAINTS, complaint.id, complaint.to_document())
            return complaint

        complaint = await self._store.run_transaction(_txn, name="submit_complaint")
        metrics.inc_complaint("submitted")
        logger.info("complaint_submitted", extra={"complaint_id": complaint.id, "category": complaint.category})
        return complaint

    async def _require_reviewer(self, actor_id: str) -> None:
        _check_reviewer(await self._users.get_user(actor_id))

    async def _load(self) -> List[Complaint]:
        complaints = parse_many(Complaint, await self._store.list(COMPLAINTS))
        return sorted(complaints, key=lambda item: (item.created_at, item.id), reverse=True)

    async def list_complaints(self, actor_id: str) -> List[Complaint]:
        """Newest first."""
        await self._require_reviewer(actor_id)
        return await self._load()

    async def mark_seen(self, actor_id: str, complaint_id: str) -> Complaint:
        async def _txn(txn: Transaction) -> Complaint:
            _check_reviewer(await read_user(txn, actor_id))
            complaint = await _read_complaint(txn, complaint_id)
            if not complaint.seen(actor_id):
                complaint.seen_by.append(actor_id)
                txn.set(COMPLAINTS, complaint.id, complaint.to_document())
            return complaint

        complaint = await self._store.run_transaction(_txn, name="mark_complaint_seen")
        metrics.inc_complaint("seen")
        return complaint

    async def close(self, actor_id: str, complaint_id: str) -> None:
        async def _txn(txn: Transaction) -> Complaint:
            _check_reviewer(await read_user(txn, actor_id))
            complaint = await _read_complaint(txn, complaint_id)
            txn.delete(COMPLAINTS, complaint_id)
            return complaint

        complaint = await self._store.run_transaction(_txn, name="close_complaint")
        metrics.inc_complaint("closed")
        audit.record(
            "complaint.closed",
            actor_id=actor_id,
            complaint_id=complaint_id,
            author_id=complaint.user_id,
        )

    async def subscribe_complaints(
        self, actor_id: str, listener: Callable[[List[Complaint]], Awaitable[None]]
    ) -> Subscription:
        await self._require_reviewer(actor_id)
        return await self._store.subscribe([COMPLAINTS], self._load, listener)
