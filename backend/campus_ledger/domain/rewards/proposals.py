"""Reward proposals: bind candidates of a completed event to a token amount."""

from __future__ import annotations

import datetime as dt
import logging
from typing import Awaitable, Callable, Iterable, List, Optional

from campus_ledger.domain.clubs.models import CLUBS, Club
from campus_ledger.domain.documents import parse_many
from campus_ledger.domain.events.models import EVENTS, Event, EventStatus
from campus_ledger.domain.events.service import utc_today
from campus_ledger.domain.exceptions import NotFoundError, UnauthorizedError, ValidationError
from campus_ledger.domain.rewards.models import PROPOSALS, RewardProposal
from campus_ledger.infra.store import (
    DocumentStore,
    Subscription,
    Transaction,
    document_store,
    new_id,
)
from campus_ledger.obs import audit, metrics

logger = logging.getLogger(__name__)


def _clean_candidates(candidate_user_ids: Iterable[str]) -> List[str]:
    cleaned = (str(uid).strip() for uid in candidate_user_ids or () if uid is not None)
    return list(dict.fromkeys(uid for uid in cleaned if uid))


class ProposalService:
    def __init__(
        self,
        store: DocumentStore | None = None,
        *,
        today: Callable[[], dt.date] = utc_today,
    ) -> None:
        self._store = store or document_store
        self._today = today

    async def create_proposal(
        self,
        actor_id: str,
        event_id: str,
        club_id: str,
        candidate_user_ids: Iterable[str],
        tokens_per_user: Optional[int] = None,
        required_votes: Optional[int] = None,
    ) -> RewardProposal:
        """Create a proposal; token amount and threshold are snapshotted here."""
        candidates = _clean_candidates(candidate_user_ids)
        if not candidates:
            raise ValidationError("candidates_required")
        if tokens_per_user is not None and tokens_per_user < 0:
            raise ValidationError("tokens_negative")
        if required_votes is not None and required_votes < 1:
            raise ValidationError("required_votes_must_be_positive")
        today = self._today()

        async def _txn(txn: Transaction) -> RewardProposal:
            event = Event.from_snapshot(await txn.require(EVENTS, event_id, "event_not_found"))
            club = Club.from_snapshot(await txn.require(CLUBS, club_id, "club_not_found"))
            if actor_id not in club.admins:
                raise UnauthorizedError("not_club_admin")
            if event.club_id != club_id:
                raise ValidationError("event_club_mismatch")
            if event.status_on(today) is not EventStatus.COMPLETED:
                raise ValidationError("event_not_completed")
            proposal = RewardProposal(
                id=new_id(),
                event_id=event_id,
                club_id=club_id,
                users=candidates,
                tokens=event.tokens if tokens_per_user is None else tokens_per_user,
                required_votes=required_votes or club.required_approvals,
                created_by=actor_id,
            )
            txn.set(PROPOSALS, proposal.id, proposal.to_document())
            return proposal

        proposal = await self._store.run_transaction(_txn, name="create_proposal")
        metrics.inc_proposal_created()
        audit.record(
            "proposal.created",
            actor_id=actor_id,
            proposal_id=proposal.id,
            event_id=event_id,
            club_id=club_id,
            candidates=len(candidates),
            tokens=proposal.tokens,
            required_votes=proposal.required_votes,
        )
        return proposal

    async def get_proposal(self, proposal_id: str) -> RewardProposal:
        snapshot = await self._store.get(PROPOSALS, proposal_id)
        if not snapshot.exists:
            raise NotFoundError("proposal_not_found")
        return RewardProposal.from_snapshot(snapshot)

    async def list_club_proposals(self, club_id: str, pending_only: bool = False) -> List[RewardProposal]:
        proposals = [
            proposal
            for proposal in parse_many(RewardProposal, await self._store.list(PROPOSALS))
            if proposal.club_id == club_id and not (pending_only and proposal.resolved)
        ]
        return sorted(proposals, key=lambda proposal: (proposal.created_at, proposal.id), reverse=True)

    async def subscribe_club_proposals(
        self,
        club_id: str,
        listener: Callable[[List[RewardProposal]], Awaitable[None]],
        pending_only: bool = True,
    ) -> Subscription:
        async def _load() -> List[RewardProposal]:
            return await self.list_club_proposals(club_id, pending_only=pending_only)

        return await self._store.subscribe([PROPOSALS], _load, listener)
