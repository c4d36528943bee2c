"""Voting and settlement for reward proposals.

Each candidate on a proposal moves Pending -> Voting -> Approved. The vote
that lifts a candidate to ``required_votes`` approves them and pays the
proposal's token amount, unless the candidate's ``rewarded_events`` already
holds the event. That membership check is what keeps payment exactly-once
across transaction retries and across several proposals for one event.

The whole read-check-write sequence is one store transaction: the proposal,
the candidate and the club are read first, then the vote, approval, token
increment, achievement and club ledger entry are written together.
"""

from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from campus_ledger.domain.clubs.models import CLUBS, Club, LedgerEntry, LedgerEntryType, ledger_collection
from campus_ledger.domain.events.service import utc_today
from campus_ledger.domain.exceptions import UnauthorizedError, ValidationError
from campus_ledger.domain.identity.models import Achievement
from campus_ledger.domain.identity.service import read_user, write_user
from campus_ledger.domain.rewards.models import PROPOSALS, RewardProposal, VoteResult, VoteStatus
from campus_ledger.infra.store import DocumentStore, Transaction, document_store, new_id
from campus_ledger.obs import audit, metrics

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class _Settlement:
    candidate_id: str
    event_id: str
    club_id: str
    tokens: int
    paid: bool


class VotingService:
    def __init__(
        self,
        store: DocumentStore | None = None,
        *,
        today: Callable[[], dt.date] = utc_today,
    ) -> None:
        self._store = store or document_store
        self._today = today

    async def cast_vote(self, proposal_id: str, candidate_user_id: str, admin_id: str) -> VoteResult:
        today = self._today()
        settlement: Optional[_Settlement] = None

        async def _txn(txn: Transaction) -> VoteResult:
            nonlocal settlement
            settlement = None

            proposal = RewardProposal.from_snapshot(
                await txn.require(PROPOSALS, proposal_id, "proposal_not_found")
            )
            candidate = await read_user(txn, candidate_user_id)
            club = Club.from_snapshot(await txn.require(CLUBS, proposal.club_id, "club_not_found"))

            if candidate_user_id not in proposal.users:
                raise ValidationError("not_a_candidate")
            if admin_id not in club.admins:
                raise UnauthorizedError("not_club_admin")

            count = proposal.vote_count(candidate_user_id)
            if proposal.is_approved(candidate_user_id):
                return VoteResult(VoteStatus.ALREADY_APPROVED, approved=True, vote_count=count)
            if proposal.has_voted(candidate_user_id, admin_id):
                return VoteResult(
                    VoteStatus.ALREADY_VOTED,
                    approved=count >= proposal.required_votes,
                    vote_count=count,
                )

            proposal.votes.setdefault(candidate_user_id, {})[admin_id] = True
            count = proposal.vote_count(candidate_user_id)
            approved = count >= proposal.required_votes
            paid = False
            if approved:
                proposal.approved_users.append(candidate_user_id)
                if not candidate.has_been_rewarded(proposal.event_id):
                    candidate.tokens += proposal.tokens
                    candidate.rewarded_events.append(proposal.event_id)
                    candidate.achievements.append(
                        Achievement(event_id=proposal.event_id, tokens=proposal.tokens, date=today)
                    )
                    entry = LedgerEntry(
                        id=new_id(),
                        type=LedgerEntryType.REWARD,
                        amount=proposal.tokens,
                        actor=admin_id,
                        user_id=candidate_user_id,
                        event_id=proposal.event_id,
                        proposal_id=proposal.id,
                    )
                    write_user(txn, candidate)
                    txn.set(ledger_collection(proposal.club_id), entry.id, entry.to_document())
                    paid = True
                settlement = _Settlement(
                    candidate_user_id, proposal.event_id, proposal.club_id, proposal.tokens, paid
                )
            txn.set(PROPOSALS, proposal.id, proposal.to_document())
            return VoteResult(VoteStatus.OK, approved=approved, vote_count=count, settled=paid)

        result = await self._store.run_transaction(_txn, name="cast_vote")
        metrics.inc_vote(result.status.value)
        if settlement is not None:
            metrics.record_settlement(settlement.paid, settlement.tokens)
            audit.record(
                "reward.settled" if settlement.paid else "reward.approved_already_paid",
                actor_id=admin_id,
                proposal_id=proposal_id,
                candidate_id=settlement.candidate_id,
                event_id=settlement.event_id,
                club_id=settlement.club_id,
                tokens=settlement.tokens if settlement.paid else 0,
            )
        elif result.status is not VoteStatus.OK:
            logger.info(
                "vote_ignored",
                extra={"proposal_id": proposal_id, "candidate_id": candidate_user_id, "status": result.status.value},
            )
        return result
