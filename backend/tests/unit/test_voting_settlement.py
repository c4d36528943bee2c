import asyncio

import pytest
import pytest_asyncio

from campus_ledger.domain.clubs.models import LedgerEntryType
from campus_ledger.domain.clubs.service import TreasuryService
from campus_ledger.domain.exceptions import NotFoundError, UnauthorizedError, ValidationError
from campus_ledger.domain.identity.service import UserService
from campus_ledger.domain.rewards.models import CandidateState, VoteStatus
from campus_ledger.domain.rewards.proposals import ProposalService
from campus_ledger.domain.rewards.voting import VotingService
from campus_ledger.settings import settings


@pytest.fixture
def voting(today):
	return VotingService(today=today)


@pytest.fixture
def proposals(today):
	return ProposalService(today=today)


@pytest_asyncio.fixture
async def setup(seed):
	await seed.club("chess", admins=["xavier", "yara", "zoe"], required_approvals=2, token_balance=100)
	await seed.event("ev1", club_id="chess", tokens=40)
	await seed.user("ursula", tokens=5)
	await seed.user("victor")


async def _balance(user_id):
	return (await UserService().get_user(user_id)).tokens


@pytest.mark.asyncio
async def test_two_admin_scenario_pays_exactly_once(voting, proposals, setup, today):
	proposal = await proposals.create_proposal("xavier", "ev1", "chess", ["ursula"])

	first = await voting.cast_vote(proposal.id, "ursula", "xavier")
	assert (first.status, first.approved, first.vote_count) == (VoteStatus.OK, False, 1)
	assert await _balance("ursula") == 5
	assert (await proposals.get_proposal(proposal.id)).candidate_state("ursula") is CandidateState.VOTING

	second = await voting.cast_vote(proposal.id, "ursula", "yara")
	assert (second.status, second.approved, second.vote_count) == (VoteStatus.OK, True, 2)
	assert second.settled is True

	user = await UserService().get_user("ursula")
	assert user.tokens == 45
	assert user.rewarded_events == ["ev1"]
	assert [(a.event_id, a.tokens, a.date) for a in user.achievements] == [("ev1", 40, today())]
	stored = await proposals.get_proposal(proposal.id)
	assert stored.approved_users == ["ursula"]
	assert stored.candidate_state("ursula") is CandidateState.APPROVED

	third = await voting.cast_vote(proposal.id, "ursula", "zoe")
	assert third.status is VoteStatus.ALREADY_APPROVED
	assert await _balance("ursula") == 45


@pytest.mark.asyncio
async def test_same_admin_voting_twice_is_reported_not_counted(voting, proposals, setup):
	proposal = await proposals.create_proposal("xavier", "ev1", "chess", ["ursula"])

	await voting.cast_vote(proposal.id, "ursula", "xavier")
	again = await voting.cast_vote(proposal.id, "ursula", "xavier")

	assert again.status is VoteStatus.ALREADY_VOTED
	assert again.vote_count == 1
	assert (await proposals.get_proposal(proposal.id)).vote_count("ursula") == 1


@pytest.mark.asyncio
async def test_concurrent_duplicate_votes_count_once(voting, proposals, setup):
	settings.store_max_attempts = 10
	proposal = await proposals.create_proposal("xavier", "ev1", "chess", ["ursula"])

	results = await asyncio.gather(
		voting.cast_vote(proposal.id, "ursula", "xavier"),
		voting.cast_vote(proposal.id, "ursula", "xavier"),
	)

	assert sorted(result.status.value for result in results) == ["already_voted", "ok"]
	assert (await proposals.get_proposal(proposal.id)).votes == {"ursula": {"xavier": True}}


@pytest.mark.asyncio
async def test_concurrent_threshold_votes_settle_once(voting, proposals, setup):
	settings.store_max_attempts = 10
	proposal = await proposals.create_proposal("xavier", "ev1", "chess", ["ursula"])
	await voting.cast_vote(proposal.id, "ursula", "xavier")

	results = await asyncio.gather(
		voting.cast_vote(proposal.id, "ursula", "yara"),
		voting.cast_vote(proposal.id, "ursula", "zoe"),
	)

	statuses = sorted(result.status.value for result in results)
	assert statuses == ["already_approved", "ok"]
	assert await _balance("ursula") == 45
	ledger = await TreasuryService().list_ledger("chess")
	assert [entry.type for entry in ledger] == [LedgerEntryType.REWARD]


@pytest.mark.asyncio
async def test_second_proposal_for_same_event_does_not_double_pay(voting, proposals, setup):
	first = await proposals.create_proposal("xavier", "ev1", "chess", ["ursula"], required_votes=1)
	second = await proposals.create_proposal("yara", "ev1", "chess", ["ursula"], required_votes=1)

	paid = await voting.cast_vote(first.id, "ursula", "xavier")
	unpaid = await voting.cast_vote(second.id, "ursula", "yara")

	assert paid.settled and paid.approved
	assert unpaid.status is VoteStatus.OK and unpaid.approved and not unpaid.settled
	user = await UserService().get_user("ursula")
	assert user.tokens == 45
	assert user.rewarded_events == ["ev1"]
	assert len(user.achievements) == 1
	assert (await proposals.get_proposal(second.id)).approved_users == ["ursula"]


@pytest.mark.asyncio
async def test_candidates_settle_independently(voting, proposals, setup):
	proposal = await proposals.create_proposal("xavier", "ev1", "chess", ["ursula", "victor"])

	await voting.cast_vote(proposal.id, "ursula", "xavier")
	await voting.cast_vote(proposal.id, "ursula", "yara")
	stored = await proposals.get_proposal(proposal.id)

	assert stored.candidate_state("ursula") is CandidateState.APPROVED
	assert stored.candidate_state("victor") is CandidateState.PENDING
	assert not stored.resolved
	assert await _balance("victor") == 0


@pytest.mark.asyncio
async def test_settlement_writes_reward_ledger_entry_without_moving_club_balance(voting, proposals, setup):
	proposal = await proposals.create_proposal("xavier", "ev1", "chess", ["ursula"], required_votes=1)

	await voting.cast_vote(proposal.id, "ursula", "xavier")

	treasury = TreasuryService()
	(entry,) = await treasury.list_ledger("chess")
	assert entry.type is LedgerEntryType.REWARD
	assert (entry.amount, entry.user_id, entry.event_id, entry.actor) == (40, "ursula", "ev1", "xavier")
	assert (await treasury.get_club("chess")).token_balance == 100


@pytest.mark.asyncio
async def test_vote_preconditions(voting, proposals, setup, seed):
	await seed.club("drama", admins=["dan"])
	proposal = await proposals.create_proposal("xavier", "ev1", "chess", ["ursula"])

	with pytest.raises(NotFoundError):
		await voting.cast_vote("ghost", "ursula", "xavier")
	with pytest.raises(NotFoundError):
		await voting.cast_vote(proposal.id, "nobody", "xavier")
	with pytest.raises(ValidationError):
		await voting.cast_vote(proposal.id, "victor", "xavier")
	with pytest.raises(UnauthorizedError):
		await voting.cast_vote(proposal.id, "ursula", "dan")

	assert (await proposals.get_proposal(proposal.id)).votes == {}


@pytest.mark.asyncio
async def test_threshold_comes_from_proposal_document(voting, proposals, setup, seed):
	proposal = await proposals.create_proposal("xavier", "ev1", "chess", ["ursula"])
	await seed.head("hana")
	await TreasuryService().set_required_approvals("hana", "chess", 1)

	result = await voting.cast_vote(proposal.id, "ursula", "xavier")

	assert result.approved is False
	assert result.vote_count == 1
