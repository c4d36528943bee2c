import asyncio

import pytest

from campus_ledger.bootstrap_head import bootstrap
from campus_ledger.domain.clubs.models import LedgerEntryType
from campus_ledger.domain.clubs import service as treasury_service
from campus_ledger.domain.clubs.service import HeadSupply, TreasuryService
from campus_ledger.domain.exceptions import (
	LimitExceededError,
	NotFoundError,
	UnauthorizedError,
	ValidationError,
)
from campus_ledger.domain.identity.models import Role
from campus_ledger.domain.identity.service import UserService


@pytest.fixture
def treasury():
	return TreasuryService()


@pytest.fixture
def users():
	return UserService()


@pytest.mark.asyncio
async def test_allocate_moves_supply_to_club_and_records_entry(treasury, seed):
	await seed.head("hana", supply=500)
	await seed.club("chess")

	result = await treasury.allocate("hana", "chess", 100)

	assert result.supply.available_supply == 400
	assert result.supply.total_supply == 500
	assert result.club.token_balance == 100
	assert (await treasury.get_club("chess")).token_balance == 100
	assert (await treasury.get_head_supply()).available_supply == 400
	(entry,) = await treasury.list_ledger("chess")
	assert (entry.type, entry.amount, entry.actor) == (LedgerEntryType.ALLOCATION, 100, "hana")
	assert entry.id == result.entry_id


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", [0, -5, 501])
async def test_invalid_allocation_changes_nothing(treasury, seed, amount):
	await seed.head("hana", supply=500)
	await seed.club("chess", token_balance=7)

	with pytest.raises(ValidationError):
		await treasury.allocate("hana", "chess", amount)

	assert (await treasury.get_head_supply()).available_supply == 500
	assert (await treasury.get_club("chess")).token_balance == 7
	assert await treasury.list_ledger("chess") == []


@pytest.mark.asyncio
async def test_treasury_mutations_require_head(treasury, seed):
	await seed.head("hana")
	await seed.club("chess", admins=["alice"])

	with pytest.raises(UnauthorizedError):
		await treasury.allocate("alice", "chess", 10)
	with pytest.raises(UnauthorizedError):
		await treasury.set_allowance("alice", "chess", 10)
	with pytest.raises(UnauthorizedError):
		await treasury.create_club("alice", "Rogue")
	with pytest.raises(NotFoundError):
		await treasury.allocate("hana", "ghost", 10)


@pytest.mark.asyncio
async def test_allowance_and_threshold_validation(treasury, seed):
	await seed.head("hana")
	await seed.club("chess")

	assert (await treasury.set_allowance("hana", "chess", 0)).token_allowance == 0
	assert (await treasury.set_allowance("hana", "chess", 250)).token_allowance == 250
	assert (await treasury.set_required_approvals("hana", "chess", 3)).required_approvals == 3

	with pytest.raises(ValidationError):
		await treasury.set_allowance("hana", "chess", -1)
	for bad in (0, -2, 1.5, True):
		with pytest.raises(ValidationError):
			await treasury.set_required_approvals("hana", "chess", bad)

	club = await treasury.get_club("chess")
	assert (club.token_allowance, club.required_approvals) == (250, 3)


@pytest.mark.asyncio
async def test_add_admin_promotes_and_enforces_limit(treasury, users, seed):
	await seed.head("hana")
	await seed.club("chess")
	for uid in ("a1", "a2", "a3", "a4"):
		await seed.user(uid)

	for uid in ("a1", "a2", "a3"):
		await treasury.add_admin("hana", "chess", uid)
	again = await treasury.add_admin("hana", "chess", "a1")

	assert again.admins == ["a1", "a2", "a3"]
	promoted = await users.get_user("a2")
	assert (promoted.role, promoted.club_id) == (Role.CLUB, "chess")
	with pytest.raises(LimitExceededError):
		await treasury.add_admin("hana", "chess", "a4")
	assert (await users.get_user("a4")).role is Role.STUDENT


@pytest.mark.asyncio
async def test_add_admin_rejects_head_and_other_club_admins(treasury, seed):
	await seed.head("hana")
	await seed.club("chess")
	await seed.club("drama", admins=["dan"])

	with pytest.raises(ValidationError):
		await treasury.add_admin("hana", "chess", "hana")
	with pytest.raises(ValidationError):
		await treasury.add_admin("hana", "chess", "dan")
	with pytest.raises(NotFoundError):
		await treasury.add_admin("hana", "chess", "nobody")


@pytest.mark.asyncio
async def test_remove_admin_demotes(treasury, users, seed):
	await seed.head("hana")
	await seed.club("chess", admins=["alice", "aaron"])

	club = await treasury.remove_admin("hana", "chess", "alice")

	assert club.admins == ["aaron"]
	alice = await users.get_user("alice")
	assert (alice.role, alice.club_id) == (Role.STUDENT, None)
	with pytest.raises(NotFoundError):
		await treasury.remove_admin("hana", "chess", "alice")


@pytest.mark.asyncio
async def test_transfer_head_role_carries_supply(treasury, users, seed):
	await seed.head("hana", supply=500)
	await seed.club("chess", admins=["alice"])
	await seed.user("sam")
	await treasury.allocate("hana", "chess", 120)

	with pytest.raises(UnauthorizedError):
		await treasury.transfer_head_role("sam", "hana", "sam")
	with pytest.raises(ValidationError):
		await treasury.transfer_head_role("hana", "hana", "alice")

	supply = await treasury.transfer_head_role("hana", "hana", "sam")

	assert (supply.head_id, supply.total_supply, supply.available_supply) == ("sam", 500, 380)
	old = await users.get_user("hana")
	new = await users.get_user("sam")
	assert (old.role, old.total_supply, old.available_supply) == (Role.STUDENT, 0, 0)
	assert (new.role, new.total_supply, new.available_supply) == (Role.HEAD, 500, 380)
	with pytest.raises(UnauthorizedError):
		await treasury.allocate("hana", "chess", 1)
	await treasury.allocate("sam", "chess", 80)
	assert (await treasury.get_head_supply()).available_supply == 300


@pytest.mark.asyncio
async def test_create_and_delete_club(treasury, users, seed):
	await seed.head("hana")
	await seed.user("alice")

	club = await treasury.create_club("hana", "  Robotics  ")
	assert (club.name, club.admins, club.token_balance, club.token_allowance, club.required_approvals) == (
		"Robotics",
		[],
		0,
		0,
		1,
	)
	await treasury.add_admin("hana", club.id, "alice")

	await treasury.delete_club("hana", club.id)

	with pytest.raises(NotFoundError):
		await treasury.get_club(club.id)
	assert (await users.get_user("alice")).role is Role.STUDENT
	with pytest.raises(ValidationError):
		await treasury.create_club("hana", "   ")


@pytest.mark.asyncio
async def test_ledger_is_newest_first_and_paged(treasury, seed):
	await seed.head("hana", supply=1000)
	await seed.club("chess")
	for amount in range(1, 26):
		await treasury.allocate("hana", "chess", amount)

	page = await treasury.list_ledger("chess")
	assert len(page) == 20
	assert page[0].amount == 25
	assert [entry.amount for entry in await treasury.list_ledger("chess", limit=3)] == [25, 24, 23]


@pytest.mark.asyncio
async def test_bootstrap_head(treasury, users, seed):
	await seed.user("hana")
	await seed.user("sam")

	supply = await treasury.bootstrap_head("hana", 1000)

	assert (supply.total_supply, supply.available_supply) == (1000, 1000)
	assert (await users.get_user("hana")).is_head
	with pytest.raises(ValidationError):
		await treasury.bootstrap_head("sam", 10)


@pytest.mark.asyncio
async def test_bootstrap_command_creates_profile_and_promotes(treasury):
	summary = await bootstrap("hana", 750, name="Hana", email="hana@campus.edu")

	assert summary == {"head_id": "hana", "total_supply": 750, "available_supply": 750}
	head = await UserService().get_user("hana")
	assert (head.name, head.role) == ("Hana", Role.HEAD)
	assert (await treasury.get_head_supply()).head_id == "hana"


@pytest.mark.asyncio
async def test_concurrent_bootstraps_assign_one_head(treasury, users, seed, monkeypatch):
	await seed.user("amy")
	await seed.user("bob")
	real_read_user = treasury_service.read_user

	async def slow_read_user(txn, user_id):
		# Both transactions have read the empty head pointer before either commits.
		await asyncio.sleep(0.01)
		return await real_read_user(txn, user_id)

	monkeypatch.setattr(treasury_service, "read_user", slow_read_user)

	results = await asyncio.gather(
		treasury.bootstrap_head("amy", 500),
		treasury.bootstrap_head("bob", 500),
		return_exceptions=True,
	)

	winners = [result for result in results if isinstance(result, HeadSupply)]
	losers = [result for result in results if isinstance(result, ValidationError)]
	assert len(winners) == 1 and len(losers) == 1
	assert losers[0].detail == "head_already_assigned"
	heads = [uid for uid in ("amy", "bob") if (await users.get_user(uid)).is_head]
	assert heads == [winners[0].head_id]
	assert (await treasury.get_head_supply()).head_id == winners[0].head_id


@pytest.mark.asyncio
async def test_bootstrap_does_not_remint_existing_head(treasury, seed):
	await seed.head("hana", supply=500)
	await seed.club("chess")
	await treasury.allocate("hana", "chess", 100)

	with pytest.raises(ValidationError) as excinfo:
		await treasury.bootstrap_head("hana", 500)

	assert excinfo.value.detail == "head_already_bootstrapped"
	supply = await treasury.get_head_supply()
	assert (supply.total_supply, supply.available_supply) == (500, 400)
	assert (await treasury.get_club("chess")).token_balance == 100


@pytest.mark.asyncio
async def test_bootstrap_after_transfer_is_refused(treasury, seed):
	await seed.head("hana", supply=500)
	await seed.user("sam")
	await treasury.transfer_head_role("hana", "hana", "sam")

	with pytest.raises(ValidationError) as excinfo:
		await treasury.bootstrap_head("hana", 500)

	assert excinfo.value.detail == "head_already_assigned"
	assert (await treasury.get_head_supply()).head_id == "sam"


@pytest.mark.asyncio
async def test_add_admin_by_email(treasury, users, seed):
	await seed.head("hana")
	await seed.club("chess")
	await seed.user("alice", email="Alice@Campus.edu")

	club = await treasury.add_admin_by_email("hana", "chess", "  alice@campus.EDU ")

	assert club.admins == ["alice"]
	assert (await users.get_user("alice")).administers("chess")
	with pytest.raises(NotFoundError):
		await treasury.add_admin_by_email("hana", "chess", "nobody@campus.edu")
