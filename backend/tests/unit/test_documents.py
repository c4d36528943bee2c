import pytest

from campus_ledger.domain.documents import parse_many
from campus_ledger.domain.exceptions import MalformedDocumentError
from campus_ledger.domain.identity.models import Role, User
from campus_ledger.domain.identity.service import UserService
from campus_ledger.domain.rewards.models import RewardProposal
from campus_ledger.infra.auth import AuthenticatedUser
from campus_ledger.infra.store import Snapshot


@pytest.mark.parametrize(
	"raw, expected",
	[("student", Role.STUDENT), (" Head ", Role.HEAD), ("CLUB", Role.CLUB), (None, Role.STUDENT), ("", Role.STUDENT)],
)
def test_role_normalisation(raw, expected):
	assert Role.parse(raw) is expected


def test_unknown_role_rejected():
	with pytest.raises(ValueError):
		Role.parse("admin")


@pytest.mark.parametrize(
	"data",
	[
		{"role": "superuser"},
		{"tokens": -1},
		{"tokens": "lots"},
		{"rewarded_events": ["ev1", "ev1"]},
		{"achievements": [{"event_id": "ev1"}]},
	],
)
def test_malformed_user_documents_are_rejected(data):
	with pytest.raises(MalformedDocumentError):
		User.from_snapshot(Snapshot("users", "u1", {"name": "U", **data}))


def test_user_defaults_fill_missing_fields():
	user = User.from_snapshot(Snapshot("users", "u1", {"name": "U", "role": " Club ", "unknown": 1}))
	assert user.role is Role.CLUB
	assert (user.tokens, user.rewarded_events, user.achievements) == (0, [], [])


def test_proposal_approved_users_must_be_candidates():
	with pytest.raises(MalformedDocumentError):
		RewardProposal.from_snapshot(
			Snapshot(
				"rewardProposals",
				"p1",
				{"event_id": "e", "club_id": "c", "users": ["a"], "tokens": 1, "approved_users": ["b"]},
			)
		)


def test_listing_skips_malformed_documents():
	snapshots = [
		Snapshot("users", "good", {"name": "Good"}),
		Snapshot("users", "bad", {"name": "Bad", "tokens": -3}),
		Snapshot("users", "gone", None),
	]
	assert [user.id for user in parse_many(User, snapshots)] == ["good"]


@pytest.mark.asyncio
async def test_ensure_profile_is_created_once():
	service = UserService()
	identity = AuthenticatedUser(id="u1", email="ursula@campus.edu", email_verified=True)

	created = await service.ensure_profile(identity)
	again = await service.ensure_profile(identity, name="Renamed")

	assert created.name == "ursula"
	assert created.role is Role.STUDENT and created.tokens == 0
	assert again.name == "ursula"
	assert (await service.get_user("u1")).email == "ursula@campus.edu"


@pytest.mark.asyncio
async def test_get_users_skips_missing_profiles(seed):
	await seed.user("ann")
	await seed.user("bob", tokens=4)

	users = await UserService().get_users(["bob", "ghost", "ann"])

	assert [(user.id, user.tokens) for user in users] == [("bob", 4), ("ann", 0)]
