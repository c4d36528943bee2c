import datetime as dt
import sys
from pathlib import Path

import pytest
import pytest_asyncio
from fakeredis.aioredis import FakeRedis
from httpx import ASGITransport, AsyncClient

# Ensure backend package is importable when tests run from repo root
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
	sys.path.insert(0, str(BACKEND_ROOT))

from campus_ledger.domain.clubs.models import CLUBS, HEAD_POINTER_ID, META, Club, HeadPointer
from campus_ledger.domain.events.models import EVENTS, Event
from campus_ledger.domain.identity.models import USERS, Role, User
from campus_ledger.infra.redis import redis_client, set_redis_client
from campus_ledger.infra.store import document_store
from campus_ledger.main import app
from campus_ledger.settings import settings

TODAY = dt.date(2025, 3, 14)


@pytest_asyncio.fixture(autouse=True)
async def fake_redis():
	original = redis_client.client
	client = FakeRedis(decode_responses=True)
	set_redis_client(client)
	try:
		yield client
	finally:
		await document_store.close_all()
		set_redis_client(original)
		await client.flushall()
		await client.aclose()


@pytest.fixture(autouse=True)
def force_test_settings():
	"""Dev mode so X-User-Id headers authenticate; short waits for retries and live queries."""
	original = {
		"environment": settings.environment,
		"store_backoff_base_seconds": settings.store_backoff_base_seconds,
		"subscription_poll_seconds": settings.subscription_poll_seconds,
		"store_max_attempts": settings.store_max_attempts,
		"club_max_admins": settings.club_max_admins,
	}
	settings.environment = "dev"
	settings.store_backoff_base_seconds = 0.001
	settings.subscription_poll_seconds = 0.05
	try:
		yield
	finally:
		for key, value in original.items():
			setattr(settings, key, value)


@pytest_asyncio.fixture
async def api_client():
	transport = ASGITransport(app=app)
	async with AsyncClient(transport=transport, base_url="http://testserver") as client:
		yield client


class Seeder:
	"""Writes documents straight into the store for test setup."""

	def __init__(self, store):
		self.store = store

	async def user(self, user_id, *, role=Role.STUDENT, club_id=None, tokens=0, supply=0, **fields):
		user = User(
			id=user_id,
			name=fields.pop("name", user_id.title()),
			role=role,
			club_id=club_id,
			tokens=tokens,
			total_supply=supply,
			available_supply=fields.pop("available_supply", supply),
			**fields,
		)
		await self.store.set(USERS, user_id, user.to_document())
		return user

	async def head(self, user_id="head", supply=500):
		head = await self.user(user_id, role=Role.HEAD, supply=supply)
		pointer = HeadPointer(id=HEAD_POINTER_ID, user_id=user_id)
		await self.store.set(META, HEAD_POINTER_ID, pointer.to_document())
		return head

	async def club(self, club_id="chess", *, admins=(), required_approvals=1, token_balance=0):
		club = Club(
			id=club_id,
			name=club_id.title(),
			admins=list(admins),
			required_approvals=required_approvals,
			token_balance=token_balance,
		)
		await self.store.set(CLUBS, club_id, club.to_document())
		for admin_id in admins:
			snapshot = await self.store.get(USERS, admin_id)
			if not snapshot.exists:
				await self.user(admin_id, role=Role.CLUB, club_id=club_id)
		return club

	async def event(self, event_id="ev1", *, club_id="chess", date=None, capacity=0, tokens=10, **fields):
		event = Event(
			id=event_id,
			name=fields.pop("name", f"Event {event_id}"),
			date=date or TODAY - dt.timedelta(days=1),
			capacity=capacity,
			tokens=tokens,
			club_id=club_id,
			**fields,
		)
		await self.store.set(EVENTS, event_id, event.to_document())
		return event


@pytest.fixture
def seed():
	return Seeder(document_store)


@pytest.fixture
def today():
	return lambda: TODAY
