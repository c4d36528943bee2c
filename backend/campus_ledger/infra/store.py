"""Redis-backed document store with optimistic transactions and live queries.

Documents are JSON objects stored under ``doc:{collection}/{id}``. Each
collection keeps a member set at ``idx:{collection}`` so it can be listed, and
every commit publishes the ids it touched on ``changes:{collection}``.
Subcollections are plain collection paths such as ``clubs/{club_id}/ledger``.

Multi-document updates go through :meth:`DocumentStore.run_transaction`. The
transaction function performs its reads (each read WATCHes the key), stages
writes, and the store commits them inside MULTI/EXEC. If any watched key was
changed by another writer the whole function runs again from scratch.
"""

from __future__ import annotations

import asyncio
import json
import logging
import random
import uuid
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Set, TypeVar

from redis.exceptions import WatchError

from campus_ledger.domain.exceptions import ConflictError, MalformedDocumentError, NotFoundError
from campus_ledger.infra.redis import redis_client
from campus_ledger.obs import metrics
from campus_ledger.settings import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

Loader = Callable[[], Awaitable[Any]]
Listener = Callable[[Any], Awaitable[None]]


def doc_key(collection: str, doc_id: str) -> str:
	return f"doc:{collection}/{doc_id}"


def index_key(collection: str) -> str:
	return f"idx:{collection}"


def change_channel(collection: str) -> str:
	return f"changes:{collection}"


def subcollection(collection: str, doc_id: str, name: str) -> str:
	return f"{collection}/{doc_id}/{name}"


def new_id() -> str:
	return uuid.uuid4().hex


@dataclass(slots=True)
class Snapshot:
	collection: str
	id: str
	data: Optional[Dict[str, Any]]

	@property
	def exists(self) -> bool:
		return self.data is not None


def _decode(collection: str, doc_id: str, raw: Optional[str]) -> Snapshot:
	if raw is None:
		return Snapshot(collection, doc_id, None)
	try:
		data = json.loads(raw)
	except ValueError as exc:
		raise MalformedDocumentError(f"malformed_document:{collection}/{doc_id}") from exc
	if not isinstance(data, dict):
		raise MalformedDocumentError(f"malformed_document:{collection}/{doc_id}")
	return Snapshot(collection, doc_id, data)


def _encode(data: Dict[str, Any]) -> str:
	return json.dumps(data, separators=(",", ":"), sort_keys=True)


@dataclass(slots=True)
class _Write:
	collection: str
	id: str
	data: Optional[Dict[str, Any]]


class TransactionUsageError(RuntimeError):
	"""Raised when a transaction function reads after staging a write."""


class Transaction:
	"""A single attempt of an optimistic read-then-write unit of work."""

	def __init__(self, pipe) -> None:
		self._pipe = pipe
		self._reads: Dict[str, Snapshot] = {}
		self._writes: Dict[str, _Write] = {}

	async def get(self, collection: str, doc_id: str) -> Snapshot:
		if self._writes:
			raise TransactionUsageError("reads must happen before writes")
		key = doc_key(collection, doc_id)
		cached = self._reads.get(key)
		if cached is not None:
			return cached
		await self._pipe.watch(key)
		snapshot = _decode(collection, doc_id, await self._pipe.get(key))
		self._reads[key] = snapshot
		return snapshot

	async def require(self, collection: str, doc_id: str, detail: str | None = None) -> Snapshot:
		snapshot = await self.get(collection, doc_id)
		if not snapshot.exists:
			raise NotFoundError(detail or f"{collection.rsplit('/', 1)[-1]}_not_found")
		return snapshot

	def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
		self._writes[doc_key(collection, doc_id)] = _Write(collection, doc_id, dict(data))

	def create(self, collection: str, data: Dict[str, Any], doc_id: str | None = None) -> str:
		doc_id = doc_id or new_id()
		self.set(collection, doc_id, data)
		return doc_id

	def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
		"""Merge ``fields`` into a document this transaction already read."""
		key = doc_key(collection, doc_id)
		base = self._writes[key].data if key in self._writes else None
		if base is None:
			snapshot = self._reads.get(key)
			if snapshot is None:
				raise TransactionUsageError(f"update of unread document {collection}/{doc_id}")
			if not snapshot.exists:
				raise NotFoundError(f"{collection.rsplit('/', 1)[-1]}_not_found")
			base = snapshot.data
		merged = dict(base or {})
		merged.update(fields)
		self._writes[key] = _Write(collection, doc_id, merged)

	def delete(self, collection: str, doc_id: str) -> None:
		self._writes[doc_key(collection, doc_id)] = _Write(collection, doc_id, None)

	async def commit(self) -> None:
		if not self._writes:
			return
		touched: Dict[str, List[str]] = {}
		self._pipe.multi()
		for key, write in self._writes.items():
			if write.data is None:
				self._pipe.delete(key)
				self._pipe.srem(index_key(write.collection), write.id)
			else:
				self._pipe.set(key, _encode(write.data))
				self._pipe.sadd(index_key(write.collection), write.id)
			touched.setdefault(write.collection, []).append(write.id)
		for collection, ids in touched.items():
			self._pipe.publish(change_channel(collection), json.dumps(ids))
		await self._pipe.execute()


class Subscription:
	"""Live query handle. Pushes a fresh snapshot on start and after each change."""

	def __init__(
		self,
		store: "DocumentStore",
		collections: Iterable[str],
		loader: Loader,
		listener: Listener,
		*,
		doc_ids: Optional[Iterable[str]] = None,
	) -> None:
		self._store = store
		self._channels = [change_channel(name) for name in collections]
		self._loader = loader
		self._listener = listener
		self._doc_ids: Optional[Set[str]] = set(doc_ids) if doc_ids is not None else None
		self._pubsub = None
		self._task: Optional[asyncio.Task] = None
		self._closed = False

	@property
	def closed(self) -> bool:
		return self._closed

	async def start(self) -> None:
		self._pubsub = redis_client.pubsub()
		await self._pubsub.subscribe(*self._channels)
		# Subscribed before the first read so no change can slip between the two.
		try:
			await self._push()
		except Exception:
			self._closed = True
			await self._pubsub.unsubscribe(*self._channels)
			await self._pubsub.aclose()
			raise
		self._task = asyncio.create_task(self._run(), name=f"subscription:{','.join(self._channels)}")
		metrics.SUBSCRIPTIONS_ACTIVE.inc()

	def _relevant(self, message: Dict[str, Any]) -> bool:
		if self._doc_ids is None:
			return True
		try:
			ids = json.loads(message.get("data") or "[]")
		except ValueError:
			return True
		return bool(self._doc_ids.intersection(ids))

	async def _push(self) -> None:
		payload = await self._loader()
		await self._listener(payload)

	async def _run(self) -> None:
		while not self._closed:
			message = await self._pubsub.get_message(
				ignore_subscribe_messages=True,
				timeout=settings.subscription_poll_seconds,
			)
			if message is None:
				await asyncio.sleep(0.01)
				continue
			if not self._relevant(message):
				continue
			try:
				await self._push()
			except asyncio.CancelledError:
				raise
			except Exception:
				logger.exception("subscription_push_failed", extra={"channels": self._channels})

	async def close(self) -> None:
		if self._closed:
			return
		self._closed = True
		if self._task is not None:
			self._task.cancel()
			await asyncio.gather(self._task, return_exceptions=True)
			metrics.SUBSCRIPTIONS_ACTIVE.dec()
		if self._pubsub is not None:
			await self._pubsub.unsubscribe(*self._channels)
			await self._pubsub.aclose()
		self._store._forget(self)


class DocumentStore:
	"""Async document store over Redis."""

	def __init__(self) -> None:
		self._subscriptions: Set[Subscription] = set()

	async def get(self, collection: str, doc_id: str) -> Snapshot:
		raw = await redis_client.get(doc_key(collection, doc_id))
		return _decode(collection, doc_id, raw)

	async def get_many(self, collection: str, doc_ids: Iterable[str]) -> List[Snapshot]:
		ids = list(doc_ids)
		if not ids:
			return []
		raws = await redis_client.mget([doc_key(collection, doc_id) for doc_id in ids])
		return [_decode(collection, doc_id, raw) for doc_id, raw in zip(ids, raws)]

	async def list(self, collection: str) -> List[Snapshot]:
		members = sorted(await redis_client.smembers(index_key(collection)))
		if not members:
			return []
		raws = await redis_client.mget([doc_key(collection, doc_id) for doc_id in members])
		snapshots: List[Snapshot] = []
		for doc_id, raw in zip(members, raws):
			try:
				snapshot = _decode(collection, doc_id, raw)
			except MalformedDocumentError:
				logger.warning("skipping_undecodable_document", extra={"collection": collection, "doc_id": doc_id})
				continue
			if snapshot.exists:
				snapshots.append(snapshot)
		return snapshots

	async def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
		async def _write(txn: Transaction) -> None:
			txn.set(collection, doc_id, data)

		await self.run_transaction(_write, name="set")

	async def add(self, collection: str, data: Dict[str, Any]) -> str:
		async def _write(txn: Transaction) -> str:
			return txn.create(collection, data)

		return await self.run_transaction(_write, name="add")

	async def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
		async def _write(txn: Transaction) -> None:
			await txn.require(collection, doc_id)
			txn.update(collection, doc_id, fields)

		await self.run_transaction(_write, name="update")

	async def delete(self, collection: str, doc_id: str) -> None:
		async def _write(txn: Transaction) -> None:
			txn.delete(collection, doc_id)

		await self.run_transaction(_write, name="delete")

	async def run_transaction(self, fn: Callable[[Transaction], Awaitable[T]], *, name: str = "txn") -> T:
		"""Run ``fn`` atomically, re-running it from scratch on write conflicts."""
		attempts = settings.store_max_attempts
		for attempt in range(1, attempts + 1):
			async with redis_client.pipeline(transaction=True) as pipe:
				txn = Transaction(pipe)
				result = await fn(txn)
				try:
					await txn.commit()
				except WatchError:
					metrics.record_txn_retry(name)
					logger.debug("transaction_conflict", extra={"txn": name, "attempt": attempt})
					if attempt < attempts:
						await asyncio.sleep(self._backoff(attempt))
					continue
			metrics.record_txn_commit(name, attempt)
			return result
		metrics.record_txn_conflict(name)
		logger.warning("transaction_aborted", extra={"txn": name, "attempts": attempts})
		raise ConflictError("transaction_conflict")

	@staticmethod
	def _backoff(attempt: int) -> float:
		base = settings.store_backoff_base_seconds * (2 ** (attempt - 1))
		return base * random.uniform(0.5, 1.5)

	async def subscribe(
		self,
		collections: Iterable[str],
		loader: Loader,
		listener: Listener,
		*,
		doc_ids: Optional[Iterable[str]] = None,
	) -> Subscription:
		"""Start a live query; ``listener`` receives ``await loader()`` now and after every change."""
		subscription = Subscription(self, collections, loader, listener, doc_ids=doc_ids)
		await subscription.start()
		self._subscriptions.add(subscription)
		return subscription

	def _forget(self, subscription: Subscription) -> None:
		self._subscriptions.discard(subscription)

	@property
	def active_subscriptions(self) -> int:
		return len(self._subscriptions)

	async def close_all(self) -> None:
		for subscription in list(self._subscriptions):
			await subscription.close()


document_store = DocumentStore()
