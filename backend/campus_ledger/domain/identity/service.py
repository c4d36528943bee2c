"""Service for user profiles."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Iterable, List, Optional

from campus_ledger.domain.documents import parse_many
from campus_ledger.domain.exceptions import NotFoundError
from campus_ledger.domain.identity.models import USERS, Role, User
from campus_ledger.infra.auth import AuthenticatedUser
from campus_ledger.infra.store import DocumentStore, Subscription, Transaction, document_store

logger = logging.getLogger(__name__)


async def read_user(txn: Transaction, user_id: str) -> User:
    """Read and validate a user inside a transaction."""
    snapshot = await txn.require(USERS, user_id, "user_not_found")
    return User.from_snapshot(snapshot)


def write_user(txn: Transaction, user: User) -> None:
    txn.set(USERS, user.id, user.to_document())


class UserService:
    def __init__(self, store: DocumentStore | None = None) -> None:
        self._store = store or document_store

    async def ensure_profile(self, identity: AuthenticatedUser, name: Optional[str] = None) -> User:
        """Create the profile on first sign-in; later calls return it unchanged."""

        async def _txn(txn: Transaction) -> User:
            snapshot = await txn.get(USERS, identity.id)
            if snapshot.exists:
                return User.from_snapshot(snapshot)
            display = (name or identity.name or "").strip()
            if not display and identity.email:
                display = identity.email.split("@", 1)[0]
            user = User(id=identity.id, name=display, email=identity.email, role=Role.STUDENT)
            write_user(txn, user)
            logger.info("profile_created", extra={"user_id": identity.id})
            return user

        return await self._store.run_transaction(_txn, name="ensure_profile")

    async def get_user(self, user_id: str) -> User:
        snapshot = await self._store.get(USERS, user_id)
        if not snapshot.exists:
            raise NotFoundError("user_not_found")
        return User.from_snapshot(snapshot)

    async def get_users(self, user_ids: Iterable[str]) -> List[User]:
        return parse_many(User, await self._store.get_many(USERS, user_ids))

    async def find_by_email(self, email: str) -> Optional[User]:
        """Case-insensitive lookup; the oldest profile wins if an address is shared."""
        wanted = (email or "").strip().lower()
        if not wanted:
            return None
        matches = [
            user
            for user in parse_many(User, await self._store.list(USERS))
            if user.email and user.email.strip().lower() == wanted
        ]
        if len(matches) > 1:
            logger.warning("duplicate_email", extra={"user_ids": [user.id for user in matches]})
        matches.sort(key=lambda user: (user.created_at, user.id))
        return matches[0] if matches else None

    async def find_head(self) -> Optional[User]:
        heads = [user for user in parse_many(User, await self._store.list(USERS)) if user.is_head]
        if len(heads) > 1:
            logger.warning("multiple_heads", extra={"head_ids": [user.id for user in heads]})
        return heads[0] if heads else None

    async def subscribe_user(
        self, user_id: str, listener: Callable[[Optional[User]], Awaitable[None]]
    ) -> Subscription:
        async def _load() -> Optional[User]:
            users = parse_many(User, [await self._store.get(USERS, user_id)])
            return users[0] if users else None

        return await self._store.subscribe([USERS], _load, listener, doc_ids=[user_id])
