"""Club treasury: allocation from the head supply, thresholds and admin roster.

Every mutation runs as one store transaction spanning all the documents it
touches, so the head supply, club balances and user roles never drift apart.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional

from campus_ledger.domain.clubs.models import (
    CLUBS,
    HEAD_POINTER_ID,
    META,
    Club,
    HeadPointer,
    LedgerEntry,
    LedgerEntryType,
    ledger_collection,
)
from campus_ledger.domain.documents import parse_many
from campus_ledger.domain.exceptions import (
    LimitExceededError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from campus_ledger.domain.identity.models import USERS, Role, User
from campus_ledger.domain.identity.service import UserService, read_user, write_user
from campus_ledger.infra.store import (
    DocumentStore,
    Subscription,
    Transaction,
    document_store,
    new_id,
)
from campus_ledger.obs import audit, metrics
from campus_ledger.settings import settings

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class HeadSupply:
    head_id: str
    total_supply: int
    available_supply: int

    @classmethod
    def of(cls, head: User) -> "HeadSupply":
        return cls(head.id, head.total_supply, head.available_supply)


@dataclass(slots=True)
class AllocationResult:
    club: Club
    supply: HeadSupply
    entry_id: str


def _is_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


async def _require_head(txn: Transaction, actor_id: str) -> User:
    actor = await read_user(txn, actor_id)
    if not actor.is_head:
        raise UnauthorizedError("head_required")
    return actor


async def _read_club(txn: Transaction, club_id: str) -> Club:
    return Club.from_snapshot(await txn.require(CLUBS, club_id, "club_not_found"))


def _write_club(txn: Transaction, club: Club) -> None:
    txn.set(CLUBS, club.id, club.to_document())


def _demote(user: User) -> None:
    user.role = Role.STUDENT
    user.club_id = None


def _write_head_pointer(txn: Transaction, user_id: str) -> None:
    pointer = HeadPointer(id=HEAD_POINTER_ID, user_id=user_id)
    txn.set(META, HEAD_POINTER_ID, pointer.to_document())


class TreasuryService:
    def __init__(self, store: DocumentStore | None = None) -> None:
        self._store = store or document_store
        self._users = UserService(self._store)

    async def create_club(self, actor_id: str, name: str) -> Club:
        name = (name or "").strip()
        if not name:
            raise ValidationError("name_required")

        async def _txn(txn: Transaction) -> Club:
            await _require_head(txn, actor_id)
            club = Club(id=new_id(), name=name, created_by=actor_id)
            _write_club(txn, club)
            return club

        club = await self._store.run_transaction(_txn, name="create_club")
        metrics.inc_treasury_change("create_club")
        audit.record("club.created", actor_id=actor_id, club_id=club.id)
        return club

    async def delete_club(self, actor_id: str, club_id: str) -> None:
        """Delete the club and demote its admins; the ledger history is kept."""

        async def _txn(txn: Transaction) -> List[str]:
            await _require_head(txn, actor_id)
            club = await _read_club(txn, club_id)
            demoted: List[User] = []
            for admin_id in club.admins:
                snapshot = await txn.get(USERS, admin_id)
                if snapshot.exists:
                    user = User.from_snapshot(snapshot)
                    if user.administers(club_id):
                        demoted.append(user)
            for user in demoted:
                _demote(user)
                write_user(txn, user)
            txn.delete(CLUBS, club_id)
            return [user.id for user in demoted]

        demoted_ids = await self._store.run_transaction(_txn, name="delete_club")
        metrics.inc_treasury_change("delete_club")
        audit.record("club.deleted", actor_id=actor_id, club_id=club_id, demoted=demoted_ids)

    async def allocate(self, actor_id: str, club_id: str, amount: int) -> AllocationResult:
        """Move ``amount`` tokens from the head supply into the club balance."""
        if not _is_int(amount) or amount <= 0:
            raise ValidationError("amount_must_be_positive")

        async def _txn(txn: Transaction) -> AllocationResult:
            head = await _require_head(txn, actor_id)
            club = await _read_club(txn, club_id)
            if amount > head.available_supply:
                raise ValidationError("insufficient_supply")
            head.available_supply -= amount
            club.token_balance += amount
            entry = LedgerEntry(
                id=new_id(),
                type=LedgerEntryType.ALLOCATION,
                amount=amount,
                actor=actor_id,
            )
            write_user(txn, head)
            _write_club(txn, club)
            txn.set(ledger_collection(club_id), entry.id, entry.to_document())
            return AllocationResult(club=club, supply=HeadSupply.of(head), entry_id=entry.id)

        result = await self._store.run_transaction(_txn, name="allocate")
        metrics.record_allocation(amount)
        audit.record(
            "treasury.allocate",
            actor_id=actor_id,
            club_id=club_id,
            amount=amount,
            available_supply=result.supply.available_supply,
        )
        return result

    async def set_allowance(self, actor_id: str, club_id: str, amount: int) -> Club:
        if not _is_int(amount) or amount < 0:
            raise ValidationError("allowance_must_be_non_negative")
        club = await self._update_club(actor_id, club_id, "set_allowance", token_allowance=amount)
        audit.record("treasury.allowance", actor_id=actor_id, club_id=club_id, amount=amount)
        return club

    async def set_required_approvals(self, actor_id: str, club_id: str, required: int) -> Club:
        if not _is_int(required) or required < 1:
            raise ValidationError("required_approvals_must_be_positive")
        club = await self._update_club(
            actor_id, club_id, "set_required_approvals", required_approvals=required
        )
        audit.record("treasury.required_approvals", actor_id=actor_id, club_id=club_id, required=required)
        return club

    async def _update_club(self, actor_id: str, club_id: str, name: str, **fields) -> Club:
        async def _txn(txn: Transaction) -> Club:
            await _require_head(txn, actor_id)
            club = await _read_club(txn, club_id)
            updated = club.model_copy(update=fields)
            _write_club(txn, updated)
            return updated

        club = await self._store.run_transaction(_txn, name=name)
        metrics.inc_treasury_change(name)
        return club

    async def add_admin(self, actor_id: str, club_id: str, user_id: str) -> Club:
        async def _txn(txn: Transaction) -> Club:
            await _require_head(txn, actor_id)
            club = await _read_club(txn, club_id)
            user = await read_user(txn, user_id)
            if user_id in club.admins:
                return club
            if len(club.admins) >= settings.club_max_admins:
                raise LimitExceededError()
            if user.is_head:
                raise ValidationError("head_cannot_be_club_admin")
            if user.role is Role.CLUB and user.club_id and user.club_id != club_id:
                raise ValidationError("admin_of_another_club")
            club.admins.append(user_id)
            user.role = Role.CLUB
            user.club_id = club_id
            _write_club(txn, club)
            write_user(txn, user)
            return club

        club = await self._store.run_transaction(_txn, name="add_admin")
        metrics.inc_treasury_change("add_admin")
        audit.record("club.admin_added", actor_id=actor_id, club_id=club_id, user_id=user_id)
        return club

    async def add_admin_by_email(self, actor_id: str, club_id: str, email: str) -> Club:
        user = await self._users.find_by_email(email)
        if user is None:
            raise NotFoundError("user_not_found")
        return await self.add_admin(actor_id, club_id, user.id)

    async def remove_admin(self,actor_id: str, club_id: str, user_id: str) -> Club:
        async def _txn(txn: Transaction) -> Club:
            await _require_head(txn, actor_id)
            club = await _read_club(txn, club_id)
            user_snapshot = await txn.get(USERS, user_id)
            if user_id not in club.admins:
                raise NotFoundError("admin_not_found")
            club.admins = [uid for uid in club.admins if uid != user_id]
            _write_club(txn, club)
            if user_snapshot.exists:
                user = User.from_snapshot(user_snapshot)
                # A user already moved to another club keeps that role.
                if user.administers(club_id):
                    _demote(user)
                    write_user(txn, user)
            return club

        club = await self._store.run_transaction(_txn, name="remove_admin")
        metrics.inc_treasury_change("remove_admin")
        audit.record("club.admin_removed", actor_id=actor_id, club_id=club_id, user_id=user_id)
        return club

    async def transfer_head_role(self, actor_id: str, from_user_id: str, to_user_id: str) -> HeadSupply:
        """Hand the head role and the whole supply to another user."""
        if actor_id != from_user_id:
            raise UnauthorizedError("only_head_can_transfer")
        if from_user_id == to_user_id:
            raise ValidationError("cannot_transfer_to_self")

        async def _txn(txn: Transaction) -> HeadSupply:
            await txn.get(META, HEAD_POINTER_ID)
            source = await _require_head(txn, from_user_id)
            target = await read_user(txn, to_user_id)
            if target.role is Role.CLUB:
                raise ValidationError("target_is_club_admin")
            target.role = Role.HEAD
            target.club_id = None
            target.total_supply = source.total_supply
            target.available_supply = source.available_supply
            _demote(source)
            source.total_supply = 0
            source.available_supply = 0
            write_user(txn, source)
            write_user(txn, target)
            _write_head_pointer(txn, to_user_id)
            return HeadSupply.of(target)

        supply = await self._store.run_transaction(_txn, name="transfer_head_role")
        metrics.inc_treasury_change("transfer_head_role")
        audit.record(
            "head.transferred",
            actor_id=actor_id,
            from_user_id=from_user_id,
            to_user_id=to_user_id,
            total_supply=supply.total_supply,
        )
        return supply

    async def bootstrap_head(self, user_id: str, total_supply: int) -> HeadSupply:
        """Operator action: make ``user_id`` the first head with a fresh supply.

        The ``meta/head`` pointer is read and written in the same transaction
        as the user, so two concurrent bootstraps cannot both succeed. Once a
        head exists, the role only moves through :meth:`transfer_head_role`.
        """
        if not _is_int(total_supply) or total_supply < 0:
            raise ValidationError("supply_must_be_non_negative")

        async def _txn(txn: Transaction) -> HeadSupply:
            pointer = await txn.get(META, HEAD_POINTER_ID)
            user = await read_user(txn, user_id)
            if pointer.exists:
                holder = HeadPointer.from_snapshot(pointer).user_id
                raise ValidationError(
                    "head_already_bootstrapped" if holder == user_id else "head_already_assigned"
                )
            if user.is_head:
                raise ValidationError("head_already_bootstrapped")
            if user.role is Role.CLUB:
                raise ValidationError("target_is_club_admin")
            user.role = Role.HEAD
            user.club_id = None
            user.total_supply = total_supply
            user.available_supply = total_supply
            write_user(txn, user)
            _write_head_pointer(txn, user_id)
            return HeadSupply.of(user)

        supply = await self._store.run_transaction(_txn, name="bootstrap_head")
        audit.record("head.bootstrapped", actor_id=None, user_id=user_id, total_supply=total_supply)
        return supply

    async def get_head_supply(self) -> HeadSupply:
        pointer = await self._store.get(META, HEAD_POINTER_ID)
        if pointer.exists:
            found = await self._users.get_users([HeadPointer.from_snapshot(pointer).user_id])
            head = found[0] if found else None
        else:
            # Heads promoted before the pointer existed are still found by role.
            head = await self._users.find_head()
        if head is None or not head.is_head:
            raise NotFoundError("head_not_found")
        return HeadSupply.of(head)

    async def get_club(self, club_id: str) -> Club:
        snapshot = await self._store.get(CLUBS, club_id)
        if not snapshot.exists:
            raise NotFoundError("club_not_found")
        return Club.from_snapshot(snapshot)

    async def list_clubs(self) -> List[Club]:
        clubs = parse_many(Club, await self._store.list(CLUBS))
        return sorted(clubs, key=lambda club: (club.name.lower(), club.id))

    async def list_ledger(self, club_id: str, limit: Optional[int] = None) -> List[LedgerEntry]:
        """Most recent ledger entries first."""
        await self.get_club(club_id)
        entries = parse_many(LedgerEntry, await self._store.list(ledger_collection(club_id)))
        entries.sort(key=lambda entry: (entry.created_at, entry.id), reverse=True)
        return entries[: limit or settings.ledger_page_size]

    async def subscribe_clubs(self, listener: Callable[[List[Club]], Awaitable[None]]) -> Subscription:
        return await self._store.subscribe([CLUBS], self.list_clubs, listener)
