"""Operator command: create (if needed) and promote the head user with a token supply.

Usage: python -m campus_ledger.bootstrap_head USER_ID --supply 1000 [--name NAME]
"""

from __future__ import annotations

import argparse
import asyncio
import json

from campus_ledger.domain.clubs.service import TreasuryService
from campus_ledger.domain.exceptions import LedgerError
from campus_ledger.domain.identity.service import UserService
from campus_ledger.infra import redis as redis_infra
from campus_ledger.infra.auth import AuthenticatedUser


def _parse_args() -> argparse.Namespace:
	parser = argparse.ArgumentParser(description="Assign the head role and its token supply")
	parser.add_argument("user_id", help="Identity uid of the head user")
	parser.add_argument("--supply", type=int, required=True, help="Total token supply to issue")
	parser.add_argument("--name", default=None, help="Display name when the profile is new")
	parser.add_argument("--email", default=None, help="Email when the profile is new")
	return parser.parse_args()


async def bootstrap(user_id: str, supply: int, name: str | None = None, email: str | None = None) -> dict:
	await UserService().ensure_profile(AuthenticatedUser(id=user_id, email=email), name)
	result = await TreasuryService().bootstrap_head(user_id, supply)
	return {
		"head_id": result.head_id,
		"total_supply": result.total_supply,
		"available_supply": result.available_supply,
	}


async def _main() -> None:
	args = _parse_args()
	try:
		summary = await bootstrap(args.user_id, args.supply, args.name, args.email)
	except LedgerError as exc:
		raise SystemExit(f"bootstrap failed: {exc.detail}") from exc
	finally:
		await redis_infra.close()
	print(json.dumps(summary, indent=2))


if __name__ == "__main__":
	asyncio.run(_main())
