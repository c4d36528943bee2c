"""Authentication helpers for FastAPI endpoints.

The ledger never manages credentials. It consumes an identity (uid, email,
verification flag) from a bearer JWT, or from X-User-* headers in development.
Roles are not taken from the token: they live on the user document.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from campus_ledger.infra import jwt as jwt_helper
from campus_ledger.settings import settings


@dataclass(slots=True)
class AuthenticatedUser:
	id: str
	email: Optional[str] = None
	email_verified: bool = False
	name: Optional[str] = None


_bearer_scheme = HTTPBearer(auto_error=False)


def verify_access_jwt(token: str) -> AuthenticatedUser:
	try:
		payload = jwt_helper.decode_access(token)
	except Exception:
		# Normalise all decode failures to invalid_token for the API surface
		raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token")

	email = payload.get("email")
	name = payload.get("name")
	return AuthenticatedUser(
		id=str(payload["sub"]).strip(),
		email=str(email) if email else None,
		email_verified=bool(payload.get("email_verified", False)),
		name=str(name) if name else None,
	)


def _is_true(value: Optional[str]) -> bool:
	return bool(value) and value.strip().lower() in {"1", "true", "yes", "on"}


async def get_current_user(
	x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
	x_user_email: Optional[str] = Header(default=None, alias="X-User-Email"),
	x_email_verified: Optional[str] = Header(default=None, alias="X-Email-Verified"),
	credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
) -> AuthenticatedUser:
	"""Resolve the authenticated identity.

	In development we allow simple headers. In all other environments, headers are
	ignored and a valid Bearer JWT is required.
	"""
	if credentials and credentials.scheme.lower() == "bearer":
		return verify_access_jwt(credentials.credentials)

	if settings.is_dev() and x_user_id and x_user_id.strip():
		return AuthenticatedUser(
			id=x_user_id.strip(),
			email=x_user_email,
			email_verified=_is_true(x_email_verified),
		)

	raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token")
