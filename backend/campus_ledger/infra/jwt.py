"""JWT helpers for identity tokens issued by the campus auth service.

Uses HS256 with the application's secret key and validates the configured
issuer/audience pair.
"""

from __future__ import annotations

import time
from typing import Any, Dict

import jwt
from jwt import InvalidTokenError

from campus_ledger.settings import settings


def encode_access(payload: dict[str, object], *, ttl_seconds: int = 3600) -> str:
    """Encode an identity token; used by tooling and tests."""
    now = int(time.time())
    body: Dict[str, Any] = {
        "iss": settings.jwt_issuer,
        "aud": settings.jwt_audience,
        "iat": now,
        "exp": now + ttl_seconds,
    }
    body.update(payload)
    return jwt.encode(body, settings.secret_key, algorithm="HS256")


def decode_access(token: str) -> dict[str, object]:
    """Decode and validate an identity token.

    Raises jwt.InvalidTokenError subclasses on failure.
    """
    payload = jwt.decode(
        token,
        settings.secret_key,
        algorithms=["HS256"],
        audience=settings.jwt_audience,
        issuer=settings.jwt_issuer,
        leeway=5,
        options={"require": ["exp", "iat", "iss", "aud", "sub"]},
    )
    if not str(payload.get("sub") or "").strip():
        raise InvalidTokenError("missing_claim:sub")
    return payload  # type: ignore[return-value]
