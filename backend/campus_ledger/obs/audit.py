from __future__ import annotations

from typing import Any

from campus_ledger.obs.logging import current_request_id, get_logger

audit_logger = get_logger("campus_ledger.audit")


def record(action: str, *, actor_id: str | None, **fields: Any) -> None:
	"""Emit one structured audit line for a ledger-changing action."""
	payload: dict[str, Any] = {
		"action": action,
		"actor_id": actor_id,
		"request_id": current_request_id(),
	}
	payload.update(fields)
	filtered = {key: value for key, value in payload.items() if value is not None}
	audit_logger.info("ledger_audit", extra=filtered)
