"""Custom exceptions for ledger services."""

from __future__ import annotations

from fastapi import status

if hasattr(status, "HTTP_422_UNPROCESSABLE_CONTENT"):
	_HTTP_422 = status.HTTP_422_UNPROCESSABLE_CONTENT
else:  # pragma: no cover - older Starlette builds
	_HTTP_422 = status.HTTP_422_UNPROCESSABLE_ENTITY


class LedgerError(Exception):
	"""Base class for ledger related errors."""

	status_code: int = status.HTTP_400_BAD_REQUEST
	detail: str = "ledger_error"
	retriable: bool = False

	def __init__(self, detail: str | None = None) -> None:
		super().__init__(detail or self.detail)
		if detail:
			self.detail = detail


class NotFoundError(LedgerError):
	"""Raised when a referenced document is absent."""

	status_code = status.HTTP_404_NOT_FOUND
	detail = "not_found"


class ValidationError(LedgerError):
	"""Raised for malformed or out-of-range input."""

	status_code = _HTTP_422
	detail = "invalid_argument"


class EventFullError(LedgerError):
	"""Raised when an event has no remaining capacity."""

	status_code = status.HTTP_409_CONFLICT
	detail = "event_full"


class LimitExceededError(LedgerError):
	"""Raised when a club already has the maximum number of admins."""

	status_code = status.HTTP_409_CONFLICT
	detail = "admin_limit_exceeded"


class ConflictError(LedgerError):
	"""Raised when a transaction keeps losing to concurrent writers."""

	status_code = status.HTTP_409_CONFLICT
	detail = "conflict"
	retriable = True


class UnauthorizedError(LedgerError):
	"""Raised when the actor lacks the role required for an operation."""

	status_code = status.HTTP_403_FORBIDDEN
	detail = "unauthorized"


class MalformedDocumentError(LedgerError):
	"""Raised when a stored document does not match its expected shape."""

	status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
	detail = "malformed_document"
