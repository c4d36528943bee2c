"""JSON log lines for the ledger.

Request-scoped fields (request id, route, user, client ip) live in one
context mapping that the HTTP middleware binds per request; every record
emitted while it is bound carries them. Fields passed through ``extra=``
are copied onto the line, with credential-like keys masked.
"""

from __future__ import annotations

import json
import logging
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

from campus_ledger.settings import settings

_LOGGER_NAME = "campus_ledger"

_CONTEXT: ContextVar[Mapping[str, str]] = ContextVar("ledger_log_context", default={})

# Ledger amounts are called "tokens", so bearer tokens are matched by their own names.
_MASKED_KEYS = ("secret", "authorization", "password", "email", "jwt", "access_token", "wallet")

# Attributes every LogRecord has; anything else on a record came from ``extra=``.
_RECORD_ATTRS = frozenset(logging.LogRecord("", 0, "", 0, "", None, None).__dict__) | {"message"}


def bind_context(**fields: Optional[str]) -> Token:
	"""Add non-empty ``fields`` to the log context; pass the token to :func:`reset_context`."""
	merged = dict(_CONTEXT.get())
	merged.update({key: value for key, value in fields.items() if value})
	return _CONTEXT.set(merged)


def reset_context(token: Token) -> None:
	_CONTEXT.reset(token)


def current_request_id() -> Optional[str]:
	return _CONTEXT.get().get("request_id")


def _mask(key: str, value: Any) -> Any:
	lowered = key.lower()
	if any(word in lowered for word in _MASKED_KEYS):
		return "[redacted]"
	if isinstance(value, Mapping):
		return {str(k): _mask(str(k), v) for k, v in value.items()}
	return value


class JSONLogFormatter(logging.Formatter):
	def format(self, record: logging.LogRecord) -> str:  # noqa: A003
		line: Dict[str, Any] = {
			"ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
			"level": record.levelname.lower(),
			"logger": record.name,
			"msg": record.getMessage(),
			"service": settings.service_name,
			"env": settings.environment,
			"commit": settings.git_commit,
		}
		line.update(_CONTEXT.get())
		for key, value in record.__dict__.items():
			if key not in _RECORD_ATTRS:
				line[key] = _mask(key, value)
		if record.exc_info:
			line["exc_info"] = self.formatException(record.exc_info)
		return json.dumps(line, separators=(",", ":"), default=str)


def configure_logging() -> logging.Logger:
	"""Route every logger through one JSON handler on stderr."""
	root = logging.getLogger()
	root.handlers.clear()
	handler = logging.StreamHandler()
	handler.setFormatter(JSONLogFormatter())
	root.addHandler(handler)
	root.setLevel(settings.obs_log_level)
	return logging.getLogger(_LOGGER_NAME)


def get_logger(name: Optional[str] = None) -> logging.Logger:
	return logging.getLogger(name or _LOGGER_NAME)
