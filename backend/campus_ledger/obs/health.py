"""Health check helpers for liveness and readiness probes."""

from __future__ import annotations

import asyncio
import logging
from time import perf_counter
from typing import Any, Dict, Tuple

from campus_ledger.infra.redis import redis_client
from campus_ledger.infra.store import document_store
from campus_ledger.obs import metrics
from campus_ledger.settings import settings

LOGGER = logging.getLogger(__name__)


async def _redis_status(timeout: float = 0.2) -> Dict[str, Any]:
	start = perf_counter()
	try:
		await asyncio.wait_for(redis_client.ping(), timeout=timeout)
	except Exception as exc:
		metrics.mark_redis(False)
		LOGGER.warning("Redis readiness check failed", exc_info=True)
		return {"ok": False, "error": str(exc)}
	latency = perf_counter() - start
	metrics.mark_redis(True, latency_seconds=latency)
	return {"ok": True, "latency_ms": round(latency * 1000, 2)}


async def liveness() -> Dict[str, Any]:
	return {"status": "ok"}


async def readiness() -> Tuple[int, Dict[str, Any]]:
	redis_state = await _redis_status()
	ok = bool(redis_state.get("ok"))
	return (
		200 if ok else 503,
		{
			"status": "ok" if ok else "degraded",
			"service": settings.service_name,
			"commit": settings.git_commit,
			"redis": redis_state,
			"live_subscriptions": document_store.active_subscriptions,
		},
	)
