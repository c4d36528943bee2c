"""Per-request metrics and access log lines."""

from __future__ import annotations

import time

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from campus_ledger.api.request_id import get_request_id
from campus_ledger.obs import logging as obs_logging
from campus_ledger.obs import metrics
from campus_ledger.settings import settings

access_logger = obs_logging.get_logger("campus_ledger.http")


def _route_template(request: Request) -> str:
	# Label metrics by "/events/{event_id}" rather than each concrete id.
	route = request.scope.get("route")
	return getattr(route, "path", None) or request.url.path


class ObservabilityMiddleware(BaseHTTPMiddleware):
	async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
		if not settings.obs_enabled:
			return await call_next(request)

		token = obs_logging.bind_context(
			request_id=get_request_id(request, default=None),
			route=request.url.path,
			user_id=request.headers.get("X-User-Id"),
			client_ip=request.client.host if request.client else None,
		)
		start = time.perf_counter()
		status_code = 500
		try:
			response = await call_next(request)
			status_code = response.status_code
			return response
		except Exception:
			access_logger.exception("http_request_error", extra={"method": request.method})
			raise
		finally:
			elapsed = time.perf_counter() - start
			route = _route_template(request)
			metrics.observe_request(route, request.method, status_code, elapsed)
			access_logger.info(
				"http_request",
				extra={
					"method": request.method,
					"route": route,
					"status": status_code,
					"latency_ms": round(elapsed * 1000, 3),
				},
			)
			obs_logging.reset_context(token)


def install(app) -> None:
	app.add_middleware(ObservabilityMiddleware)
