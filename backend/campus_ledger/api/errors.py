"""Global error handlers ensuring request_id is included in JSON responses."""

from __future__ import annotations

import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from campus_ledger.api.request_id import get_request_id
from campus_ledger.domain.exceptions import LedgerError

logger = logging.getLogger(__name__)


def to_http_error(exc: LedgerError) -> HTTPException:
	"""Translate domain exceptions to FastAPI HTTP errors."""
	if exc.status_code >= 500:
		logger.error("ledger_error", extra={"detail": exc.detail})
	headers = {"Retry-After": "1"} if exc.retriable else None
	return HTTPException(status_code=exc.status_code, detail=exc.detail, headers=headers)


def install_error_handlers(app: FastAPI) -> None:
	@app.exception_handler(StarletteHTTPException)
	async def http_exc_handler(request: Request, exc: StarletteHTTPException):  # type: ignore[override]
		payload = {"detail": exc.detail, "request_id": get_request_id(request)}
		return JSONResponse(status_code=exc.status_code, content=payload, headers=exc.headers)

	@app.exception_handler(RequestValidationError)
	async def validation_exc_handler(request: Request, exc: RequestValidationError):  # type: ignore[override]
		payload = {
			"detail": "validation_error",
			"errors": jsonable_encoder(exc.errors()),
			"request_id": get_request_id(request),
		}
		return JSONResponse(status_code=422, content=payload)

	@app.exception_handler(LedgerError)
	async def ledger_exc_handler(request: Request, exc: LedgerError):  # type: ignore[override]
		payload = {"detail": exc.detail, "request_id": get_request_id(request)}
		if exc.retriable:
			payload["retriable"] = True
		return JSONResponse(status_code=exc.status_code, content=payload)
