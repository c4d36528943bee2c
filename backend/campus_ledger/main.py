"""FastAPI application entrypoint."""

from __future__ import annotations

from contextlib import asynccontextmanager

import socketio
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from campus_ledger.api import clubs, complaints, events, ops, proposals, users
from campus_ledger.api.errors import install_error_handlers
from campus_ledger.api.middleware_request_id import RequestIdMiddleware
from campus_ledger.infra import redis as redis_infra
from campus_ledger.infra.store import document_store
from campus_ledger.live.sockets import LiveNamespace
from campus_ledger.obs import init as obs_init
from campus_ledger.obs.logging import get_logger
from campus_ledger.settings import DEV_SECRET_KEY, settings

logger = get_logger("campus_ledger.main")

live_namespace = LiveNamespace()


@asynccontextmanager
async def lifespan(app: FastAPI):
	logger.info("startup", extra={"environment": settings.environment})
	if settings.is_prod() and settings.secret_key == DEV_SECRET_KEY:
		raise RuntimeError("SECRET_KEY must be set in production")
	try:
		yield
	finally:
		await live_namespace.close_all()
		await document_store.close_all()
		await redis_infra.close()


app = FastAPI(title="Campus Ledger", lifespan=lifespan)
install_error_handlers(app)

allow_origins = list(settings.cors_allow_origins)
if not allow_origins or "*" in allow_origins:
	# Starlette disallows wildcard '*' with allow_credentials=True.
	allow_origins = ["http://localhost:3000", "http://localhost:5173"] if settings.is_dev() else []

app.add_middleware(
	CORSMiddleware,
	allow_origins=allow_origins,
	allow_credentials=True,
	allow_methods=["*"],
	allow_headers=["*"],
)

obs_init(app)
app.add_middleware(RequestIdMiddleware)

app.include_router(ops.router)
app.include_router(users.router)
app.include_router(events.router)
app.include_router(proposals.router)
app.include_router(clubs.router)
app.include_router(complaints.router)

sio = socketio.AsyncServer(async_mode="asgi", cors_allowed_origins=allow_origins)
sio.register_namespace(live_namespace)

socket_app = socketio.ASGIApp(sio, other_asgi_app=app)
