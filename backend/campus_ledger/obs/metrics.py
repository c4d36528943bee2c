"""Central registry for Prometheus metrics used across the backend."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram


REQUEST_COUNTER = Counter(
	"ledger_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"ledger_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

SOCKET_CLIENTS = Gauge(
	"ledger_socketio_clients",
	"Active Socket.IO clients per namespace",
	["namespace"],
)

SOCKET_EVENTS = Counter(
	"ledger_socketio_events_total",
	"Socket.IO events emitted per namespace",
	["namespace", "event"],
)

SUBSCRIPTIONS_ACTIVE = Gauge(
	"ledger_live_subscriptions_active",
	"Live document subscriptions currently open",
)

TXN_COMMITS = Counter(
	"ledger_store_txn_commits_total",
	"Store transactions committed",
	["txn"],
)

TXN_ATTEMPTS = Histogram(
	"ledger_store_txn_attempts",
	"Attempts needed before a store transaction committed",
	["txn"],
	buckets=(1, 2, 3, 4, 5, 8),
)

TXN_RETRIES = Counter(
	"ledger_store_txn_retries_total",
	"Store transaction attempts discarded after a WATCH conflict",
	["txn"],
)

TXN_CONFLICTS = Counter(
	"ledger_store_txn_conflicts_total",
	"Store transactions aborted after exhausting retries",
	["txn"],
)

REGISTRATIONS = Counter(
	"ledger_event_registrations_total",
	"Event registration attempts segmented by outcome",
	["result"],
)

EVENTS_CREATED = Counter(
	"ledger_events_created_total",
	"Events created",
)

PROPOSALS_CREATED = Counter(
	"ledger_reward_proposals_created_total",
	"Reward proposals created",
)

VOTES_CAST = Counter(
	"ledger_votes_total",
	"Votes processed segmented by outcome",
	["status"],
)

SETTLEMENTS = Counter(
	"ledger_settlements_total",
	"Candidates approved, segmented by whether tokens were paid",
	["result"],
)

TOKENS_SETTLED = Counter(
	"ledger_tokens_settled_total",
	"Tokens paid out to approved candidates",
)

ALLOCATIONS = Counter(
	"ledger_allocations_total",
	"Treasury allocations from the head supply to clubs",
)

TOKENS_ALLOCATED = Counter(
	"ledger_tokens_allocated_total",
	"Tokens moved from the head supply to club balances",
)

TREASURY_CHANGES = Counter(
	"ledger_treasury_changes_total",
	"Club treasury administration actions",
	["action"],
)

COMPLAINTS = Counter(
	"ledger_complaints_total",
	"Complaint board actions",
	["action"],
)

REDIS_UP = Gauge(
	"ledger_redis_up",
	"Redis reachability (1 up, 0 down)",
)

REDIS_LATENCY = Histogram(
	"ledger_redis_ping_seconds",
	"Redis ping latency in seconds",
	buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25),
)


def observe_request(route: str, method: str, status: int, elapsed_seconds: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(elapsed_seconds)


def socket_connected(namespace: str) -> None:
	SOCKET_CLIENTS.labels(namespace=namespace).inc()


def socket_disconnected(namespace: str) -> None:
	SOCKET_CLIENTS.labels(namespace=namespace).dec()


def socket_event(namespace: str, event: str) -> None:
	SOCKET_EVENTS.labels(namespace=namespace, event=event).inc()


def record_txn_commit(txn: str, attempts: int) -> None:
	TXN_COMMITS.labels(txn=txn).inc()
	TXN_ATTEMPTS.labels(txn=txn).observe(attempts)


def record_txn_retry(txn: str) -> None:
	TXN_RETRIES.labels(txn=txn).inc()


def record_txn_conflict(txn: str) -> None:
	TXN_CONFLICTS.labels(txn=txn).inc()


def inc_registration(result: str) -> None:
	REGISTRATIONS.labels(result=result).inc()


def inc_event_created() -> None:
	EVENTS_CREATED.inc()


def inc_proposal_created() -> None:
	PROPOSALS_CREATED.inc()


def inc_vote(status: str) -> None:
	VOTES_CAST.labels(status=status).inc()


def record_settlement(paid: bool, tokens: int = 0) -> None:
	SETTLEMENTS.labels(result="paid" if paid else "already_rewarded").inc()
	if paid and tokens > 0:
		TOKENS_SETTLED.inc(tokens)


def record_allocation(amount: int) -> None:
	ALLOCATIONS.inc()
	TOKENS_ALLOCATED.inc(amount)


def inc_treasury_change(action: str) -> None:
	TREASURY_CHANGES.labels(action=action).inc()


def inc_complaint(action: str) -> None:
	COMPLAINTS.labels(action=action).inc()


def mark_redis(ok: bool, *, latency_seconds: float | None = None) -> None:
	REDIS_UP.set(1 if ok else 0)
	if latency_seconds is not None:
		REDIS_LATENCY.observe(latency_seconds)
