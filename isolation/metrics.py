"""Prometheus metrics for the isolation game service.

This module centralises counters and histograms so the lifecycle manager,
the selection engine and the evaluators can record lightweight telemetry
without each owning its own metric instances.
"""

from __future__ import annotations

from typing import Final

from prometheus_client import Counter, Gauge, Histogram


MOVES_TOTAL: Final[Counter] = Counter(
    "isolation_moves_total",
    "Total committed moves (placements included), labeled by agent.",
    labelnames=("agent",),
)

GAMES_COMPLETED: Final[Counter] = Counter(
    "isolation_games_completed_total",
    "Total finished non-simulation games, labeled by winner.",
    labelnames=("winner",),
)

ACTIVE_SESSIONS: Final[Gauge] = Gauge(
    "isolation_active_sessions",
    "Current number of sessions held in the session store.",
)

SESSIONS_EVICTED: Final[Counter] = Counter(
    "isolation_sessions_evicted_total",
    "Total sessions removed by the staleness sweep.",
)

AI_MOVE_LATENCY: Final[Histogram] = Histogram(
    "ai_move_latency_seconds",
    "Wall-clock time spent choosing a software move, in seconds.",
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 0.75, 1.0, 2.0),
)

AI_SEARCH_EVALUATIONS: Final[Histogram] = Histogram(
    "ai_search_evaluations",
    "Number of position evaluations performed per move selection.",
    buckets=(1, 8, 16, 32, 64, 128, 200, 400),
)

EVALUATOR_FALLBACKS: Final[Counter] = Counter(
    "ai_evaluator_fallbacks_total",
    (
        "Learned-evaluator calls answered by the heuristic instead, labeled "
        "by reason (not_loaded, timeout, error, invalid)."
    ),
    labelnames=("reason",),
)

PERSISTENCE_FAILURES: Final[Counter] = Counter(
    "isolation_persistence_failures_total",
    "Failed reads/writes of durable state, labeled by target.",
    labelnames=("target",),
)


def observe_fallback(reason: str) -> None:
    EVALUATOR_FALLBACKS.labels(reason).inc()


def observe_persistence_failure(target: str) -> None:
    PERSISTENCE_FAILURES.labels(target).inc()
