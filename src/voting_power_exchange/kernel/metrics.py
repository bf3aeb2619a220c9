"""
Prometheus metrics for the Voting Power Exchange.

Token quantities are exported in whole tokens (divided by PRECISION) since
Prometheus samples are floats and 18-decimal integers would lose meaning.
"""

import time
from collections.abc import Callable
from functools import wraps
from typing import ParamSpec, TypeVar

from prometheus_client import Counter, Gauge, Histogram, start_http_server

# ============================================================================
# Event Store Metrics
# ============================================================================

events_appended_total = Counter(
    "vpx_events_appended_total",
    "Total number of events appended to the event store",
    ["stream_type", "event_type"],
)

events_loaded_total = Counter(
    "vpx_events_loaded_total",
    "Total number of events loaded from the event store",
    ["stream_type"],
)

stream_version_conflicts_total = Counter(
    "vpx_stream_version_conflicts_total",
    "Total number of optimistic locking version conflicts",
    ["stream_type"],
)

# ============================================================================
# Command Processing Metrics
# ============================================================================

command_duration_seconds = Histogram(
    "vpx_command_duration_seconds",
    "Duration of command processing in seconds",
    ["command_type"],
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

commands_processed_total = Counter(
    "vpx_commands_processed_total",
    "Total number of commands processed",
    ["command_type", "status"],  # status: success, failure
)

# ============================================================================
# Exchange Metrics
# ============================================================================

exchanges_total = Counter(
    "vpx_exchanges_total",
    "Total number of settled exchanges",
    ["fill"],  # fill: full, partial
)

exchange_rejections_total = Counter(
    "vpx_exchange_rejections_total",
    "Total number of rejected exchange requests",
    ["reason"],
)

voting_power_granted_tokens_total = Counter(
    "vpx_voting_power_granted_tokens_total",
    "Governance tokens minted through the exchange (whole tokens)",
)

utility_burned_tokens_total = Counter(
    "vpx_utility_burned_tokens_total",
    "Utility tokens burned through the exchange (whole tokens)",
)

voting_power_cap_tokens = Gauge(
    "vpx_voting_power_cap_tokens",
    "Current per-holder voting power cap (whole tokens)",
)

# ============================================================================
# Helper Functions
# ============================================================================

P = ParamSpec("P")
R = TypeVar("R")

_PRECISION = 10**18


def to_tokens(amount: int) -> float:
    """Convert an 18-decimal integer amount into whole tokens for export."""
    return amount / _PRECISION


def track_command_duration(command_type: str) -> Callable[[Callable[P, R]], Callable[P, R]]:
    """
    Decorator to track command processing duration and outcome.

    Args:
        command_type: Type of command being processed
    """

    def decorator(func: Callable[P, R]) -> Callable[P, R]:
        @wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            start = time.perf_counter()
            status = "success"
            try:
                return func(*args, **kwargs)
            except Exception:
                status = "failure"
                raise
            finally:
                duration = time.perf_counter() - start
                command_duration_seconds.labels(command_type=command_type).observe(duration)
                commands_processed_total.labels(
                    command_type=command_type, status=status
                ).inc()

        return wrapper

    return decorator


def record_exchange(burn_amount: int, granted_power: int, partial_fill: bool) -> None:
    """Record a settled exchange."""
    exchanges_total.labels(fill="partial" if partial_fill else "full").inc()
    voting_power_granted_tokens_total.inc(to_tokens(granted_power))
    utility_burned_tokens_total.inc(to_tokens(burn_amount))


def record_rejection(reason: str) -> None:
    """Record a rejected exchange request by rejection reason."""
    exchange_rejections_total.labels(reason=reason).inc()


def start_metrics_server(port: int = 9090) -> None:
    """Start the Prometheus metrics HTTP server on the given port."""
    start_http_server(port)
