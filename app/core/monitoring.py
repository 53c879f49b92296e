"""Prometheus Metrics Configuration"""

from prometheus_client import Counter, Histogram, Gauge, CollectorRegistry, generate_latest, CONTENT_TYPE_LATEST
from typing import Optional, Tuple

# Create a custom registry for our metrics
registry = CollectorRegistry()

# ============================================================================
# Action Execution Metrics
# ============================================================================

action_executions_total = Counter(
    'action_executions_total',
    'Total action executions by outcome',
    ['org_id', 'tool_key', 'action_key', 'status'],
    registry=registry
)

action_execution_duration_seconds = Histogram(
    'action_execution_duration_seconds',
    'Duration of successful action executions in seconds',
    ['org_id', 'tool_key', 'action_key'],
    registry=registry,
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0)
)

input_validation_errors_total = Counter(
    'input_validation_errors_total',
    'Total input validation errors by error type',
    ['org_id', 'action_key', 'error_type'],
    registry=registry
)

# ============================================================================
# Sandbox Metrics
# ============================================================================

sandboxes_active = Gauge(
    'sandboxes_active',
    'Number of sandboxes currently allocated',
    registry=registry
)

sandbox_executions_total = Counter(
    'sandbox_executions_total',
    'Total sandboxed HTTP calls by outcome',
    ['outcome'],  # success, http_error, network, timeout, sandbox
    registry=registry
)

# ============================================================================
# Credential Metrics
# ============================================================================

auth_resolution_failures_total = Counter(
    'auth_resolution_failures_total',
    'Credential resolutions downgraded to no auth',
    ['reason'],
    registry=registry
)

oauth_token_refreshes_total = Counter(
    'oauth_token_refreshes_total',
    'OAuth2 token refresh attempts',
    ['result'],
    registry=registry
)

# ============================================================================
# HTTP Request Metrics
# ============================================================================

http_requests_total = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'status'],
    registry=registry
)


# ============================================================================
# Helper Functions
# ============================================================================

def record_action_execution(
    org_id: str,
    tool_key: str,
    action_key: str,
    status: str,
    duration_seconds: Optional[float] = None
) -> None:
    """
    Record an action execution outcome.

    Args:
        org_id: Organization the execution belongs to
        tool_key: Tool name (falls back to the action key when unknown)
        action_key: Action key
        status: started, success or error
        duration_seconds: Observed duration, recorded for successes only
    """
    action_executions_total.labels(
        org_id=org_id,
        tool_key=tool_key,
        action_key=action_key,
        status=status
    ).inc()

    if duration_seconds is not None and status == "success":
        action_execution_duration_seconds.labels(
            org_id=org_id,
            tool_key=tool_key,
            action_key=action_key
        ).observe(duration_seconds)


def record_validation_errors(org_id: str, action_key: str, error_types: list[str]) -> None:
    """Count validation failures per error type"""
    for error_type in error_types:
        input_validation_errors_total.labels(
            org_id=org_id,
            action_key=action_key,
            error_type=error_type
        ).inc()


def record_sandbox_execution(outcome: str) -> None:
    sandbox_executions_total.labels(outcome=outcome).inc()


def set_active_sandboxes(count: int) -> None:
    sandboxes_active.set(count)


def record_auth_resolution_failure(reason: str) -> None:
    auth_resolution_failures_total.labels(reason=reason).inc()


def record_token_refresh(result: str) -> None:
    oauth_token_refreshes_total.labels(result=result).inc()


def record_http_request(method: str, endpoint: str, status: int) -> None:
    http_requests_total.labels(method=method, endpoint=endpoint, status=str(status)).inc()


def get_metrics() -> Tuple[bytes, str]:
    """
    Generate Prometheus metrics in text format.

    Returns:
        Tuple of (metrics_data, content_type)
    """
    return generate_latest(registry), CONTENT_TYPE_LATEST
