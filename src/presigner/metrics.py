"""Prometheus metrics definitions for the presign service.

All custom metrics use the ``presigner_`` prefix. HTTP-level metrics
(request count, duration, sizes) come from
``prometheus-fastapi-instrumentator`` and are not duplicated here.

Counters reset to zero on restart; Prometheus handles the gaps via
``rate()``.
"""

from __future__ import annotations

from prometheus_client import Counter

# Flag indicating whether metrics have been initialised via init_metrics().
_initialized: bool = False

# labels: mode (put/get/unknown), outcome (ok or the error kind)
presign_requests_total: Counter | None = None

# labels: result (ok/rejected/error)
identity_checks_total: Counter | None = None


def init_metrics() -> None:
    """Create and register all Prometheus metrics.

    Called once when metrics are enabled. When disabled the module-level
    references stay ``None`` and nothing is registered in the global
    registry.
    """
    global _initialized
    global presign_requests_total, identity_checks_total

    if _initialized:
        return

    presign_requests_total = Counter(
        "presigner_presign_requests_total",
        "Total presign requests by mode and outcome",
        ["mode", "outcome"],
    )

    identity_checks_total = Counter(
        "presigner_identity_checks_total",
        "Total bearer-token verifications by result",
        ["result"],
    )

    _initialized = True


def record_presign(mode: str, outcome: str) -> None:
    """Count one presign request; no-op when metrics are disabled."""
    if presign_requests_total is not None:
        presign_requests_total.labels(mode=mode, outcome=outcome).inc()


def record_identity_check(result: str) -> None:
    """Count one identity verification; no-op when metrics are disabled."""
    if identity_checks_total is not None:
        identity_checks_total.labels(result=result).inc()
