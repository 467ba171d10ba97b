"""Observability module for DRIP."""

from .health import HealthCheck, HealthServer, HealthStatus, LedgerHealthCheck
from .logging import clear_request_id, configure_logging, get_logger, set_request_id
from .metrics import (
    DISBURSEMENT_DURATION,
    DISBURSEMENTS,
    INCONSISTENT_STATE,
    REJECTIONS,
    REQUEST_DURATION,
    REQUESTS,
)

__all__ = [
    # Health
    "HealthCheck",
    "HealthServer",
    "HealthStatus",
    "LedgerHealthCheck",
    # Logging
    "clear_request_id",
    "configure_logging",
    "get_logger",
    "set_request_id",
    # Metrics
    "DISBURSEMENT_DURATION",
    "DISBURSEMENTS",
    "INCONSISTENT_STATE",
    "REJECTIONS",
    "REQUEST_DURATION",
    "REQUESTS",
]
