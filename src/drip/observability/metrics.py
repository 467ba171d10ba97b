"""Prometheus metrics for DRIP.

Metrics:
- drip_requests_total: Counter of dispense requests by asset and outcome
- drip_rejections_total: Counter of rejected requests by asset and reason
- drip_inconsistent_state_total: Counter of dispenses whose ledger write failed
- drip_disbursements_total: Counter of disbursement commands by asset and status
- drip_request_duration_seconds: Histogram of request duration
- drip_disbursement_duration_seconds: Histogram of disbursement command duration
"""

from prometheus_client import Counter, Histogram

# Counters
REQUESTS = Counter(
    "drip_requests_total",
    "Total number of dispense requests",
    ["asset", "outcome"],
)

REJECTIONS = Counter(
    "drip_rejections_total",
    "Total number of rejected or failed dispense requests",
    ["asset", "reason"],
)

INCONSISTENT_STATE = Counter(
    "drip_inconsistent_state_total",
    "Dispenses that succeeded externally but were not recorded in the ledger",
    ["asset"],
)

DISBURSEMENTS = Counter(
    "drip_disbursements_total",
    "Total disbursement commands",
    ["asset", "status"],
)

# Histograms
REQUEST_DURATION = Histogram(
    "drip_request_duration_seconds",
    "Dispense request processing duration",
    ["asset"],
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
)

DISBURSEMENT_DURATION = Histogram(
    "drip_disbursement_duration_seconds",
    "Disbursement command duration",
    ["asset"],
    buckets=(0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0),
)
