"""Prometheus metrics for micro-deposit verification, upstream calls and merge sweeps"""

from prometheus_client import Counter, Histogram

# Verification metrics
initiation_counter = Counter(
    "paygate_micro_deposit_initiations_total",
    "Micro-deposit initiations",
    ["outcome"],  # initiated | degraded | rejected | failed
)

confirmation_counter = Counter(
    "paygate_micro_deposit_confirmations_total",
    "Micro-deposit confirmation attempts",
    ["outcome"],  # verified | mismatch | invalid
)

# ACH service metrics
ach_file_failures_counter = Counter(
    "paygate_ach_file_failures_total",
    "ACH file submissions or validations that failed",
)

# Ledger metrics
ledger_latency_histogram = Histogram(
    "paygate_ledger_latency_seconds",
    "Accounts service response time",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

ledger_post_failures_counter = Counter(
    "paygate_ledger_post_failures_total",
    "Failed ledger transaction post attempts",
)

# Merge sweep metrics
merge_mark_counter = Counter(
    "paygate_micro_deposit_merges_total",
    "Micro-deposits processed by the merge sweep",
    ["outcome"],  # merged | skipped | failed
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_initiation(outcome: str) -> None:
    initiation_counter.labels(outcome=outcome).inc()


def record_confirmation(outcome: str) -> None:
    confirmation_counter.labels(outcome=outcome).inc()
