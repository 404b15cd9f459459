"""
Prometheus collectors shared by the blueprints and the stock engine.
"""
import os
from prometheus_client import Counter, Histogram, Gauge, CollectorRegistry
from prometheus_client import multiprocess, REGISTRY

# Check if running in multi-process mode (Gunicorn)
MULTIPROCESS_MODE = os.environ.get('PROMETHEUS_MULTIPROC_DIR') is not None

# Use multiprocess registry in production with Gunicorn
if MULTIPROCESS_MODE:
    registry = CollectorRegistry()
    multiprocess.MultiProcessCollector(registry)
else:
    registry = REGISTRY

_metric_registry = registry if not MULTIPROCESS_MODE else None

# HTTP Request Metrics
http_requests_total = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'http_status'],
    registry=_metric_registry
)

http_request_duration_seconds = Histogram(
    'http_request_duration_seconds',
    'HTTP request latency in seconds',
    ['method', 'endpoint'],
    registry=_metric_registry,
    buckets=(0.005, 0.01, 0.025, 0.05, 0.075, 0.1, 0.25, 0.5, 0.75, 1.0, 2.5, 5.0, 7.5, 10.0)
)

http_requests_in_flight = Gauge(
    'http_requests_in_flight',
    'Number of HTTP requests currently being processed',
    registry=_metric_registry
)

# Stock ledger metrics
stock_movements_total = Counter(
    'stock_movements_total',
    'Stock movements recorded in the ledger',
    ['transaction_type'],
    registry=_metric_registry
)

stock_movement_failures_total = Counter(
    'stock_movement_failures_total',
    'Stock movements rejected or failed',
    ['transaction_type', 'reason'],
    registry=_metric_registry
)

stock_compensations_total = Counter(
    'stock_compensations_total',
    'Ledger rows deleted to undo a failed balance update',
    registry=_metric_registry
)

stock_reconciliation_errors_total = Counter(
    'stock_reconciliation_errors_total',
    'Failed compensations leaving the ledger and the balance out of sync',
    registry=_metric_registry
)
