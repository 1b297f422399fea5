"""Prometheus metrics for gate decisions, transfers and provider calls"""

from decimal import Decimal
from pathlib import Path

from prometheus_client import REGISTRY, Counter, Gauge, Histogram, write_to_textfile

# Gate metrics
gate_check_counter = Counter(
    "invoice_delay_gate_checks_total",
    "Volume gate evaluations",
    ["outcome"],  # open | closed
)

daily_volume_gauge = Gauge(
    "invoice_delay_daily_volume",
    "Gross volume of the current business day in major units",
    ["currency"],
)

# Transfer metrics
transfer_counter = Counter(
    "invoice_delay_transfers_total",
    "Invoices whose due date was moved",
)

transfer_failure_counter = Counter(
    "invoice_delay_transfer_failures_total",
    "Due-date updates rejected by the provider",
    ["kind"],  # not_found | rate_limited | timeout | ...
)

# Provider metrics
source_fetch_failures_counter = Counter(
    "invoice_delay_source_fetch_failures_total",
    "Failed charge or invoice listings",
    ["source"],  # charges | invoices
)

provider_latency_histogram = Histogram(
    "stripe_request_latency_seconds",
    "Payment provider API response time",
    ["operation"],
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

# Runs
run_counter = Counter(
    "invoice_delay_runs_total",
    "Check-and-process cycles by terminal status",
    ["status"],  # processed | not_needed | failed
)


def record_gate_check(gate_open: bool, volume: Decimal, currency: str) -> None:
    """Record one gate evaluation and the volume it saw"""
    gate_check_counter.labels(outcome="open" if gate_open else "closed").inc()
    daily_volume_gauge.labels(currency=currency).set(float(volume))


def record_run(status: str) -> None:
    run_counter.labels(status=status).inc()


def write_metrics(path: Path) -> None:
    """Dump the default registry for a node-exporter textfile collector"""
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    write_to_textfile(str(path), REGISTRY)
