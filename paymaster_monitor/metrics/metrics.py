import logging
from prometheus_client import Counter, start_http_server

OUTCOME_RECORDS = Counter(
    "outcome_records_total",
    "Outcome records emitted per bucket",
    ["bucket"],
)
SKIPPED_ITEMS = Counter(
    "skipped_items_total",
    "Items skipped because they could not be decoded",
    ["stage"],
)
SINK_FAILURES = Counter(
    "sink_failures_total",
    "Failed storage appends and notifications",
    ["sink"],
)


def run_metrics_server(host="localhost", port=8000):
    """
    run prometheus metrics server
    """
    logging.info(f"Starting Metrics Http Server at: {host}:{port}")
    start_http_server(port, addr=host)
