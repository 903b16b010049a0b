"""Prometheus metrics for the ingestion pipeline.

Shared by the API process and the queue worker; both expose the default
registry.
"""

from prometheus_client import Counter, Histogram

ingestions_total = Counter(
    "invoice_ingestions_total",
    "Total ingestion attempts by outcome",
    ["outcome"],  # ingested or an error code
)

ingestion_duration_seconds = Histogram(
    "invoice_ingestion_duration_seconds",
    "End-to-end ingestion duration in seconds",
    buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0),
)

extraction_duration_seconds = Histogram(
    "invoice_extraction_duration_seconds",
    "Document extraction duration in seconds",
    ["provider"],
    buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
)

extraction_requests_total = Counter(
    "invoice_extraction_requests_total",
    "Total extraction requests",
    ["provider", "status"],  # success, failed, timeout, unreadable
)

invoices_categorized_total = Counter(
    "invoices_categorized_total",
    "Categorization results",
    ["strategy", "matched"],
)
