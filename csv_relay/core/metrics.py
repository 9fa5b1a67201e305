from __future__ import annotations

from prometheus_client import Counter, Gauge

__all__: list[str] = [
    "UPLOAD_OUTCOMES",
    "RELAYED_BYTES",
    "RELAYS_IN_PROGRESS",
]

UPLOAD_OUTCOMES = Counter(
    "csv_relay_upload_outcomes_total",
    "Uploads by pipeline outcome.",
    ["outcome"],
)

RELAYED_BYTES = Counter(
    "csv_relay_relayed_bytes_total",
    "Bytes streamed back to clients for accepted uploads.",
)

RELAYS_IN_PROGRESS = Gauge(
    "csv_relay_relays_in_progress",
    "Accepted uploads currently being streamed back.",
)
