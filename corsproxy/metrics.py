from prometheus_client import Counter, Histogram

REQUESTS_TOTAL = Counter(
    "corsproxy_requests_total",
    "Total proxy requests by authorization decision",
    ["decision"],
)

FORWARD_TOTAL = Counter(
    "corsproxy_forward_total",
    "Total forward attempts",
    ["result"],
)

FORWARD_LATENCY_SECONDS = Histogram(
    "corsproxy_forward_latency_seconds",
    "Time until upstream response headers arrive, in seconds",
)
