from prometheus_client import Counter, Histogram, Info

# app info
app_info = Info("pageflow_info", "Loading orchestration information")
app_info.info({"app": "pageflow", "version": "1.0.0"})

# pagination metrics
page_fetches_total = Counter(
    "pageflow_page_fetches_total",
    "Page fetches by outcome",
    ["outcome"],
)

page_fetch_duration = Histogram(
    "pageflow_page_fetch_duration_seconds",
    "Page fetch duration in seconds",
)

stale_results_discarded = Counter(
    "pageflow_stale_results_discarded_total",
    "Results or timer callbacks ignored because their generation was superseded",
    ["component"],
)

# skeleton metrics
skeleton_hold_duration = Histogram(
    "pageflow_skeleton_hold_seconds",
    "Extra time a skeleton was held visible after its data arrived",
    buckets=(0.01, 0.05, 0.1, 0.2, 0.5, 1.0),
)

# overlay metrics
overlay_cycles_total = Counter(
    "pageflow_overlay_cycles_total", "Navigation overlay show cycles started"
)

overlay_timeouts_total = Counter(
    "pageflow_overlay_timeouts_total",
    "Navigation overlay cycles ended by the hard timeout",
)


def record_fetch(outcome: str, duration_ms: float | None = None) -> None:
    """Record a page fetch outcome and optional duration"""
    page_fetches_total.labels(outcome=outcome).inc()
    if duration_ms is not None:
        page_fetch_duration.observe(duration_ms / 1000)


def record_stale(component: str) -> None:
    stale_results_discarded.labels(component=component).inc()
