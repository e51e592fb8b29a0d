"""Prometheus metric inventory for progress-service.

Every metric the service exports is declared here; the modules that own
the behaviour import and update them.  Counters only go up, so dashboards
use rate(); gauges are point-in-time; the duration histogram feeds
histogram_quantile() for latency percentiles.

Label values are kept low-cardinality: the HTTP endpoint label is the
route template (``/v1/lessons/{lesson_id}/progress``), never the raw path,
and no metric is labelled by user, lesson or course id.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# ---------------------------------------------------------------------------
# HTTP metrics (populated by MetricsMiddleware)
# ---------------------------------------------------------------------------

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests by method, endpoint, and status code",
    ["method", "endpoint", "status_code"],
)

REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    # Heartbeats are one read plus one conditional write; anything past
    # 250ms means the store is struggling.
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

ACTIVE_REQUESTS = Gauge(
    "http_active_requests",
    "Number of HTTP requests currently being processed",
)

# ---------------------------------------------------------------------------
# Progress engine
# ---------------------------------------------------------------------------

HEARTBEATS_PROCESSED = Counter(
    "heartbeats_processed_total",
    "Heartbeats handled, by outcome",
    ["outcome"],  # advanced|stalled|rewound|invalid|not_found|not_enrolled|store_error
)

COURSE_COMPLETIONS = Counter(
    "course_completions_total",
    "Enrollments that transitioned to completed",
)

LESSON_COMPLETIONS = Counter(
    "lesson_completions_total",
    "Progress records that transitioned to completed",
    ["source"],  # heartbeat|manual
)

PROGRESS_UPSERT_CONFLICTS = Counter(
    "progress_upsert_conflicts_total",
    "Compare-and-swap misses on progress records (each one is retried)",
)

COURSE_COMPLETION_RECOMPUTES = Counter(
    "course_completion_recomputes_total",
    "Course completion percentage recomputations",
    ["trigger"],  # completion|request|repair
)

TELEMETRY_FAILURES = Counter(
    "telemetry_failures_total",
    "Playback telemetry events dropped because the sink failed or timed out",
)

# ---------------------------------------------------------------------------
# Supporting infrastructure
# ---------------------------------------------------------------------------

CACHE_OPERATIONS = Counter(
    "cache_operations_total",
    "Cache get operations by result",
    ["operation"],  # hit|miss
)

QUEUE_DEPTH = Gauge(
    "task_queue_depth",
    "Number of tasks waiting in a queue",
    ["queue_name"],  # playback_sessions|course_completion
)
