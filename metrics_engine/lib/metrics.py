"""Prometheus-compatible instrumentation of the engine itself."""

from prometheus_client import Counter, Gauge, Histogram


# Ingestion metrics
metrics_ingested_total = Counter(
    'metrics_engine_ingested_total',
    'Raw metrics durably stored',
    ['metric_type']
)

metrics_rejected_total = Counter(
    'metrics_engine_rejected_total',
    'Raw metrics rejected by the store',
    ['reason']
)

# Aggregation metrics
aggregation_duration_seconds = Histogram(
    'metrics_engine_aggregation_duration_seconds',
    'Time to recompute one aggregation bucket',
    ['time_window'],
    buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0]
)

aggregation_failures_total = Counter(
    'metrics_engine_aggregation_failures_total',
    'Aggregation bucket recomputations that failed',
    ['time_window']
)

# Alerting metrics
alerts_triggered_total = Counter(
    'metrics_engine_alerts_triggered_total',
    'Alert instances created',
    ['severity']
)

notifications_total = Counter(
    'metrics_engine_notifications_total',
    'Notification delivery attempts',
    ['channel_type', 'status']
)

# Retention metrics
retention_deleted_total = Counter(
    'metrics_engine_retention_deleted_total',
    'Rows deleted by the retention sweeper',
    ['table']
)

# Worker pool metrics
background_tasks_dropped_total = Counter(
    'metrics_engine_background_tasks_dropped_total',
    'Units of work submitted after the worker pool shut down',
    ['task']
)

background_backlog_exceeded_total = Counter(
    'metrics_engine_background_backlog_exceeded_total',
    'Times the worker pool backlog reached its warning threshold'
)

background_tasks_pending = Gauge(
    'metrics_engine_background_tasks_pending',
    'Units of work queued or running in the worker pool'
)


def record_ingested(metric_type: str):
    """Record one stored raw metric.

    Args:
        metric_type: Metric category (e.g. 'system')
    """
    metrics_ingested_total.labels(metric_type=metric_type).inc()


def record_rejected(reason: str):
    """Record one rejected raw metric.

    Args:
        reason: 'invalid' or 'store_unavailable'
    """
    metrics_rejected_total.labels(reason=reason).inc()


def record_aggregation(time_window: str, duration_seconds: float):
    """Record the duration of one bucket recomputation."""
    aggregation_duration_seconds.labels(time_window=time_window).observe(duration_seconds)


def record_aggregation_failure(time_window: str):
    aggregation_failures_total.labels(time_window=time_window).inc()


def record_alert_triggered(severity: str):
    alerts_triggered_total.labels(severity=severity).inc()


def record_notification(channel_type: str, success: bool):
    """Record one notification delivery attempt.

    Args:
        channel_type: email, slack, webhook or teams
        success: Whether the channel accepted the notification
    """
    notifications_total.labels(
        channel_type=channel_type,
        status='success' if success else 'failure'
    ).inc()


def record_retention_deleted(table: str, count: int):
    retention_deleted_total.labels(table=table).inc(count)


def record_task_dropped(task: str):
    background_tasks_dropped_total.labels(task=task).inc()


def update_pending_tasks(count: int):
    background_tasks_pending.set(count)


def record_backlog_exceeded():
    background_backlog_exceeded_total.inc()
