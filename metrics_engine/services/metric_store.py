"""Metric store: validates, persists and fans out raw metrics."""

import math
import numbers
from datetime import timedelta
from typing import Any, Callable, Iterable, List, Mapping, Tuple, Union
from uuid import uuid4

from sqlalchemy.exc import SQLAlchemyError

from metrics_engine.lib.distributed_tracing import correlation_id, get_correlation_id
from metrics_engine.lib.errors import InvalidMetricError, StoreUnavailableError
from metrics_engine.lib.metrics import record_ingested, record_rejected
from metrics_engine.lib.structured_logger import StructuredLogger
from metrics_engine.lib.timeutils import to_naive_utc, utcnow
from metrics_engine.lib.worker_pool import BackgroundWorkerPool
from metrics_engine.models.raw_metric import RawMetric
from metrics_engine.services.repository import MetricsRepository

logger = StructuredLogger(__name__)

MetricLike = Union[RawMetric, Mapping[str, Any]]

_RAW_METRIC_FIELDS = frozenset(
    {'timestamp', 'metric_type', 'metric_name', 'value', 'unit', 'source', 'source_id', 'tags', 'description', 'retention_end'}
)


def validate_metric(metric: RawMetric) -> None:
    """Reject metrics without identity or with a non-finite value.

    Raises:
        InvalidMetricError: metric_type/metric_name empty, value not a finite real number
    """
    for field in ('metric_type', 'metric_name'):
        value = getattr(metric, field)
        if not isinstance(value, str) or not value.strip():
            raise InvalidMetricError(f'{field} must be a non-empty string')

    value = metric.value
    # bool is an int subclass but never a measurement
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise InvalidMetricError(f'value must be a real number, got {type(value).__name__}')
    if not math.isfinite(value):
        raise InvalidMetricError(f'value must be finite, got {value}')


class MetricStore:
    """Durable, append-only record of raw metrics.

    After every successful write, each subscriber (aggregator, alert
    evaluator) receives the stored record as its own unit of work on the
    background pool. Subscriber failures never reach the store's caller.
    """

    def __init__(
        self,
        repository: MetricsRepository,
        worker_pool: BackgroundWorkerPool,
        raw_retention_days: int = 365
    ):
        """Initialize metric store.

        Args:
            repository: Storage access
            worker_pool: Pool that runs subscriber units of work
            raw_retention_days: Retention applied when a metric has no retention_end
        """
        self.repository = repository
        self.worker_pool = worker_pool
        self.raw_retention = timedelta(days=raw_retention_days)
        self._subscribers: List[Tuple[str, Callable[[RawMetric], Any]]] = []

    def subscribe(self, task_name: str, callback: Callable[[RawMetric], Any]) -> None:
        """Register callback to run in the background for every stored metric."""
        self._subscribers.append((task_name, callback))

    def store(self, metric: MetricLike) -> RawMetric:
        """Validate and persist one raw metric.

        Missing timestamp defaults to now (UTC); missing retention_end to
        now + raw retention. A supplied retention_end is kept as is.

        Args:
            metric: RawMetric instance or mapping of RawMetric fields

        Returns:
            The stored RawMetric (with id)

        Raises:
            InvalidMetricError: Validation failed; nothing was written
            StoreUnavailableError: The database write failed
        """
        try:
            raw_metric = self._to_raw_metric(metric)
            validate_metric(raw_metric)
        except InvalidMetricError as e:
            record_rejected('invalid')
            logger.warning('Rejected invalid metric', reason=str(e))
            raise

        now = utcnow()
        raw_metric.timestamp = to_naive_utc(raw_metric.timestamp) or now
        raw_metric.retention_end = to_naive_utc(raw_metric.retention_end) or now + self.raw_retention
        raw_metric.value = float(raw_metric.value)

        token = None
        if get_correlation_id() == 'no-request-id':
            token = correlation_id.set(str(uuid4()))
        try:
            try:
                self.repository.add_raw_metric(raw_metric)
            except SQLAlchemyError as e:
                record_rejected('store_unavailable')
                logger.error(
                    'Failed to store metric',
                    exc_info=True,
                    metric_type=raw_metric.metric_type,
                    metric_name=raw_metric.metric_name,
                )
                raise StoreUnavailableError(f'Failed to store metric: {e}') from e

            record_ingested(raw_metric.metric_type)
            logger.debug(
                'Metric stored',
                metric_id=raw_metric.id,
                metric_type=raw_metric.metric_type,
                metric_name=raw_metric.metric_name,
                value=raw_metric.value,
            )
            self._notify_subscribers(raw_metric)
        finally:
            if token is not None:
                correlation_id.reset(token)

        return raw_metric

    def store_many(self, metrics: Iterable[MetricLike]) -> List[RawMetric]:
        """Store each metric independently, skipping invalid ones.

        Returns:
            Metrics that were stored

        Raises:
            StoreUnavailableError: The database write failed
        """
        stored = []
        for metric in metrics:
            try:
                stored.append(self.store(metric))
            except InvalidMetricError:
                continue
        return stored

    def _notify_subscribers(self, metric: RawMetric) -> None:
        for task_name, callback in self._subscribers:
            self.worker_pool.submit(task_name, callback, metric)

    def _to_raw_metric(self, metric: MetricLike) -> RawMetric:
        if isinstance(metric, RawMetric):
            return metric
        if not isinstance(metric, Mapping):
            raise InvalidMetricError(f'Unsupported metric payload: {type(metric).__name__}')
        unknown = set(metric) - _RAW_METRIC_FIELDS
        if unknown:
            raise InvalidMetricError(f'Unknown metric fields: {", ".join(sorted(unknown))}')
        return RawMetric(**metric)

