"""Windowed aggregation of raw metrics.

Every stored raw metric lands in one bucket of each window (5m, 1h, 1d, 1w).
The bucket's statistics are recomputed from all raw values inside it, never
incrementally, so re-running aggregation over the same raw data yields the
same row.
"""

import math
import threading
import time
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Dict, Hashable, Iterator, List, Optional, Sequence

from metrics_engine.lib.metrics import record_aggregation, record_aggregation_failure
from metrics_engine.lib.structured_logger import StructuredLogger
from metrics_engine.lib.timeutils import utcnow
from metrics_engine.models.metric_aggregation import MetricAggregation
from metrics_engine.models.query import TimeWindow
from metrics_engine.models.raw_metric import RawMetric
from metrics_engine.services.repository import MetricsRepository

logger = StructuredLogger(__name__)

WINDOW_SIZES = {
    TimeWindow.FIVE_MINUTES: timedelta(minutes=5),
    TimeWindow.ONE_HOUR: timedelta(hours=1),
    TimeWindow.ONE_DAY: timedelta(days=1),
    TimeWindow.ONE_WEEK: timedelta(weeks=1),
}

# Aggregations outlive raw data; coarser windows are kept longer
WINDOW_RETENTION = {
    TimeWindow.FIVE_MINUTES: timedelta(days=30),
    TimeWindow.ONE_HOUR: timedelta(days=90),
    TimeWindow.ONE_DAY: timedelta(days=365),
    TimeWindow.ONE_WEEK: timedelta(days=5 * 365),
}


def window_start(timestamp: datetime, window: TimeWindow) -> datetime:
    """Truncate timestamp to the start of its bucket.

    5m and 1h truncate to the 5-minute and hour boundary, 1d to midnight and
    1w to Monday 00:00.
    """
    window = TimeWindow(window)
    if window is TimeWindow.FIVE_MINUTES:
        return timestamp.replace(minute=timestamp.minute - timestamp.minute % 5, second=0, microsecond=0)
    if window is TimeWindow.ONE_HOUR:
        return timestamp.replace(minute=0, second=0, microsecond=0)
    day = timestamp.replace(hour=0, minute=0, second=0, microsecond=0)
    if window is TimeWindow.ONE_DAY:
        return day
    return day - timedelta(days=day.weekday())


def window_end(start: datetime, window: TimeWindow) -> datetime:
    """Exclusive end of the bucket starting at start."""
    return start + WINDOW_SIZES[TimeWindow(window)]


def retention_for_window(window: TimeWindow) -> timedelta:
    return WINDOW_RETENTION[TimeWindow(window)]


def percentile(sorted_values: Sequence[float], p: float) -> float:
    """Linear-interpolated percentile of an ascending sequence.

    Uses rank index = p * (n - 1), interpolating between the values at the
    floor and ceiling of that index.

    Args:
        sorted_values: Values in ascending order (non-empty)
        p: Percentile as a fraction (0.0 to 1.0)

    Returns:
        Percentile value
    """
    if not sorted_values:
        return 0.0
    index = p * (len(sorted_values) - 1)
    lower = math.floor(index)
    upper = math.ceil(index)
    low_value = sorted_values[lower]
    high_value = sorted_values[upper]
    if lower == upper:
        return low_value
    interpolated = low_value + (high_value - low_value) * (index - lower)
    return min(max(interpolated, low_value), high_value)


def compute_statistics(values: Sequence[float]) -> Dict[str, float]:
    """Full statistics of one bucket.

    stddev is the population standard deviation. avg is clamped into
    [min, max] so float rounding of the mean cannot break min <= avg <= max.

    Args:
        values: Every raw value inside the bucket (non-empty)

    Returns:
        Mapping of MetricAggregation statistic columns to values
    """
    ordered = sorted(values)
    count = len(ordered)
    total = math.fsum(ordered)
    minimum = ordered[0]
    maximum = ordered[-1]
    avg = min(max(total / count, minimum), maximum)
    variance = math.fsum((value - avg) ** 2 for value in ordered) / count

    return {
        'count': count,
        'sum': total,
        'avg': avg,
        'min': minimum,
        'max': maximum,
        'p50': percentile(ordered, 0.50),
        'p95': percentile(ordered, 0.95),
        'p99': percentile(ordered, 0.99),
        'stddev': math.sqrt(variance),
    }


class KeyedLocks:
    """One lock per key, created on demand and discarded when unused."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[Hashable, List] = {}

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        with self._guard:
            entry = self._locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


class Aggregator:
    """Maintains the 5m/1h/1d/1w buckets of every metric identity.

    Recomputations of the same bucket are serialized in-process; the
    repository additionally row-locks the bucket where the backend allows.
    """

    windows = (TimeWindow.FIVE_MINUTES, TimeWindow.ONE_HOUR, TimeWindow.ONE_DAY, TimeWindow.ONE_WEEK)

    def __init__(self, repository: MetricsRepository):
        self.repository = repository
        self._bucket_locks = KeyedLocks()

    def aggregate(self, metric: RawMetric) -> List[MetricAggregation]:
        """Recompute the bucket of every window containing metric.

        A failure in one window is logged and the remaining windows still run.

        Args:
            metric: Stored raw metric

        Returns:
            Buckets successfully recomputed
        """
        buckets = []
        for window in self.windows:
            bucket = self.aggregate_window(metric.metric_type, metric.metric_name, metric.timestamp, window)
            if bucket is not None:
                buckets.append(bucket)
        return buckets

    def aggregate_window(
        self,
        metric_type: str,
        metric_name: str,
        timestamp: datetime,
        window: TimeWindow
    ) -> Optional[MetricAggregation]:
        window = TimeWindow(window)
        start = window_start(timestamp, window)
        end = window_end(start, window)
        key = (metric_type, metric_name, window.value, start)

        started = time.perf_counter()
        try:
            with self._bucket_locks.hold(key):
                bucket = self.repository.recompute_aggregation(
                    metric_type,
                    metric_name,
                    window.value,
                    start,
                    end,
                    compute_statistics,
                    utcnow() + retention_for_window(window),
                )
        except Exception:
            record_aggregation_failure(window.value)
            logger.error(
                'Aggregation failed',
                exc_info=True,
                metric_type=metric_type,
                metric_name=metric_name,
                time_window=window.value,
                bucket_start=start.isoformat(),
            )
            return None

        record_aggregation(window.value, time.perf_counter() - started)
        logger.debug(
            'Aggregation bucket recomputed',
            metric_name=metric_name,
            time_window=window.value,
            bucket_start=start.isoformat(),
            count=bucket.count if bucket is not None else 0,
        )
        return bucket
