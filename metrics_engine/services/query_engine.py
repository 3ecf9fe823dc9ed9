"""Query engine for raw and aggregated metrics.

Routes a MetricQuery to the raw metrics table (no group_by) or to the
aggregation buckets of one window (group_by in 5m, 1h, 1d, 1w), projecting
the requested statistic as the point value.
"""

import logging
import re
from datetime import datetime, timedelta
from typing import List, Optional

from metrics_engine.lib.errors import InvalidQueryError, InvalidQueryRangeError
from metrics_engine.lib.timeutils import to_naive_utc, utcnow
from metrics_engine.models.query import AggregationField, MetricDataPoint, MetricQuery, TimeRange, TimeWindow
from metrics_engine.services.repository import MetricsRepository

logger = logging.getLogger(__name__)

_RELATIVE_RANGE = re.compile(r'^\s*(\d+)\s*([mhdw])\s*$')
_RANGE_UNITS = {
    'm': 'minutes',
    'h': 'hours',
    'd': 'days',
    'w': 'weeks',
}


def parse_time_range(time_range: str, now: Optional[datetime] = None) -> TimeRange:
    """Parse a relative time range string ending now.

    Args:
        time_range: Amount plus unit, e.g. "30m", "24h", "7d", "4w"
        now: End of the range (defaults to current UTC time)

    Returns:
        TimeRange of [now - amount, now]

    Raises:
        InvalidQueryRangeError: The string is not a positive amount with a known unit
    """
    end_time = now or utcnow()
    match = _RELATIVE_RANGE.match(time_range or '')
    if not match or int(match.group(1)) == 0:
        raise InvalidQueryRangeError(f'Unsupported time range: {time_range!r}')

    amount, unit = int(match.group(1)), match.group(2)
    start_time = end_time - timedelta(**{_RANGE_UNITS[unit]: amount})
    return TimeRange(start=start_time, end=end_time)


class QueryEngine:
    """Answers time-range queries against raw or aggregated metrics."""

    def __init__(self, repository: MetricsRepository):
        """Initialize query engine.

        Args:
            repository: Storage access
        """
        self.repository = repository

    def query(self, query: MetricQuery) -> List[MetricDataPoint]:
        """Run a metric query.

        Args:
            query: Metric identity, range, optional window and projection

        Returns:
            Points in ascending timestamp order (empty when nothing is in range)

        Raises:
            InvalidQueryRangeError: start/end missing or end before start
            InvalidQueryError: group_by is not a supported window
        """
        start_time, end_time = self._validate_range(query.time_range)

        if not query.group_by:
            return self._query_raw(query, start_time, end_time)

        try:
            window = TimeWindow(query.group_by)
        except ValueError:
            raise InvalidQueryError(
                f"Unsupported group_by {query.group_by!r}; expected one of "
                f"{', '.join(w.value for w in TimeWindow)}"
            ) from None
        return self._query_aggregated(query, window, start_time, end_time)

    def _validate_range(self, time_range: TimeRange) -> tuple[datetime, datetime]:
        """Check the range before any storage access.

        Returns:
            Tuple of (start_time, end_time) as naive UTC
        """
        if time_range is None or time_range.start is None or time_range.end is None:
            raise InvalidQueryRangeError('Query time range needs both start and end')

        start_time = to_naive_utc(time_range.start)
        end_time = to_naive_utc(time_range.end)
        if end_time < start_time:
            raise InvalidQueryRangeError(
                f'Query time range ends before it starts: {start_time.isoformat()} > {end_time.isoformat()}'
            )
        return start_time, end_time

    def _query_raw(self, query: MetricQuery, start_time: datetime, end_time: datetime) -> List[MetricDataPoint]:
        """Raw metrics in [start, end] filtered by exact tag values."""
        metrics = self.repository.query_raw_metrics(
            query.metric_type,
            query.metric_name,
            start_time,
            end_time,
            tags=query.tags,
            limit=query.limit,
        )
        logger.debug(f'Raw query {query.metric_type}.{query.metric_name}: {len(metrics)} points')
        return [
            MetricDataPoint(timestamp=m.timestamp, value=m.value, tags=m.tags or {})
            for m in metrics
        ]

    def _query_aggregated(
        self,
        query: MetricQuery,
        window: TimeWindow,
        start_time: datetime,
        end_time: datetime
    ) -> List[MetricDataPoint]:
        """Aggregation buckets of one window, projecting the requested field."""
        field = self._aggregation_field(query.aggregation)
        buckets = self.repository.query_aggregations(
            query.metric_type,
            query.metric_name,
            window.value,
            start_time,
            end_time,
            limit=query.limit,
        )
        logger.debug(
            f'Aggregated query {query.metric_type}.{query.metric_name} '
            f'({window.value}, {field.value}): {len(buckets)} points'
        )
        return [
            MetricDataPoint(timestamp=b.timestamp, value=getattr(b, field.value), tags=b.tags or {})
            for b in buckets
        ]

    def _aggregation_field(self, aggregation: Optional[str]) -> AggregationField:
        """Map the requested statistic to a bucket column, defaulting to avg."""
        try:
            return AggregationField((aggregation or '').lower())
        except ValueError:
            logger.warning(f'Unknown aggregation {aggregation!r}, using avg')
            return AggregationField.AVG
