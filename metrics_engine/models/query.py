"""Query Pydantic Models.

Request and result shapes of the query engine.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class TimeWindow(str, Enum):
    """Aggregation resolutions maintained by the aggregator."""
    FIVE_MINUTES = '5m'
    ONE_HOUR = '1h'
    ONE_DAY = '1d'
    ONE_WEEK = '1w'


class AggregationField(str, Enum):
    """Statistic projected as the point value of an aggregated query."""
    AVG = 'avg'
    SUM = 'sum'
    MIN = 'min'
    MAX = 'max'
    P50 = 'p50'
    P95 = 'p95'
    P99 = 'p99'


class TimeRange(BaseModel):
    """Closed time range [start, end] in naive UTC.

    Both bounds are optional here so that a missing bound surfaces as
    InvalidQueryRangeError from the query engine rather than a model error.
    """

    start: Optional[datetime] = Field(default=None, description='Range start (inclusive)')
    end: Optional[datetime] = Field(default=None, description='Range end (inclusive)')


class MetricQuery(BaseModel):
    """Time-range query over raw metrics or one aggregation window.

    Attributes:
        metric_type: Metric category (e.g. 'system')
        metric_name: Metric name (e.g. 'cpu_usage')
        time_range: Range to read
        aggregation: Statistic to project when group_by is set; unknown values fall back to avg
        group_by: None for raw points, or one of 5m, 1h, 1d, 1w
        tags: Exact tag-value filters (raw queries only)
        limit: Maximum number of points returned
    """

    metric_type: str = Field(..., min_length=1, description='Metric category')
    metric_name: str = Field(..., min_length=1, description='Metric name')
    time_range: TimeRange = Field(..., description='Time range to query')
    aggregation: str = Field(default='avg', description='Statistic for aggregated queries')
    group_by: Optional[str] = Field(default=None, description='Aggregation window')
    tags: Optional[Dict[str, str]] = Field(default=None, description='Exact tag filters')
    limit: int = Field(default=1000, ge=1, description='Maximum points returned')

    model_config = {
        'json_schema_extra': {
            'example': {
                'metric_type': 'system',
                'metric_name': 'cpu_usage',
                'time_range': {'start': '2024-01-01T00:00:00', 'end': '2024-01-02T00:00:00'},
                'aggregation': 'p95',
                'group_by': '1h',
                'limit': 1000
            }
        }
    }


class MetricDataPoint(BaseModel):
    """One (timestamp, value, tags) point of a query result."""

    timestamp: datetime
    value: float
    tags: Dict[str, Any] = Field(default_factory=dict)
