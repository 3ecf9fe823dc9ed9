"""Trend and anomaly analysis results."""

from datetime import datetime
from enum import Enum
from typing import List

from pydantic import BaseModel, Field

from metrics_engine.models.query import MetricDataPoint, TimeRange


class TrendDirection(str, Enum):
    INCREASING = 'increasing'
    DECREASING = 'decreasing'
    STABLE = 'stable'
    INSUFFICIENT_DATA = 'insufficient_data'


class AnomalySeverity(str, Enum):
    WARNING = 'warning'
    CRITICAL = 'critical'


class TrendResult(BaseModel):
    """Direction of a series from an OLS fit against the point index.

    Attributes:
        direction: increasing, decreasing, stable or insufficient_data
        slope: Regression slope per point
        change_percent: (last - first) / first * 100, 0 when first is 0
        confidence: min(|slope| * 100, 100)
    """

    direction: TrendDirection
    slope: float = 0.0
    change_percent: float = 0.0
    confidence: float = 0.0


class Anomaly(BaseModel):
    """A point outside the mean +/- 2 stddev band of the 10 points before it."""

    timestamp: datetime
    value: float
    expected_min: float
    expected_max: float
    severity: AnomalySeverity
    description: str


class TrendAnalysis(BaseModel):
    """Trend plus anomalies for one metric over one time range."""

    metric_type: str
    metric_name: str
    time_range: TimeRange
    trend: TrendResult
    anomalies: List[Anomaly] = Field(default_factory=list)
    data_points: List[MetricDataPoint] = Field(default_factory=list)
