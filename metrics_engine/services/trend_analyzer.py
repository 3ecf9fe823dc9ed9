"""Trend and anomaly analysis over an evenly spaced series."""

import math
from typing import List, Sequence, Union

from metrics_engine.lib.structured_logger import StructuredLogger
from metrics_engine.models.analysis import Anomaly, AnomalySeverity, TrendAnalysis, TrendDirection, TrendResult
from metrics_engine.models.query import MetricDataPoint, MetricQuery, TimeRange, TimeWindow
from metrics_engine.services.query_engine import QueryEngine, parse_time_range

logger = StructuredLogger(__name__)

SLOPE_THRESHOLD = 0.1
ANOMALY_WINDOW = 10
WARNING_SIGMA = 2.0
CRITICAL_SIGMA = 3.0


def calculate_trend(points: Sequence[MetricDataPoint]) -> TrendResult:
    """Classify the direction of a series with an OLS fit against the index.

    x is the point's position in the series, not its timestamp; hourly
    queries produce evenly spaced points.

    Args:
        points: Series in ascending time order

    Returns:
        TrendResult (insufficient_data for fewer than 2 points)
    """
    if len(points) < 2:
        return TrendResult(direction=TrendDirection.INSUFFICIENT_DATA)

    n = len(points)
    values = [point.value for point in points]
    sum_x = n * (n - 1) / 2
    sum_x2 = (n - 1) * n * (2 * n - 1) / 6
    sum_y = math.fsum(values)
    sum_xy = math.fsum(i * value for i, value in enumerate(values))
    slope = (n * sum_xy - sum_x * sum_y) / (n * sum_x2 - sum_x * sum_x)

    if slope > SLOPE_THRESHOLD:
        direction = TrendDirection.INCREASING
    elif slope < -SLOPE_THRESHOLD:
        direction = TrendDirection.DECREASING
    else:
        direction = TrendDirection.STABLE

    first, last = values[0], values[-1]
    change_percent = (last - first) / first * 100 if first != 0 else 0.0

    return TrendResult(
        direction=direction,
        slope=slope,
        change_percent=change_percent,
        confidence=min(abs(slope) * 100, 100.0),
    )


def detect_anomalies(points: Sequence[MetricDataPoint]) -> List[Anomaly]:
    """Flag points outside mean +/- 2 stddev of the 10 points before them.

    Beyond 3 stddev the anomaly is critical, otherwise warning. Needs at
    least 10 points; the first 10 are never flagged.

    Args:
        points: Series in ascending time order

    Returns:
        Anomalies in series order
    """
    if len(points) < ANOMALY_WINDOW:
        return []

    anomalies = []
    for i in range(ANOMALY_WINDOW, len(points)):
        window = [point.value for point in points[i - ANOMALY_WINDOW:i]]
        mean = math.fsum(window) / ANOMALY_WINDOW
        stddev = math.sqrt(math.fsum((value - mean) ** 2 for value in window) / ANOMALY_WINDOW)

        value = points[i].value
        expected_min = mean - WARNING_SIGMA * stddev
        expected_max = mean + WARNING_SIGMA * stddev
        if expected_min <= value <= expected_max:
            continue

        if value < mean - CRITICAL_SIGMA * stddev or value > mean + CRITICAL_SIGMA * stddev:
            severity = AnomalySeverity.CRITICAL
        else:
            severity = AnomalySeverity.WARNING

        anomalies.append(Anomaly(
            timestamp=points[i].timestamp,
            value=value,
            expected_min=expected_min,
            expected_max=expected_max,
            severity=severity,
            description=f'Value {value:.2f} outside expected range [{expected_min:.2f}, {expected_max:.2f}]',
        ))
    return anomalies


class TrendAnalyzer:
    """Runs trend and anomaly detection over hourly aggregated data."""

    def __init__(self, query_engine: QueryEngine):
        self.query_engine = query_engine

    def analyze(self, metric_type: str, metric_name: str, time_range: Union[TimeRange, str]) -> TrendAnalysis:
        """Analyze one metric over a time range.

        Args:
            metric_type: Metric category
            metric_name: Metric name
            time_range: TimeRange or relative range string ("24h", "7d")

        Returns:
            TrendAnalysis with trend, anomalies and the analyzed points

        Raises:
            InvalidQueryRangeError: Invalid or unparseable range
        """
        if isinstance(time_range, str):
            time_range = parse_time_range(time_range)

        points = self.query_engine.query(MetricQuery(
            metric_type=metric_type,
            metric_name=metric_name,
            time_range=time_range,
            aggregation='avg',
            group_by=TimeWindow.ONE_HOUR.value,
            limit=1000,
        ))

        trend = calculate_trend(points)
        anomalies = detect_anomalies(points)
        logger.info(
            'Trend analysis complete',
            metric_type=metric_type,
            metric_name=metric_name,
            points=len(points),
            direction=trend.direction.value,
            anomalies=len(anomalies),
        )
        return TrendAnalysis(
            metric_type=metric_type,
            metric_name=metric_name,
            time_range=time_range,
            trend=trend,
            anomalies=anomalies,
            data_points=points,
        )
