"""Metric Aggregation SQLAlchemy Model

Per-window statistics (5m, 1h, 1d, 1w) recomputed from raw metrics.
"""

from sqlalchemy import JSON, Column, DateTime, Float, Index, Integer, String, UniqueConstraint

from metrics_engine.lib.database import Base


class MetricAggregation(Base):
    """Pre-computed statistics of every raw metric inside one time window.

    One row per (metric_type, metric_name, time_window, timestamp); the
    statistics are overwritten in place whenever a raw metric lands in the
    bucket. Retention scales with the window size.
    """

    __tablename__ = 'metric_aggregations'

    id = Column(Integer, primary_key=True, autoincrement=True)
    metric_type = Column(String(50), nullable=False)
    metric_name = Column(String(100), nullable=False)
    time_window = Column(String(10), nullable=False)
    timestamp = Column(DateTime, nullable=False)

    count = Column(Integer, nullable=False, default=0)
    sum = Column(Float, nullable=False, default=0.0)
    avg = Column(Float, nullable=False, default=0.0)
    min = Column(Float, nullable=False, default=0.0)
    max = Column(Float, nullable=False, default=0.0)
    p50 = Column(Float, nullable=False, default=0.0)
    p95 = Column(Float, nullable=False, default=0.0)
    p99 = Column(Float, nullable=False, default=0.0)
    stddev = Column(Float, nullable=False, default=0.0)

    tags = Column(JSON, nullable=True)
    retention_end = Column(DateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint(
            'metric_type', 'metric_name', 'time_window', 'timestamp', name='uq_metric_aggregations_bucket'
        ),
        Index('ix_metric_aggregations_window_timestamp', 'time_window', 'timestamp'),
        Index('ix_metric_aggregations_retention_end', 'retention_end'),
    )

    def __repr__(self) -> str:
        return (
            f"<MetricAggregation(metric='{self.metric_type}.{self.metric_name}', "
            f"window='{self.time_window}', timestamp={self.timestamp}, count={self.count})>"
        )

    def to_dict(self) -> dict:
        """Convert model to dictionary."""
        return {
            'id': self.id,
            'metric_type': self.metric_type,
            'metric_name': self.metric_name,
            'time_window': self.time_window,
            'timestamp': self.timestamp.isoformat() if self.timestamp else None,
            'count': self.count,
            'sum': self.sum,
            'avg': self.avg,
            'min': self.min,
            'max': self.max,
            'p50': self.p50,
            'p95': self.p95,
            'p99': self.p99,
            'stddev': self.stddev,
            'retention_end': self.retention_end.isoformat() if self.retention_end else None,
        }
