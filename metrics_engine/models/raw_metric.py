"""Raw Metric SQLAlchemy Model

One scalar observation as reported by a collector or client.
"""

from sqlalchemy import JSON, Column, DateTime, Float, Index, Integer, String, Text

from metrics_engine.lib.database import Base
from metrics_engine.lib.timeutils import utcnow


class RawMetric(Base):
    """One scalar observation.

    Append-only: rows are never updated, only deleted by the retention
    sweeper once retention_end has passed.
    """

    __tablename__ = 'raw_metrics'

    id = Column(Integer, primary_key=True, autoincrement=True)
    timestamp = Column(DateTime, nullable=False, default=utcnow)
    metric_type = Column(String(50), nullable=False)
    metric_name = Column(String(100), nullable=False)
    value = Column(Float, nullable=False)
    unit = Column(String(50), nullable=True)
    source = Column(String(100), nullable=True)
    source_id = Column(String(100), nullable=True)
    tags = Column(JSON, nullable=True)
    description = Column(Text, nullable=True)
    retention_end = Column(DateTime, nullable=True)

    __table_args__ = (
        Index('ix_raw_metrics_identity_timestamp', 'metric_type', 'metric_name', 'timestamp'),
        Index('ix_raw_metrics_retention_end', 'retention_end'),
    )

    def __repr__(self) -> str:
        return (
            f"<RawMetric(id={self.id}, metric='{self.metric_type}.{self.metric_name}', "
            f'value={self.value}, timestamp={self.timestamp})>'
        )

    def to_dict(self) -> dict:
        """Convert model to dictionary."""
        return {
            'id': self.id,
            'timestamp': self.timestamp.isoformat() if self.timestamp else None,
            'metric_type': self.metric_type,
            'metric_name': self.metric_name,
            'value': self.value,
            'unit': self.unit,
            'source': self.source,
            'source_id': self.source_id,
            'tags': self.tags or {},
            'description': self.description,
            'retention_end': self.retention_end.isoformat() if self.retention_end else None,
        }
