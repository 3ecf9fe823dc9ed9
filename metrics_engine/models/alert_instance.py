"""Alert Instance SQLAlchemy Model

One firing of an alert rule, caused by one raw metric.
"""

from enum import Enum

from sqlalchemy import JSON, Column, DateTime, Float, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from metrics_engine.lib.database import Base


class AlertStatus(str, Enum):
    TRIGGERED = 'triggered'
    ACKNOWLEDGED = 'acknowledged'
    RESOLVED = 'resolved'
    SUPPRESSED = 'suppressed'


class AlertInstance(Base):
    """A triggered alert.

    Table: alert_instances

    Constraints:
        - UNIQUE(alert_rule_id, raw_metric_id): a rule fires at most once per metric
    """

    __tablename__ = 'alert_instances'

    id = Column(Integer, primary_key=True, autoincrement=True)
    alert_rule_id = Column(Integer, ForeignKey('alert_rules.id', ondelete='CASCADE'), nullable=False)
    # Nullable so sweeping the raw metric keeps the alert history
    raw_metric_id = Column(Integer, ForeignKey('raw_metrics.id', ondelete='SET NULL'), nullable=True)
    triggered_at = Column(DateTime, nullable=False)
    resolved_at = Column(DateTime, nullable=True)
    status = Column(String(20), nullable=False, default=AlertStatus.TRIGGERED.value)
    current_value = Column(Float, nullable=False)
    threshold_value = Column(Float, nullable=False)
    message = Column(Text, nullable=False)
    context = Column(JSON, nullable=True)
    notifications_sent = Column(Integer, nullable=False, default=0)

    rule = relationship('AlertRule', lazy='selectin')

    __table_args__ = (
        UniqueConstraint('alert_rule_id', 'raw_metric_id', name='uq_alert_instances_rule_metric'),
        Index('ix_alert_instances_status', 'status'),
        Index('ix_alert_instances_triggered_at', 'triggered_at'),
    )

    def __repr__(self) -> str:
        return (
            f"<AlertInstance(id={self.id}, rule_id={self.alert_rule_id}, "
            f"status='{self.status}', value={self.current_value})>"
        )

    def to_dict(self) -> dict:
        """Convert model to dictionary."""
        return {
            'id': self.id,
            'alert_rule_id': self.alert_rule_id,
            'raw_metric_id': self.raw_metric_id,
            'triggered_at': self.triggered_at.isoformat() if self.triggered_at else None,
            'resolved_at': self.resolved_at.isoformat() if self.resolved_at else None,
            'status': self.status,
            'current_value': self.current_value,
            'threshold_value': self.threshold_value,
            'message': self.message,
            'context': self.context or {},
            'notifications_sent': self.notifications_sent,
        }
