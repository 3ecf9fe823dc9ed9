"""Alert Rule SQLAlchemy Model

Threshold rules evaluated against every stored raw metric of the same
(metric_type, metric_name).
"""

from enum import Enum
from typing import Optional

from sqlalchemy import JSON, Boolean, Column, DateTime, Float, ForeignKey, Index, Integer, String, Table, Text
from sqlalchemy.orm import relationship

from metrics_engine.lib.database import Base
from metrics_engine.lib.timeutils import utcnow


class AlertCondition(str, Enum):
    """Comparison applied as `value <op> threshold`."""
    GT = 'gt'
    GTE = 'gte'
    LT = 'lt'
    LTE = 'lte'
    EQ = 'eq'
    NE = 'ne'
    BETWEEN = 'between'

    @classmethod
    def parse(cls, value: str) -> 'AlertCondition':
        """Accept canonical names and symbolic aliases ('>', '>=', ...)."""
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().lower()
        normalized = _CONDITION_ALIASES.get(normalized, normalized)
        try:
            return cls(normalized)
        except ValueError:
            raise ValueError(f'Unsupported alert condition: {value!r}') from None


_CONDITION_ALIASES = {
    '>': 'gt',
    '>=': 'gte',
    '<': 'lt',
    '<=': 'lte',
    '==': 'eq',
    '=': 'eq',
    '!=': 'ne',
}


class AlertSeverity(str, Enum):
    INFO = 'info'
    WARNING = 'warning'
    CRITICAL = 'critical'


def evaluate_condition(
    condition: AlertCondition,
    value: float,
    threshold: float,
    threshold_max: Optional[float] = None
) -> bool:
    """Check whether value satisfies condition against the threshold(s).

    Args:
        condition: Comparison to apply
        value: Observed metric value
        threshold: Rule threshold (lower bound for BETWEEN)
        threshold_max: Upper bound, only used by BETWEEN

    Returns:
        True when the rule should fire
    """
    condition = AlertCondition.parse(condition)
    if condition is AlertCondition.GT:
        return value > threshold
    if condition is AlertCondition.GTE:
        return value >= threshold
    if condition is AlertCondition.LT:
        return value < threshold
    if condition is AlertCondition.LTE:
        return value <= threshold
    if condition is AlertCondition.EQ:
        return value == threshold
    if condition is AlertCondition.NE:
        return value != threshold
    # BETWEEN without an upper bound never fires
    if threshold_max is None:
        return False
    return threshold <= value <= threshold_max


alert_rule_channels = Table(
    'alert_rule_channels',
    Base.metadata,
    Column('alert_rule_id', Integer, ForeignKey('alert_rules.id', ondelete='CASCADE'), primary_key=True),
    Column(
        'notification_channel_id',
        Integer,
        ForeignKey('notification_channels.id', ondelete='CASCADE'),
        primary_key=True,
    ),
)


class AlertRule(Base):
    """Threshold alert rule owned by a user.

    Table: alert_rules

    Columns:
        condition: One of AlertCondition values (stored canonical)
        threshold / threshold_max: Comparison bounds (threshold_max for 'between')
        severity: info, warning or critical
        evaluation_window: Seconds; informational, evaluation is per metric
        last_triggered: Time of the most recent firing; informational only
    """

    __tablename__ = 'alert_rules'

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    metric_type = Column(String(50), nullable=False)
    metric_name = Column(String(100), nullable=False)
    condition = Column(String(20), nullable=False)
    threshold = Column(Float, nullable=False)
    threshold_max = Column(Float, nullable=True)
    severity = Column(String(20), nullable=False, default=AlertSeverity.WARNING.value)
    is_enabled = Column(Boolean, nullable=False, default=True)
    evaluation_window = Column(Integer, nullable=False, default=300)
    tags = Column(JSON, nullable=True)
    user_id = Column(String(255), nullable=False)
    last_triggered = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    channels = relationship(
        'NotificationChannel',
        secondary=alert_rule_channels,
        lazy='selectin',
        order_by='NotificationChannel.id',
    )

    __table_args__ = (
        Index('ix_alert_rules_metric', 'metric_type', 'metric_name', 'is_enabled'),
        Index('ix_alert_rules_user_id', 'user_id'),
    )

    def matches(self, value: float) -> bool:
        return evaluate_condition(AlertCondition.parse(self.condition), value, self.threshold, self.threshold_max)

    def __repr__(self) -> str:
        return (
            f"<AlertRule(id={self.id}, name='{self.name}', "
            f"metric='{self.metric_type}.{self.metric_name}', {self.condition} {self.threshold})>"
        )

    def to_dict(self) -> dict:
        """Convert model to dictionary."""
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'metric_type': self.metric_type,
            'metric_name': self.metric_name,
            'condition': self.condition,
            'threshold': self.threshold,
            'threshold_max': self.threshold_max,
            'severity': self.severity,
            'is_enabled': self.is_enabled,
            'evaluation_window': self.evaluation_window,
            'tags': self.tags or {},
            'user_id': self.user_id,
            'channel_ids': [channel.id for channel in self.channels],
            'last_triggered': self.last_triggered.isoformat() if self.last_triggered else None,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }
