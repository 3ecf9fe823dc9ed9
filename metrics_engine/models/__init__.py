"""Models package for database entities and Pydantic models."""

from metrics_engine.models.alert_instance import AlertInstance, AlertStatus
from metrics_engine.models.alert_rule import AlertCondition, AlertRule, AlertSeverity, alert_rule_channels
from metrics_engine.models.metric_aggregation import MetricAggregation
from metrics_engine.models.notification_channel import ChannelType, NotificationChannel
from metrics_engine.models.raw_metric import RawMetric

__all__ = [
    'RawMetric',
    'MetricAggregation',
    'AlertRule',
    'AlertCondition',
    'AlertSeverity',
    'AlertInstance',
    'AlertStatus',
    'NotificationChannel',
    'ChannelType',
    'alert_rule_channels',
]
