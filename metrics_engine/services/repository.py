"""Storage access for every engine component.

MetricsRepository owns the session factory; components receive a repository
instance at construction instead of reaching for a shared connection, so
tests can hand them a repository bound to a throwaway database (or a mock).
"""

from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from metrics_engine.lib.database import session_scope
from metrics_engine.lib.errors import (
    AlertInstanceNotFoundError,
    AlertRuleNotFoundError,
    NotificationChannelNotFoundError,
)
from metrics_engine.lib.structured_logger import StructuredLogger
from metrics_engine.models.alert_instance import AlertInstance
from metrics_engine.models.alert_rule import AlertRule
from metrics_engine.models.metric_aggregation import MetricAggregation
from metrics_engine.models.notification_channel import NotificationChannel
from metrics_engine.models.raw_metric import RawMetric

logger = StructuredLogger(__name__)

# Statistics computed from the values of one bucket
StatisticsFn = Callable[[List[float]], Dict[str, float]]


class MetricsRepository:
    """Repository over the metrics, alerting and notification tables."""

    def __init__(self, session_factory: sessionmaker):
        """Initialize repository.

        Args:
            session_factory: Session factory (see lib.database.create_session_factory)
        """
        self.session_factory = session_factory

    # ========================================================================
    # Raw metrics
    # ========================================================================

    def add_raw_metric(self, metric: RawMetric) -> RawMetric:
        with session_scope(self.session_factory) as session:
            session.add(metric)
        return metric

    def query_raw_metrics(
        self,
        metric_type: str,
        metric_name: str,
        start: datetime,
        end: datetime,
        tags: Optional[Dict[str, str]] = None,
        limit: int = 1000
    ) -> List[RawMetric]:
        """Raw metrics with start <= timestamp <= end, oldest first.

        Args:
            tags: Exact tag-value matches, all must hold
            limit: Maximum rows returned
        """
        stmt = select(RawMetric).where(
            RawMetric.metric_type == metric_type,
            RawMetric.metric_name == metric_name,
            RawMetric.timestamp >= start,
            RawMetric.timestamp <= end,
        )
        for key, value in (tags or {}).items():
            stmt = stmt.where(RawMetric.tags[key].as_string() == str(value))
        stmt = stmt.order_by(RawMetric.timestamp.asc(), RawMetric.id.asc()).limit(limit)

        with session_scope(self.session_factory) as session:
            return list(session.scalars(stmt))

    def count_raw_metrics(self) -> int:
        with session_scope(self.session_factory) as session:
            return session.scalar(select(func.count(RawMetric.id)))

    def delete_expired_raw_metrics(self, now: datetime) -> int:
        """Delete raw metrics whose retention_end is set and before now."""
        stmt = delete(RawMetric).where(
            RawMetric.retention_end.is_not(None),
            RawMetric.retention_end < now,
        )
        with session_scope(self.session_factory) as session:
            return session.execute(stmt).rowcount or 0

    # ========================================================================
    # Aggregations
    # ========================================================================

    def recompute_aggregation(
        self,
        metric_type: str,
        metric_name: str,
        time_window: str,
        bucket_start: datetime,
        bucket_end: datetime,
        compute: StatisticsFn,
        retention_end: datetime
    ) -> Optional[MetricAggregation]:
        """Rebuild one bucket from every raw value in [bucket_start, bucket_end).

        The bucket row is locked (SELECT ... FOR UPDATE on backends that
        support it) for the duration of the read and overwrite. An insert
        that loses the race on the unique bucket key is retried once, which
        then finds the row and updates it in place.

        Args:
            compute: Maps the bucket's values to the statistic columns
            retention_end: Applied only when the bucket is created

        Returns:
            The bucket, or None when the window holds no raw metrics
        """
        try:
            return self._recompute_aggregation_once(
                metric_type, metric_name, time_window, bucket_start, bucket_end, compute, retention_end
            )
        except IntegrityError:
            logger.debug(
                'Lost insert race on aggregation bucket, retrying as update',
                metric_name=metric_name,
                time_window=time_window,
            )
            return self._recompute_aggregation_once(
                metric_type, metric_name, time_window, bucket_start, bucket_end, compute, retention_end
            )

    def _recompute_aggregation_once(
        self,
        metric_type: str,
        metric_name: str,
        time_window: str,
        bucket_start: datetime,
        bucket_end: datetime,
        compute: StatisticsFn,
        retention_end: datetime
    ) -> Optional[MetricAggregation]:
        with session_scope(self.session_factory) as session:
            bucket = session.scalars(
                select(MetricAggregation)
                .where(
                    MetricAggregation.metric_type == metric_type,
                    MetricAggregation.metric_name == metric_name,
                    MetricAggregation.time_window == time_window,
                    MetricAggregation.timestamp == bucket_start,
                )
                .with_for_update()
            ).first()

            values = list(session.scalars(
                select(RawMetric.value).where(
                    RawMetric.metric_type == metric_type,
                    RawMetric.metric_name == metric_name,
                    RawMetric.timestamp >= bucket_start,
                    RawMetric.timestamp < bucket_end,
                )
            ))
            if not values:
                return bucket

            if bucket is None:
                bucket = MetricAggregation(
                    metric_type=metric_type,
                    metric_name=metric_name,
                    time_window=time_window,
                    timestamp=bucket_start,
                    retention_end=retention_end,
                )
                session.add(bucket)

            for column, value in compute(values).items():
                setattr(bucket, column, value)
            return bucket

    def get_aggregation(
        self,
        metric_type: str,
        metric_name: str,
        time_window: str,
        bucket_start: datetime
    ) -> Optional[MetricAggregation]:
        with session_scope(self.session_factory) as session:
            return session.scalars(
                select(MetricAggregation).where(
                    MetricAggregation.metric_type == metric_type,
                    MetricAggregation.metric_name == metric_name,
                    MetricAggregation.time_window == time_window,
                    MetricAggregation.timestamp == bucket_start,
                )
            ).first()

    def query_aggregations(
        self,
        metric_type: str,
        metric_name: str,
        time_window: str,
        start: datetime,
        end: datetime,
        limit: int = 1000
    ) -> List[MetricAggregation]:
        """Buckets of one window with start <= bucket start <= end, oldest first."""
        stmt = (
            select(MetricAggregation)
            .where(
                MetricAggregation.metric_type == metric_type,
                MetricAggregation.metric_name == metric_name,
                MetricAggregation.time_window == time_window,
                MetricAggregation.timestamp >= start,
                MetricAggregation.timestamp <= end,
            )
            .order_by(MetricAggregation.timestamp.asc())
            .limit(limit)
        )
        with session_scope(self.session_factory) as session:
            return list(session.scalars(stmt))

    def delete_expired_aggregations(self, now: datetime) -> int:
        """Delete aggregation buckets whose retention_end is set and before now."""
        stmt = delete(MetricAggregation).where(
            MetricAggregation.retention_end.is_not(None),
            MetricAggregation.retention_end < now,
        )
        with session_scope(self.session_factory) as session:
            return session.execute(stmt).rowcount or 0

    # ========================================================================
    # Alert rules
    # ========================================================================

    def enabled_rules_for(self, metric_type: str, metric_name: str) -> List[AlertRule]:
        stmt = select(AlertRule).where(
            AlertRule.metric_type == metric_type,
            AlertRule.metric_name == metric_name,
            AlertRule.is_enabled.is_(True),
        ).order_by(AlertRule.id)
        with session_scope(self.session_factory) as session:
            return list(session.scalars(stmt))

    def add_rule(self, rule: AlertRule, channel_ids: Iterable[int]) -> AlertRule:
        """Persist a new rule linked to the owner's channels.

        Raises:
            NotificationChannelNotFoundError: A channel id is unknown or owned by another user
        """
        with session_scope(self.session_factory) as session:
            rule.channels = self._owned_channels(session, channel_ids, rule.user_id)
            session.add(rule)
        return rule

    def get_rule(self, rule_id: int, user_id: str) -> AlertRule:
        with session_scope(self.session_factory) as session:
            return self._owned_rule(session, rule_id, user_id)

    def list_rules(self, user_id: str) -> List[AlertRule]:
        stmt = select(AlertRule).where(AlertRule.user_id == user_id).order_by(AlertRule.id)
        with session_scope(self.session_factory) as session:
            return list(session.scalars(stmt))

    def update_rule(
        self,
        rule_id: int,
        user_id: str,
        changes: Dict[str, object],
        channel_ids: Optional[Iterable[int]] = None
    ) -> AlertRule:
        """Apply column changes (and optionally replace the channel set)."""
        with session_scope(self.session_factory) as session:
            rule = self._owned_rule(session, rule_id, user_id)
            for column, value in changes.items():
                setattr(rule, column, value)
            if channel_ids is not None:
                rule.channels = self._owned_channels(session, channel_ids, user_id)
            session.flush()
            return rule

    def delete_rule(self, rule_id: int, user_id: str) -> None:
        with session_scope(self.session_factory) as session:
            session.delete(self._owned_rule(session, rule_id, user_id))

    def mark_rule_triggered(self, rule_id: int, triggered_at: datetime) -> None:
        with session_scope(self.session_factory) as session:
            rule = session.get(AlertRule, rule_id)
            if rule is not None:
                rule.last_triggered = triggered_at

    # ========================================================================
    # Alert instances
    # ========================================================================

    def add_alert_instance(self, instance: AlertInstance) -> Optional[AlertInstance]:
        """Persist a firing; None when this rule already fired for this raw metric."""
        try:
            with session_scope(self.session_factory) as session:
                session.add(instance)
        except IntegrityError:
            logger.info(
                'Alert already fired for this metric',
                rule_id=instance.alert_rule_id,
                raw_metric_id=instance.raw_metric_id,
            )
            return None
        return instance

    def set_notifications_sent(self, instance_id: int, notifications_sent: int) -> None:
        with session_scope(self.session_factory) as session:
            instance = session.get(AlertInstance, instance_id)
            if instance is not None:
                instance.notifications_sent = notifications_sent

    def list_alert_instances(
        self,
        user_id: str,
        status: Optional[str] = None,
        severity: Optional[str] = None,
        limit: int = 50,
        offset: int = 0
    ) -> Tuple[List[AlertInstance], int]:
        """Instances of the user's rules, newest first.

        Returns:
            Tuple of (page of instances, total matching count)
        """
        conditions = [AlertRule.user_id == user_id]
        if status:
            conditions.append(AlertInstance.status == status)
        if severity:
            conditions.append(AlertRule.severity == severity)

        base = select(AlertInstance).join(AlertRule, AlertInstance.alert_rule_id == AlertRule.id).where(*conditions)
        with session_scope(self.session_factory) as session:
            total = session.scalar(select(func.count()).select_from(base.subquery()))
            items = list(session.scalars(
                base.order_by(AlertInstance.triggered_at.desc(), AlertInstance.id.desc())
                .limit(limit)
                .offset(offset)
            ))
            return items, total or 0

    def get_alert_instance(self, instance_id: int, user_id: str) -> AlertInstance:
        with session_scope(self.session_factory) as session:
            return self._owned_instance(session, instance_id, user_id)

    def update_alert_instance(self, instance_id: int, user_id: str, changes: Dict[str, object]) -> AlertInstance:
        with session_scope(self.session_factory) as session:
            instance = self._owned_instance(session, instance_id, user_id)
            for column, value in changes.items():
                setattr(instance, column, value)
            return instance

    # ========================================================================
    # Notification channels
    # ========================================================================

    def add_channel(self, channel: NotificationChannel) -> NotificationChannel:
        with session_scope(self.session_factory) as session:
            session.add(channel)
        return channel

    def get_channel(self, channel_id: int, user_id: str) -> NotificationChannel:
        with session_scope(self.session_factory) as session:
            return self._owned_channel(session, channel_id, user_id)

    def list_channels(self, user_id: str) -> List[NotificationChannel]:
        stmt = select(NotificationChannel).where(NotificationChannel.user_id == user_id).order_by(NotificationChannel.id)
        with session_scope(self.session_factory) as session:
            return list(session.scalars(stmt))

    def update_channel(self, channel_id: int, user_id: str, changes: Dict[str, object]) -> NotificationChannel:
        with session_scope(self.session_factory) as session:
            channel = self._owned_channel(session, channel_id, user_id)
            for column, value in changes.items():
                setattr(channel, column, value)
            return channel

    def delete_channel(self, channel_id: int, user_id: str) -> None:
        with session_scope(self.session_factory) as session:
            session.delete(self._owned_channel(session, channel_id, user_id))

    # ========================================================================
    # Ownership lookups (caller holds the session)
    # ========================================================================

    def _owned_rule(self, session, rule_id: int, user_id: str) -> AlertRule:
        rule = session.get(AlertRule, rule_id)
        if rule is None or rule.user_id != user_id:
            raise AlertRuleNotFoundError(f'Alert rule {rule_id} not found')
        return rule

    def _owned_instance(self, session, instance_id: int, user_id: str) -> AlertInstance:
        instance = session.get(AlertInstance, instance_id)
        if instance is None or instance.rule is None or instance.rule.user_id != user_id:
            raise AlertInstanceNotFoundError(f'Alert instance {instance_id} not found')
        return instance

    def _owned_channel(self, session, channel_id: int, user_id: str) -> NotificationChannel:
        channel = session.get(NotificationChannel, channel_id)
        if channel is None or channel.user_id != user_id:
            raise NotificationChannelNotFoundError(f'Notification channel {channel_id} not found')
        return channel

    def _owned_channels(self, session, channel_ids: Iterable[int], user_id: str) -> List[NotificationChannel]:
        return [self._owned_channel(session, channel_id, user_id) for channel_id in dict.fromkeys(channel_ids)]
