"""Alert rule, notification channel and alert instance management.

All operations are keyed by the owning user: objects of another user behave
as if they did not exist (NotFoundError subclasses).
"""

from typing import List, Optional

from pydantic import ValidationError

from metrics_engine.lib.errors import (
    InvalidAlertRuleError,
    InvalidChannelConfigurationError,
    InvalidStatusTransitionError,
)
from metrics_engine.lib.structured_logger import StructuredLogger
from metrics_engine.lib.timeutils import utcnow
from metrics_engine.models.alert_instance import AlertInstance, AlertStatus
from metrics_engine.models.alert_rule import AlertCondition, AlertRule
from metrics_engine.models.alert_schemas import (
    AlertInstanceFilter,
    AlertInstancePage,
    AlertRuleCreate,
    AlertRuleUpdate,
    ChannelCreate,
    ChannelUpdate,
)
from metrics_engine.models.channel_config import parse_channel_config
from metrics_engine.models.notification_channel import NotificationChannel
from metrics_engine.services.repository import MetricsRepository

logger = StructuredLogger(__name__)

# Resolved is terminal
_ALLOWED_TRANSITIONS = {
    AlertStatus.TRIGGERED: {AlertStatus.ACKNOWLEDGED, AlertStatus.RESOLVED, AlertStatus.SUPPRESSED},
    AlertStatus.ACKNOWLEDGED: {AlertStatus.RESOLVED, AlertStatus.SUPPRESSED},
    AlertStatus.SUPPRESSED: {AlertStatus.ACKNOWLEDGED, AlertStatus.RESOLVED},
    AlertStatus.RESOLVED: set(),
}

_NULLABLE_RULE_FIELDS = frozenset({'description', 'threshold_max', 'tags'})


class AlertService:
    """CRUD over alert rules and channels plus the alert instance workflow."""

    def __init__(self, repository: MetricsRepository):
        self.repository = repository

    # ========================================================================
    # Alert rules
    # ========================================================================

    def create_rule(self, user_id: str, data: AlertRuleCreate) -> AlertRule:
        """Create an alert rule owned by user_id.

        Args:
            user_id: Owner
            data: Validated rule definition

        Returns:
            Persisted rule with channels

        Raises:
            NotificationChannelNotFoundError: A channel id is not one of the user's channels
        """
        rule = AlertRule(
            name=data.name,
            description=data.description,
            metric_type=data.metric_type,
            metric_name=data.metric_name,
            condition=data.condition.value,
            threshold=data.threshold,
            threshold_max=data.threshold_max,
            severity=data.severity.value,
            is_enabled=data.is_enabled,
            evaluation_window=data.evaluation_window,
            tags=data.tags,
            user_id=user_id,
        )
        rule = self.repository.add_rule(rule, data.channel_ids)
        logger.info('Alert rule created', rule_id=rule.id, user_id=user_id, metric_name=rule.metric_name)
        return rule

    def get_rule(self, user_id: str, rule_id: int) -> AlertRule:
        return self.repository.get_rule(rule_id, user_id)

    def list_rules(self, user_id: str) -> List[AlertRule]:
        return self.repository.list_rules(user_id)

    def update_rule(self, user_id: str, rule_id: int, data: AlertRuleUpdate) -> AlertRule:
        """Apply the fields set on data to the rule.

        Raises:
            AlertRuleNotFoundError: Unknown rule for this user
            InvalidAlertRuleError: Result would be 'between' without a valid upper bound
        """
        changes = {
            key: value
            for key, value in data.model_dump(exclude_unset=True, exclude={'channel_ids'}).items()
            if value is not None or key in _NULLABLE_RULE_FIELDS
        }
        for key in ('condition', 'severity'):
            if changes.get(key) is not None:
                changes[key] = changes[key].value

        current = self.repository.get_rule(rule_id, user_id)
        condition = AlertCondition.parse(changes.get('condition') or current.condition)
        threshold = changes.get('threshold', current.threshold)
        threshold_max = changes.get('threshold_max', current.threshold_max)
        if condition is AlertCondition.BETWEEN and (threshold_max is None or threshold_max < threshold):
            raise InvalidAlertRuleError("condition 'between' needs threshold_max >= threshold")

        channel_ids = data.channel_ids if 'channel_ids' in data.model_fields_set else None
        rule = self.repository.update_rule(rule_id, user_id, changes, channel_ids)
        logger.info('Alert rule updated', rule_id=rule_id, user_id=user_id, fields=sorted(changes))
        return rule

    def delete_rule(self, user_id: str, rule_id: int) -> None:
        self.repository.delete_rule(rule_id, user_id)
        logger.info('Alert rule deleted', rule_id=rule_id, user_id=user_id)

    # ========================================================================
    # Notification channels
    # ========================================================================

    def create_channel(self, user_id: str, data: ChannelCreate) -> NotificationChannel:
        channel = NotificationChannel(
            name=data.name,
            type=data.type.value,
            configuration=data.configuration,
            is_enabled=data.is_enabled,
            user_id=user_id,
        )
        channel = self.repository.add_channel(channel)
        logger.info('Notification channel created', channel_id=channel.id, channel_type=channel.type, user_id=user_id)
        return channel

    def get_channel(self, user_id: str, channel_id: int) -> NotificationChannel:
        return self.repository.get_channel(channel_id, user_id)

    def list_channels(self, user_id: str) -> List[NotificationChannel]:
        return self.repository.list_channels(user_id)

    def update_channel(self, user_id: str, channel_id: int, data: ChannelUpdate) -> NotificationChannel:
        """Apply the fields set on data; a new configuration is checked against the channel type.

        Raises:
            NotificationChannelNotFoundError: Unknown channel for this user
            InvalidChannelConfigurationError: Configuration does not match the type
        """
        changes = {key: value for key, value in data.model_dump(exclude_unset=True).items() if value is not None}
        if changes.get('configuration') is not None:
            current = self.repository.get_channel(channel_id, user_id)
            try:
                parse_channel_config(current.type, changes['configuration'])
            except ValidationError as e:
                raise InvalidChannelConfigurationError(f'Invalid {current.type} configuration: {e}') from e

        channel = self.repository.update_channel(channel_id, user_id, changes)
        logger.info('Notification channel updated', channel_id=channel_id, user_id=user_id)
        return channel

    def delete_channel(self, user_id: str, channel_id: int) -> None:
        self.repository.delete_channel(channel_id, user_id)
        logger.info('Notification channel deleted', channel_id=channel_id, user_id=user_id)

    # ========================================================================
    # Alert instances
    # ========================================================================

    def list_instances(self, user_id: str, filters: Optional[AlertInstanceFilter] = None) -> AlertInstancePage:
        """Page of the user's alert instances, newest first.

        Args:
            user_id: Owner of the rules
            filters: Optional status/severity filter and limit/offset

        Returns:
            AlertInstancePage with items and total matching count
        """
        filters = filters or AlertInstanceFilter()
        items, total = self.repository.list_alert_instances(
            user_id,
            status=filters.status.value if filters.status else None,
            severity=filters.severity.value if filters.severity else None,
            limit=filters.limit,
            offset=filters.offset,
        )
        return AlertInstancePage(
            items=[item.to_dict() for item in items],
            total=total,
            limit=filters.limit,
            offset=filters.offset,
        )

    def get_instance(self, user_id: str, instance_id: int) -> AlertInstance:
        return self.repository.get_alert_instance(instance_id, user_id)

    def update_instance_status(self, user_id: str, instance_id: int, status: AlertStatus) -> AlertInstance:
        """Move an alert instance through its workflow.

        Setting the current status again is a no-op. Resolving records
        resolved_at.

        Raises:
            AlertInstanceNotFoundError: Unknown instance for this user
            InvalidStatusTransitionError: Transition not allowed
        """
        status = AlertStatus(status)
        instance = self.repository.get_alert_instance(instance_id, user_id)
        current = AlertStatus(instance.status)
        if status is current:
            return instance
        if status not in _ALLOWED_TRANSITIONS[current]:
            raise InvalidStatusTransitionError(f'Cannot move alert {instance_id} from {current.value} to {status.value}')

        changes = {'status': status.value}
        if status is AlertStatus.RESOLVED:
            changes['resolved_at'] = utcnow()
        instance = self.repository.update_alert_instance(instance_id, user_id, changes)
        logger.info('Alert status changed', alert_id=instance_id, user_id=user_id, status=status.value)
        return instance

    def acknowledge(self, user_id: str, instance_id: int) -> AlertInstance:
        return self.update_instance_status(user_id, instance_id, AlertStatus.ACKNOWLEDGED)

    def resolve(self, user_id: str, instance_id: int) -> AlertInstance:
        return self.update_instance_status(user_id, instance_id, AlertStatus.RESOLVED)

    def suppress(self, user_id: str, instance_id: int) -> AlertInstance:
        return self.update_instance_status(user_id, instance_id, AlertStatus.SUPPRESSED)
