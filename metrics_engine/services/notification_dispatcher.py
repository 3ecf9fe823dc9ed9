"""Notification dispatch: one alert, every enabled channel of its rule."""

from typing import Dict

from metrics_engine.lib.errors import ChannelDeliveryError
from metrics_engine.lib.metrics import record_notification
from metrics_engine.lib.structured_logger import StructuredLogger
from metrics_engine.models.alert_instance import AlertInstance
from metrics_engine.models.alert_rule import AlertRule
from metrics_engine.models.notification_channel import NotificationChannel
from metrics_engine.notifications.channels import ChannelSender
from metrics_engine.services.repository import MetricsRepository

logger = StructuredLogger(__name__)


class NotificationDispatcher:
    """Delivers alert instances through the senders registered per channel type.

    Channels are attempted independently and at most once; a failing channel
    is logged and never prevents delivery to the others.
    """

    def __init__(self, repository: MetricsRepository, senders: Dict[str, ChannelSender]):
        """Initialize dispatcher.

        Args:
            repository: Storage access (persists notifications_sent)
            senders: Sender per channel type value (see notifications.build_senders)
        """
        self.repository = repository
        self.senders = senders

    def dispatch(self, instance: AlertInstance, rule: AlertRule) -> int:
        """Send instance to every enabled channel attached to rule.

        Args:
            instance: Persisted alert instance
            rule: Rule that fired (channels loaded)

        Returns:
            Number of successful deliveries in this dispatch
        """
        delivered = 0
        attempted = 0
        for channel in rule.channels:
            if not channel.is_enabled:
                continue
            attempted += 1
            if self._deliver(channel, instance, rule):
                delivered += 1

        if delivered:
            instance.notifications_sent = (instance.notifications_sent or 0) + delivered
            self.repository.set_notifications_sent(instance.id, instance.notifications_sent)

        logger.info(
            'Alert dispatched',
            alert_id=instance.id,
            rule_id=rule.id,
            channels_attempted=attempted,
            channels_delivered=delivered,
        )
        return delivered

    def _deliver(self, channel: NotificationChannel, instance: AlertInstance, rule: AlertRule) -> bool:
        try:
            sender = self.senders.get(channel.type)
            if sender is None:
                raise ChannelDeliveryError(channel.type, 'unsupported channel type')
            sender.send(channel, instance, rule)
        except Exception as e:
            record_notification(channel.type, success=False)
            logger.error(
                'Failed to send alert notification',
                exc_info=not isinstance(e, ChannelDeliveryError),
                channel_id=channel.id,
                channel_name=channel.name,
                channel_type=channel.type,
                alert_id=instance.id,
                error=str(e),
            )
            return False

        record_notification(channel.type, success=True)
        logger.info(
            'Alert notification sent',
            channel_id=channel.id,
            channel_name=channel.name,
            channel_type=channel.type,
            alert_id=instance.id,
        )
        return True
