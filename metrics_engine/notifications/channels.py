"""Channel senders, one per notification channel type.

Each sender renders the payload for its transport and delivers it. Any
failure (bad configuration, network error, rejected request) surfaces as
ChannelDeliveryError; the dispatcher decides what to do with it.
"""

import smtplib
from abc import ABC, abstractmethod
from email.mime.text import MIMEText
from email.utils import formataddr
from typing import Any, Dict, Optional

import httpx
from pydantic import BaseModel, ValidationError

from metrics_engine.lib.errors import ChannelDeliveryError
from metrics_engine.lib.structured_logger import StructuredLogger
from metrics_engine.models.alert_instance import AlertInstance
from metrics_engine.models.alert_rule import AlertRule
from metrics_engine.models.channel_config import (
    EmailChannelConfig,
    SlackChannelConfig,
    TeamsChannelConfig,
    WebhookChannelConfig,
)
from metrics_engine.models.notification_channel import ChannelType, NotificationChannel
from metrics_engine.notifications.templates import TIMESTAMP_FORMAT, email_subject, render_alert_email

logger = StructuredLogger(__name__)

TEAMS_THEME_COLORS = {
    'critical': 'FF0000',
    'warning': 'FFA500',
    'info': '008000',
}


class ChannelSender(ABC):
    """Renders and delivers one alert to one channel of a given type."""

    channel_type: ChannelType
    config_model: type

    def send(self, channel: NotificationChannel, instance: AlertInstance, rule: AlertRule) -> None:
        """Deliver instance to channel.

        Raises:
            ChannelDeliveryError: Configuration invalid or delivery failed
        """
        config = self.parse_config(channel)
        try:
            self.deliver(config, instance, rule)
        except ChannelDeliveryError:
            raise
        except (httpx.HTTPError, smtplib.SMTPException, OSError) as e:
            raise ChannelDeliveryError(self.channel_type.value, str(e)) from e

    def parse_config(self, channel: NotificationChannel) -> BaseModel:
        try:
            return self.config_model.model_validate(channel.configuration or {})
        except ValidationError as e:
            raise ChannelDeliveryError(self.channel_type.value, f'invalid configuration: {e}') from e

    @abstractmethod
    def deliver(self, config: BaseModel, instance: AlertInstance, rule: AlertRule) -> None:
        """Send the rendered payload; raise on failure."""


class HTTPChannelSender(ChannelSender):
    """Sender for channels reached with a JSON HTTP request."""

    def __init__(self, client: httpx.Client):
        self.client = client

    def post_json(self, url: str, payload: Dict[str, Any], method: str = 'POST', headers: Optional[Dict[str, str]] = None) -> None:
        response = self.client.request(method, url, json=payload, headers=headers)
        if response.status_code >= 400:
            raise ChannelDeliveryError(
                self.channel_type.value,
                f'request failed with status {response.status_code}',
            )
        logger.debug('Notification request accepted', channel_type=self.channel_type.value, status_code=response.status_code)


class WebhookSender(HTTPChannelSender):
    channel_type = ChannelType.WEBHOOK
    config_model = WebhookChannelConfig

    def render(self, instance: AlertInstance, rule: AlertRule) -> Dict[str, Any]:
        context = instance.context or {}
        return {
            'alert_id': instance.id,
            'rule_id': rule.id,
            'rule_name': rule.name,
            'severity': rule.severity,
            'status': instance.status,
            'message': instance.message,
            'current_value': instance.current_value,
            'threshold': instance.threshold_value,
            'metric_type': rule.metric_type,
            'metric_name': rule.metric_name,
            'source': context.get('source'),
            'triggered_at': instance.triggered_at.isoformat() if instance.triggered_at else None,
        }

    def deliver(self, config: WebhookChannelConfig, instance: AlertInstance, rule: AlertRule) -> None:
        self.post_json(config.url, self.render(instance, rule), method=config.method, headers=config.headers)


class SlackSender(HTTPChannelSender):
    channel_type = ChannelType.SLACK
    config_model = SlackChannelConfig

    def render(self, config: SlackChannelConfig, instance: AlertInstance, rule: AlertRule) -> Dict[str, Any]:
        payload = {
            'text': (
                f'\U0001F6A8 *{rule.severity.title()} Alert: {rule.name}*\n'
                f'{instance.message}\n'
                f'Current Value: {instance.current_value:.2f}\n'
                f'Threshold: {instance.threshold_value:.2f}'
            ),
        }
        if config.channel:
            payload['channel'] = config.channel
        if config.username:
            payload['username'] = config.username
        if config.icon_emoji:
            payload['icon_emoji'] = config.icon_emoji
        return payload

    def deliver(self, config: SlackChannelConfig, instance: AlertInstance, rule: AlertRule) -> None:
        self.post_json(config.webhook_url, self.render(config, instance, rule))


class TeamsSender(HTTPChannelSender):
    channel_type = ChannelType.TEAMS
    config_model = TeamsChannelConfig

    def render(self, config: TeamsChannelConfig, instance: AlertInstance, rule: AlertRule) -> Dict[str, Any]:
        """Office 365 connector MessageCard."""
        severity_title = rule.severity.title()
        triggered_at = instance.triggered_at.strftime(TIMESTAMP_FORMAT) if instance.triggered_at else ''
        return {
            '@type': 'MessageCard',
            '@context': 'http://schema.org/extensions',
            'themeColor': config.theme_color or TEAMS_THEME_COLORS.get(rule.severity, TEAMS_THEME_COLORS['warning']),
            'summary': f'{severity_title} Alert: {rule.name}',
            'sections': [
                {
                    'activityTitle': config.title or f'{severity_title} Alert',
                    'activitySubtitle': rule.name,
                    'text': instance.message,
                    'facts': [
                        {'name': 'Metric', 'value': rule.metric_name},
                        {'name': 'Current Value', 'value': f'{instance.current_value:.2f}'},
                        {'name': 'Threshold', 'value': f'{instance.threshold_value:.2f}'},
                        {'name': 'Triggered At', 'value': triggered_at},
                    ],
                }
            ],
        }

    def deliver(self, config: TeamsChannelConfig, instance: AlertInstance, rule: AlertRule) -> None:
        self.post_json(config.webhook_url, self.render(config, instance, rule))


class EmailSender(ChannelSender):
    """HTML alert email over SMTP (STARTTLS and login when configured)."""

    channel_type = ChannelType.EMAIL
    config_model = EmailChannelConfig

    def __init__(self, timeout: float = 30.0, product: str = 'Metrics Engine'):
        self.timeout = timeout
        self.product = product

    def render(self, config: EmailChannelConfig, instance: AlertInstance, rule: AlertRule) -> MIMEText:
        message = MIMEText(render_alert_email(instance, rule, self.product), 'html', 'utf-8')
        message['Subject'] = email_subject(rule, self.product)
        message['From'] = formataddr((config.from_name or self.product, config.from_address))
        message['To'] = ', '.join(config.to_addresses)
        return message

    def deliver(self, config: EmailChannelConfig, instance: AlertInstance, rule: AlertRule) -> None:
        message = self.render(config, instance, rule)
        with smtplib.SMTP(config.smtp_host, config.smtp_port, timeout=self.timeout) as smtp:
            if config.use_tls:
                smtp.starttls()
            if config.username:
                smtp.login(config.username, config.password or '')
            smtp.send_message(message, from_addr=config.from_address, to_addrs=config.to_addresses)


def build_senders(
    timeout: float = 30.0,
    product: str = 'Metrics Engine',
    http_client: Optional[httpx.Client] = None
) -> Dict[str, ChannelSender]:
    """Create one sender per channel type, keyed by type value.

    Args:
        timeout: Network timeout per delivery, in seconds
        product: Product name used in email subjects and bodies
        http_client: Shared client for HTTP channels (created when omitted)

    Returns:
        Mapping of channel type ('email', 'slack', ...) to sender
    """
    client = http_client or httpx.Client(timeout=timeout)
    return {
        ChannelType.EMAIL.value: EmailSender(timeout=timeout, product=product),
        ChannelType.SLACK.value: SlackSender(client),
        ChannelType.TEAMS.value: TeamsSender(client),
        ChannelType.WEBHOOK.value: WebhookSender(client),
    }
