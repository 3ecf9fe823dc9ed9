"""Notification Channel Configuration Models.

Type-specific shapes of NotificationChannel.configuration, one per
ChannelType. Validated when a channel is created or updated and again
when a sender reads it.
"""

from typing import Dict, List, Optional, Type

from pydantic import BaseModel, Field, field_validator

from metrics_engine.models.notification_channel import ChannelType


class EmailChannelConfig(BaseModel):
    """SMTP delivery settings.

    Attributes:
        smtp_host: SMTP server host
        smtp_port: SMTP server port (587 for STARTTLS)
        username / password: Login credentials, skipped when username is empty
        from_address: Envelope and header sender
        from_name: Display name of the sender
        to_addresses: Recipients (at least one)
        use_tls: Upgrade the connection with STARTTLS
    """

    smtp_host: str = Field(..., min_length=1, description='SMTP host')
    smtp_port: int = Field(default=587, ge=1, le=65535, description='SMTP port')
    username: Optional[str] = Field(default=None, description='SMTP login')
    password: Optional[str] = Field(default=None, description='SMTP password')
    from_address: str = Field(..., min_length=3, description='Sender address')
    from_name: Optional[str] = Field(default=None, description='Sender display name')
    to_addresses: List[str] = Field(..., min_length=1, description='Recipient addresses')
    use_tls: bool = Field(default=True, description='Use STARTTLS')


class SlackChannelConfig(BaseModel):
    """Slack incoming webhook."""

    webhook_url: str = Field(..., min_length=1, description='Incoming webhook URL')
    channel: Optional[str] = Field(default=None, description='Channel override (e.g. #alerts)')
    username: Optional[str] = Field(default=None, description='Bot display name')
    icon_emoji: Optional[str] = Field(default=None, description='Bot icon (e.g. :rotating_light:)')


class WebhookChannelConfig(BaseModel):
    """Generic JSON webhook."""

    url: str = Field(..., min_length=1, description='Target URL')
    method: str = Field(default='POST', description='HTTP method')
    headers: Dict[str, str] = Field(default_factory=dict, description='Extra request headers')

    @field_validator('method')
    @classmethod
    def validate_method(cls, v: str) -> str:
        """Only methods that carry a body are allowed."""
        method = v.upper()
        if method not in ('POST', 'PUT', 'PATCH'):
            raise ValueError(f'Unsupported webhook method: {v}')
        return method


class TeamsChannelConfig(BaseModel):
    """Microsoft Teams incoming webhook (MessageCard)."""

    webhook_url: str = Field(..., min_length=1, description='Incoming webhook URL')
    title: Optional[str] = Field(default=None, description='Card title override')
    theme_color: Optional[str] = Field(default=None, description='Hex colour override, e.g. FF0000')


CHANNEL_CONFIG_MODELS: Dict[ChannelType, Type[BaseModel]] = {
    ChannelType.EMAIL: EmailChannelConfig,
    ChannelType.SLACK: SlackChannelConfig,
    ChannelType.WEBHOOK: WebhookChannelConfig,
    ChannelType.TEAMS: TeamsChannelConfig,
}


def parse_channel_config(channel_type: str, configuration: dict) -> BaseModel:
    """Validate a raw configuration map against its channel type.

    Args:
        channel_type: email, slack, webhook or teams
        configuration: Stored configuration map

    Returns:
        Typed configuration model

    Raises:
        ValueError: Unknown channel type
        pydantic.ValidationError: Configuration does not match the type
    """
    model = CHANNEL_CONFIG_MODELS[ChannelType(channel_type)]
    return model.model_validate(configuration or {})
