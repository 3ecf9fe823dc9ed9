"""Notification channel senders."""

from metrics_engine.notifications.channels import (
    ChannelSender,
    EmailSender,
    SlackSender,
    TeamsSender,
    WebhookSender,
    build_senders,
)

__all__ = ['ChannelSender', 'EmailSender', 'SlackSender', 'TeamsSender', 'WebhookSender', 'build_senders']
