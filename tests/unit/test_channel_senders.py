"""Unit tests for notification rendering and per-channel delivery."""

import json
import smtplib
from unittest.mock import MagicMock, patch

import httpx
import pytest

from conftest import RecordingTransport, make_channel, make_instance, make_rule
from metrics_engine.lib.errors import ChannelDeliveryError
from metrics_engine.models.channel_config import EmailChannelConfig, SlackChannelConfig, TeamsChannelConfig
from metrics_engine.notifications import EmailSender, SlackSender, TeamsSender, WebhookSender, build_senders
from metrics_engine.notifications.templates import email_subject, render_alert_email

EMAIL_CONFIG = {
  'smtp_host': 'smtp.example.com',
  'smtp_port': 2525,
  'username': 'alerts',
  'password': 's3cret',
  'from_address': 'alerts@example.com',
  'to_addresses': ['oncall@example.com', 'sre@example.com'],
}


class TestSlackSender:
  """Slack incoming webhook payloads."""

  def test_render_text(self, http_client):
    config = SlackChannelConfig(webhook_url='https://hooks.slack.test/T000', channel='#alerts')

    payload = SlackSender(http_client).render(config, make_instance(), make_rule())

    assert payload['text'] == (
      '\U0001F6A8 *Critical Alert: High CPU*\n'
      "Alert 'High CPU' triggered: cpu_usage value 95.00 gt threshold 90.00\n"
      'Current Value: 95.00\n'
      'Threshold: 90.00'
    )
    assert payload['channel'] == '#alerts'
    assert 'username' not in payload

  def test_send_posts_json(self, http_client, http_transport):
    channel = make_channel('slack', {'webhook_url': 'https://hooks.slack.test/T000'})

    SlackSender(http_client).send(channel, make_instance(), make_rule())

    assert len(http_transport.requests) == 1
    request = http_transport.requests[0]
    assert request.method == 'POST'
    assert str(request.url) == 'https://hooks.slack.test/T000'
    assert 'High CPU' in json.loads(request.content)['text']

  def test_error_status_raises_delivery_error(self):
    client = httpx.Client(transport=RecordingTransport(status_code=500))
    channel = make_channel('slack', {'webhook_url': 'https://hooks.slack.test/T000'})

    with pytest.raises(ChannelDeliveryError, match='status 500'):
      SlackSender(client).send(channel, make_instance(), make_rule())

  def test_network_error_raises_delivery_error(self):
    def refuse(request):
      raise httpx.ConnectError('connection refused', request=request)

    client = httpx.Client(transport=httpx.MockTransport(refuse))
    channel = make_channel('slack', {'webhook_url': 'https://hooks.slack.test/T000'})

    with pytest.raises(ChannelDeliveryError, match='connection refused'):
      SlackSender(client).send(channel, make_instance(), make_rule())

  def test_invalid_configuration_raises_delivery_error(self, http_client, http_transport):
    channel = make_channel('slack', {'channel': '#alerts'})

    with pytest.raises(ChannelDeliveryError, match='invalid configuration'):
      SlackSender(http_client).send(channel, make_instance(), make_rule())
    assert http_transport.requests == []


class TestTeamsSender:
  """Teams MessageCard payloads."""

  @pytest.mark.parametrize(
    'severity, color',
    [('critical', 'FF0000'), ('warning', 'FFA500'), ('info', '008000')],
  )
  def test_theme_color_by_severity(self, http_client, severity, color):
    config = TeamsChannelConfig(webhook_url='https://teams.test/hook')

    card = TeamsSender(http_client).render(config, make_instance(), make_rule(severity=severity))

    assert card['themeColor'] == color

  def test_card_facts(self, http_client):
    config = TeamsChannelConfig(webhook_url='https://teams.test/hook', theme_color='123456')

    card = TeamsSender(http_client).render(config, make_instance(), make_rule())

    assert card['@type'] == 'MessageCard'
    assert card['themeColor'] == '123456'
    assert card['summary'] == 'Critical Alert: High CPU'
    facts = {fact['name']: fact['value'] for fact in card['sections'][0]['facts']}
    assert facts == {
      'Metric': 'cpu_usage',
      'Current Value': '95.00',
      'Threshold': '90.00',
      'Triggered At': '2024-03-05 14:30:00',
    }


class TestWebhookSender:
  """Generic JSON webhook."""

  def test_render_payload(self, http_client):
    payload = WebhookSender(http_client).render(make_instance(), make_rule())

    assert payload == {
      'alert_id': 7,
      'rule_id': 1,
      'rule_name': 'High CPU',
      'severity': 'critical',
      'status': 'triggered',
      'message': "Alert 'High CPU' triggered: cpu_usage value 95.00 gt threshold 90.00",
      'current_value': 95.0,
      'threshold': 90.0,
      'metric_type': 'system',
      'metric_name': 'cpu_usage',
      'source': 'system',
      'triggered_at': '2024-03-05T14:30:00',
    }

  def test_send_uses_configured_method_and_headers(self, http_client, http_transport):
    channel = make_channel(
      'webhook',
      {'url': 'https://example.com/hooks/alerts', 'method': 'put', 'headers': {'X-Api-Key': 'abc'}},
    )

    WebhookSender(http_client).send(channel, make_instance(), make_rule())

    request = http_transport.requests[0]
    assert request.method == 'PUT'
    assert request.headers['X-Api-Key'] == 'abc'
    assert json.loads(request.content)['alert_id'] == 7


class TestEmailSender:
  """HTML alert email over SMTP."""

  def test_subject(self):
    assert email_subject(make_rule(), 'Metrics Engine') == '[CRITICAL] Metrics Engine Alert: High CPU'

  def test_body_escapes_values(self):
    rule = make_rule(name='<script>alert(1)</script>')
    instance = make_instance(message='value & more')

    body = render_alert_email(instance, rule, 'Metrics Engine')

    assert '<script>' not in body
    assert '&lt;script&gt;' in body
    assert 'value &amp; more' in body
    assert '95.00' in body
    assert '2024-03-05 14:30:00' in body

  def test_render_headers(self):
    config = EmailChannelConfig(**EMAIL_CONFIG)

    message = EmailSender(product='Metrics Engine').render(config, make_instance(), make_rule())

    assert message['Subject'] == '[CRITICAL] Metrics Engine Alert: High CPU'
    assert message['From'] == 'Metrics Engine <alerts@example.com>'
    assert message['To'] == 'oncall@example.com, sre@example.com'
    assert message.get_content_type() == 'text/html'

  def test_send_uses_starttls_and_login(self):
    channel = make_channel('email', EMAIL_CONFIG)

    with patch('metrics_engine.notifications.channels.smtplib.SMTP') as mock_smtp:
      server = MagicMock()
      mock_smtp.return_value.__enter__.return_value = server

      EmailSender(timeout=5).send(channel, make_instance(), make_rule())

    mock_smtp.assert_called_once_with('smtp.example.com', 2525, timeout=5)
    server.starttls.assert_called_once()
    server.login.assert_called_once_with('alerts', 's3cret')
    server.send_message.assert_called_once()
    assert server.send_message.call_args.kwargs['to_addrs'] == ['oncall@example.com', 'sre@example.com']

  def test_send_without_tls_or_login(self):
    config = dict(EMAIL_CONFIG, use_tls=False, username=None)
    channel = make_channel('email', config)

    with patch('metrics_engine.notifications.channels.smtplib.SMTP') as mock_smtp:
      server = MagicMock()
      mock_smtp.return_value.__enter__.return_value = server

      EmailSender().send(channel, make_instance(), make_rule())

    server.starttls.assert_not_called()
    server.login.assert_not_called()
    server.send_message.assert_called_once()

  def test_smtp_failure_raises_delivery_error(self):
    channel = make_channel('email', EMAIL_CONFIG)

    with patch('metrics_engine.notifications.channels.smtplib.SMTP') as mock_smtp:
      mock_smtp.side_effect = smtplib.SMTPConnectError(421, 'service not available')

      with pytest.raises(ChannelDeliveryError, match='email delivery failed'):
        EmailSender().send(channel, make_instance(), make_rule())


class TestBuildSenders:

  def test_one_sender_per_channel_type(self, http_client):
    senders = build_senders(timeout=5, http_client=http_client)

    assert set(senders) == {'email', 'slack', 'teams', 'webhook'}
    assert senders['slack'].client is http_client
    assert senders['email'].timeout == 5
