"""Unit tests for notification dispatch and alert evaluation with mocked storage."""

from datetime import datetime
from unittest.mock import Mock

from conftest import make_channel, make_instance, make_rule
from metrics_engine.lib.errors import ChannelDeliveryError
from metrics_engine.models.raw_metric import RawMetric
from metrics_engine.services.alert_evaluator import AlertEvaluator
from metrics_engine.services.notification_dispatcher import NotificationDispatcher

SLACK = {'webhook_url': 'https://hooks.slack.test/T000'}
WEBHOOK = {'url': 'https://example.com/hooks/alerts'}


class TestNotificationDispatcher:
  """Each channel is attempted once and independently."""

  def test_failing_channel_does_not_block_others(self):
    repository = Mock()
    slack, webhook = Mock(), Mock()
    slack.send.side_effect = ChannelDeliveryError('slack', 'request failed with status 500')
    rule = make_rule()
    rule.channels = [make_channel('slack', SLACK, id=1), make_channel('webhook', WEBHOOK, id=2)]
    instance = make_instance()

    delivered = NotificationDispatcher(repository, {'slack': slack, 'webhook': webhook}).dispatch(instance, rule)

    assert delivered == 1
    slack.send.assert_called_once()
    webhook.send.assert_called_once()
    assert instance.notifications_sent == 1
    repository.set_notifications_sent.assert_called_once_with(7, 1)

  def test_unexpected_sender_error_is_contained(self):
    repository = Mock()
    broken = Mock()
    broken.send.side_effect = KeyError('configuration')
    rule = make_rule()
    rule.channels = [make_channel('slack', SLACK)]

    delivered = NotificationDispatcher(repository, {'slack': broken}).dispatch(make_instance(), rule)

    assert delivered == 0
    repository.set_notifications_sent.assert_not_called()

  def test_disabled_channels_are_skipped(self):
    repository = Mock()
    sender = Mock()
    rule = make_rule()
    rule.channels = [make_channel('slack', SLACK, is_enabled=False)]

    delivered = NotificationDispatcher(repository, {'slack': sender}).dispatch(make_instance(), rule)

    assert delivered == 0
    sender.send.assert_not_called()

  def test_unsupported_channel_type_counts_as_failure(self):
    repository = Mock()
    rule = make_rule()
    rule.channels = [make_channel('pager', {})]

    assert NotificationDispatcher(repository, {}).dispatch(make_instance(), rule) == 0

  def test_counts_accumulate(self):
    repository = Mock()
    sender = Mock()
    rule = make_rule()
    rule.channels = [make_channel('slack', SLACK, id=1), make_channel('slack', SLACK, id=2)]
    instance = make_instance(notifications_sent=1)

    NotificationDispatcher(repository, {'slack': sender}).dispatch(instance, rule)

    assert instance.notifications_sent == 3
    repository.set_notifications_sent.assert_called_once_with(7, 3)


class TestAlertEvaluator:
  """Rule evaluation against one stored metric."""

  def _metric(self, value: float) -> RawMetric:
    return RawMetric(
      id=42,
      metric_type='system',
      metric_name='cpu_usage',
      value=value,
      source='system',
      source_id='web-1',
      tags={'host': 'web-1'},
      timestamp=datetime(2024, 3, 5, 14, 30),
    )

  def test_matching_rule_creates_instance_and_dispatches(self):
    repository = Mock()
    repository.enabled_rules_for.return_value = [make_rule()]
    repository.add_alert_instance.side_effect = lambda instance: instance
    dispatcher = Mock()

    instances = AlertEvaluator(repository, dispatcher).evaluate(self._metric(95.0))

    assert len(instances) == 1
    instance = instances[0]
    assert instance.alert_rule_id == 1
    assert instance.raw_metric_id == 42
    assert instance.current_value == 95.0
    assert instance.threshold_value == 90.0
    assert instance.status == 'triggered'
    assert instance.triggered_at == datetime(2024, 3, 5, 14, 30)
    assert instance.context['source_id'] == 'web-1'
    assert instance.context['tags'] == {'host': 'web-1'}
    repository.mark_rule_triggered.assert_called_once()
    dispatcher.dispatch.assert_called_once()

  def test_non_matching_rule_does_nothing(self):
    repository = Mock()
    repository.enabled_rules_for.return_value = [make_rule()]

    assert AlertEvaluator(repository).evaluate(self._metric(50.0)) == []
    repository.add_alert_instance.assert_not_called()

  def test_duplicate_firing_is_not_dispatched(self):
    repository = Mock()
    repository.enabled_rules_for.return_value = [make_rule()]
    repository.add_alert_instance.return_value = None
    dispatcher = Mock()

    assert AlertEvaluator(repository, dispatcher).evaluate(self._metric(95.0)) == []
    repository.mark_rule_triggered.assert_not_called()
    dispatcher.dispatch.assert_not_called()

  def test_failing_rule_does_not_stop_others(self):
    repository = Mock()
    repository.enabled_rules_for.return_value = [make_rule(id=1), make_rule(id=2, name='Very high CPU')]

    def add(instance):
      if instance.alert_rule_id == 1:
        raise RuntimeError('database is locked')
      return instance

    repository.add_alert_instance.side_effect = add

    instances = AlertEvaluator(repository).evaluate(self._metric(95.0))

    assert [i.alert_rule_id for i in instances] == [2]

  def test_dispatch_goes_through_worker_pool(self):
    repository = Mock()
    rule = make_rule()
    repository.enabled_rules_for.return_value = [rule]
    repository.add_alert_instance.side_effect = lambda instance: instance
    dispatcher, pool = Mock(), Mock()

    instances = AlertEvaluator(repository, dispatcher, pool).evaluate(self._metric(95.0))

    pool.submit.assert_called_once_with('dispatch', dispatcher.dispatch, instances[0], rule)
    dispatcher.dispatch.assert_not_called()
