"""Unit tests for metric validation, defaults and subscriber fan-out."""

from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

import pytest
from sqlalchemy.exc import OperationalError

from metrics_engine.lib.distributed_tracing import get_correlation_id, set_correlation_id
from metrics_engine.lib.errors import InvalidMetricError, StoreUnavailableError
from metrics_engine.lib.timeutils import utcnow
from metrics_engine.models.raw_metric import RawMetric
from metrics_engine.services.metric_store import MetricStore, validate_metric


def cpu_metric(**overrides) -> dict:
  values = {'metric_type': 'system', 'metric_name': 'cpu_usage', 'value': 42.0}
  values.update(overrides)
  return values


@pytest.fixture
def repository():
  """Mock repository that echoes back what it stores."""
  repo = Mock()
  repo.add_raw_metric.side_effect = lambda metric: metric
  return repo


@pytest.fixture
def pool():
  return Mock()


class TestValidateMetric:
  """Identity and value checks."""

  @pytest.mark.parametrize('value', [float('nan'), float('inf'), float('-inf')])
  def test_non_finite_values(self, value):
    with pytest.raises(InvalidMetricError, match='finite'):
      validate_metric(RawMetric(**cpu_metric(value=value)))

  @pytest.mark.parametrize('value', [True, '42', None, [1.0]])
  def test_non_numeric_values(self, value):
    with pytest.raises(InvalidMetricError, match='real number'):
      validate_metric(RawMetric(**cpu_metric(value=value)))

  @pytest.mark.parametrize('field', ['metric_type', 'metric_name'])
  @pytest.mark.parametrize('value', ['', '   ', None])
  def test_missing_identity(self, field, value):
    with pytest.raises(InvalidMetricError, match=field):
      validate_metric(RawMetric(**cpu_metric(**{field: value})))

  @pytest.mark.parametrize('value', [0, -3, 1e308, 42.5])
  def test_valid_values(self, value):
    validate_metric(RawMetric(**cpu_metric(value=value)))


class TestMetricStore:
  """Store semantics with a mocked repository and pool."""

  def test_invalid_metric_is_not_written(self, repository, pool):
    store = MetricStore(repository, pool)

    with pytest.raises(InvalidMetricError):
      store.store(cpu_metric(value=float('nan')))

    repository.add_raw_metric.assert_not_called()
    pool.submit.assert_not_called()

  def test_unknown_fields_are_rejected(self, repository, pool):
    with pytest.raises(InvalidMetricError, match='Unknown metric fields: colour'):
      MetricStore(repository, pool).store(cpu_metric(colour='blue'))

  def test_defaults_timestamp_and_retention(self, repository, pool):
    before = utcnow()

    metric = MetricStore(repository, pool, raw_retention_days=30).store(cpu_metric(value=7))

    assert before <= metric.timestamp <= utcnow()
    assert metric.retention_end - metric.timestamp == timedelta(days=30)
    assert isinstance(metric.value, float)

  def test_supplied_timestamp_and_retention_are_kept(self, repository, pool):
    timestamp = datetime(2024, 3, 5, 12, 0, tzinfo=timezone(timedelta(hours=2)))
    retention_end = datetime(2030, 1, 1)

    metric = MetricStore(repository, pool).store(cpu_metric(timestamp=timestamp, retention_end=retention_end))

    assert metric.timestamp == datetime(2024, 3, 5, 10, 0)
    assert metric.retention_end == retention_end

  def test_subscribers_receive_stored_metric(self, repository, pool):
    store = MetricStore(repository, pool)
    aggregate, evaluate = Mock(), Mock()
    store.subscribe('aggregate', aggregate)
    store.subscribe('evaluate', evaluate)

    metric = store.store(cpu_metric())

    assert [c.args for c in pool.submit.call_args_list] == [
      ('aggregate', aggregate, metric),
      ('evaluate', evaluate, metric),
    ]

  def test_database_failure_raises_store_unavailable(self, repository, pool):
    repository.add_raw_metric.side_effect = OperationalError('INSERT', {}, Exception('disk I/O error'))
    store = MetricStore(repository, pool)
    store.subscribe('aggregate', Mock())

    with pytest.raises(StoreUnavailableError):
      store.store(cpu_metric())

    pool.submit.assert_not_called()

  def test_correlation_id_scoped_to_store_call(self, repository, pool):
    seen = []
    repository.add_raw_metric.side_effect = lambda metric: seen.append(get_correlation_id())

    MetricStore(repository, pool).store(cpu_metric())

    assert seen[0] != 'no-request-id'
    assert get_correlation_id() == 'no-request-id'

  def test_existing_correlation_id_is_kept(self, repository, pool):
    seen = []
    repository.add_raw_metric.side_effect = lambda metric: seen.append(get_correlation_id())
    set_correlation_id('batch-7')

    MetricStore(repository, pool).store(cpu_metric())

    assert seen == ['batch-7']
    assert get_correlation_id() == 'batch-7'

  def test_store_many_skips_invalid(self, repository, pool):
    stored = MetricStore(repository, pool).store_many([
      cpu_metric(value=1.0),
      cpu_metric(value=float('nan')),
      cpu_metric(metric_name=''),
      cpu_metric(value=3.0),
    ])

    assert [m.value for m in stored] == [1.0, 3.0]
