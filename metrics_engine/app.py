"""Metrics engine composition root.

Wires storage, the metric store, aggregation, alerting, notification and
retention components together and owns their background machinery (worker
pool and periodic tasks).
"""

from typing import Dict, List, Optional, Union

import httpx
from sqlalchemy import Engine

from metrics_engine.lib.config import EngineSettings, get_settings
from metrics_engine.lib.database import create_metrics_engine, create_schema, create_session_factory
from metrics_engine.lib.periodic import PeriodicTask
from metrics_engine.lib.structured_logger import StructuredLogger, set_log_level
from metrics_engine.lib.worker_pool import BackgroundWorkerPool
from metrics_engine.models.alert_instance import AlertInstance, AlertStatus
from metrics_engine.models.alert_rule import AlertRule
from metrics_engine.models.alert_schemas import (
  AlertInstanceFilter,
  AlertInstancePage,
  AlertRuleCreate,
  AlertRuleUpdate,
  ChannelCreate,
  ChannelUpdate,
)
from metrics_engine.models.analysis import TrendAnalysis
from metrics_engine.models.notification_channel import NotificationChannel
from metrics_engine.models.query import MetricDataPoint, MetricQuery, TimeRange
from metrics_engine.models.raw_metric import RawMetric
from metrics_engine.notifications.channels import ChannelSender, build_senders
from metrics_engine.services.aggregator import Aggregator
from metrics_engine.services.alert_evaluator import AlertEvaluator
from metrics_engine.services.alert_service import AlertService
from metrics_engine.services.metric_store import MetricLike, MetricStore
from metrics_engine.services.notification_dispatcher import NotificationDispatcher
from metrics_engine.services.query_engine import QueryEngine
from metrics_engine.services.repository import MetricsRepository
from metrics_engine.services.retention_sweeper import RetentionSweeper, SweepResult
from metrics_engine.services.system_collector import SystemMetricsCollector
from metrics_engine.services.trend_analyzer import TrendAnalyzer

logger = StructuredLogger(__name__)


class MetricsEngine:
  """Single-process metrics, analysis and alerting engine.

  Usage:
      with MetricsEngine() as engine:
          engine.store_metric({'metric_type': 'system', 'metric_name': 'cpu_usage', 'value': 42.0})
          points = engine.query(MetricQuery(...))

  Entering the context starts the periodic collector and sweeper; leaving it
  stops them and drains in-flight background work.
  """

  def __init__(
    self,
    settings: Optional[EngineSettings] = None,
    db_engine: Optional[Engine] = None,
    senders: Optional[Dict[str, ChannelSender]] = None,
    create_tables: bool = True,
    enable_collector: bool = True,
  ):
    """Build every component.

    Args:
        settings: Engine settings (read from the environment when omitted)
        db_engine: SQLAlchemy engine (created from settings.database_url when omitted)
        senders: Channel senders keyed by channel type (defaults from build_senders)
        create_tables: Create missing tables on startup (use Alembic in production)
        enable_collector: Run the system metrics collector when started
    """
    self.settings = settings or get_settings()
    set_log_level(self.settings.log_level)
    self.db_engine = db_engine or create_metrics_engine(self.settings.database_url)
    if create_tables:
      create_schema(self.db_engine)

    self.repository = MetricsRepository(create_session_factory(self.db_engine))
    self.worker_pool = BackgroundWorkerPool(
      max_workers=self.settings.worker_count,
      backlog_threshold=self.settings.backlog_warning_tasks,
    )

    self._http_client: Optional[httpx.Client] = None
    if senders is None:
      self._http_client = httpx.Client(timeout=self.settings.notification_timeout_seconds)
      senders = build_senders(
        timeout=self.settings.notification_timeout_seconds,
        product=self.settings.email_from_name,
        http_client=self._http_client,
      )

    self.store = MetricStore(self.repository, self.worker_pool, self.settings.raw_retention_days)
    self.aggregator = Aggregator(self.repository)
    self.dispatcher = NotificationDispatcher(self.repository, senders)
    self.evaluator = AlertEvaluator(self.repository, self.dispatcher, self.worker_pool)
    self.query_engine = QueryEngine(self.repository)
    self.trend_analyzer = TrendAnalyzer(self.query_engine)
    self.alerts = AlertService(self.repository)
    self.sweeper = RetentionSweeper(self.repository)
    self.collector = SystemMetricsCollector(self.store)

    # Aggregation and evaluation are independent units of work per metric
    self.store.subscribe('aggregate', self.aggregator.aggregate)
    self.store.subscribe('evaluate', self.evaluator.evaluate)

    self._periodic_tasks: List[PeriodicTask] = [
      PeriodicTask('retention-sweep', self.settings.cleanup_interval_seconds, self.sweeper.sweep),
    ]
    if enable_collector:
      self._periodic_tasks.append(
        PeriodicTask('system-collector', self.settings.collection_interval_seconds, self.collector.collect)
      )
    self._started = False

  # ==========================================================================
  # Lifecycle
  # ==========================================================================

  def start(self) -> None:
    """Start the periodic collector and retention sweeper."""
    if self._started:
      return
    for task in self._periodic_tasks:
      task.start()
    self._started = True
    logger.info('Metrics engine started', periodic_tasks=[t.task_name for t in self._periodic_tasks])

  def stop(self, timeout: Optional[float] = None) -> None:
    """Stop periodic tasks, then drain and close the worker pool.

    Args:
        timeout: Seconds to wait for each periodic task and for the pool to drain
    """
    for task in self._periodic_tasks:
      task.stop(timeout)
    self.worker_pool.shutdown(wait=True, timeout=timeout)
    if self._http_client is not None:
      self._http_client.close()
    self._started = False
    logger.info('Metrics engine stopped')

  def wait_for_idle(self, timeout: Optional[float] = None) -> bool:
    """Block until every queued aggregation, evaluation and dispatch has run."""
    return self.worker_pool.wait_for_idle(timeout)

  def __enter__(self) -> 'MetricsEngine':
    self.start()
    return self

  def __exit__(self, exc_type, exc, tb) -> None:
    self.stop()

  # ==========================================================================
  # Metrics
  # ==========================================================================

  def store_metric(self, metric: MetricLike) -> RawMetric:
    """Store one raw metric (manual entry point for derived metrics)."""
    return self.store.store(metric)

  def store_metrics(self, metrics: List[MetricLike]) -> List[RawMetric]:
    return self.store.store_many(metrics)

  def query(self, query: MetricQuery) -> List[MetricDataPoint]:
    return self.query_engine.query(query)

  def analyze_trends(self, metric_type: str, metric_name: str, time_range: Union[TimeRange, str]) -> TrendAnalysis:
    return self.trend_analyzer.analyze(metric_type, metric_name, time_range)

  def sweep_expired(self) -> SweepResult:
    return self.sweeper.sweep()

  def collect_system_metrics(self) -> List[RawMetric]:
    return self.collector.collect()

  # ==========================================================================
  # Alert rules and channels (keyed by owner)
  # ==========================================================================

  def create_alert_rule(self, user_id: str, data: AlertRuleCreate) -> AlertRule:
    return self.alerts.create_rule(user_id, data)

  def get_alert_rule(self, user_id: str, rule_id: int) -> AlertRule:
    return self.alerts.get_rule(user_id, rule_id)

  def list_alert_rules(self, user_id: str) -> List[AlertRule]:
    return self.alerts.list_rules(user_id)

  def update_alert_rule(self, user_id: str, rule_id: int, data: AlertRuleUpdate) -> AlertRule:
    return self.alerts.update_rule(user_id, rule_id, data)

  def delete_alert_rule(self, user_id: str, rule_id: int) -> None:
    self.alerts.delete_rule(user_id, rule_id)

  def create_channel(self, user_id: str, data: ChannelCreate) -> NotificationChannel:
    return self.alerts.create_channel(user_id, data)

  def get_channel(self, user_id: str, channel_id: int) -> NotificationChannel:
    return self.alerts.get_channel(user_id, channel_id)

  def list_channels(self, user_id: str) -> List[NotificationChannel]:
    return self.alerts.list_channels(user_id)

  def update_channel(self, user_id: str, channel_id: int, data: ChannelUpdate) -> NotificationChannel:
    return self.alerts.update_channel(user_id, channel_id, data)

  def delete_channel(self, user_id: str, channel_id: int) -> None:
    self.alerts.delete_channel(user_id, channel_id)

  # ==========================================================================
  # Alert instances
  # ==========================================================================

  def list_alert_instances(self, user_id: str, filters: Optional[AlertInstanceFilter] = None) -> AlertInstancePage:
    return self.alerts.list_instances(user_id, filters)

  def update_alert_status(self, user_id: str, instance_id: int, status: AlertStatus) -> AlertInstance:
    return self.alerts.update_instance_status(user_id, instance_id, status)
