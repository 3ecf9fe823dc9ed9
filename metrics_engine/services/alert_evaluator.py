"""Alert rule evaluation against stored raw metrics."""

from typing import List, Optional

from metrics_engine.lib.metrics import record_alert_triggered
from metrics_engine.lib.structured_logger import StructuredLogger
from metrics_engine.lib.timeutils import utcnow
from metrics_engine.lib.worker_pool import BackgroundWorkerPool
from metrics_engine.models.alert_instance import AlertInstance, AlertStatus
from metrics_engine.models.alert_rule import AlertCondition, AlertRule
from metrics_engine.models.raw_metric import RawMetric
from metrics_engine.services.notification_dispatcher import NotificationDispatcher
from metrics_engine.services.repository import MetricsRepository

logger = StructuredLogger(__name__)


def render_alert_message(rule: AlertRule, metric: RawMetric) -> str:
    """e.g. "Alert 'High CPU' triggered: cpu_usage value 95.00 gt threshold 90.00"."""
    threshold = f'{rule.threshold:.2f}'
    if AlertCondition.parse(rule.condition) is AlertCondition.BETWEEN and rule.threshold_max is not None:
        threshold = f'{threshold} and {rule.threshold_max:.2f}'
    return (
        f"Alert '{rule.name}' triggered: {metric.metric_name} value {metric.value:.2f} "
        f'{rule.condition} threshold {threshold}'
    )


class AlertEvaluator:
    """Checks every stored metric against the enabled rules for its identity.

    Rules fire every time their condition holds; there is no cooldown.
    last_triggered is recorded for display only.
    """

    def __init__(
        self,
        repository: MetricsRepository,
        dispatcher: Optional[NotificationDispatcher] = None,
        worker_pool: Optional[BackgroundWorkerPool] = None
    ):
        """Initialize alert evaluator.

        Args:
            repository: Storage access
            dispatcher: Receives each new alert instance (skipped when None)
            worker_pool: Runs each dispatch as its own unit of work; dispatch
                runs inline when omitted
        """
        self.repository = repository
        self.dispatcher = dispatcher
        self.worker_pool = worker_pool

    def evaluate(self, metric: RawMetric) -> List[AlertInstance]:
        """Create an alert instance for every enabled rule the metric trips.

        A failure on one rule is logged and the other rules still run.

        Args:
            metric: Stored raw metric (with id)

        Returns:
            Newly created alert instances
        """
        rules = self.repository.enabled_rules_for(metric.metric_type, metric.metric_name)
        instances = []
        for rule in rules:
            try:
                instance = self._evaluate_rule(rule, metric)
            except Exception:
                logger.error(
                    'Alert rule evaluation failed',
                    exc_info=True,
                    rule_id=rule.id,
                    metric_id=metric.id,
                    metric_name=metric.metric_name,
                )
                continue
            if instance is not None:
                instances.append(instance)
        return instances

    def _evaluate_rule(self, rule: AlertRule, metric: RawMetric) -> Optional[AlertInstance]:
        if not rule.matches(metric.value):
            return None

        instance = AlertInstance(
            alert_rule_id=rule.id,
            raw_metric_id=metric.id,
            triggered_at=metric.timestamp,
            status=AlertStatus.TRIGGERED.value,
            current_value=metric.value,
            threshold_value=rule.threshold,
            message=render_alert_message(rule, metric),
            context={
                'metric_type': metric.metric_type,
                'metric_name': metric.metric_name,
                'source': metric.source,
                'source_id': metric.source_id,
                'tags': metric.tags or {},
            },
            notifications_sent=0,
        )
        if self.repository.add_alert_instance(instance) is None:
            return None

        self.repository.mark_rule_triggered(rule.id, utcnow())
        record_alert_triggered(rule.severity)
        logger.info(
            'Alert triggered',
            rule_id=rule.id,
            alert_id=instance.id,
            severity=rule.severity,
            metric_name=metric.metric_name,
            value=metric.value,
        )

        if self.dispatcher is not None:
            if self.worker_pool is not None:
                self.worker_pool.submit('dispatch', self.dispatcher.dispatch, instance, rule)
            else:
                self.dispatcher.dispatch(instance, rule)
        return instance
