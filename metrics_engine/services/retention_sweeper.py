"""Retention sweeper: deletes expired raw metrics and aggregation buckets."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from metrics_engine.lib.metrics import record_retention_deleted
from metrics_engine.lib.structured_logger import StructuredLogger
from metrics_engine.lib.timeutils import utcnow
from metrics_engine.services.repository import MetricsRepository

logger = StructuredLogger(__name__)


class SweepResult(BaseModel):
    """Outcome of one sweep.

    Attributes:
        raw_deleted: Raw metrics deleted
        aggregations_deleted: Aggregation buckets deleted
        failed: Tables whose delete failed ('raw_metrics', 'metric_aggregations')
    """

    swept_at: datetime
    raw_deleted: int = 0
    aggregations_deleted: int = 0
    failed: List[str] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


class RetentionSweeper:
    """Bulk-deletes rows whose retention_end has passed.

    The raw and aggregation deletes are independent: a failure of one is
    logged and recorded in the result, and the other still runs.
    """

    def __init__(self, repository: MetricsRepository):
        self.repository = repository

    def sweep(self, now: Optional[datetime] = None) -> SweepResult:
        """Delete expired raw metrics, then expired aggregations.

        Args:
            now: Cutoff (defaults to current UTC time)

        Returns:
            SweepResult with per-table deletion counts
        """
        now = now or utcnow()
        result = SweepResult(swept_at=now)

        try:
            result.raw_deleted = self.repository.delete_expired_raw_metrics(now)
            record_retention_deleted('raw_metrics', result.raw_deleted)
        except Exception:
            result.failed.append('raw_metrics')
            logger.error('Failed to delete expired raw metrics', exc_info=True)

        try:
            result.aggregations_deleted = self.repository.delete_expired_aggregations(now)
            record_retention_deleted('metric_aggregations', result.aggregations_deleted)
        except Exception:
            result.failed.append('metric_aggregations')
            logger.error('Failed to delete expired aggregations', exc_info=True)

        logger.log_event('retention.sweep', context={
            'raw_deleted': result.raw_deleted,
            'aggregations_deleted': result.aggregations_deleted,
            'failed': result.failed,
        })
        return result
