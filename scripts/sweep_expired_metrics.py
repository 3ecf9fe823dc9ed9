"""Retention sweep job script.

Deletes raw metrics and aggregation buckets whose retention_end has passed.
The engine runs the same sweep periodically; this script is for deployments
that prefer an external scheduler (cron, a scheduled job) instead.

Exit codes:
    0: Sweep completed
    1: Fatal error (bad configuration, database unreachable)
    2: DATABASE_URL missing or at least one table failed to sweep
"""

import logging
import os
import sys

from metrics_engine.lib.config import load_env_files
from metrics_engine.lib.database import create_metrics_engine, create_session_factory
from metrics_engine.services.repository import MetricsRepository
from metrics_engine.services.retention_sweeper import RetentionSweeper

# Configure logging
logging.basicConfig(
  level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def main():
  """Main entry point for the retention sweep job."""
  logger.info('=' * 80)
  logger.info('Starting retention sweep job')
  logger.info('=' * 80)

  try:
    load_env_files()
    database_url = os.environ.get('DATABASE_URL')
    if not database_url:
      logger.error('DATABASE_URL environment variable not set')
      sys.exit(2)

    engine = create_metrics_engine(database_url)
    repository = MetricsRepository(create_session_factory(engine))

    try:
      result = RetentionSweeper(repository).sweep()
    except Exception as e:
      logger.error(f'Sweep job failed: {e}', exc_info=True)
      sys.exit(2)
    finally:
      engine.dispose()

    if not result.ok:
      logger.error(f'Sweep job failed for: {", ".join(result.failed)}')
      sys.exit(2)

    logger.info(
      f'Sweep job completed successfully: '
      f'{result.raw_deleted} raw metrics, '
      f'{result.aggregations_deleted} aggregation buckets deleted'
    )
    sys.exit(0)

  except Exception as e:
    logger.error(f'Fatal error in sweep job: {e}', exc_info=True)
    sys.exit(1)


if __name__ == '__main__':
  main()
