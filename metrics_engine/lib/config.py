"""Engine configuration loaded from the environment.

Values come from real environment variables, optionally seeded from
`.env` and `.env.local` in the working directory (real variables win).
"""

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field


class EngineSettings(BaseModel):
  """Tuning knobs for the metrics engine."""

  database_url: str = Field('sqlite:///metrics_engine.db', description='SQLAlchemy database URL')
  log_level: str = Field('INFO', description='Log level for structured loggers')

  collection_interval_seconds: float = Field(300.0, gt=0, description='System metrics collection cadence')
  cleanup_interval_seconds: float = Field(3600.0, gt=0, description='Retention sweep cadence')
  raw_retention_days: int = Field(365, ge=1, description='Default retention for raw metrics')

  worker_count: int = Field(4, ge=1, description='Background worker threads')
  backlog_warning_tasks: int = Field(10000, ge=1, description='Queued units of work that trigger a backlog warning')

  notification_timeout_seconds: float = Field(30.0, gt=0, description='Per-channel network timeout')
  email_from_name: str = Field('Metrics Engine', description='Product name used in alert emails')


def load_env_files(directory: str = '.') -> None:
  """Load .env then .env.local from directory without overriding real env vars."""
  for filename in ('.env', '.env.local'):
    path = Path(directory) / filename
    if path.exists():
      load_dotenv(path, override=False)


def get_settings() -> EngineSettings:
  """Build EngineSettings from the environment.

  Returns:
      Validated settings (pydantic raises ValidationError on bad values)
  """
  load_env_files()

  env_map = {
    'database_url': 'DATABASE_URL',
    'log_level': 'LOG_LEVEL',
    'collection_interval_seconds': 'METRICS_COLLECTION_INTERVAL',
    'cleanup_interval_seconds': 'METRICS_CLEANUP_INTERVAL',
    'raw_retention_days': 'METRICS_RAW_RETENTION_DAYS',
    'worker_count': 'METRICS_WORKER_COUNT',
    'backlog_warning_tasks': 'METRICS_BACKLOG_WARNING_TASKS',
    'notification_timeout_seconds': 'NOTIFICATION_TIMEOUT',
    'email_from_name': 'NOTIFICATION_EMAIL_FROM_NAME',
  }
  values = {field: os.environ[var] for field, var in env_map.items() if os.getenv(var)}
  return EngineSettings(**values)
