"""Unit tests for environment-driven engine settings."""

import os

import pytest
from pydantic import ValidationError

from metrics_engine.lib.config import get_settings, load_env_files

ENV_VARS = [
  'DATABASE_URL',
  'LOG_LEVEL',
  'METRICS_COLLECTION_INTERVAL',
  'METRICS_CLEANUP_INTERVAL',
  'METRICS_RAW_RETENTION_DAYS',
  'METRICS_WORKER_COUNT',
  'METRICS_BACKLOG_WARNING_TASKS',
  'NOTIFICATION_TIMEOUT',
  'NOTIFICATION_EMAIL_FROM_NAME',
]


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
  """No engine variables set and no .env files in the working directory."""
  for var in ENV_VARS:
    monkeypatch.delenv(var, raising=False)
  monkeypatch.chdir(tmp_path)
  yield tmp_path
  # load_dotenv writes os.environ directly
  for var in ENV_VARS:
    os.environ.pop(var, None)


class TestEngineSettings:

  def test_defaults(self, clean_env):
    settings = get_settings()

    assert settings.database_url == 'sqlite:///metrics_engine.db'
    assert settings.collection_interval_seconds == 300.0
    assert settings.cleanup_interval_seconds == 3600.0
    assert settings.raw_retention_days == 365
    assert settings.notification_timeout_seconds == 30.0

  def test_environment_overrides(self, clean_env, monkeypatch):
    monkeypatch.setenv('DATABASE_URL', 'postgresql://metrics@db/metrics')
    monkeypatch.setenv('METRICS_COLLECTION_INTERVAL', '60')
    monkeypatch.setenv('METRICS_WORKER_COUNT', '8')
    monkeypatch.setenv('NOTIFICATION_EMAIL_FROM_NAME', 'Ops Monitor')

    settings = get_settings()

    assert settings.database_url == 'postgresql://metrics@db/metrics'
    assert settings.collection_interval_seconds == 60.0
    assert settings.worker_count == 8
    assert settings.email_from_name == 'Ops Monitor'

  def test_invalid_values_are_rejected(self, clean_env, monkeypatch):
    monkeypatch.setenv('METRICS_WORKER_COUNT', '0')

    with pytest.raises(ValidationError):
      get_settings()

  def test_env_file_does_not_override_real_variables(self, clean_env, monkeypatch):
    (clean_env / '.env').write_text('DATABASE_URL=sqlite:///from_env_file.db\nMETRICS_RAW_RETENTION_DAYS=30\n')
    monkeypatch.setenv('DATABASE_URL', 'sqlite:///from_environment.db')

    settings = get_settings()

    assert settings.database_url == 'sqlite:///from_environment.db'
    assert settings.raw_retention_days == 30

  def test_env_local_is_loaded_after_env(self, clean_env, monkeypatch):
    (clean_env / '.env.local').write_text('NOTIFICATION_TIMEOUT=5\n')

    load_env_files(str(clean_env))

    assert os.environ['NOTIFICATION_TIMEOUT'] == '5'
    assert get_settings().notification_timeout_seconds == 5.0
