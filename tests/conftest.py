"""Shared test fixtures and utilities for all tests.

This conftest.py provides reusable fixtures that can be used across
unit and integration tests: a throwaway SQLite database per test, a
repository bound to it, a worker pool and an HTTP client whose requests
are captured instead of sent.
"""

import sys
from pathlib import Path

# CRITICAL: Ensure the correct project root is first in sys.path
# This prevents importing from other projects with similar module names
project_root = str(Path(__file__).parent.parent.absolute())
if project_root not in sys.path:
    sys.path.insert(0, project_root)
elif sys.path[0] != project_root:
    sys.path.remove(project_root)
    sys.path.insert(0, project_root)

from datetime import datetime
from typing import List

import httpx
import pytest

from metrics_engine.lib.config import EngineSettings
from metrics_engine.lib.database import create_metrics_engine, create_schema, create_session_factory
from metrics_engine.lib.distributed_tracing import reset_correlation_id
from metrics_engine.lib.structured_logger import set_log_level
from metrics_engine.lib.worker_pool import BackgroundWorkerPool
from metrics_engine.models.alert_instance import AlertInstance, AlertStatus
from metrics_engine.models.alert_rule import AlertRule
from metrics_engine.models.notification_channel import NotificationChannel
from metrics_engine.services.repository import MetricsRepository


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest.fixture
def db_url(tmp_path) -> str:
    """File-backed SQLite URL, so background worker threads share the data."""
    return f"sqlite:///{tmp_path / 'metrics_engine_test.db'}"


@pytest.fixture
def db_engine(db_url):
    """SQLAlchemy engine with every table created."""
    engine = create_metrics_engine(db_url)
    create_schema(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return create_session_factory(db_engine)


@pytest.fixture
def repository(session_factory) -> MetricsRepository:
    return MetricsRepository(session_factory)


# ============================================================================
# Background Work Fixtures
# ============================================================================

@pytest.fixture
def worker_pool():
    """Worker pool drained and shut down after the test."""
    pool = BackgroundWorkerPool(max_workers=2, backlog_threshold=1000)
    yield pool
    pool.shutdown(wait=True, timeout=10)


@pytest.fixture(autouse=True)
def reset_correlation():
    """Each test starts without a correlation ID."""
    reset_correlation_id()
    yield
    reset_correlation_id()


@pytest.fixture(autouse=True)
def reset_log_level():
    """Log level set by one test (or engine) never leaks into the next."""
    yield
    set_log_level(None)


# ============================================================================
# HTTP Fixtures
# ============================================================================

class RecordingTransport(httpx.MockTransport):
    """MockTransport that keeps every request and answers with status_code."""

    def __init__(self, status_code: int = 200):
        self.requests: List[httpx.Request] = []
        self.status_code = status_code
        super().__init__(self._handle)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, json={'ok': self.status_code < 400})


@pytest.fixture
def http_transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def http_client(http_transport):
    client = httpx.Client(transport=http_transport)
    yield client
    client.close()


# ============================================================================
# Settings and Model Fixtures
# ============================================================================

@pytest.fixture
def engine_settings(db_url) -> EngineSettings:
    return EngineSettings(
        database_url=db_url,
        worker_count=2,
        backlog_warning_tasks=1000,
        collection_interval_seconds=3600,
        cleanup_interval_seconds=3600,
        notification_timeout_seconds=5,
    )


def make_rule(**overrides) -> AlertRule:
    """Unsaved AlertRule with sensible defaults (high CPU)."""
    values = {
        'id': 1,
        'name': 'High CPU',
        'metric_type': 'system',
        'metric_name': 'cpu_usage',
        'condition': 'gt',
        'threshold': 90.0,
        'severity': 'critical',
        'is_enabled': True,
        'evaluation_window': 300,
        'user_id': 'user@example.com',
    }
    values.update(overrides)
    return AlertRule(**values)


def make_instance(**overrides) -> AlertInstance:
    """Unsaved AlertInstance matching make_rule()."""
    values = {
        'id': 7,
        'alert_rule_id': 1,
        'raw_metric_id': 42,
        'triggered_at': datetime(2024, 3, 5, 14, 30, 0),
        'status': AlertStatus.TRIGGERED.value,
        'current_value': 95.0,
        'threshold_value': 90.0,
        'message': "Alert 'High CPU' triggered: cpu_usage value 95.00 gt threshold 90.00",
        'context': {'metric_type': 'system', 'metric_name': 'cpu_usage', 'source': 'system', 'tags': {}},
        'notifications_sent': 0,
    }
    values.update(overrides)
    return AlertInstance(**values)


def make_channel(channel_type: str, configuration: dict, **overrides) -> NotificationChannel:
    values = {
        'id': 3,
        'name': f'{channel_type} channel',
        'type': channel_type,
        'configuration': configuration,
        'is_enabled': True,
        'user_id': 'user@example.com',
    }
    values.update(overrides)
    return NotificationChannel(**values)
