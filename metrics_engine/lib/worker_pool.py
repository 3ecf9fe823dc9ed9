"""Bounded background worker pool.

Every stored metric fans out into independent units of work (aggregation,
alert evaluation, notification dispatch). They are submitted here instead of
being run on detached threads so concurrency stays bounded under high
ingestion rates. Submission never blocks and never discards work: units
beyond the worker count wait in the executor queue. A backlog above
backlog_threshold is logged and counted once per crossing.
"""

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Optional

from metrics_engine.lib.distributed_tracing import bind_context
from metrics_engine.lib.metrics import record_backlog_exceeded, record_task_dropped, update_pending_tasks
from metrics_engine.lib.structured_logger import StructuredLogger

logger = StructuredLogger(__name__)


class BackgroundWorkerPool:
  """Thread pool with backlog reporting and idle tracking."""

  def __init__(self, max_workers: int = 4, backlog_threshold: int = 10000, thread_name_prefix: str = 'metrics-engine'):
    self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix=thread_name_prefix)
    self._backlog_threshold = backlog_threshold
    self._pending = 0
    self._closed = False
    self._state = threading.Condition()

  @property
  def pending(self) -> int:
    with self._state:
      return self._pending

  def submit(self, task_name: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Optional[Future]:
    """Queue fn(*args, **kwargs) as an independent unit of work.

    The unit runs inside a copy of the caller's context (correlation ID).
    Exceptions raised by fn are logged, never re-raised.

    Args:
        task_name: Short label for logs and metrics (e.g. 'aggregate')
        fn: Callable to run

    Returns:
        Future of the unit, or None when the pool is shut down
    """
    with self._state:
      if self._closed:
        return self._drop(task_name, 'pool is shut down')
      self._pending += 1
      update_pending_tasks(self._pending)
      if self._pending == self._backlog_threshold:
        record_backlog_exceeded()
        logger.warning('Background work backlog reached threshold', task=task_name, pending=self._pending)

    try:
      return self._executor.submit(bind_context(self._run), task_name, fn, args, kwargs)
    except RuntimeError:
      # Executor shut down between the check and the submit
      self._task_done()
      with self._state:
        return self._drop(task_name, 'pool is shut down')

  def wait_for_idle(self, timeout: Optional[float] = None) -> bool:
    """Block until no unit is queued or running.

    Units may submit follow-up units (evaluation -> dispatch); those are
    waited for as well.

    Returns:
        True when idle, False if timeout expired first
    """
    with self._state:
      return self._state.wait_for(lambda: self._pending == 0, timeout)

  def shutdown(self, wait: bool = True, timeout: Optional[float] = None) -> None:
    """Stop accepting work; optionally drain in-flight units first."""
    if wait:
      self.wait_for_idle(timeout)
    with self._state:
      self._closed = True
    self._executor.shutdown(wait=wait)
    logger.info('Worker pool stopped', pending=self.pending)

  def _run(self, task_name: str, fn: Callable[..., Any], args: tuple, kwargs: dict) -> Any:
    try:
      return fn(*args, **kwargs)
    except Exception:
      logger.error('Background task failed', exc_info=True, task=task_name)
      return None
    finally:
      self._task_done()

  def _task_done(self) -> None:
    with self._state:
      self._pending -= 1
      update_pending_tasks(self._pending)
      self._state.notify_all()

  def _drop(self, task_name: str, reason: str) -> None:
    # Caller holds self._state
    record_task_dropped(task_name)
    logger.warning('Dropped background task', task=task_name, reason=reason, pending=self._pending)
    return None
