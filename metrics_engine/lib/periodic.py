"""Long-lived periodic tasks with cooperative cancellation."""

import threading
from typing import Any, Callable, Optional

from metrics_engine.lib.structured_logger import StructuredLogger

logger = StructuredLogger(__name__)


class PeriodicTask:
  """Runs a callable every interval seconds on a daemon thread.

  stop() wakes the loop immediately; a run already in progress is allowed to
  finish. Failures of one run are logged and the schedule continues.
  """

  def __init__(self, task_name: str, interval_seconds: float, fn: Callable[[], Any], run_immediately: bool = False):
    self.task_name = task_name
    self.interval_seconds = interval_seconds
    self._fn = fn
    self._run_immediately = run_immediately
    self._stop_event = threading.Event()
    self._thread: Optional[threading.Thread] = None

  @property
  def is_running(self) -> bool:
    return self._thread is not None and self._thread.is_alive()

  def start(self) -> None:
    if self.is_running:
      return
    self._stop_event.clear()
    self._thread = threading.Thread(target=self._loop, name=f'periodic-{self.task_name}', daemon=True)
    self._thread.start()
    logger.info('Started periodic task', task=self.task_name, interval_seconds=self.interval_seconds)

  def stop(self, timeout: Optional[float] = None) -> None:
    self._stop_event.set()
    if self._thread is not None:
      self._thread.join(timeout)
    logger.info('Stopped periodic task', task=self.task_name)

  def run_once(self) -> None:
    try:
      self._fn()
    except Exception:
      logger.error('Periodic task run failed', exc_info=True, task=self.task_name)

  def _loop(self) -> None:
    if self._run_immediately:
      self.run_once()
    while not self._stop_event.wait(self.interval_seconds):
      self.run_once()
