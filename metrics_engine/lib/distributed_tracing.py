"""Distributed Tracing with Correlation IDs.

Provides correlation-ID based tracking of one ingestion through the store
and the background work it spawns, using Python contextvars.
"""

import contextvars
from typing import Any, Callable
from uuid import uuid4

# Context variable for correlation ID (request_id)
# Background units of work run inside a copy of the submitting context
correlation_id: contextvars.ContextVar[str] = contextvars.ContextVar(
  'request_id', default='no-request-id'
)


def get_correlation_id() -> str:
  """Retrieve the current correlation ID.

  Returns:
      Current correlation ID (request_id) or 'no-request-id' if not set
  """
  return correlation_id.get()


def set_correlation_id(request_id: str) -> None:
  """Set the correlation ID for the current context.

  Args:
      request_id: Unique identifier (usually a UUID)
  """
  correlation_id.set(request_id)


def generate_correlation_id() -> str:
  """Generate a new correlation ID and set it in context.

  Returns:
      Generated correlation ID (UUID)
  """
  request_id = str(uuid4())
  set_correlation_id(request_id)
  return request_id


def reset_correlation_id() -> None:
  """Reset correlation ID to default value."""
  correlation_id.set('no-request-id')


def bind_context(fn: Callable[..., Any]) -> Callable[..., Any]:
  """Wrap fn so it runs inside a snapshot of the caller's context.

  Used when handing work to another thread so log lines keep the
  correlation ID of the ingestion that caused them.
  """
  ctx = contextvars.copy_context()

  def run(*args: Any, **kwargs: Any) -> Any:
    return ctx.run(fn, *args, **kwargs)

  return run
