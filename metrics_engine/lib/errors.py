"""Exception taxonomy for the metrics engine."""


class MetricsEngineError(Exception):
  """Base class for every error raised by the engine."""


class InvalidMetricError(MetricsEngineError, ValueError):
  """Raised when a metric has a non-finite value or missing identity fields.

  Rejected synchronously; the caller must fix and resubmit.
  """


class StoreUnavailableError(MetricsEngineError):
  """Raised when the persistence layer fails during a store call."""


class InvalidQueryError(MetricsEngineError, ValueError):
  """Raised when a query cannot be answered as specified."""


class InvalidQueryRangeError(InvalidQueryError):
  """Raised when start/end are missing or end is before start."""


class ChannelDeliveryError(MetricsEngineError):
  """Raised by a channel sender when one notification cannot be delivered.

  Never propagates past the dispatcher.
  """

  def __init__(self, channel_type: str, message: str):
    super().__init__(f'{channel_type} delivery failed: {message}')
    self.channel_type = channel_type


class NotFoundError(MetricsEngineError, LookupError):
  """Raised when an owned object does not exist for the requesting user."""


class AlertRuleNotFoundError(NotFoundError):
  pass


class AlertInstanceNotFoundError(NotFoundError):
  pass


class NotificationChannelNotFoundError(NotFoundError):
  pass


class InvalidAlertRuleError(MetricsEngineError, ValueError):
  """Raised when an alert rule update leaves the rule inconsistent."""


class InvalidChannelConfigurationError(MetricsEngineError, ValueError):
  """Raised when a channel configuration does not match its type."""


class InvalidStatusTransitionError(MetricsEngineError, ValueError):
  """Raised when an alert instance cannot move to the requested status."""
