"""Alert Rule and Notification Channel Pydantic Models.

Input shapes for alert rule and notification channel CRUD.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from metrics_engine.models.alert_instance import AlertStatus
from metrics_engine.models.alert_rule import AlertCondition, AlertSeverity
from metrics_engine.models.channel_config import parse_channel_config
from metrics_engine.models.notification_channel import ChannelType


class AlertRuleCreate(BaseModel):
    """New alert rule.

    Attributes:
        condition: gt, gte, lt, lte, eq, ne, between (or >, >=, <, <=, ==, !=)
        threshold_max: Upper bound, required for 'between'
        channel_ids: Notification channels of the same owner
    """

    name: str = Field(..., min_length=1, max_length=200, description='Rule name')
    description: Optional[str] = Field(default=None, description='Free-form description')
    metric_type: str = Field(..., min_length=1, max_length=50, description='Metric category')
    metric_name: str = Field(..., min_length=1, max_length=100, description='Metric name')
    condition: AlertCondition = Field(..., description='Comparison operator')
    threshold: float = Field(..., description='Threshold (lower bound for between)')
    threshold_max: Optional[float] = Field(default=None, description='Upper bound for between')
    severity: AlertSeverity = Field(default=AlertSeverity.WARNING, description='Alert severity')
    is_enabled: bool = Field(default=True, description='Evaluate this rule')
    evaluation_window: int = Field(default=300, ge=1, description='Seconds; informational')
    tags: Optional[Dict[str, Any]] = Field(default=None, description='Free-form tags')
    channel_ids: List[int] = Field(default_factory=list, description='Notification channel IDs')

    @field_validator('condition', mode='before')
    @classmethod
    def parse_condition(cls, v: Any) -> AlertCondition:
        return AlertCondition.parse(v)

    @model_validator(mode='after')
    def validate_between(self) -> 'AlertRuleCreate':
        """'between' needs threshold <= threshold_max."""
        if self.condition == AlertCondition.BETWEEN:
            if self.threshold_max is None:
                raise ValueError("threshold_max is required for condition 'between'")
            if self.threshold_max < self.threshold:
                raise ValueError('threshold_max must be greater than or equal to threshold')
        return self


class AlertRuleUpdate(BaseModel):
    """Partial alert rule update; only fields that are set are applied."""

    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    metric_type: Optional[str] = Field(default=None, min_length=1, max_length=50)
    metric_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    condition: Optional[AlertCondition] = None
    threshold: Optional[float] = None
    threshold_max: Optional[float] = None
    severity: Optional[AlertSeverity] = None
    is_enabled: Optional[bool] = None
    evaluation_window: Optional[int] = Field(default=None, ge=1)
    tags: Optional[Dict[str, Any]] = None
    channel_ids: Optional[List[int]] = None

    @field_validator('condition', mode='before')
    @classmethod
    def parse_condition(cls, v: Any) -> Optional[AlertCondition]:
        return None if v is None else AlertCondition.parse(v)


class ChannelCreate(BaseModel):
    """New notification channel; configuration is checked against the type."""

    name: str = Field(..., min_length=1, max_length=200, description='Channel name')
    type: ChannelType = Field(..., description='email, slack, webhook or teams')
    configuration: Dict[str, Any] = Field(..., description='Type-specific configuration')
    is_enabled: bool = Field(default=True, description='Deliver to this channel')

    @model_validator(mode='after')
    def validate_configuration(self) -> 'ChannelCreate':
        try:
            parse_channel_config(self.type.value, self.configuration)
        except ValidationError as e:
            raise ValueError(f'Invalid {self.type.value} configuration: {e}') from e
        return self


class ChannelUpdate(BaseModel):
    """Partial notification channel update."""

    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    configuration: Optional[Dict[str, Any]] = None
    is_enabled: Optional[bool] = None


class AlertInstanceFilter(BaseModel):
    """Listing filter for alert instances.

    Attributes:
        status: Only instances in this status
        severity: Only instances whose rule has this severity
        limit / offset: Pagination window
    """

    status: Optional[AlertStatus] = None
    severity: Optional[AlertSeverity] = None
    limit: int = Field(default=50, ge=1, le=1000)
    offset: int = Field(default=0, ge=0)


class AlertInstancePage(BaseModel):
    """One page of alert instances plus the total matching count."""

    items: List[Dict[str, Any]]
    total: int
    limit: int
    offset: int
