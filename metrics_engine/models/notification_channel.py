"""Notification Channel SQLAlchemy Model

A configured destination for alert notifications.
"""

from enum import Enum

from sqlalchemy import JSON, Boolean, Column, DateTime, Index, Integer, String

from metrics_engine.lib.database import Base
from metrics_engine.lib.timeutils import utcnow


class ChannelType(str, Enum):
    EMAIL = 'email'
    SLACK = 'slack'
    WEBHOOK = 'webhook'
    TEAMS = 'teams'


class NotificationChannel(Base):
    """Notification channel owned by a user.

    The configuration JSON is validated against the channel type's config
    model (see metrics_engine.models.channel_config) on create and update.
    """

    __tablename__ = 'notification_channels'

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    type = Column(String(20), nullable=False)
    configuration = Column(JSON, nullable=False)
    is_enabled = Column(Boolean, nullable=False, default=True)
    user_id = Column(String(255), nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        Index('ix_notification_channels_user_id', 'user_id'),
    )

    def __repr__(self) -> str:
        return f"<NotificationChannel(id={self.id}, name='{self.name}', type='{self.type}')>"

    def to_dict(self) -> dict:
        """Convert model to dictionary.

        Configuration is omitted; it may hold SMTP passwords or webhook secrets.
        """
        return {
            'id': self.id,
            'name': self.name,
            'type': self.type,
            'is_enabled': self.is_enabled,
            'user_id': self.user_id,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }
