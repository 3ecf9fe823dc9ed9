"""Create metrics engine tables

Revision ID: 001
Revises:
Create Date: 2025-11-03 09:00:00.000000

"""

import sqlalchemy as sa
from alembic import op

# revision identifiers
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
  # Raw metrics (append-only)
  op.create_table(
    'raw_metrics',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('timestamp', sa.DateTime(), nullable=False),
    sa.Column('metric_type', sa.String(length=50), nullable=False),
    sa.Column('metric_name', sa.String(length=100), nullable=False),
    sa.Column('value', sa.Float(), nullable=False),
    sa.Column('unit', sa.String(length=50), nullable=True),
    sa.Column('source', sa.String(length=100), nullable=True),
    sa.Column('source_id', sa.String(length=100), nullable=True),
    sa.Column('tags', sa.JSON(), nullable=True),
    sa.Column('description', sa.Text(), nullable=True),
    sa.Column('retention_end', sa.DateTime(), nullable=True),
    sa.PrimaryKeyConstraint('id'),
  )
  op.create_index(
    'ix_raw_metrics_identity_timestamp', 'raw_metrics', ['metric_type', 'metric_name', 'timestamp']
  )
  op.create_index('ix_raw_metrics_retention_end', 'raw_metrics', ['retention_end'])

  # Windowed aggregations (one row per bucket)
  op.create_table(
    'metric_aggregations',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('metric_type', sa.String(length=50), nullable=False),
    sa.Column('metric_name', sa.String(length=100), nullable=False),
    sa.Column('time_window', sa.String(length=10), nullable=False),
    sa.Column('timestamp', sa.DateTime(), nullable=False),
    sa.Column('count', sa.Integer(), nullable=False),
    sa.Column('sum', sa.Float(), nullable=False),
    sa.Column('avg', sa.Float(), nullable=False),
    sa.Column('min', sa.Float(), nullable=False),
    sa.Column('max', sa.Float(), nullable=False),
    sa.Column('p50', sa.Float(), nullable=False),
    sa.Column('p95', sa.Float(), nullable=False),
    sa.Column('p99', sa.Float(), nullable=False),
    sa.Column('stddev', sa.Float(), nullable=False),
    sa.Column('tags', sa.JSON(), nullable=True),
    sa.Column('retention_end', sa.DateTime(), nullable=True),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint(
      'metric_type', 'metric_name', 'time_window', 'timestamp', name='uq_metric_aggregations_bucket'
    ),
  )
  op.create_index(
    'ix_metric_aggregations_window_timestamp', 'metric_aggregations', ['time_window', 'timestamp']
  )
  op.create_index('ix_metric_aggregations_retention_end', 'metric_aggregations', ['retention_end'])

  # Notification channels
  op.create_table(
    'notification_channels',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('name', sa.String(length=200), nullable=False),
    sa.Column('type', sa.String(length=20), nullable=False),
    sa.Column('configuration', sa.JSON(), nullable=False),
    sa.Column('is_enabled', sa.Boolean(), nullable=False),
    sa.Column('user_id', sa.String(length=255), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.Column('updated_at', sa.DateTime(), nullable=False),
    sa.PrimaryKeyConstraint('id'),
  )
  op.create_index('ix_notification_channels_user_id', 'notification_channels', ['user_id'])

  # Alert rules
  op.create_table(
    'alert_rules',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('name', sa.String(length=200), nullable=False),
    sa.Column('description', sa.Text(), nullable=True),
    sa.Column('metric_type', sa.String(length=50), nullable=False),
    sa.Column('metric_name', sa.String(length=100), nullable=False),
    sa.Column('condition', sa.String(length=20), nullable=False),
    sa.Column('threshold', sa.Float(), nullable=False),
    sa.Column('threshold_max', sa.Float(), nullable=True),
    sa.Column('severity', sa.String(length=20), nullable=False),
    sa.Column('is_enabled', sa.Boolean(), nullable=False),
    sa.Column('evaluation_window', sa.Integer(), nullable=False),
    sa.Column('tags', sa.JSON(), nullable=True),
    sa.Column('user_id', sa.String(length=255), nullable=False),
    sa.Column('last_triggered', sa.DateTime(), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.Column('updated_at', sa.DateTime(), nullable=False),
    sa.PrimaryKeyConstraint('id'),
  )
  op.create_index('ix_alert_rules_metric', 'alert_rules', ['metric_type', 'metric_name', 'is_enabled'])
  op.create_index('ix_alert_rules_user_id', 'alert_rules', ['user_id'])

  # Rule <-> channel association
  op.create_table(
    'alert_rule_channels',
    sa.Column('alert_rule_id', sa.Integer(), nullable=False),
    sa.Column('notification_channel_id', sa.Integer(), nullable=False),
    sa.ForeignKeyConstraint(['alert_rule_id'], ['alert_rules.id'], ondelete='CASCADE'),
    sa.ForeignKeyConstraint(['notification_channel_id'], ['notification_channels.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('alert_rule_id', 'notification_channel_id'),
  )

  # Alert instances
  op.create_table(
    'alert_instances',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('alert_rule_id', sa.Integer(), nullable=False),
    sa.Column('raw_metric_id', sa.Integer(), nullable=True),
    sa.Column('triggered_at', sa.DateTime(), nullable=False),
    sa.Column('resolved_at', sa.DateTime(), nullable=True),
    sa.Column('status', sa.String(length=20), nullable=False),
    sa.Column('current_value', sa.Float(), nullable=False),
    sa.Column('threshold_value', sa.Float(), nullable=False),
    sa.Column('message', sa.Text(), nullable=False),
    sa.Column('context', sa.JSON(), nullable=True),
    sa.Column('notifications_sent', sa.Integer(), nullable=False),
    sa.ForeignKeyConstraint(['alert_rule_id'], ['alert_rules.id'], ondelete='CASCADE'),
    sa.ForeignKeyConstraint(['raw_metric_id'], ['raw_metrics.id'], ondelete='SET NULL'),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('alert_rule_id', 'raw_metric_id', name='uq_alert_instances_rule_metric'),
  )
  op.create_index('ix_alert_instances_status', 'alert_instances', ['status'])
  op.create_index('ix_alert_instances_triggered_at', 'alert_instances', ['triggered_at'])


def downgrade():
  op.drop_index('ix_alert_instances_triggered_at', table_name='alert_instances')
  op.drop_index('ix_alert_instances_status', table_name='alert_instances')
  op.drop_table('alert_instances')
  op.drop_table('alert_rule_channels')
  op.drop_index('ix_alert_rules_user_id', table_name='alert_rules')
  op.drop_index('ix_alert_rules_metric', table_name='alert_rules')
  op.drop_table('alert_rules')
  op.drop_index('ix_notification_channels_user_id', table_name='notification_channels')
  op.drop_table('notification_channels')
  op.drop_index('ix_metric_aggregations_retention_end', table_name='metric_aggregations')
  op.drop_index('ix_metric_aggregations_window_timestamp', table_name='metric_aggregations')
  op.drop_table('metric_aggregations')
  op.drop_index('ix_raw_metrics_retention_end', table_name='raw_metrics')
  op.drop_index('ix_raw_metrics_identity_timestamp', table_name='raw_metrics')
  op.drop_table('raw_metrics')
