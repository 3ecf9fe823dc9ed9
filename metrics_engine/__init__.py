"""Metrics engine package.

Ingests scalar metrics, maintains windowed aggregations, analyzes trends
and anomalies, and evaluates alert rules with multi-channel notification.
"""

__version__ = '0.1.0'
