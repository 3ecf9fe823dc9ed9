"""System metrics collector.

Samples host and process measurements with psutil and feeds them into the
metric store as metric_type 'system'. Run periodically by the engine.
"""

from typing import Any, Dict, List

import psutil

from metrics_engine.lib.structured_logger import StructuredLogger
from metrics_engine.lib.timeutils import utcnow
from metrics_engine.models.raw_metric import RawMetric
from metrics_engine.services.metric_store import MetricStore

logger = StructuredLogger(__name__)

SYSTEM_METRIC_TYPE = 'system'


class SystemMetricsCollector:
    """Collects CPU, load, memory, disk and thread metrics."""

    def __init__(self, store: MetricStore, source_id: str = 'localhost', disk_path: str = '/', cpu_interval: float = 1.0):
        """Initialize collector.

        Args:
            store: Metric store that receives the samples
            source_id: Identifier of this host in RawMetric.source_id
            disk_path: Mount point sampled for disk usage
            cpu_interval: Seconds psutil blocks while measuring CPU usage
        """
        self.store = store
        self.source_id = source_id
        self.disk_path = disk_path
        self.cpu_interval = cpu_interval

    def sample(self) -> List[Dict[str, Any]]:
        """Take one sample of every system metric.

        Returns:
            Metric payloads sharing one timestamp
        """
        timestamp = utcnow()
        memory = psutil.virtual_memory()
        disk = psutil.disk_usage(self.disk_path)

        readings = [
            ('cpu_usage', psutil.cpu_percent(interval=self.cpu_interval), 'percent', 'CPU usage percentage'),
            ('load_avg_1', psutil.getloadavg()[0], 'load', '1-minute load average'),
            ('memory_usage', memory.percent, 'percent', 'Memory usage percentage'),
            ('memory_used_bytes', memory.used, 'bytes', 'Memory in use'),
            ('disk_usage', disk.percent, 'percent', f'Disk usage percentage of {self.disk_path}'),
            ('disk_used_bytes', disk.used, 'bytes', f'Disk space used on {self.disk_path}'),
            ('process_threads', psutil.Process().num_threads(), 'count', 'Threads in the engine process'),
        ]
        return [
            {
                'timestamp': timestamp,
                'metric_type': SYSTEM_METRIC_TYPE,
                'metric_name': name,
                'value': float(value),
                'unit': unit,
                'source': 'system',
                'source_id': self.source_id,
                'description': description,
            }
            for name, value, unit, description in readings
        ]

    def collect(self) -> List[RawMetric]:
        """Sample and store system metrics.

        Returns:
            Stored metrics
        """
        stored = self.store.store_many(self.sample())
        logger.info('System metrics collected', stored=len(stored))
        return stored
