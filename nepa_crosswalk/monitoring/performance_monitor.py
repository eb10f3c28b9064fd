"""
Performance monitoring for reconciliation runs.

Tracks wall time, per-stage timings (reading, reconciling), files read and
failed, records transformed and peak process memory (sampled with psutil in a
background thread) for the run summary.
"""

import time
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

import psutil

from ..interfaces import PerformanceMonitorInterface


@dataclass
class PerformanceMetrics:
    """Container for performance metrics."""
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    files_read: int = 0
    files_failed: int = 0
    records_transformed: int = 0

    # Accumulated seconds per stage name
    stage_timings: Dict[str, float] = field(default_factory=dict)

    peak_memory_mb: float = 0.0
    avg_cpu_percent: float = 0.0

    custom_metrics: Dict[str, Any] = field(default_factory=dict)


class PerformanceMonitor(PerformanceMonitorInterface):
    """
    Collects run metrics for the reconciliation runner.

    Usage:
        monitor = PerformanceMonitor()
        monitor.start_monitoring()
        monitor.start_stage('reading')
        ...
        monitor.end_stage('reading')
        metrics = monitor.stop_monitoring()
    """

    def __init__(self, sample_interval: float = 0.5):
        """
        Initialize the performance monitor.

        Args:
            sample_interval: Seconds between memory/CPU samples
        """
        self.logger = logging.getLogger(__name__)
        self.sample_interval = sample_interval
        self._metrics = PerformanceMetrics()
        self._is_monitoring = False
        self._monitoring_thread = None
        self._stop_monitoring_flag = threading.Event()
        self._lock = threading.Lock()

        self._memory_samples: List[float] = []
        self._cpu_samples: List[float] = []
        self._stage_start_times: Dict[str, float] = {}

    @property
    def is_monitoring(self) -> bool:
        return self._is_monitoring

    def start_monitoring(self) -> None:
        """Start performance monitoring with resource tracking."""
        if self._is_monitoring:
            self.logger.warning("Performance monitoring already started")
            return

        self._metrics = PerformanceMetrics()
        self._metrics.start_time = datetime.now()
        self._memory_samples = []
        self._cpu_samples = []
        self._is_monitoring = True
        self._stop_monitoring_flag.clear()

        self._monitoring_thread = threading.Thread(target=self._monitor_resources, daemon=True)
        self._monitoring_thread.start()

        self.logger.debug("Performance monitoring started")

    def stop_monitoring(self) -> Dict[str, Any]:
        """Stop monitoring and return the performance summary."""
        if not self._is_monitoring:
            self.logger.warning("Performance monitoring not started")
            return {}

        self._metrics.end_time = datetime.now()
        self._is_monitoring = False
        self._stop_monitoring_flag.set()

        if self._monitoring_thread and self._monitoring_thread.is_alive():
            self._monitoring_thread.join(timeout=1.0)

        # One final sample so very short runs still report memory
        self._sample_resources()
        if self._cpu_samples:
            self._metrics.avg_cpu_percent = sum(self._cpu_samples) / len(self._cpu_samples)

        summary = self._get_performance_summary()
        self.logger.info(f"Performance monitoring stopped. Read {self._metrics.files_read} file(s) "
                         f"in {summary['total_time_seconds']:.2f} seconds "
                         f"(peak memory {self._metrics.peak_memory_mb:.1f} MB)")
        return summary

    def record_metric(self, metric_name: str, value: Any) -> None:
        """Record a custom performance metric."""
        if not self._is_monitoring:
            return
        self._metrics.custom_metrics[metric_name] = value
        self.logger.debug(f"Recorded metric: {metric_name} = {value}")

    def record_file(self, success: bool, records: int = 0) -> None:
        """Record the outcome of reading one source file."""
        with self._lock:
            if success:
                self._metrics.files_read += 1
            else:
                self._metrics.files_failed += 1
            self._metrics.records_transformed += records

    def start_stage(self, stage_name: str) -> None:
        """Start timing a processing stage."""
        self._stage_start_times[stage_name] = time.time()

    def end_stage(self, stage_name: str) -> float:
        """End timing a processing stage and return its duration."""
        if stage_name not in self._stage_start_times:
            return 0.0
        duration = time.time() - self._stage_start_times.pop(stage_name)
        self._metrics.stage_timings[stage_name] = self._metrics.stage_timings.get(stage_name, 0.0) + duration
        return duration

    def _monitor_resources(self) -> None:
        """Sample system resources in the background thread."""
        while not self._stop_monitoring_flag.is_set():
            try:
                self._sample_resources()
            except psutil.Error as e:
                self.logger.warning(f"Error monitoring resources: {e}")
                break
            self._stop_monitoring_flag.wait(self.sample_interval)

    def _sample_resources(self) -> None:
        memory_mb = psutil.Process().memory_info().rss / 1024 / 1024
        self._memory_samples.append(memory_mb)
        if memory_mb > self._metrics.peak_memory_mb:
            self._metrics.peak_memory_mb = memory_mb
        self._cpu_samples.append(psutil.cpu_percent(interval=None))

    def _get_total_time(self) -> float:
        if not self._metrics.start_time or not self._metrics.end_time:
            return 0.0
        return (self._metrics.end_time - self._metrics.start_time).total_seconds()

    def _get_performance_summary(self) -> Dict[str, Any]:
        return {
            'total_time_seconds': self._get_total_time(),
            'files_read': self._metrics.files_read,
            'files_failed': self._metrics.files_failed,
            'records_transformed': self._metrics.records_transformed,
            'stage_timings': dict(self._metrics.stage_timings),
            'resource_usage': {
                'peak_memory_mb': self._metrics.peak_memory_mb,
                'avg_cpu_percent': self._metrics.avg_cpu_percent,
                'memory_samples_count': len(self._memory_samples),
            },
            'custom_metrics': self._metrics.custom_metrics.copy(),
        }
