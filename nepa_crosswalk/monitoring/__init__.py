"""
Monitoring module for the NEPA crosswalk reconciler.

This module provides performance monitoring and metrics collection
for reconciliation runs.
"""

from .performance_monitor import PerformanceMonitor, PerformanceMetrics

__all__ = [
    'PerformanceMonitor',
    'PerformanceMetrics'
]
