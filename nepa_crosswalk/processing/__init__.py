"""
Processing module for the NEPA crosswalk reconciler.

This module provides the reconciliation orchestrator and the file level
runner that reads sources concurrently and accumulates reports in order.
"""

from .reconciliation_orchestrator import ReconciliationOrchestrator
from .reconciliation_runner import ReconciliationRunner, RunResult, WorkItem, WorkResult

__all__ = [
    'ReconciliationOrchestrator',
    'ReconciliationRunner',
    'RunResult',
    'WorkItem',
    'WorkResult',
]
