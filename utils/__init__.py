"""Utilities for election hosts."""

from .utils import (
    setup_logging,
    save_results,
    PerformanceMetrics,
    PerformanceMonitor,
    OperationContext,
    create_performance_report,
    format_duration,
    get_system_info
)

__all__ = [
    'setup_logging',
    'save_results',
    'PerformanceMetrics',
    'PerformanceMonitor',
    'OperationContext',
    'create_performance_report',
    'format_duration',
    'get_system_info'
]
