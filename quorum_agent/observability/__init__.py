"""
Observability Package

Structured logging for the node agent.
"""

from .logging import (
    ColoredFormatter,
    JSONFormatter,
    LogConfig,
    LogFormat,
    LogLevel,
    OperationFilter,
    TextFormatter,
    current_operation,
    operation_context,
    setup_logging,
)

__all__ = [
    'LogConfig',
    'LogFormat',
    'LogLevel',
    'JSONFormatter',
    'TextFormatter',
    'ColoredFormatter',
    'OperationFilter',
    'setup_logging',
    'operation_context',
    'current_operation',
]
