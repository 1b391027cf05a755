"""
Utilities Package

Provides the shared error hierarchy and error reporting.
"""

from .error_handling import (
    AgentError,
    ConfigConflictError,
    ConfigValidationError,
    ErrorCategory,
    ErrorContext,
    ErrorHandler,
    ErrorSeverity,
    LockTimeoutError,
    MembershipError,
    ProcessProbeError,
    error_handler,
)

__all__ = [
    'AgentError',
    'ConfigConflictError',
    'ConfigValidationError',
    'LockTimeoutError',
    'MembershipError',
    'ProcessProbeError',
    'ErrorCategory',
    'ErrorSeverity',
    'ErrorContext',
    'ErrorHandler',
    'error_handler',
]
