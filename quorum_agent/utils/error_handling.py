"""
Error Handling

Errors raised by the config store, the pseudo-lock, the membership parser and
the process supervisor. Each carries a category and a severity so that the
command line can log it at the right level and tell the operator what to try
next. Errors marked recoverable (a busy lock, a lost version race) are worth
retrying as-is; the rest need a settings or environment change first.
"""

import logging
import time
import traceback
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorSeverity(str, Enum):
    """Error severity levels."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """Which part of the agent failed."""

    CONFIGURATION_ERROR = "configuration_error"
    STORAGE_ERROR = "storage_error"
    LOCK_ERROR = "lock_error"
    MEMBERSHIP_ERROR = "membership_error"
    PROCESS_ERROR = "process_error"
    UNKNOWN_ERROR = "unknown_error"


@dataclass
class ErrorContext:
    """What the handler knows about one reported error."""

    error_id: str
    timestamp: datetime
    category: ErrorCategory
    severity: ErrorSeverity
    message: str
    recoverable: bool = False
    details: Dict[str, Any] = field(default_factory=dict)
    operation: Optional[str] = None
    stack_trace: Optional[str] = None
    recovery_suggestions: List[str] = field(default_factory=list)


class AgentError(Exception):
    """Base exception class for node agent errors."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.UNKNOWN_ERROR,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        details: Dict[str, Any] = None,
        operation: str = None,
        recoverable: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.category = category
        self.severity = severity
        self.details = details or {}
        self.operation = operation
        self.recoverable = recoverable
        self.timestamp = datetime.now()
        self.error_id = f"{category.value}_{int(time.time() * 1000)}"


class ConfigValidationError(AgentError):
    """Local agent settings are missing or invalid."""

    def __init__(self, message: str, config_key: str = None, config_value: Any = None):
        super().__init__(
            message,
            category=ErrorCategory.CONFIGURATION_ERROR,
            severity=ErrorSeverity.HIGH,
            details={"config_key": config_key, "config_value": str(config_value)},
        )


class LockTimeoutError(AgentError):
    """The pseudo-lock could not be acquired within its time budget."""

    def __init__(self, message: str, timeout_ms: int = None, attempts: int = 0, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.LOCK_ERROR,
            severity=ErrorSeverity.HIGH,
            details={"timeout_ms": timeout_ms, "attempts": attempts},
            recoverable=True,
            **kwargs,
        )
        self.timeout_ms = timeout_ms
        self.attempts = attempts


class MembershipError(AgentError):
    """The encoded server list could not be parsed."""

    def __init__(self, message: str, encoded: str = None, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.MEMBERSHIP_ERROR,
            details={"encoded": encoded},
            **kwargs,
        )


class ConfigConflictError(AgentError):
    """Concurrent writers kept winning the optimistic version check."""

    def __init__(self, message: str, attempts: int = 0, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.STORAGE_ERROR,
            details={"attempts": attempts},
            recoverable=True,
            **kwargs,
        )
        self.attempts = attempts


class ProcessProbeError(AgentError):
    """The process-listing probe could not be run."""

    def __init__(self, message: str, command: str = None, exit_code: int = None, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.PROCESS_ERROR,
            severity=ErrorSeverity.HIGH,
            details={"command": command, "exit_code": exit_code},
            **kwargs,
        )
        self.exit_code = exit_code


class ErrorHandler:
    """Turns errors into one structured log record plus operator suggestions."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def handle_error(self, error: Exception, context: Dict[str, Any] = None, operation: str = None) -> ErrorContext:
        """Log an error with its context and attach recovery suggestions."""
        if isinstance(error, AgentError):
            error_context = ErrorContext(
                error_id=error.error_id,
                timestamp=error.timestamp,
                category=error.category,
                severity=error.severity,
                message=error.message,
                recoverable=error.recoverable,
                details={**(error.details or {}), **(context or {})},
                operation=operation or error.operation,
                stack_trace=traceback.format_exc(),
            )
        else:
            error_context = ErrorContext(
                error_id=f"error_{int(time.time() * 1000)}",
                timestamp=datetime.now(),
                category=ErrorCategory.UNKNOWN_ERROR,
                severity=ErrorSeverity.HIGH,
                message=str(error) or type(error).__name__,
                details=context or {},
                operation=operation,
                stack_trace=traceback.format_exc(),
            )

        error_context.recovery_suggestions = self._get_recovery_suggestions(error_context)
        self._log_error(error_context)
        return error_context

    def _get_recovery_suggestions(self, error_context: ErrorContext) -> List[str]:
        category = error_context.category
        details = error_context.details

        if category == ErrorCategory.CONFIGURATION_ERROR:
            key = details.get("config_key")
            target = f"'{key}'" if key else "the value"
            return [f"Fix {target} in the agent settings file or its QUORUM_AGENT_* environment override"]
        if category == ErrorCategory.LOCK_ERROR:
            return [
                "Another host may be updating the cluster config; retry once it finishes",
                "Run 'quorum-agent lock-markers' and remove markers left by crashed hosts",
            ]
        if category == ErrorCategory.STORAGE_ERROR:
            return ["The shared config changed while it was being written; re-run the command"]
        if category == ErrorCategory.MEMBERSHIP_ERROR:
            return ["Correct servers-spec with 'quorum-agent set servers-spec=...'"]
        if category == ErrorCategory.PROCESS_ERROR:
            return ["Check process.probe_command, or switch process.probe_backend to psutil"]
        return []

    def _log_error(self, error_context: ErrorContext):
        """Log error with appropriate level."""
        log_data = {
            "error_id": error_context.error_id,
            "category": error_context.category.value,
            "severity": error_context.severity.value,
            "operation": error_context.operation,
            "details": error_context.details,
        }

        if error_context.severity == ErrorSeverity.CRITICAL:
            self.logger.critical(f"CRITICAL ERROR: {error_context.message}", extra=log_data)
        elif error_context.severity == ErrorSeverity.HIGH:
            self.logger.error(error_context.message, extra=log_data)
        elif error_context.severity == ErrorSeverity.MEDIUM:
            self.logger.warning(error_context.message, extra=log_data)
        else:
            self.logger.info(error_context.message, extra=log_data)


# Global error handler instance
error_handler = ErrorHandler()
