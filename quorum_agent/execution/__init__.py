"""
Execution backends for launching and running external commands
"""

from .base import CommandRunner, ExecutionConfig, ExecutionResult, ExecutionStatus
from .native import NativeCommandRunner

__all__ = ["CommandRunner", "ExecutionConfig", "ExecutionResult", "ExecutionStatus", "NativeCommandRunner"]
