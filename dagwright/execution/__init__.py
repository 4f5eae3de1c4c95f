"""Task execution - supervised dispatch, validation and recovery.

This module provides:
- Capabilities (shell, LLM-backed content, dry run)
- The execution supervisor and its log
- The recovery planner
"""

from dagwright.execution.capabilities import (
    ActionCapability,
    ActionKind,
    ActionRequest,
    ActionResult,
    ContentCapability,
    DryRunCapability,
    ShellCapability,
    ValidationCapability,
    ValidationRequest,
    ValidationResult,
)
from dagwright.execution.recovery import RecoveryPlanner
from dagwright.execution.supervisor import (
    ExecutionLog,
    ExecutionSupervisor,
    RecoveryRecord,
    TaskAttempt,
)

__all__ = [
    # Capabilities
    "ActionCapability",
    "ActionKind",
    "ActionRequest",
    "ActionResult",
    "ContentCapability",
    "DryRunCapability",
    "ShellCapability",
    "ValidationCapability",
    "ValidationRequest",
    "ValidationResult",
    # Supervision
    "ExecutionLog",
    "ExecutionSupervisor",
    "RecoveryRecord",
    "TaskAttempt",
    "RecoveryPlanner",
]
