"""Services for the workflow kernel (write side)."""

from workflow_kernel.services.authorization import (
    AuthorizationEngine,
    StaticCapabilityProvider,
)
from workflow_kernel.services.commands import WorkflowCommands
from workflow_kernel.services.definition import WorkflowDefinition
from workflow_kernel.services.execution_engine import ExecutionEngine
from workflow_kernel.services.history_store import DeletionScope, HistoryStore

__all__ = [
    "AuthorizationEngine",
    "DeletionScope",
    "ExecutionEngine",
    "HistoryStore",
    "StaticCapabilityProvider",
    "WorkflowCommands",
    "WorkflowDefinition",
]
