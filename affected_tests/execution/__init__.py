"""Test execution: the pytest engine, the run adapter, and the two-phase orchestrator."""

from affected_tests.execution.adapter import PHASE_CURRENT, PHASE_HEAD, TestRunAdapter
from affected_tests.execution.barrier import CompletionBarrier
from affected_tests.execution.engine import (
    PhaseResult,
    ProcessHandle,
    PytestEngine,
    RunConfiguration,
    Scope,
    resolve_node_id,
)
from affected_tests.execution.foreground import ForegroundQueue
from affected_tests.execution.orchestrator import ExecutionOrchestrator, State

__all__ = [
    "PHASE_CURRENT",
    "PHASE_HEAD",
    "CompletionBarrier",
    "ExecutionOrchestrator",
    "ForegroundQueue",
    "PhaseResult",
    "ProcessHandle",
    "PytestEngine",
    "RunConfiguration",
    "Scope",
    "State",
    "TestRunAdapter",
    "resolve_node_id",
]
