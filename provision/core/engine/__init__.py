"""Engine — graph construction, planning and execution.

Public re-exports for convenient access.
"""

from provision.core.engine.executor import ExecutionEngine, PreparedRun
from provision.core.engine.graph import (
    DeferredConfigurations,
    ResourceGraph,
    build_resource_graph,
)
from provision.core.engine.planner import build_execution_plan

__all__ = [
    "DeferredConfigurations",
    "ExecutionEngine",
    "PreparedRun",
    "ResourceGraph",
    "build_execution_plan",
    "build_resource_graph",
]
