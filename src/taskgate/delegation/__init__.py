"""
Delegation — Classification, Routing, Decomposition and Dispatch

Core Components:
- models: Task, Artifact, Criterion and audit dataclasses
- taxonomy: ordered first-match task classification
- registry: fixed agent roster with allowed task types
- router: type-to-agent resolution and constraint validation
- decomposer: request axes to atomic tasks plus criteria register
- executor: bounded concurrent dispatch with fallback
"""

from .decomposer import decompose_request
from .executor import Dispatcher, build_prompt
from .models import (
    AgentProfile,
    Artifact,
    ArtifactKind,
    AuditFinding,
    AuditReport,
    CorrectionInstruction,
    Criterion,
    CriterionCategory,
    CriterionStatus,
    OrchestrationRun,
    RunResult,
    RunState,
    Task,
    TaskStatus,
    TaskType,
    Verdict,
)
from .registry import AgentRegistry, default_profiles
from .router import Router, RoutingDecision
from .taxonomy import classify_task, explain

__all__ = [
    # Models
    "AgentProfile",
    "Artifact",
    "ArtifactKind",
    "AuditFinding",
    "AuditReport",
    "CorrectionInstruction",
    "Criterion",
    "CriterionCategory",
    "CriterionStatus",
    "OrchestrationRun",
    "RunResult",
    "RunState",
    "Task",
    "TaskStatus",
    "TaskType",
    "Verdict",
    # Taxonomy
    "classify_task",
    "explain",
    # Registry / Router
    "AgentRegistry",
    "default_profiles",
    "Router",
    "RoutingDecision",
    # Decomposer
    "decompose_request",
    # Executor
    "Dispatcher",
    "build_prompt",
]
