"""
Delegation Data Models

Core dataclasses shared by the classifier, router, dispatcher and gatekeeper.
"""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field
from enum import StrEnum
from typing import Any


class TaskType(StrEnum):
    """Closed set of task categories. Rule order lives in taxonomy.py."""

    IMAGE = "image"
    RESEARCH = "research"
    LEGACY_REFACTOR = "legacy_refactor"
    SECURITY_AUDIT = "security_audit"
    COMPLEX_CODE = "complex_code"
    ROUTINE_CODE = "routine_code"
    SIMPLE = "simple"


CODE_TASK_TYPES = frozenset(
    {TaskType.COMPLEX_CODE, TaskType.ROUTINE_CODE, TaskType.LEGACY_REFACTOR}
)


class TaskStatus(StrEnum):
    PENDING = "pending"
    DISPATCHED = "dispatched"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class CriterionStatus(StrEnum):
    PENDING = "pending"
    MET = "met"
    UNMET = "unmet"


class CriterionCategory(StrEnum):
    SECURITY = "security"
    CODE = "code"
    IMAGE = "image"
    RESEARCH = "research"


class ArtifactKind(StrEnum):
    CODE = "code"
    IMAGE = "image"
    TEXT = "text"


class Verdict(StrEnum):
    """Outcome of one gatekeeper pass or of a whole run."""

    RELEASE = "release"
    CORRECT = "correct"
    ESCALATE = "escalate"


class RunState(StrEnum):
    """Orchestration run states. RELEASED and ESCALATED are terminal."""

    INGEST = "ingest"
    AUDIT = "audit"
    CORRECT = "correct"
    RELEASED = "released"
    ESCALATED = "escalated"


@dataclass(frozen=True)
class AgentProfile:
    """Static worker profile. The allowed set is the only source of negative constraints."""

    agent_id: str
    display_name: str
    primary_capability: str
    fallback_capability: str
    allowed_task_types: frozenset[TaskType]

    def accepts(self, task_type: TaskType) -> bool:
        return task_type in self.allowed_task_types


@dataclass(frozen=True)
class Artifact:
    """Raw output of one task."""

    task_id: str
    kind: ArtifactKind
    content: str | bytes
    content_type: str = "text/plain"
    uri: str | None = None
    placeholder: bool = False

    @property
    def is_binary(self) -> bool:
        return isinstance(self.content, bytes)

    @property
    def text(self) -> str:
        """Textual view of the content; binary artifacts have none."""
        if isinstance(self.content, bytes):
            return ""
        return self.content

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_id": self.task_id,
            "kind": self.kind.value,
            "content_type": self.content_type,
            "uri": self.uri,
            "placeholder": self.placeholder,
            "size": len(self.content),
            "preview": self.text[:500],
        }


@dataclass
class Task:
    """Atomic unit of work with a single assigned worker."""

    id: str
    description: str
    type: TaskType | None = None
    assigned_agent_id: str | None = None
    status: TaskStatus = TaskStatus.PENDING
    artifact: Artifact | None = None
    error: str | None = None
    attempts: int = 0
    corrections: list[str] = field(default_factory=list)

    def prompt_description(self) -> str:
        """Description with any correction instructions appended."""
        if not self.corrections:
            return self.description
        notes = "\n".join(f"- {c}" for c in self.corrections)
        return f"{self.description}\n\nCorrections required:\n{notes}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "description": self.description,
            "type": self.type.value if self.type else None,
            "assigned_agent_id": self.assigned_agent_id,
            "status": self.status.value,
            "error": self.error,
            "attempts": self.attempts,
            "corrections": list(self.corrections),
            "artifact": self.artifact.to_dict() if self.artifact else None,
        }


@dataclass
class Criterion:
    """One verifiable condition the finished artifact set must satisfy."""

    id: str
    description: str
    category: CriterionCategory
    status: CriterionStatus = CriterionStatus.PENDING
    evidence: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "description": self.description,
            "category": self.category.value,
            "status": self.status.value,
        }


@dataclass
class AuditFinding:
    """Output of one gatekeeper check."""

    check_name: str
    failure_count: int = 0
    details: list[str] = field(default_factory=list)
    artifact_ids: list[str] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return self.failure_count == 0

    def fail(self, detail: str, *artifact_ids: str) -> None:
        self.failure_count += 1
        self.details.append(detail)
        for artifact_id in artifact_ids:
            if artifact_id not in self.artifact_ids:
                self.artifact_ids.append(artifact_id)


@dataclass
class CorrectionInstruction:
    """Produced for a failing check; consumed by the dispatcher."""

    correction_type: str
    details: str
    redelegate_to: str
    instruction: str
    task_ids: list[str] = field(default_factory=list)
    timestamp: float = field(default_factory=time.time)


@dataclass
class AuditReport:
    """All findings of one gatekeeper pass."""

    pass_number: int
    findings: list[AuditFinding]
    verdict: Verdict
    corrections: list[CorrectionInstruction] = field(default_factory=list)

    @property
    def failure_count(self) -> int:
        return sum(f.failure_count for f in self.findings)

    def finding(self, check_name: str) -> AuditFinding | None:
        for f in self.findings:
            if f.check_name == check_name:
                return f
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "pass_number": self.pass_number,
            "verdict": self.verdict.value,
            "failure_count": self.failure_count,
            "findings": [asdict(f) for f in self.findings],
            "corrections": [asdict(c) for c in self.corrections],
        }


@dataclass
class OrchestrationRun:
    """Mutable state of one request. Only the orchestrator touches retry_count."""

    run_id: str
    request: str
    tasks: list[Task] = field(default_factory=list)
    criteria: list[Criterion] = field(default_factory=list)
    max_retries: int = 3
    retry_count: int = 0
    state: RunState = RunState.INGEST
    audit_trail: list[AuditReport] = field(default_factory=list)
    violations: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")

    def task(self, task_id: str) -> Task:
        for t in self.tasks:
            if t.id == task_id:
                return t
        raise KeyError(task_id)


@dataclass
class RunResult:
    """What the core hands to a reporting layer."""

    run_id: str
    request: str
    verdict: RunState
    tasks: list[Task]
    criteria: list[Criterion]
    audit_trail: list[AuditReport]
    violations: list[str] = field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def released(self) -> bool:
        return self.verdict == RunState.RELEASED

    @property
    def passes(self) -> int:
        return len(self.audit_trail)

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "request": self.request,
            "verdict": self.verdict.value,
            "passes": self.passes,
            "duration_seconds": self.duration_seconds,
            "tasks": [t.to_dict() for t in self.tasks],
            "criteria": [c.to_dict() for c in self.criteria],
            "audit_trail": [r.to_dict() for r in self.audit_trail],
            "violations": list(self.violations),
        }
