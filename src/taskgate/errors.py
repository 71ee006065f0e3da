"""Exception taxonomy for the delegation pipeline."""

from __future__ import annotations

from enum import StrEnum


class TaskgateError(Exception):
    """Base class for all taskgate errors."""


class ConfigError(TaskgateError):
    """Invalid or unreadable startup configuration."""


class UnknownAgent(TaskgateError):
    """Agent id is not present in the registry."""

    def __init__(self, agent_id: str) -> None:
        super().__init__(f"Unknown agent '{agent_id}'")
        self.agent_id = agent_id


class ConstraintViolation(TaskgateError):
    """An agent was assigned a task type outside its allowed set."""

    def __init__(self, agent_id: str, task_type: str) -> None:
        super().__init__(f"Agent '{agent_id}' cannot handle '{task_type}' tasks")
        self.agent_id = agent_id
        self.task_type = task_type


class DispatchErrorKind(StrEnum):
    """Capability-level failure categories."""

    TIMEOUT = "timeout"
    TRANSPORT = "transport"
    AUTH = "auth"
    MALFORMED = "malformed"


class DispatchError(TaskgateError):
    """A worker capability failed to return a usable response."""

    def __init__(self, kind: DispatchErrorKind, capability_id: str, message: str = "") -> None:
        detail = f": {message}" if message else ""
        super().__init__(f"{kind.value} from '{capability_id}'{detail}")
        self.kind = kind
        self.capability_id = capability_id
        self.message = message
