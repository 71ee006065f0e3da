"""
Agent Router — Task Type to Agent Resolution

Routing is a table lookup: every task type belongs to exactly one agent in
the registry. Assignments are validated against the agent's allowed set and
a violation is a hard error; nothing is re-routed behind the caller's back.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from taskgate.errors import ConstraintViolation

from .models import AgentProfile, Task, TaskType
from .registry import AgentRegistry
from .taxonomy import classify_task, explain

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RoutingDecision:
    """Where a task goes and why."""

    description: str
    task_type: TaskType
    agent_id: str
    agent_name: str
    capability: str
    fallback_capability: str
    rule: str = "assigned"

    def to_dict(self) -> dict[str, str]:
        return {
            "task_description": self.description,
            "task_type": self.task_type.value,
            "agent_id": self.agent_id,
            "agent_name": self.agent_name,
            "model": self.capability,
            "fallback_model": self.fallback_capability,
            "rule": self.rule,
        }


class Router:
    """Resolves task types to agents and agents to capabilities."""

    def __init__(self, registry: AgentRegistry) -> None:
        self.registry = registry

    def route(self, task_type: TaskType) -> AgentProfile:
        return self.registry.for_task_type(task_type)

    def validate(self, agent_id: str, task_type: TaskType) -> None:
        """Raise ConstraintViolation unless the agent accepts the task type."""
        profile = self.registry.resolve(agent_id)
        if not profile.accepts(task_type):
            raise ConstraintViolation(agent_id, task_type.value)

    def dispatch_target(self, agent_id: str) -> str:
        return self.registry.resolve(agent_id).primary_capability

    def fallback_target(self, agent_id: str) -> str:
        return self.registry.resolve(agent_id).fallback_capability

    def assign(self, task: Task) -> RoutingDecision:
        """
        Classify (when untyped), route and validate a task in place.

        A task that already names an agent keeps it and is validated against
        that agent, so a bad manual assignment surfaces as a violation.
        """
        rule = "assigned"
        if task.type is None:
            rule = explain(task.description)
            task.type = classify_task(task.description)

        agent_id = task.assigned_agent_id or self.route(task.type).agent_id
        self.validate(agent_id, task.type)
        task.assigned_agent_id = agent_id

        profile = self.registry.resolve(agent_id)
        logger.debug("Routed task %s (%s) -> %s", task.id, task.type, agent_id)
        return self._decision(task.description, task.type, profile, rule)

    def route_description(self, description: str) -> RoutingDecision:
        """Classify and route a bare description."""
        task_type = classify_task(description)
        profile = self.route(task_type)
        self.validate(profile.agent_id, task_type)
        return self._decision(description, task_type, profile, explain(description))

    def agents_to_spawn(self, tasks: Iterable[Task]) -> list[AgentProfile]:
        """Unique assigned agents in first-seen order."""
        seen: dict[str, AgentProfile] = {}
        for task in tasks:
            if task.assigned_agent_id and task.assigned_agent_id not in seen:
                seen[task.assigned_agent_id] = self.registry.resolve(task.assigned_agent_id)
        return list(seen.values())

    @staticmethod
    def _decision(
        description: str, task_type: TaskType, profile: AgentProfile, rule: str
    ) -> RoutingDecision:
        return RoutingDecision(
            description=description,
            task_type=task_type,
            agent_id=profile.agent_id,
            agent_name=profile.display_name,
            capability=profile.primary_capability,
            fallback_capability=profile.fallback_capability,
            rule=rule,
        )
