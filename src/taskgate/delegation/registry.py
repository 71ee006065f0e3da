"""Agent Registry - immutable roster of worker profiles."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from types import MappingProxyType
from typing import Any

from taskgate.delegation.models import AgentProfile, TaskType
from taskgate.errors import ConfigError, UnknownAgent

MANAGER_ID = "manager"

# agent_id -> (display name, primary capability, fallback capability, allowed types)
DEFAULT_ROSTER: dict[str, tuple[str, str, str, tuple[TaskType, ...]]] = {
    "manager": (
        "Manager",
        "anthropic/claude-opus-4.6",
        "openai/gpt-5.2-codex",
        (TaskType.SIMPLE,),
    ),
    "architect": (
        "Architect",
        "moonshotai/kimi-k2.5",
        "google/gemini-3-pro-preview",
        (TaskType.COMPLEX_CODE,),
    ),
    "coder": (
        "Coder",
        "minimax/minimax-m2.1",
        "moonshotai/kimi-k2.5",
        (TaskType.ROUTINE_CODE,),
    ),
    "legacy": (
        "Legacy",
        "openai/gpt-5.2-codex",
        "openai/gpt-5.3-codex-spark",
        (TaskType.LEGACY_REFACTOR,),
    ),
    "imager": (
        "Imager",
        "google/nano-banana-pro",
        "flux-2-pro",
        (TaskType.IMAGE,),
    ),
    "gatekeeper": (
        "Gatekeeper",
        "anthropic/claude-sonnet-4.5",
        "google/gemini-3-pro-preview",
        (TaskType.SECURITY_AUDIT,),
    ),
    "research": (
        "Deep Research",
        "google/gemini-3-pro-preview",
        "anthropic/claude-opus-4.6",
        (TaskType.RESEARCH,),
    ),
}


def default_profiles() -> list[AgentProfile]:
    return [
        AgentProfile(
            agent_id=agent_id,
            display_name=display,
            primary_capability=primary,
            fallback_capability=fallback,
            allowed_task_types=frozenset(allowed),
        )
        for agent_id, (display, primary, fallback, allowed) in DEFAULT_ROSTER.items()
    ]


def profile_from_mapping(agent_id: str, data: Mapping[str, Any]) -> AgentProfile:
    """Build a profile from one ``[agents.<id>]`` config table."""
    try:
        primary = str(data["primary"])
        fallback = str(data.get("fallback", primary))
        allowed_raw = data["allowed"]
    except KeyError as exc:
        raise ConfigError(f"agents.{agent_id}: missing key {exc}") from exc

    if isinstance(allowed_raw, str) or not isinstance(allowed_raw, Iterable):
        raise ConfigError(f"agents.{agent_id}.allowed must be a list of task types")
    try:
        allowed = frozenset(TaskType(str(t)) for t in allowed_raw)
    except ValueError as exc:
        raise ConfigError(f"agents.{agent_id}.allowed: {exc}") from exc
    if not allowed:
        raise ConfigError(f"agents.{agent_id}.allowed must not be empty")

    return AgentProfile(
        agent_id=agent_id,
        display_name=str(data.get("name", agent_id.title())),
        primary_capability=primary,
        fallback_capability=fallback,
        allowed_task_types=allowed,
    )


class AgentRegistry:
    """
    Read-only table of agent profiles keyed by id.

    Built once at startup; there is no way to add or remove agents afterwards.
    Every task type must be accepted by exactly one agent so routing stays a
    plain lookup.
    """

    def __init__(
        self,
        profiles: Iterable[AgentProfile] | None = None,
        manager_id: str = MANAGER_ID,
    ) -> None:
        table = {p.agent_id: p for p in (profiles if profiles is not None else default_profiles())}
        if manager_id not in table:
            raise ConfigError(f"Registry has no manager agent '{manager_id}'")

        by_type: dict[TaskType, str] = {}
        for profile in table.values():
            for task_type in profile.allowed_task_types:
                owner = by_type.setdefault(task_type, profile.agent_id)
                if owner != profile.agent_id:
                    raise ConfigError(
                        f"Task type '{task_type}' is allowed for both '{owner}' "
                        f"and '{profile.agent_id}'"
                    )
        missing = [t.value for t in TaskType if t not in by_type]
        if missing:
            raise ConfigError(f"No agent accepts task types: {', '.join(missing)}")

        self._profiles: Mapping[str, AgentProfile] = MappingProxyType(table)
        self._by_type: Mapping[TaskType, str] = MappingProxyType(by_type)
        self.manager_id = manager_id

    @classmethod
    def from_config(cls, agents: Mapping[str, Mapping[str, Any]]) -> AgentRegistry:
        """Build from the ``agents`` config table, or the default roster when empty."""
        if not agents:
            return cls()
        return cls(profile_from_mapping(agent_id, data) for agent_id, data in agents.items())

    def resolve(self, agent_id: str) -> AgentProfile:
        try:
            return self._profiles[agent_id]
        except KeyError:
            raise UnknownAgent(agent_id) from None

    def for_task_type(self, task_type: TaskType) -> AgentProfile:
        return self._profiles[self._by_type[task_type]]

    def ids(self) -> list[str]:
        return list(self._profiles)

    def profiles(self) -> list[AgentProfile]:
        return list(self._profiles.values())

    def __contains__(self, agent_id: object) -> bool:
        return agent_id in self._profiles

    def __len__(self) -> int:
        return len(self._profiles)
