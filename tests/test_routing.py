"""
Tests for classification, the agent registry and the router.
"""

import pytest

from taskgate.delegation.models import AgentProfile, Task, TaskType
from taskgate.delegation.registry import (
    MANAGER_ID,
    AgentRegistry,
    default_profiles,
    profile_from_mapping,
)
from taskgate.delegation.router import Router
from taskgate.delegation.taxonomy import RULES, classify_task, explain
from taskgate.errors import ConfigError, ConstraintViolation, UnknownAgent


# ═══════════════════════════════════════════════════════════════════════════
# TAXONOMY
# ═══════════════════════════════════════════════════════════════════════════


class TestClassifier:
    @pytest.mark.parametrize(
        "description, expected",
        [
            ("Generate a 4K logo for the brand", TaskType.IMAGE),
            ("Do deep research on EV charging networks", TaskType.RESEARCH),
            ("Refactor the legacy code in billing", TaskType.LEGACY_REFACTOR),
            ("Run a security audit of the login flow", TaskType.SECURITY_AUDIT),
            ("Build a full-stack app for invoices", TaskType.COMPLEX_CODE),
            ("Write a function to parse dates", TaskType.ROUTINE_CODE),
            ("Say hello to the team", TaskType.SIMPLE),
        ],
    )
    def test_each_category(self, description, expected):
        assert classify_task(description) == expected

    def test_image_beats_code(self):
        assert classify_task("Build a React app with a logo") == TaskType.IMAGE

    def test_legacy_beats_security(self):
        assert classify_task("Refactor the security audit module") == TaskType.LEGACY_REFACTOR

    def test_research_beats_code(self):
        assert classify_task("deep research then build an app") == TaskType.RESEARCH

    def test_case_insensitive(self):
        assert classify_task("GENERATE A LOGO") == TaskType.IMAGE

    def test_word_boundaries(self):
        # "vue" inside "revenue" is not a framework mention
        assert classify_task("Summarize quarterly revenue") == TaskType.SIMPLE

    def test_calculation_is_routine_code(self):
        assert classify_task("Calculate 2+2.") == TaskType.ROUTINE_CODE

    def test_default_is_simple(self):
        assert classify_task("") == TaskType.SIMPLE
        assert explain("thanks!") == "default"

    def test_explain_names_rule(self):
        assert explain("Generate a logo") == "image-generation"
        assert explain("Write a script") == "routine-code"

    def test_idempotent(self):
        text = "Build a React dashboard"
        assert classify_task(text) == classify_task(text)

    def test_rule_order(self):
        order = [r.task_type for r in RULES]
        assert order == [
            TaskType.IMAGE,
            TaskType.RESEARCH,
            TaskType.LEGACY_REFACTOR,
            TaskType.SECURITY_AUDIT,
            TaskType.COMPLEX_CODE,
            TaskType.ROUTINE_CODE,
        ]


# ═══════════════════════════════════════════════════════════════════════════
# REGISTRY
# ═══════════════════════════════════════════════════════════════════════════


class TestRegistry:
    def test_default_roster(self):
        registry = AgentRegistry()
        assert len(registry) == 7
        assert registry.manager_id == MANAGER_ID
        assert set(registry.ids()) == {
            "manager", "architect", "coder", "legacy", "imager", "gatekeeper", "research",
        }

    def test_every_type_has_one_owner(self):
        registry = AgentRegistry()
        for task_type in TaskType:
            owners = [p for p in registry.profiles() if p.accepts(task_type)]
            assert len(owners) == 1

    def test_simple_goes_to_manager(self):
        assert AgentRegistry().for_task_type(TaskType.SIMPLE).agent_id == "manager"

    def test_resolve_unknown(self):
        with pytest.raises(UnknownAgent):
            AgentRegistry().resolve("nobody")

    def test_duplicate_owner_rejected(self):
        profiles = default_profiles() + [
            AgentProfile("clone", "Clone", "m", "m", frozenset({TaskType.IMAGE}))
        ]
        with pytest.raises(ConfigError, match="image"):
            AgentRegistry(profiles)

    def test_uncovered_type_rejected(self):
        profiles = [p for p in default_profiles() if p.agent_id != "imager"]
        with pytest.raises(ConfigError, match="image"):
            AgentRegistry(profiles)

    def test_missing_manager_rejected(self):
        with pytest.raises(ConfigError, match="manager"):
            AgentRegistry(default_profiles(), manager_id="boss")

    def test_from_config_empty_uses_defaults(self):
        assert len(AgentRegistry.from_config({})) == 7

    def test_from_config_table(self):
        table = {
            "manager": {"primary": "m1", "allowed": ["simple"]},
            "builder": {
                "primary": "m2",
                "fallback": "m3",
                "name": "Builder",
                "allowed": [
                    "complex_code", "routine_code", "legacy_refactor",
                    "security_audit", "research", "image",
                ],
            },
        }
        registry = AgentRegistry.from_config(table)
        builder = registry.resolve("builder")
        assert builder.display_name == "Builder"
        assert builder.fallback_capability == "m3"
        assert registry.resolve("manager").fallback_capability == "m1"

    def test_profile_missing_key(self):
        with pytest.raises(ConfigError, match="primary"):
            profile_from_mapping("x", {"allowed": ["simple"]})

    def test_profile_bad_type(self):
        with pytest.raises(ConfigError):
            profile_from_mapping("x", {"primary": "m", "allowed": ["poetry"]})

    def test_profile_allowed_must_be_list(self):
        with pytest.raises(ConfigError, match="list"):
            profile_from_mapping("x", {"primary": "m", "allowed": "simple"})


# ═══════════════════════════════════════════════════════════════════════════
# ROUTER
# ═══════════════════════════════════════════════════════════════════════════


class TestRouter:
    def setup_method(self):
        self.router = Router(AgentRegistry())

    def test_image_routes_to_imager_only(self):
        decision = self.router.route_description("Generate a 4K wallpaper")
        assert decision.task_type == TaskType.IMAGE
        assert decision.agent_id == "imager"
        assert decision.capability == "google/nano-banana-pro"
        assert decision.fallback_capability == "flux-2-pro"

    def test_imager_never_takes_code(self):
        with pytest.raises(ConstraintViolation) as exc_info:
            self.router.validate("imager", TaskType.COMPLEX_CODE)
        assert exc_info.value.agent_id == "imager"
        assert exc_info.value.task_type == "complex_code"

    def test_coder_never_takes_images(self):
        with pytest.raises(ConstraintViolation):
            self.router.validate("coder", TaskType.IMAGE)

    def test_validate_unknown_agent(self):
        with pytest.raises(UnknownAgent):
            self.router.validate("ghost", TaskType.SIMPLE)

    def test_every_route_validates(self):
        for task_type in TaskType:
            profile = self.router.route(task_type)
            self.router.validate(profile.agent_id, task_type)

    def test_assign_classifies_untyped(self):
        task = Task(id="t1", description="Generate a logo")
        decision = self.router.assign(task)
        assert task.type == TaskType.IMAGE
        assert task.assigned_agent_id == "imager"
        assert decision.rule == "image-generation"

    def test_assign_keeps_explicit_type(self):
        task = Task(id="t1", description="Calculate 2+2.", type=TaskType.SIMPLE)
        decision = self.router.assign(task)
        assert task.assigned_agent_id == "manager"
        assert decision.rule == "assigned"

    def test_assign_rejects_bad_manual_assignment(self):
        task = Task(id="t1", description="Generate a logo", assigned_agent_id="coder")
        with pytest.raises(ConstraintViolation):
            self.router.assign(task)

    def test_route_idempotent(self):
        first = self.router.route_description("Build a React app")
        second = self.router.route_description("Build a React app")
        assert first == second

    def test_targets(self):
        assert self.router.dispatch_target("coder") == "minimax/minimax-m2.1"
        assert self.router.fallback_target("coder") == "moonshotai/kimi-k2.5"

    def test_agents_to_spawn_unique_in_order(self):
        tasks = [
            Task(id="a", description="Generate a logo"),
            Task(id="b", description="Write a script"),
            Task(id="c", description="Create an icon"),
        ]
        for task in tasks:
            self.router.assign(task)
        spawned = [p.agent_id for p in self.router.agents_to_spawn(tasks)]
        assert spawned == ["imager", "coder"]

    def test_decision_to_dict(self):
        data = self.router.route_description("Write a script").to_dict()
        assert data["agent_id"] == "coder"
        assert data["task_type"] == "routine_code"
        assert data["model"] == "minimax/minimax-m2.1"
