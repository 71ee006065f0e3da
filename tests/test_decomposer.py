"""
Tests for request decomposition and the criteria register.
"""

import pytest

from taskgate.delegation.decomposer import decompose_request, detect_axes, is_complex_code
from taskgate.delegation.models import CriterionCategory, CriterionStatus, TaskType
from taskgate.delegation.registry import AgentRegistry
from taskgate.delegation.router import Router


class TestAxes:
    def test_no_axis(self):
        assert not detect_axes("Calculate 2+2.").any

    def test_code_and_image(self):
        axes = detect_axes("Build a React landing page with a logo.")
        assert axes.code and axes.image
        assert not (axes.research or axes.legacy or axes.audit)

    def test_complex_indicators(self):
        assert is_complex_code("Build a React landing page")
        assert is_complex_code("A full-stack todo service")
        assert not is_complex_code("Write a script that renames files")


class TestDecompose:
    def test_simple_request(self):
        tasks, criteria = decompose_request("Calculate 2+2.")
        assert len(tasks) == 1
        assert tasks[0].type == TaskType.SIMPLE
        assert tasks[0].description == "Calculate 2+2."
        assert [c.id for c in criteria] == ["CR-SEC"]

    def test_react_landing_page_with_logo(self):
        tasks, criteria = decompose_request("Build a React landing page with a logo.")
        assert [t.type for t in tasks] == [TaskType.COMPLEX_CODE, TaskType.IMAGE]
        assert [t.id for t in tasks] == ["task-1", "task-2"]
        assert tasks[0].description == "Frontend/Full-Stack Code Generation"
        assert {c.id for c in criteria} == {"CR-SEC", "CR-001", "CR-002"}

    def test_routine_code(self):
        tasks, _ = decompose_request("Write a script that renames files")
        assert tasks[0].type == TaskType.ROUTINE_CODE
        assert tasks[0].description == "Code Generation"

    def test_research(self):
        tasks, criteria = decompose_request("Deep research on market analysis of EV trends")
        assert [t.type for t in tasks] == [TaskType.RESEARCH]
        assert [c.id for c in criteria] == ["CR-003", "CR-SEC"]
        assert criteria[0].category == CriterionCategory.RESEARCH

    def test_axis_order(self):
        tasks, criteria = decompose_request(
            "Modernize the legacy billing system and audit it for compliance"
        )
        assert [t.type for t in tasks] == [TaskType.LEGACY_REFACTOR, TaskType.SECURITY_AUDIT]
        assert [c.id for c in criteria] == ["CR-SEC"]

    def test_security_criterion_last(self):
        _, criteria = decompose_request("Build an app with an icon")
        assert criteria[-1].id == "CR-SEC"
        assert criteria[-1].category == CriterionCategory.SECURITY

    def test_never_empty(self):
        for text in ("hi", "Build an app", "Generate a logo", "deep research on pricing"):
            tasks, criteria = decompose_request(text)
            assert tasks
            assert criteria

    def test_empty_request(self):
        with pytest.raises(ValueError, match="empty"):
            decompose_request("   ")

    def test_criteria_are_fresh(self):
        _, first = decompose_request("Build an app")
        first[0].status = CriterionStatus.MET
        _, second = decompose_request("Build an app")
        assert second[0].status == CriterionStatus.PENDING

    def test_tasks_are_routable(self):
        router = Router(AgentRegistry())
        tasks, _ = decompose_request(
            "Build a React app with a logo, do deep research on pricing comparison, "
            "refactor the legacy code and run a security audit"
        )
        assert len(tasks) == 5
        for task in tasks:
            router.assign(task)
        assert [t.assigned_agent_id for t in tasks] == [
            "architect", "imager", "research", "legacy", "gatekeeper",
        ]
