"""
Task Taxonomy — Ordered Pattern Classification

Maps a free-form task description to a TaskType. Rules are evaluated in
order against the case-folded description and the first match wins.
Categories overlap on purpose ("a React app with a logo" is both code and
image), so the order below is policy:

    image > deep research > legacy/refactor > security audit
          > complex code > routine code > simple
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Final

from .models import TaskType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClassificationRule:
    name: str
    task_type: TaskType
    pattern: re.Pattern[str]

    def matches(self, text: str) -> bool:
        return self.pattern.search(text) is not None


def _rule(name: str, task_type: TaskType, *alternatives: str) -> ClassificationRule:
    return ClassificationRule(name, task_type, re.compile("|".join(alternatives)))


RULES: Final[tuple[ClassificationRule, ...]] = (
    _rule(
        "image-generation",
        TaskType.IMAGE,
        r"generate.*image", r"generate.*logo", r"generate.*wallpaper", r"generate.*visual",
        r"create.*image", r"create.*logo", r"create.*icon", r"create.*banner",
        r"visual asset", r"4k.*logo", r"image generation", r"\blogos?\b", r"wallpaper",
        r"\bphoto", r"illustration", r"artwork", r"mockup", r"design.*graphic",
    ),
    _rule(
        "deep-research",
        TaskType.RESEARCH,
        r"deep research", r"deep_research", r"deepresearch",
    ),
    _rule(
        "legacy-refactor",
        TaskType.LEGACY_REFACTOR,
        r"\brefactor", r"legacy.*code", r"legacy.*system", r"old.*codebase",
        r"technical debt", r"moderni[sz]e", r"migrate.*from", r"upgrade.*from", r"deprecated",
    ),
    _rule(
        "security-audit",
        TaskType.SECURITY_AUDIT,
        r"audit.*security", r"security.*audit", r"penetration test", r"vulnerabilit",
        r"compliance check", r"code.*review.*security", r"gatekeeper",
    ),
    _rule(
        "complex-code",
        TaskType.COMPLEX_CODE,
        r"build.*app", r"full.?stack", r"\breact\b", r"\bangular\b", r"\bvue\b",
        r"next\.?js", r"frontend", r"backend", r"api.*server", r"microservice",
        r"agent.*swarm", r"parallel.*processing", r"ui.*ux", r"complex.*architecture",
        r"architect", r"design.*system", r"\bswarm\b",
    ),
    _rule(
        "routine-code",
        TaskType.ROUTINE_CODE,
        r"write.*function", r"write.*script", r"calculate", r"compute", r"\bparse",
        r"convert", r"translate.*code", r"cli.*command", r"routine", r"bulk.*code",
        r"simple.*script", r"error.*handling", r"fix.*bug", r"\bdebug",
    ),
)


def normalize(description: str) -> str:
    return " ".join(description.casefold().split())


def match_rule(description: str) -> ClassificationRule | None:
    """First rule matching the description, or None."""
    text = normalize(description)
    for rule in RULES:
        if rule.matches(text):
            return rule
    return None


def classify_task(description: str) -> TaskType:
    """
    Classify a task description.

    Args:
        description: Free-form task text

    Returns:
        The TaskType of the first matching rule, or SIMPLE when none match.
    """
    rule = match_rule(description)
    if rule is None:
        logger.debug("No classification rule matched; defaulting to simple")
        return TaskType.SIMPLE
    return rule.task_type


def explain(description: str) -> str:
    """Name of the rule that decided the classification."""
    rule = match_rule(description)
    return rule.name if rule else "default"
