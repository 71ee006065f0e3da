"""
Request Decomposer — Axis Detection and Success Criteria Register

Scans a request independently along five axes (code, image, research,
legacy, audit). Each fired axis becomes one atomic task with a synthesized
description; a request that fires nothing is handed to the manager verbatim.

Every register carries the no-secret-leakage criterion, so neither the task
list nor the criteria list can come back empty.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from .models import Criterion, CriterionCategory, Task, TaskType

logger = logging.getLogger(__name__)


def _terms(*alternatives: str) -> re.Pattern[str]:
    return re.compile("|".join(alternatives))


CODE_TERMS = _terms(
    r"\bbuild", r"\bcreate", r"\bdevelop", r"\bimplement", r"\bwrite", r"\bcode\b",
    r"\bapps?\b", r"\bwebsite", r"\bfrontend", r"\bbackend", r"\bapi\b", r"\breact\b",
    r"\bangular\b", r"\bvue\b", r"\bscript", r"\bfunction", r"\bcli\b",
)
IMAGE_TERMS = _terms(
    r"\blogo", r"\bimage", r"\bvisual", r"\bwallpaper", r"\bicon", r"\bbanner",
    r"\bphoto", r"\billustration", r"\bmockup", r"\basset", r"\bgraphic",
)
RESEARCH_TERMS = _terms(
    r"deep research", r"research.*from.*web", r"pricing.*comparison",
    r"market.*analysis", r"analy[sz]e.*trends",
)
LEGACY_TERMS = _terms(
    r"\brefactor", r"\blegacy", r"\bmigrate", r"\bmoderni[sz]e", r"old.*code",
    r"technical.*debt",
)
AUDIT_TERMS = _terms(
    r"\baudit", r"security.*review", r"\bpenetration", r"\bcompliance", r"\bvulnerabilit",
)
COMPLEX_CODE_TERMS = _terms(
    r"full.?stack", r"\bparallel", r"\bswarm", r"\bcomplex", r"\barchitect",
    r"\breact\b", r"\bangular\b", r"\bvue\b", r"frontend.*backend",
)

SECURITY_CRITERION = Criterion(
    id="CR-SEC",
    description="No credential values are exposed in generated artifacts",
    category=CriterionCategory.SECURITY,
)
CODE_CRITERION = Criterion(
    id="CR-001",
    description="Code deliverable compiles/runs without errors",
    category=CriterionCategory.CODE,
    evidence=("```", "def ", "function", "class ", "import ", "const ", "<html", "return"),
)
IMAGE_CRITERION = Criterion(
    id="CR-002",
    description="Visual assets are actual image files, not text descriptions",
    category=CriterionCategory.IMAGE,
)
RESEARCH_CRITERION = Criterion(
    id="CR-003",
    description="Research report is comprehensive with verifiable sources",
    category=CriterionCategory.RESEARCH,
    evidence=("http://", "https://", "source", "reference", "[1]"),
)


@dataclass(frozen=True)
class RequirementAxes:
    """Which requirement categories a request mentions."""

    code: bool = False
    image: bool = False
    research: bool = False
    legacy: bool = False
    audit: bool = False

    @property
    def any(self) -> bool:
        return self.code or self.image or self.research or self.legacy or self.audit


def detect_axes(request: str) -> RequirementAxes:
    text = request.casefold()
    return RequirementAxes(
        code=CODE_TERMS.search(text) is not None,
        image=IMAGE_TERMS.search(text) is not None,
        research=RESEARCH_TERMS.search(text) is not None,
        legacy=LEGACY_TERMS.search(text) is not None,
        audit=AUDIT_TERMS.search(text) is not None,
    )


def is_complex_code(request: str) -> bool:
    """Architecture, full-stack or multi-surface indicators."""
    return COMPLEX_CODE_TERMS.search(request.casefold()) is not None


def _copy(criterion: Criterion) -> Criterion:
    return Criterion(
        id=criterion.id,
        description=criterion.description,
        category=criterion.category,
        evidence=criterion.evidence,
    )


def decompose_request(request: str) -> tuple[list[Task], list[Criterion]]:
    """
    Split a request into atomic tasks and a success criteria register.

    Args:
        request: The user's free-form request

    Returns:
        (tasks, criteria); both lists are non-empty.
    """
    if not request or not request.strip():
        raise ValueError("Request cannot be empty")

    axes = detect_axes(request)
    planned: list[tuple[TaskType, str]] = []
    criteria: list[Criterion] = []

    if not axes.any:
        planned.append((TaskType.SIMPLE, request.strip()))
    else:
        if axes.code:
            if is_complex_code(request):
                planned.append((TaskType.COMPLEX_CODE, "Frontend/Full-Stack Code Generation"))
            else:
                planned.append((TaskType.ROUTINE_CODE, "Code Generation"))
            criteria.append(_copy(CODE_CRITERION))
        if axes.image:
            planned.append((TaskType.IMAGE, "Visual Asset Generation"))
            criteria.append(_copy(IMAGE_CRITERION))
        if axes.research:
            planned.append((TaskType.RESEARCH, "Deep Research & Analysis"))
            criteria.append(_copy(RESEARCH_CRITERION))
        if axes.legacy:
            planned.append((TaskType.LEGACY_REFACTOR, "Legacy Code Refactoring"))
        if axes.audit:
            planned.append((TaskType.SECURITY_AUDIT, "Security Audit"))

    criteria.append(_copy(SECURITY_CRITERION))

    tasks = [
        Task(id=f"task-{idx}", description=description, type=task_type)
        for idx, (task_type, description) in enumerate(planned, start=1)
    ]
    logger.info(
        "Decomposed request into %d task(s) and %d criteria", len(tasks), len(criteria)
    )
    return tasks, criteria
