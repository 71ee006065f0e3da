"""
Gatekeeper — Audit Pass and Correction Instructions

Runs the four checks over one fully resolved pass, decides release versus
correction, and turns each failing check into correction instructions
grouped by the agent responsible for fixing it.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence

from taskgate.delegation.models import (
    Artifact,
    AuditFinding,
    AuditReport,
    CorrectionInstruction,
    Criterion,
    Task,
    TaskType,
    Verdict,
)
from taskgate.delegation.registry import AgentRegistry

from .checks import (
    CRITERION_COVERAGE,
    DEFAULT_MIN_SECRET_LENGTH,
    KIND_FIDELITY,
    SECRET_LEAKAGE,
    SHELL_CHECK_TIMEOUT,
    check_coverage,
    check_kind_fidelity,
    check_secrets,
    check_structure,
    redact,
)

logger = logging.getLogger(__name__)

INSTRUCTION_TEMPLATE = "Fix the identified {check} issue and resubmit the artifact."
SECRET_INSTRUCTION = (
    "Remove every credential value from the artifact; reference configuration "
    "or environment variables by name instead."
)


class Gatekeeper:
    """Audits artifacts and issues corrections; it never releases a leaked secret."""

    def __init__(
        self,
        registry: AgentRegistry,
        credentials: Mapping[str, str] | None = None,
        min_secret_length: int = DEFAULT_MIN_SECRET_LENGTH,
        shell_timeout: float = SHELL_CHECK_TIMEOUT,
    ) -> None:
        self.registry = registry
        self.credentials = dict(credentials or {})
        self.min_secret_length = min_secret_length
        self.shell_timeout = shell_timeout
        # task id -> artifact that last passed the structural check
        self._structure_cleared: dict[str, Artifact] = {}

    def audit(
        self, tasks: Sequence[Task], criteria: Sequence[Criterion], pass_number: int
    ) -> AuditReport:
        """
        Audit one pass.

        Args:
            tasks: Every task of the run, all resolved
            criteria: The run's criteria register; statuses are updated in place
            pass_number: 1-based audit pass

        Returns:
            AuditReport with verdict RELEASE when nothing failed, else CORRECT.
            Escalation is the caller's decision once its retry budget is spent.
        """
        secrets = check_secrets(tasks, self.credentials, self.min_secret_length)
        findings = [
            self._check_structure(tasks),
            check_kind_fidelity(tasks),
            secrets,
            check_coverage(tasks, criteria, secrets),
        ]
        # validator output can quote the artifact it rejected
        for f in findings:
            f.details = [redact(d, self.credentials, self.min_secret_length) for d in f.details]

        if all(f.passed for f in findings):
            logger.info("Audit pass %d: all checks passed", pass_number)
            return AuditReport(pass_number=pass_number, findings=findings, verdict=Verdict.RELEASE)

        corrections = self.corrections_for(findings, tasks)
        for f in findings:
            if not f.passed:
                logger.warning(
                    "Audit pass %d: %s failed %d time(s) on %s",
                    pass_number,
                    f.check_name,
                    f.failure_count,
                    ", ".join(f.artifact_ids) or "register",
                )
        return AuditReport(
            pass_number=pass_number,
            findings=findings,
            verdict=Verdict.CORRECT,
            corrections=corrections,
        )

    def _check_structure(self, tasks: Sequence[Task]) -> AuditFinding:
        """Structural check over artifacts that have not already passed it."""
        fresh = [t for t in tasks if self._structure_cleared.get(t.id) is not t.artifact]
        finding = check_structure(fresh, self.shell_timeout)
        for task in fresh:
            if (
                task.artifact is not None
                and not task.artifact.placeholder
                and task.id not in finding.artifact_ids
            ):
                self._structure_cleared[task.id] = task.artifact
        return finding

    def responsible_agent(self, check_name: str, task: Task | None) -> str:
        """Agent that must act on a failure of `check_name` in `task`."""
        if check_name == KIND_FIDELITY:
            return self.registry.for_task_type(TaskType.IMAGE).agent_id
        if check_name == CRITERION_COVERAGE:
            return self.registry.manager_id
        # structural and secret failures go back to whoever produced the artifact
        if task is not None and task.assigned_agent_id:
            return task.assigned_agent_id
        return self.registry.manager_id

    def corrections_for(
        self, findings: Sequence[AuditFinding], tasks: Sequence[Task]
    ) -> list[CorrectionInstruction]:
        by_id = {t.id: t for t in tasks}
        corrections: list[CorrectionInstruction] = []
        for finding in findings:
            if finding.passed:
                continue

            groups: dict[str, list[str]] = {}
            for artifact_id in finding.artifact_ids:
                agent_id = self.responsible_agent(finding.check_name, by_id.get(artifact_id))
                groups.setdefault(agent_id, []).append(artifact_id)
            if not groups:
                groups[self.responsible_agent(finding.check_name, None)] = []

            instruction = (
                SECRET_INSTRUCTION
                if finding.check_name == SECRET_LEAKAGE
                else INSTRUCTION_TEMPLATE.format(check=finding.check_name.replace("_", " "))
            )
            for agent_id, task_ids in groups.items():
                details = [
                    d for d in finding.details if set(_subjects(d)) & set(task_ids)
                ] or finding.details
                corrections.append(
                    CorrectionInstruction(
                        correction_type=finding.check_name,
                        details="; ".join(details),
                        redelegate_to=agent_id,
                        instruction=instruction,
                        task_ids=task_ids,
                    )
                )
        return corrections


def _subjects(detail: str) -> list[str]:
    """Ids a finding detail is about: the comma list before the first colon."""
    head, _, _ = detail.partition(":")
    return [part.strip() for part in head.split(",")]
