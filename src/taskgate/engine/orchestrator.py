"""Orchestrator - decompose, route, dispatch and audit one request."""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections.abc import Mapping
from dataclasses import replace

from taskgate.capabilities.base import Capability
from taskgate.config import Settings
from taskgate.delegation.decomposer import decompose_request
from taskgate.delegation.executor import Dispatcher, correction_note, placeholder_artifact
from taskgate.delegation.models import (
    AuditReport,
    CorrectionInstruction,
    OrchestrationRun,
    RunResult,
    RunState,
    Task,
    TaskStatus,
    Verdict,
)
from taskgate.delegation.registry import AgentRegistry
from taskgate.delegation.router import Router
from taskgate.errors import ConstraintViolation
from taskgate.gatekeeper.checks import SECRET_LEAKAGE, redact, scannable_text
from taskgate.gatekeeper.gate import Gatekeeper
from taskgate.storage.database import Database

logger = logging.getLogger(__name__)


class Orchestrator:
    """
    Runs the audit-and-correction loop for a request.

    Workflow:
    1. Decompose the request into tasks and a criteria register
    2. Route every task and dispatch the pass concurrently
    3. Audit the whole pass
    4. Release, or re-dispatch only the implicated tasks and audit again
    5. Escalate once the retry budget is spent
    """

    def __init__(
        self,
        settings: Settings | None = None,
        registry: AgentRegistry | None = None,
        capabilities: Capability | None = None,
        credentials: Mapping[str, str] | None = None,
        db: Database | None = None,
    ) -> None:
        if capabilities is None:
            raise ValueError("Orchestrator needs a capability backend")
        self.settings = settings or Settings()
        self.registry = registry or AgentRegistry.from_config(self.settings.agents)
        self.credentials = dict(credentials or {})
        self.router = Router(self.registry)
        self.dispatcher = Dispatcher(
            self.router,
            capabilities,
            max_workers=self.settings.max_workers,
            timeout=self.settings.dispatch_timeout,
            max_output_size=self.settings.max_output_size,
        )
        self.gatekeeper = Gatekeeper(
            self.registry,
            self.credentials,
            min_secret_length=self.settings.min_secret_length,
        )
        self.db = db

    async def run(self, request: str, max_retries: int | None = None) -> RunResult:
        """
        Drive one request to a terminal state.

        Args:
            request: Free-form work request
            max_retries: Correction passes allowed before escalation
                (defaults to the configured value)

        Returns:
            RunResult with verdict RELEASED or ESCALATED and the full audit trail
        """
        start_time = time.time()
        run = OrchestrationRun(
            run_id=f"run-{uuid.uuid4().hex[:8]}",
            request=request,
            max_retries=self.settings.max_retries if max_retries is None else max_retries,
        )
        run.tasks, run.criteria = decompose_request(request)
        logger.info("Run %s: %d task(s)", run.run_id, len(run.tasks))

        for task in run.tasks:
            try:
                self.router.assign(task)
            except ConstraintViolation as exc:
                self._record_violation(run, task, exc)

        await self.dispatcher.dispatch_all(run.tasks, request)

        while True:
            run.state = RunState.AUDIT
            pass_number = len(run.audit_trail) + 1
            # checks may block on external validators
            report = await asyncio.to_thread(
                self.gatekeeper.audit, run.tasks, run.criteria, pass_number
            )
            run.audit_trail.append(report)

            if report.verdict == Verdict.RELEASE:
                run.state = RunState.RELEASED
                break
            if run.retry_count >= run.max_retries:
                report.verdict = Verdict.ESCALATE
                run.state = RunState.ESCALATED
                self._redact_leaks(run, report)
                break

            run.state = RunState.CORRECT
            run.retry_count += 1
            logger.info(
                "Run %s: correction pass %d/%d", run.run_id, run.retry_count, run.max_retries
            )
            await self._apply_corrections(run, report)

        result = RunResult(
            run_id=run.run_id,
            request=run.request,
            verdict=run.state,
            tasks=run.tasks,
            criteria=run.criteria,
            audit_trail=run.audit_trail,
            violations=run.violations,
            duration_seconds=round(time.time() - start_time, 3),
        )
        logger.info(
            "Run %s %s after %d audit pass(es)", run.run_id, result.verdict, result.passes
        )
        if self.db is not None:
            await asyncio.to_thread(self.db.record_run, result)
        return result

    async def _apply_corrections(self, run: OrchestrationRun, report: AuditReport) -> None:
        """Re-dispatch each implicated task once, carrying every note that concerns it."""
        plan: dict[str, list[CorrectionInstruction]] = {}
        for correction in report.corrections:
            for task_id in correction.task_ids:
                plan.setdefault(task_id, []).append(correction)

        jobs = []
        for task_id, instructions in plan.items():
            task = run.task(task_id)
            # a specific agent beats the manager's generic re-issue
            primary = next(
                (c for c in instructions if c.redelegate_to != self.registry.manager_id),
                instructions[0],
            )
            for extra in instructions:
                if extra is not primary:
                    task.corrections.append(correction_note(extra))
            jobs.append(self._redispatch(run, task, primary))

        if jobs:
            await asyncio.gather(*jobs)

    async def _redispatch(
        self, run: OrchestrationRun, task: Task, instruction: CorrectionInstruction
    ) -> None:
        try:
            await self.dispatcher.redispatch(task, instruction, run.request)
        except ConstraintViolation as exc:
            self._record_violation(run, task, exc)

    @staticmethod
    def _record_violation(run: OrchestrationRun, task: Task, exc: ConstraintViolation) -> None:
        violation = f"{task.id}: {exc}"
        if violation not in run.violations:
            logger.error("Run %s: %s", run.run_id, exc)
            run.violations.append(violation)
        task.status = TaskStatus.FAILED
        task.error = str(exc)
        task.artifact = placeholder_artifact(task, str(exc))

    def _redact_leaks(self, run: OrchestrationRun, report: AuditReport) -> None:
        """Scrub credential values from artifacts the final secret scan flagged."""
        finding = report.finding(SECRET_LEAKAGE)
        if finding is None or finding.passed:
            return
        for task_id in finding.artifact_ids:
            task = run.task(task_id)
            if task.artifact is None:
                continue
            text = scannable_text(task.artifact)
            if text is None:
                continue
            content: str | bytes = redact(text, self.credentials, self.settings.min_secret_length)
            if task.artifact.is_binary:
                content = content.encode("utf-8")
            task.artifact = replace(task.artifact, content=content)
