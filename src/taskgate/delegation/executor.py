"""
Task Dispatcher — Sends Routed Tasks to Worker Capabilities

Each pending task is sent to its agent's primary capability under a
worker-pool semaphore and an explicit timeout. A capability-level failure
(timeout, transport, auth, malformed response) earns exactly one attempt on
the agent's fallback capability; after that the task fails closed with a
placeholder artifact so the audit pass never blocks on it.

Usage:
    from taskgate.delegation.executor import Dispatcher

    dispatcher = Dispatcher(router, capabilities, max_workers=5, timeout=120.0)
    await dispatcher.dispatch_all(tasks, request)
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import logging
import re
from collections.abc import Iterable

from taskgate.capabilities.base import Capability
from taskgate.errors import DispatchError, DispatchErrorKind

from .models import (
    CODE_TASK_TYPES,
    Artifact,
    ArtifactKind,
    CorrectionInstruction,
    Task,
    TaskStatus,
    TaskType,
)
from .router import Router

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 120.0
DEFAULT_MAX_WORKERS = 5
DEFAULT_MAX_OUTPUT_SIZE = 8192
# Character ceiling per unit of output budget when truncating text artifacts
CHARS_PER_TOKEN = 4

PROMPT_TEMPLATE = """Task: {description}

Original request: {request}

Deliver the complete artifact for this task only. Use fenced code blocks
for any source code. Never include API keys or other credentials."""

PLACEHOLDER_TEXT = "[no artifact: {reason}]"

DATA_URL = re.compile(r"^data:(image/[\w.+-]+);base64,(.+)$", re.DOTALL)


def build_prompt(task: Task, request: str) -> str:
    """Fill the fixed instruction template; corrections ride on the description."""
    return PROMPT_TEMPLATE.format(description=task.prompt_description(), request=request)


def correction_note(instruction: CorrectionInstruction) -> str:
    if instruction.details:
        return f"{instruction.instruction} ({instruction.details})"
    return instruction.instruction


def placeholder_artifact(task: Task, reason: str) -> Artifact:
    return Artifact(
        task_id=task.id,
        kind=ArtifactKind.TEXT,
        content=PLACEHOLDER_TEXT.format(reason=reason),
        placeholder=True,
    )


class Dispatcher:
    """Bounded concurrent dispatch with one fallback attempt per task."""

    def __init__(
        self,
        router: Router,
        capabilities: Capability,
        max_workers: int = DEFAULT_MAX_WORKERS,
        timeout: float = DEFAULT_TIMEOUT,
        max_output_size: int = DEFAULT_MAX_OUTPUT_SIZE,
    ) -> None:
        if max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {max_workers}")
        if timeout <= 0:
            raise ValueError(f"timeout must be > 0, got {timeout}")
        self.router = router
        self.capabilities = capabilities
        self.max_workers = max_workers
        self.timeout = timeout
        self.max_output_size = max_output_size
        self._slots = asyncio.Semaphore(max_workers)

    async def dispatch_all(self, tasks: Iterable[Task], request: str) -> list[Task]:
        """Dispatch every pending task; returns once all of them have resolved."""
        pending = [t for t in tasks if t.status == TaskStatus.PENDING]
        if not pending:
            return []

        results = await asyncio.gather(*(self.dispatch(t, request) for t in pending))
        failed = sum(1 for t in results if t.status == TaskStatus.FAILED)
        logger.info("Dispatched %d task(s), %d failed", len(results), failed)
        return list(results)

    async def dispatch(self, task: Task, request: str) -> Task:
        """Run one task against its agent's primary, then fallback, capability."""
        async with self._slots:
            return await self._dispatch(task, request)

    async def _dispatch(self, task: Task, request: str) -> Task:
        if task.assigned_agent_id is None:
            self.router.assign(task)
        agent_id = task.assigned_agent_id
        prompt = build_prompt(task, request)

        task.status = TaskStatus.DISPATCHED
        task.attempts += 1
        primary = self.router.dispatch_target(agent_id)
        try:
            raw = await self._invoke(primary, prompt)
        except DispatchError as exc:
            fallback = self.router.fallback_target(agent_id)
            logger.warning(
                "Task %s: %s; retrying on fallback '%s'", task.id, exc, fallback
            )
            try:
                raw = await self._invoke(fallback, prompt)
            except DispatchError as fallback_exc:
                reason = f"{exc}; fallback {fallback_exc}"
                logger.error("Task %s failed: %s", task.id, reason)
                task.status = TaskStatus.FAILED
                task.error = reason
                task.artifact = placeholder_artifact(task, reason)
                return task

        task.artifact = self.build_artifact(task, raw)
        task.status = TaskStatus.SUCCEEDED
        task.error = None
        return task

    async def redispatch(
        self, task: Task, instruction: CorrectionInstruction, request: str
    ) -> Task:
        """
        Re-issue one task with a correction attached.

        The instruction's target must accept the task type. When it names the
        manager (coverage failures), the manager hands the task back to the
        agent it was assigned to.
        """
        target = instruction.redelegate_to
        if target == self.router.registry.manager_id and task.assigned_agent_id:
            target = task.assigned_agent_id
        self.router.validate(target, task.type)

        task.corrections.append(correction_note(instruction))
        task.assigned_agent_id = target
        task.status = TaskStatus.PENDING
        task.artifact = None
        task.error = None
        logger.info("Re-dispatching task %s to %s", task.id, target)
        return await self.dispatch(task, request)

    async def _invoke(self, capability_id: str, prompt: str) -> str | bytes:
        try:
            return await asyncio.wait_for(
                self.capabilities.invoke(capability_id, prompt, self.max_output_size),
                timeout=self.timeout,
            )
        except TimeoutError as exc:
            raise DispatchError(
                DispatchErrorKind.TIMEOUT,
                capability_id,
                f"no response after {self.timeout}s",
            ) from exc

    def build_artifact(self, task: Task, raw: str | bytes) -> Artifact:
        """Wrap raw capability output; image payloads are decoded to bytes."""
        if task.type == TaskType.IMAGE:
            if isinstance(raw, bytes):
                return Artifact(
                    task_id=task.id,
                    kind=ArtifactKind.IMAGE,
                    content=raw,
                    content_type="application/octet-stream",
                )
            match = DATA_URL.match(raw.strip())
            if match:
                try:
                    data = base64.b64decode(match.group(2), validate=False)
                except (binascii.Error, ValueError):
                    logger.warning("Task %s returned an undecodable data URL", task.id)
                else:
                    return Artifact(
                        task_id=task.id,
                        kind=ArtifactKind.IMAGE,
                        content=data,
                        content_type=match.group(1),
                    )

        if isinstance(raw, bytes):
            raw = raw.decode("utf-8", errors="replace")
        limit = self.max_output_size * CHARS_PER_TOKEN
        if len(raw) > limit:
            logger.warning("Task %s output truncated to %d chars", task.id, limit)
            raw = raw[:limit]

        kind = ArtifactKind.CODE if task.type in CODE_TASK_TYPES else ArtifactKind.TEXT
        return Artifact(task_id=task.id, kind=kind, content=raw)
