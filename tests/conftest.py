"""Shared test fixtures."""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Mapping

import pytest

from taskgate.errors import DispatchError, DispatchErrorKind

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00\x00\x00\rIHDR" + b"\x00" * 32


class ScriptedBackend:
    """
    Fake capability backend.

    Each capability id maps to a queue of responses; the last response
    repeats. A response that is a DispatchErrorKind raises that error.
    """

    def __init__(
        self,
        responses: Mapping[str, object | list[object]] | None = None,
        default: object = "ok",
        fail_all: bool = False,
        delay: float = 0.0,
    ) -> None:
        self._queues: dict[str, list[object]] = {
            cid: list(r) if isinstance(r, list) else [r] for cid, r in (responses or {}).items()
        }
        self.default = default
        self.fail_all = fail_all
        self.delay = delay
        self.calls: list[tuple[str, str]] = []
        self.active = 0
        self.peak = 0

    def calls_to(self, capability_ids: Iterable[str]) -> int:
        wanted = set(capability_ids)
        return sum(1 for cid, _ in self.calls if cid in wanted)

    async def invoke(self, capability_id: str, prompt: str, max_output_size: int) -> str | bytes:
        self.calls.append((capability_id, prompt))
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.fail_all:
                raise DispatchError(DispatchErrorKind.TRANSPORT, capability_id, "unreachable")
            queue = self._queues.get(capability_id)
            if not queue:
                response = self.default
            elif len(queue) > 1:
                response = queue.pop(0)
            else:
                response = queue[0]
            if isinstance(response, DispatchErrorKind):
                raise DispatchError(response, capability_id, "scripted failure")
            return response
        finally:
            self.active -= 1


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def scripted() -> type[ScriptedBackend]:
    return ScriptedBackend


@pytest.fixture
def png_bytes() -> bytes:
    return PNG_BYTES
