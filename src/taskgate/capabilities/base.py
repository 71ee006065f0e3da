"""Worker capability boundary."""

from __future__ import annotations

from collections.abc import Callable, Coroutine
from typing import Any, Protocol

from taskgate.errors import DispatchError, DispatchErrorKind

# Async handler: (capability_id, prompt, max_output_size) -> raw output
HandlerFn = Callable[[str, str, int], Coroutine[Any, Any, str | bytes]]


class Capability(Protocol):
    """An external generation backend invoked by capability id."""

    async def invoke(self, capability_id: str, prompt: str, max_output_size: int) -> str | bytes:
        """Return raw output, or raise DispatchError on capability-level failure."""
        ...


class FunctionCapability:
    """Adapts a plain async handler to the Capability protocol."""

    def __init__(self, handler: HandlerFn) -> None:
        self._handler = handler

    async def invoke(self, capability_id: str, prompt: str, max_output_size: int) -> str | bytes:
        return await self._handler(capability_id, prompt, max_output_size)


class CapabilitySet:
    """
    Maps capability ids to backends.

    Ids without an explicit registration go to the default backend, which is
    how a single OpenAI-compatible gateway serves every model id.
    """

    def __init__(self, default: Capability | None = None) -> None:
        self._default = default
        self._backends: dict[str, Capability] = {}

    def register(self, capability_id: str, capability: Capability) -> None:
        self._backends[capability_id] = capability

    def register_handler(self, capability_id: str, handler: HandlerFn) -> None:
        self.register(capability_id, FunctionCapability(handler))

    def get(self, capability_id: str) -> Capability:
        backend = self._backends.get(capability_id, self._default)
        if backend is None:
            raise DispatchError(
                DispatchErrorKind.TRANSPORT, capability_id, "no backend registered"
            )
        return backend

    async def invoke(self, capability_id: str, prompt: str, max_output_size: int) -> str | bytes:
        return await self.get(capability_id).invoke(capability_id, prompt, max_output_size)
