"""Worker capability backends."""

from .base import Capability, CapabilitySet, FunctionCapability, HandlerFn
from .openrouter import OpenRouterCapability

__all__ = [
    "Capability",
    "CapabilitySet",
    "FunctionCapability",
    "HandlerFn",
    "OpenRouterCapability",
]
