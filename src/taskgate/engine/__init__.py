"""Orchestration engine."""

from taskgate.engine.orchestrator import Orchestrator

__all__ = ["Orchestrator"]
