"""FastAPI server for programmatic classification, decomposition and run history."""

from __future__ import annotations

import sqlite3
import time
from pathlib import Path
from typing import Any

import click
from fastapi import FastAPI, HTTPException

from taskgate import __version__
from taskgate.config import load_settings
from taskgate.delegation.decomposer import decompose_request
from taskgate.delegation.registry import AgentRegistry
from taskgate.delegation.router import Router
from taskgate.storage.database import Database

app = FastAPI(
    title="taskgate API",
    version=__version__,
    description="Task routing and gatekeeper audit service",
)

_start_time = time.monotonic()
_db = Database()
_router = Router(AgentRegistry())


@app.get("/api/health")
async def health() -> dict[str, Any]:
    """Health check."""
    uptime = time.monotonic() - _start_time
    return {"status": "ok", "version": __version__, "uptime_seconds": round(uptime, 1)}


@app.post("/api/classify")
async def classify(request: dict[str, Any]) -> dict[str, Any]:
    """Classify and route a single task description."""
    description = str(request.get("description", "")).strip()
    if not description:
        raise HTTPException(status_code=422, detail="description is required")
    return _router.route_description(description).to_dict()


@app.post("/api/decompose")
async def decompose(request: dict[str, Any]) -> dict[str, Any]:
    """Split a request into routed tasks and its criteria register."""
    text = str(request.get("request", "")).strip()
    if not text:
        raise HTTPException(status_code=422, detail="request is required")
    tasks, criteria = decompose_request(text)
    for task in tasks:
        _router.assign(task)
    return {
        "tasks": [t.to_dict() for t in tasks],
        "criteria": [c.to_dict() for c in criteria],
        "agents": [p.agent_id for p in _router.agents_to_spawn(tasks)],
    }


@app.get("/api/agents")
async def agents() -> dict[str, Any]:
    """The agent roster with capabilities and allowed task types."""
    roster = [
        {
            "agent_id": p.agent_id,
            "name": p.display_name,
            "model": p.primary_capability,
            "fallback_model": p.fallback_capability,
            "allowed": sorted(t.value for t in p.allowed_task_types),
        }
        for p in _router.registry.profiles()
    ]
    return {"agents": roster, "count": len(roster), "manager": _router.registry.manager_id}


@app.get("/api/history")
async def history(limit: int = 20) -> dict[str, Any]:
    """Recent orchestration runs."""
    try:
        runs = _db.recent_runs(limit)
    except sqlite3.Error:
        runs = []
    return {"runs": runs, "count": len(runs), "limit": limit}


def configure(data_dir: Path, registry: AgentRegistry) -> None:
    """Point the app at a data directory and agent roster."""
    global _db, _router
    _db = Database(data_dir)
    _db.ensure_tables()
    _router = Router(registry)


@click.command()
@click.option("--port", default=3848, help="Port to listen on")
@click.option("--host", default="127.0.0.1", help="Host to bind to")
@click.option("--config", "config_path", type=click.Path(dir_okay=False), default=None)
def main(port: int, host: str, config_path: str | None) -> None:
    """Start the taskgate API server."""
    import uvicorn

    settings = load_settings(config_path)
    configure(settings.data_dir, AgentRegistry.from_config(settings.agents))
    uvicorn.run(app, host=host, port=port)
