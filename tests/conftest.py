"""
Pytest configuration and fixtures for releasegate tests.

Provides settings bound to a temporary working tree, a scripted command
runner, and helpers for faking the metrics endpoint with httpx.MockTransport.
"""

import json
from collections.abc import Callable
from pathlib import Path
from uuid import uuid4

import httpx
import pytest

from releasegate.config import Settings
from releasegate.orchestrator.pipeline.context import PipelineContext, PipelineContextBuilder
from tests.mocks import MockCommandRunner

RELEASE_BRANCH = "main"


def up_response(*values: str, envelope: bool = True) -> dict | list:
    """Build an `up` query response with one sample per value."""
    results = [
        {
            "metric": {"__name__": "up", "instance": f"app-{i}:8000", "job": "app"},
            "value": [1718000000.123, value],
        }
        for i, value in enumerate(values)
    ]
    if not envelope:
        return results
    return {"status": "success", "data": {"resultType": "vector", "result": results}}


def metrics_client(
    handler: Callable[[httpx.Request], httpx.Response],
) -> httpx.AsyncClient:
    """AsyncClient whose requests are answered by handler."""
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def json_handler(payload, status_code: int = 200) -> Callable[[httpx.Request], httpx.Response]:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code, content=json.dumps(payload).encode())

    return handler


def raising_handler(exc_type: type[httpx.TransportError]) -> Callable[[httpx.Request], httpx.Response]:
    def handler(request: httpx.Request) -> httpx.Response:
        raise exc_type("simulated transport failure", request=request)

    return handler


@pytest.fixture
def workdir(tmp_path: Path) -> Path:
    """Working tree with the environment template checked in."""
    (tmp_path / "environments").write_text("DATABASE_URL=postgres://db/app\nDEBUG=0\n")
    return tmp_path


@pytest.fixture
def settings(workdir: Path) -> Settings:
    """Settings pointing at the temporary working tree."""
    return Settings(
        release_branch=RELEASE_BRANCH,
        working_dir=workdir,
        metrics_host="http://metrics.test:9090",
        project_name="shop",
        health_timeout_seconds=2.0,
        probe_timeout_seconds=2.0,
        command_timeout_seconds=30.0,
    )


@pytest.fixture
def runner() -> MockCommandRunner:
    """Runner where every command succeeds (modern compose available)."""
    return MockCommandRunner().respond(
        ["docker", "compose", "version"], stdout="Docker Compose version v2.27.0"
    ).respond(["git", "rev-parse", "HEAD"], stdout="3f2c9a1e\n")


@pytest.fixture
def release_context(workdir: Path) -> PipelineContext:
    return (
        PipelineContextBuilder()
        .with_run_id(uuid4())
        .with_branch(RELEASE_BRANCH)
        .with_working_dir(workdir)
        .with_project_name("shop")
        .build()
    )
