"""
Pipeline Context and Builder.

Run-scoped state shared between the stages of a single deployment run:
branch, working tree, resolved compose command, timings, errors and the
cancellation flag. A context is never reused across runs.
"""

from __future__ import annotations

import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from uuid import UUID, uuid4

# Well-known context keys written by the canonical stages
COMPOSE_COMMAND = "compose_command"
ENV_FILE = "env_file"
SOURCE_REVISION = "source_revision"
HEALTH_RESULT = "health_result"


@dataclass
class StageError:
    """Error recorded during stage execution."""

    stage_name: str
    error: Exception
    timestamp: float = field(default_factory=time.time)

    @property
    def message(self) -> str:
        """Get error message."""
        return str(self.error)


@dataclass
class StageTiming:
    """Timing information for a stage."""

    stage_name: str
    start_time: float
    end_time: float | None = None

    @property
    def duration_ms(self) -> float:
        """Get duration in milliseconds."""
        if self.end_time is None:
            return 0.0
        return (self.end_time - self.start_time) * 1000


@dataclass
class PipelineContext:
    """
    Context for passing data between pipeline stages.

    Provides:
    - Run ID for log correlation
    - Branch and working tree for the current run
    - Compose project name (explicit instead of a process-wide env var)
    - Timing tracking per stage
    - Error recording
    - Cooperative cancellation, checked by the executor between stages
    - Arbitrary data storage for stage-to-stage communication

    Attributes:
        run_id: Unique identifier for this pipeline run
        branch: Branch name that triggered the run
        working_dir: Working-tree checkout the stages operate on
        project_name: Compose project name, if any
        data: Arbitrary data storage for stages
        timings: Timing records for each stage
        errors: Errors recorded during execution
    """

    run_id: UUID
    branch: str
    working_dir: Path = field(default_factory=lambda: Path("."))
    project_name: str | None = None
    data: dict[str, Any] = field(default_factory=dict)
    timings: list[StageTiming] = field(default_factory=list)
    errors: list[StageError] = field(default_factory=list)
    _cancelled: bool = field(default=False, repr=False)

    @contextmanager
    def timer(self, stage_name: str) -> Iterator[StageTiming]:
        """
        Context manager for timing a stage.

        Usage:
            with context.timer("build-and-start") as timing:
                # Stage execution
                pass
            print(f"Took {timing.duration_ms}ms")
        """
        timing = StageTiming(stage_name=stage_name, start_time=time.perf_counter())
        self.timings.append(timing)
        try:
            yield timing
        finally:
            timing.end_time = time.perf_counter()

    def add_error(self, stage_name: str, error: Exception) -> None:
        """Record an error from a stage."""
        self.errors.append(StageError(stage_name=stage_name, error=error))

    def get_timing(self, stage_name: str) -> StageTiming | None:
        """Get timing for a specific stage."""
        for timing in self.timings:
            if timing.stage_name == stage_name:
                return timing
        return None

    def get_total_time_ms(self) -> float:
        """Get total execution time across all stages."""
        return sum(t.duration_ms for t in self.timings)

    @property
    def has_errors(self) -> bool:
        """Check if any errors were recorded."""
        return len(self.errors) > 0

    def cancel(self) -> None:
        """
        Request cancellation of the run.

        The stage currently executing is allowed to finish; no further stage
        is started. Safe to call from a signal handler.
        """
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        """Check if cancellation was requested."""
        return self._cancelled

    def compose_environment(self, base: dict[str, str]) -> dict[str, str]:
        """Process environment for compose invocations in this run."""
        env = dict(base)
        if self.project_name:
            env["COMPOSE_PROJECT_NAME"] = self.project_name
        return env

    def set(self, key: str, value: Any) -> None:
        """Store data for later stages."""
        self.data[key] = value

    def get(self, key: str, default: Any = None) -> Any:
        """Retrieve data from previous stages."""
        return self.data.get(key, default)


class PipelineContextBuilder:
    """
    Builder for creating PipelineContext instances.

    Example:
        context = (
            PipelineContextBuilder()
            .with_branch("main")
            .with_working_dir(Path("/srv/checkout"))
            .with_project_name("shop")
            .build()
        )
    """

    def __init__(self) -> None:
        """Initialize builder with defaults."""
        self._run_id: UUID | None = None
        self._branch: str = ""
        self._working_dir: Path = Path(".")
        self._project_name: str | None = None
        self._data: dict[str, Any] = {}

    def with_run_id(self, run_id: UUID) -> PipelineContextBuilder:
        """Set run ID."""
        self._run_id = run_id
        return self

    def with_branch(self, branch: str) -> PipelineContextBuilder:
        """Set branch."""
        self._branch = branch
        return self

    def with_working_dir(self, working_dir: Path | str) -> PipelineContextBuilder:
        """Set working directory."""
        self._working_dir = Path(working_dir)
        return self

    def with_project_name(self, project_name: str | None) -> PipelineContextBuilder:
        """Set compose project name."""
        self._project_name = project_name
        return self

    def with_data(self, key: str, value: Any) -> PipelineContextBuilder:
        """Add data to context."""
        self._data[key] = value
        return self

    def build(self) -> PipelineContext:
        """
        Build the PipelineContext.

        Generates a run ID if not provided.

        Returns:
            Configured PipelineContext instance
        """
        return PipelineContext(
            run_id=self._run_id or uuid4(),
            branch=self._branch,
            working_dir=self._working_dir,
            project_name=self._project_name,
            data=self._data.copy(),
        )
