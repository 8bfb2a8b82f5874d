"""
Pipeline Stage Base Class.

Abstract base class for all pipeline stages, a record-style Stage for plain
callables, and the branch predicates that decide whether a stage applies.
"""

from __future__ import annotations

import inspect
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable

import structlog

from releasegate.orchestrator.exceptions import DeploymentError
from releasegate.orchestrator.pipeline.context import PipelineContext
from releasegate.orchestrator.pipeline.result import StageResult

logger = structlog.get_logger(__name__)

BranchPredicate = Callable[[str], bool]
StageAction = Callable[[PipelineContext], "Awaitable[str | None] | str | None"]

_BRANCH_PREFIXES = ("refs/heads/", "origin/")


def normalize_branch(branch: str) -> str:
    """
    Strip ref prefixes CI hosts put on branch names.

    >>> normalize_branch("origin/main")
    'main'
    >>> normalize_branch("refs/heads/release/1.2")
    'release/1.2'
    """
    branch = branch.strip()
    for prefix in _BRANCH_PREFIXES:
        if branch.startswith(prefix):
            branch = branch[len(prefix) :]
    return branch


def always(branch: str) -> bool:
    """Predicate for unguarded stages."""
    return True


def on_branch(*branches: str) -> BranchPredicate:
    """Predicate that applies only to the given branch names."""
    allowed = frozenset(normalize_branch(b) for b in branches)

    def predicate(branch: str) -> bool:
        return normalize_branch(branch) in allowed

    predicate.__name__ = f"on_branch({', '.join(sorted(allowed))})"
    return predicate


class PipelineStage(ABC):
    """
    Abstract base class for pipeline stages.

    Provides:
    - Standard run() method with timing, output capture and error handling
    - Abstract execute() method for stage-specific logic
    - Branch applicability via the predicate attribute
    - Structured logging with stage name and run_id

    Subclasses must implement:
    - name property: Unique stage identifier
    - execute(): The actual stage logic, returning captured output

    Example:
        >>> class ListContainersStage(PipelineStage):
        ...     @property
        ...     def name(self) -> str:
        ...         return "list-containers"
        ...
        ...     async def execute(self, context: PipelineContext) -> str:
        ...         result = await runner.run(["docker", "ps"])
        ...         return result.output
    """

    predicate: BranchPredicate = staticmethod(always)
    continue_on_failure: bool = False

    @property
    @abstractmethod
    def name(self) -> str:
        """
        Unique identifier for this stage.

        Returns:
            Stage name string (e.g., "resolve-command", "health-gate")
        """

    @abstractmethod
    async def execute(self, context: PipelineContext) -> str | None:
        """
        Execute the stage logic.

        Raise to fail the stage. DeploymentError.output is kept as the
        stage's captured output.

        Args:
            context: Run-scoped pipeline context

        Returns:
            Captured output/log text for the stage result
        """

    def applies_to(self, branch: str) -> bool:
        """Check whether this stage runs for the given branch."""
        return bool(self.predicate(branch))

    async def run(self, context: PipelineContext) -> StageResult:
        """
        Run stage with timing and error handling.

        Wraps execute() with:
        - Timing via context.timer() (single source of truth)
        - Structured logging
        - Error capture and result creation

        Args:
            context: Pipeline context

        Returns:
            StageResult with outcome, captured output, timing and any error
        """
        log = logger.bind(stage=self.name, run_id=str(context.run_id), branch=context.branch)
        log.debug("pipeline_stage_start")

        try:
            with context.timer(self.name) as timing:
                output = await self.execute(context)

            execution_time_ms = timing.duration_ms

            log.debug(
                "pipeline_stage_complete",
                success=True,
                execution_time_ms=round(execution_time_ms, 2),
            )

            return StageResult.ok(
                stage_name=self.name,
                output=output or "",
                execution_time_ms=execution_time_ms,
            )

        except Exception as e:
            # Timer records even on exception
            timing = context.get_timing(self.name)
            execution_time_ms = timing.duration_ms if timing else 0.0
            context.add_error(self.name, e)

            log.error(
                "pipeline_stage_error",
                error=str(e),
                error_type=type(e).__name__,
                execution_time_ms=round(execution_time_ms, 2),
            )

            return StageResult.fail(
                stage_name=self.name,
                error=str(e),
                error_type=type(e).__name__,
                output=e.output if isinstance(e, DeploymentError) else "",
                execution_time_ms=execution_time_ms,
            )

    def __repr__(self) -> str:
        return f"<{type(self).__name__} name={self.name!r}>"


class Stage(PipelineStage):
    """
    Record-style stage: {name, predicate, action, continue_on_failure}.

    The action may be sync or async and returns the stage's captured output.

    Example:
        >>> Stage("notify", lambda ctx: "sent", predicate=on_branch("main"))
    """

    def __init__(
        self,
        name: str,
        action: StageAction,
        predicate: BranchPredicate = always,
        continue_on_failure: bool = False,
    ) -> None:
        self._name = name
        self._action = action
        self.predicate = predicate
        self.continue_on_failure = continue_on_failure

    @property
    def name(self) -> str:
        return self._name

    async def execute(self, context: PipelineContext) -> str | None:
        output = self._action(context)
        if inspect.isawaitable(output):
            output = await output
        return output
