"""
Deployment Executor.

Walks an ordered stage list for one branch: evaluates each stage's branch
predicate, runs applicable stages one at a time, aborts on the first fatal
failure, and produces a finalized PipelineRun. Terminal hooks run after the
verdict is set.
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable, Sequence

import structlog

from releasegate.observability import metrics
from releasegate.orchestrator.pipeline.context import PipelineContext, PipelineContextBuilder
from releasegate.orchestrator.pipeline.result import (
    PipelineRun,
    SkipReason,
    StageResult,
    Verdict,
)
from releasegate.orchestrator.stages.base import PipelineStage

logger = structlog.get_logger(__name__)

RunHook = Callable[[PipelineRun], "Awaitable[None] | None"]


class DeploymentExecutor:
    """
    Executes pipeline stages sequentially with fail-fast semantics.

    Every declared stage yields exactly one StageResult, in declaration order:
    SKIPPED (branch not applicable, earlier failure, or cancellation), SUCCESS
    or FAILED. The executor holds no per-run state, so one instance can serve
    concurrent runs with separate contexts.

    Example:
        >>> executor = DeploymentExecutor(build_deployment_stages(settings))
        >>> run = await executor.run("main")
        >>> sys.exit(run.exit_code)
    """

    def __init__(
        self,
        stages: Sequence[PipelineStage] | None = None,
        hooks: Sequence[RunHook] | None = None,
    ) -> None:
        """
        Initialize executor.

        Args:
            stages: Ordered list of pipeline stages to execute
            hooks: Terminal "always" hooks, called with the finalized run
        """
        self._stages: list[PipelineStage] = list(stages or [])
        self._hooks: list[RunHook] = list(hooks or [])

        names = [s.name for s in self._stages]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"Duplicate stage names: {duplicates}")

    def add_stage(self, stage: PipelineStage) -> None:
        """Add a stage to the end of the pipeline."""
        if any(s.name == stage.name for s in self._stages):
            raise ValueError(f"Duplicate stage name: {stage.name}")
        self._stages.append(stage)

    def add_hook(self, hook: RunHook) -> None:
        """Add a terminal hook."""
        self._hooks.append(hook)

    def get_stages(self) -> list[PipelineStage]:
        """Get list of configured stages."""
        return self._stages.copy()

    async def run(self, branch: str, context: PipelineContext | None = None) -> PipelineRun:
        """
        Execute the pipeline for a branch.

        Args:
            branch: Branch name that triggered the run
            context: Run-scoped context (a fresh one is built if None); its
                branch must match

        Returns:
            Finalized PipelineRun

        Raises:
            ValueError: context was built for a different branch
        """
        if context is None:
            context = PipelineContextBuilder().with_branch(branch).build()
        elif context.branch != branch:
            raise ValueError(
                f"Context branch {context.branch!r} does not match run branch {branch!r}"
            )

        run = PipelineRun(run_id=context.run_id, branch=branch)
        log = logger.bind(run_id=str(run.run_id), branch=branch)
        log.info("pipeline_run_start", stages=[s.name for s in self._stages])

        halt_reason: SkipReason | None = None
        failed = False

        for stage in self._stages:
            if halt_reason is None and context.cancelled:
                halt_reason = SkipReason.CANCELLED
                log.warning("pipeline_run_cancelled", next_stage=stage.name)

            if halt_reason is not None:
                self._record(run, StageResult.skip(stage.name, halt_reason), log)
                continue

            if not stage.applies_to(branch):
                self._record(run, StageResult.skip(stage.name, SkipReason.BRANCH), log)
                continue

            result = await stage.run(context)
            self._record(run, result, log)

            if result.failed:
                if stage.continue_on_failure:
                    log.warning(
                        "pipeline_stage_failure_tolerated",
                        stage=stage.name,
                        error=result.error,
                    )
                    continue
                failed = True
                halt_reason = SkipReason.ABORTED
                log.warning("pipeline_stage_failed", stage=stage.name, error=result.error)

        if halt_reason is SkipReason.CANCELLED:
            verdict = Verdict.ABORTED
        elif failed:
            verdict = Verdict.FAILED
        else:
            verdict = Verdict.SUCCESS

        run.finalize(verdict)
        metrics.record_pipeline_run(verdict.value)

        log.info(
            "pipeline_run_complete",
            verdict=verdict.value,
            exit_code=run.exit_code,
            total_time_ms=round(context.get_total_time_ms(), 2),
            failed_stage=run.first_failure.stage_name if run.first_failure else None,
        )

        await self._run_hooks(run, log)
        return run

    def _record(self, run: PipelineRun, result: StageResult, log: structlog.BoundLogger) -> None:
        run.record(result)
        metrics.record_stage_result(
            result.stage_name, result.outcome.value, result.execution_time_ms
        )
        log.info(
            "pipeline_stage_result",
            stage=result.stage_name,
            outcome=result.outcome.value,
            skip_reason=result.skip_reason.value if result.skip_reason else None,
        )

    async def _run_hooks(self, run: PipelineRun, log: structlog.BoundLogger) -> None:
        # Hooks only report; their failures never change the verdict.
        for hook in self._hooks:
            try:
                outcome = hook(run)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as e:
                log.warning(
                    "pipeline_hook_failed",
                    hook=getattr(hook, "__name__", repr(hook)),
                    error=str(e),
                    error_type=type(e).__name__,
                )


async def run_pipeline(
    stages: Sequence[PipelineStage],
    branch: str,
    context: PipelineContext | None = None,
    hooks: Sequence[RunHook] | None = None,
) -> PipelineRun:
    """Run a stage list once for a branch."""
    return await DeploymentExecutor(stages, hooks=hooks).run(branch, context)
