"""
Deployment Stages.

The canonical stage sequence for deploying the compose stack:

    resolve-command -> cleanup -> fetch-source -> materialize-env -> test
    -> build-and-start -> health-gate

Order is load-bearing: each stage assumes the previous ones succeeded.
cleanup, materialize-env, build-and-start and health-gate only apply to the
release branch.
"""

from __future__ import annotations

import os

import httpx
import structlog

from releasegate.config import Settings
from releasegate.orchestrator.exceptions import (
    BuildFailureError,
    CleanupFailure,
    CommandFailedError,
)
from releasegate.orchestrator.health import HealthGate, ensure_healthy
from releasegate.orchestrator.materializer import EnvironmentMaterializer
from releasegate.orchestrator.pipeline.context import (
    ENV_FILE,
    HEALTH_RESULT,
    SOURCE_REVISION,
    PipelineContext,
)
from releasegate.orchestrator.resolver import CommandResolver, CommandVariant
from releasegate.orchestrator.shell import CommandResult, CommandRunner
from releasegate.orchestrator.stages.base import BranchPredicate, PipelineStage, always, on_branch

logger = structlog.get_logger(__name__)

RESOLVE_COMMAND = "resolve-command"
CLEANUP = "cleanup"
FETCH_SOURCE = "fetch-source"
MATERIALIZE_ENV = "materialize-env"
TEST = "test"
BUILD_AND_START = "build-and-start"
HEALTH_GATE = "health-gate"

STAGE_ORDER = (
    RESOLVE_COMMAND,
    CLEANUP,
    FETCH_SOURCE,
    MATERIALIZE_ENV,
    TEST,
    BUILD_AND_START,
    HEALTH_GATE,
)


def _transcript(result: CommandResult) -> str:
    """Shell-style transcript of one command for stage output."""
    lines = [f"$ {' '.join(result.argv)}"]
    if result.output:
        lines.append(result.output)
    if not result.ok:
        lines.append(f"[exit {result.returncode}{', timed out' if result.timed_out else ''}]")
    return "\n".join(lines)


class ResolveCommandStage(PipelineStage):
    """Resolve the compose command variant and memoize it on the context."""

    def __init__(self, resolver: CommandResolver) -> None:
        self._resolver = resolver

    @property
    def name(self) -> str:
        return RESOLVE_COMMAND

    async def execute(self, context: PipelineContext) -> str:
        variant = await self._resolver.resolve_for(context)
        return f"Using {variant.kind.value} compose command: {variant}"


class _ComposeStage(PipelineStage):
    """Shared plumbing for stages that invoke the resolved compose command."""

    def __init__(
        self,
        runner: CommandRunner,
        resolver: CommandResolver,
        predicate: BranchPredicate = always,
        timeout: float | None = None,
    ) -> None:
        self._runner = runner
        self._resolver = resolver
        self.predicate = predicate
        self._timeout = timeout

    async def _compose(self, context: PipelineContext) -> CommandVariant:
        return await self._resolver.resolve_for(context)

    async def _run(self, context: PipelineContext, argv: list[str]) -> CommandResult:
        return await self._runner.run(
            argv,
            cwd=context.working_dir,
            env=context.compose_environment(dict(os.environ)),
            timeout=self._timeout,
        )


class CleanupStage(_ComposeStage):
    """
    Tear down the previous deployment and prune unused resources.

    Best-effort: a missing prior deployment is normal, so every sub-step
    failure is logged as a CleanupFailure and swallowed. The stage itself
    always succeeds once the compose command is resolved.
    """

    def __init__(
        self,
        runner: CommandRunner,
        resolver: CommandResolver,
        prune_command: list[str],
        predicate: BranchPredicate = always,
        timeout: float | None = None,
    ) -> None:
        super().__init__(runner, resolver, predicate=predicate, timeout=timeout)
        self._prune_command = list(prune_command)

    @property
    def name(self) -> str:
        return CLEANUP

    async def execute(self, context: PipelineContext) -> str:
        compose = await self._compose(context)
        transcript: list[str] = []

        for argv in (compose.command("down", "--remove-orphans"), self._prune_command):
            try:
                await self._step(context, argv, transcript)
            except CleanupFailure as e:
                logger.warning(
                    "cleanup_step_failed",
                    run_id=str(context.run_id),
                    argv=argv,
                    error=e.message,
                )

        return "\n".join(transcript)

    async def _step(self, context: PipelineContext, argv: list[str], transcript: list[str]) -> None:
        result = await self._run(context, argv)
        transcript.append(_transcript(result))
        if not result.ok:
            raise CleanupFailure(
                f"Cleanup step failed with exit code {result.returncode}: {' '.join(argv)}",
                output=result.output,
            )


class FetchSourceStage(PipelineStage):
    """
    Verify the working-tree checkout and record its revision.

    The CI host performs the checkout; this stage fails if the working tree
    is missing and records `git rev-parse HEAD` (or "unknown" outside git).
    """

    def __init__(self, runner: CommandRunner, timeout: float | None = None) -> None:
        self._runner = runner
        self._timeout = timeout

    @property
    def name(self) -> str:
        return FETCH_SOURCE

    async def execute(self, context: PipelineContext) -> str:
        if not context.working_dir.is_dir():
            raise CommandFailedError(
                ["git", "rev-parse", "HEAD"],
                returncode=1,
                message=f"Working tree not found: {context.working_dir}",
            )

        result = await self._runner.run(
            ["git", "rev-parse", "HEAD"], cwd=context.working_dir, timeout=self._timeout
        )
        if result.ok and result.stdout.strip():
            revision = result.stdout.strip()
        else:
            logger.warning(
                "source_revision_unknown",
                run_id=str(context.run_id),
                working_dir=str(context.working_dir),
                error=result.output,
            )
            revision = "unknown"

        context.set(SOURCE_REVISION, revision)
        return f"Working tree {context.working_dir} at {revision}"


class MaterializeEnvStage(PipelineStage):
    """Rename the environment template to the runtime env file. Fatal if absent."""

    def __init__(
        self,
        template: str,
        env_file_name: str = ".env",
        predicate: BranchPredicate = always,
    ) -> None:
        self._template = template
        self._env_file_name = env_file_name
        self.predicate = predicate

    @property
    def name(self) -> str:
        return MATERIALIZE_ENV

    async def execute(self, context: PipelineContext) -> str:
        materializer = EnvironmentMaterializer(context.working_dir, self._env_file_name)
        env_file = materializer.materialize(self._template)
        context.set(ENV_FILE, env_file)
        return f"Materialized {self._template} -> {env_file}"


class TestStage(PipelineStage):
    """
    Test stage.

    A fixed insertion point for test wiring: a no-op unless a test command is
    configured, in which case a non-zero exit fails the run.
    """

    __test__ = False  # not a pytest class

    def __init__(
        self,
        runner: CommandRunner,
        test_command: list[str] | None = None,
        timeout: float | None = None,
    ) -> None:
        self._runner = runner
        self._test_command = list(test_command) if test_command else None
        self._timeout = timeout

    @property
    def name(self) -> str:
        return TEST

    async def execute(self, context: PipelineContext) -> str:
        if not self._test_command:
            return "No tests configured"

        result = await self._runner.run(
            self._test_command, cwd=context.working_dir, timeout=self._timeout
        )
        if not result.ok:
            raise CommandFailedError(
                self._test_command, returncode=result.returncode, output=_transcript(result)
            )
        return _transcript(result)


class BuildAndStartStage(_ComposeStage):
    """Rebuild images and recreate containers, detached."""

    @property
    def name(self) -> str:
        return BUILD_AND_START

    async def execute(self, context: PipelineContext) -> str:
        compose = await self._compose(context)
        argv = compose.command("up", "-d", "--build")
        result = await self._run(context, argv)
        if not result.ok:
            raise BuildFailureError(argv, returncode=result.returncode, output=_transcript(result))
        return _transcript(result)


class HealthGateStage(PipelineStage):
    """Query the metrics backend once; anything but HEALTHY fails the run."""

    def __init__(
        self,
        gate: HealthGate,
        metrics_host: str,
        timeout: float = 10.0,
        predicate: BranchPredicate = always,
    ) -> None:
        self._gate = gate
        self._metrics_host = metrics_host
        self._timeout = timeout
        self.predicate = predicate

    @property
    def name(self) -> str:
        return HEALTH_GATE

    async def execute(self, context: PipelineContext) -> str:
        result = await self._gate.check(self._metrics_host, timeout=self._timeout)
        context.set(HEALTH_RESULT, result)
        ensure_healthy(result)
        return result.summary()


def build_deployment_stages(
    settings: Settings,
    runner: CommandRunner | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> list[PipelineStage]:
    """
    Build the canonical stage sequence from settings.

    Args:
        settings: Orchestrator settings
        runner: Command runner (a real subprocess runner if None)
        http_client: HTTP client for the health gate (per-check client if None)

    Returns:
        Stages in canonical order
    """
    runner = runner or CommandRunner(default_timeout=settings.command_timeout_seconds)
    resolver = CommandResolver(
        runner,
        modern=settings.compose_modern,
        legacy=settings.compose_legacy,
        timeout=settings.probe_timeout_seconds,
    )
    release_only = on_branch(settings.release_branch)
    timeout = settings.command_timeout_seconds

    return [
        ResolveCommandStage(resolver),
        CleanupStage(
            runner,
            resolver,
            prune_command=settings.prune_command,
            predicate=release_only,
            timeout=timeout,
        ),
        FetchSourceStage(runner, timeout=settings.probe_timeout_seconds),
        MaterializeEnvStage(
            settings.env_template,
            env_file_name=settings.env_file_name,
            predicate=release_only,
        ),
        TestStage(runner, test_command=settings.test_command, timeout=timeout),
        BuildAndStartStage(runner, resolver, predicate=release_only, timeout=timeout),
        HealthGateStage(
            HealthGate(http_client, query=settings.health_query),
            settings.metrics_host,
            timeout=settings.health_timeout_seconds,
            predicate=release_only,
        ),
    ]
