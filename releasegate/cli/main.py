"""
CLI commands for running deployments.

Provides `releasegate deploy` (the full stage sequence), `releasegate health`
(the health gate on its own) and `releasegate resolve` (compose detection).
The process exit code reflects the run verdict for the CI host.
"""

from __future__ import annotations

import asyncio
import contextlib
import signal
from pathlib import Path

import click
import structlog

from releasegate.config import Settings
from releasegate.observability import metrics
from releasegate.observability.logging_config import configure_logging
from releasegate.orchestrator.exceptions import ToolUnavailableError
from releasegate.orchestrator.health import HealthGate
from releasegate.orchestrator.pipeline.context import PipelineContext, PipelineContextBuilder
from releasegate.orchestrator.pipeline.coordinator import DeploymentExecutor
from releasegate.orchestrator.pipeline.report import echo_summary, write_json_report
from releasegate.orchestrator.pipeline.result import PipelineRun
from releasegate.orchestrator.resolver import CommandResolver
from releasegate.orchestrator.retry import run_with_attempts
from releasegate.orchestrator.shell import CommandRunner
from releasegate.orchestrator.stages.base import normalize_branch
from releasegate.orchestrator.stages.deployment import build_deployment_stages

logger = structlog.get_logger(__name__)


def _load_settings(**overrides) -> Settings:
    """Settings from the environment, with CLI options taking precedence."""
    return Settings(**{k: v for k, v in overrides.items() if v is not None})


@click.group()
@click.option("--log-level", default=None, help="Log level (default: from settings)")
@click.option("--json-logs", is_flag=True, default=None, help="Emit JSON log lines")
@click.pass_context
def cli(ctx, log_level, json_logs):
    """Deployment orchestrator with a post-deploy health gate."""
    ctx.ensure_object(dict)
    ctx.obj["log_overrides"] = {"log_level": log_level, "log_json": json_logs}


@cli.command()
@click.option(
    "--branch",
    "-b",
    required=True,
    envvar=["RELEASEGATE_BRANCH", "BRANCH_NAME", "GIT_BRANCH"],
    help="Branch that triggered the run (also read from BRANCH_NAME / GIT_BRANCH)",
)
@click.option(
    "--workdir",
    "-C",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Working-tree checkout (default: from settings)",
)
@click.option("--release-branch", default=None, help="Branch that deploys (default: main)")
@click.option("--metrics-host", default=None, help="Metrics backend base URL")
@click.option("--project-name", default=None, help="Compose project name")
@click.option(
    "--attempts",
    default=1,
    show_default=True,
    type=click.IntRange(min=1),
    help="Re-run the whole pipeline up to this many times while it fails",
)
@click.option(
    "--retry-delay",
    default=0.0,
    show_default=True,
    type=click.FloatRange(min=0),
    help="Seconds to wait between attempts",
)
@click.option(
    "--report",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Write the run as JSON to this file",
)
@click.pass_context
def deploy(
    ctx,
    branch,
    workdir,
    release_branch,
    metrics_host,
    project_name,
    attempts,
    retry_delay,
    report,
):
    """
    Run the deployment stage sequence for a branch.

    Example:
        releasegate deploy --branch main --workdir /srv/checkout \\
            --metrics-host http://10.0.0.12:9090

    Non-release branches only resolve the compose command, verify the
    checkout and run tests.
    """
    settings = _load_settings(
        working_dir=workdir,
        release_branch=release_branch,
        metrics_host=metrics_host,
        project_name=project_name,
        **ctx.obj["log_overrides"],
    )
    configure_logging(settings.log_level, settings.log_json)

    run = asyncio.run(
        deploy_async(settings, normalize_branch(branch), attempts, retry_delay, report)
    )

    if settings.metrics_textfile is not None:
        metrics.write_textfile(settings.metrics_textfile)

    ctx.exit(run.exit_code)


async def deploy_async(
    settings: Settings,
    branch: str,
    attempts: int = 1,
    retry_delay: float = 0.0,
    report: Path | None = None,
) -> PipelineRun:
    """
    Async implementation of the deploy command.

    Each attempt gets a fresh context; SIGINT/SIGTERM cancel the attempt in
    flight before its next stage.
    """
    hooks = [echo_summary(click.echo)]
    if report is not None:
        hooks.append(write_json_report(report))

    executor = DeploymentExecutor(build_deployment_stages(settings), hooks=hooks)

    async def attempt(number: int) -> PipelineRun:
        context = (
            PipelineContextBuilder()
            .with_branch(branch)
            .with_working_dir(settings.working_dir)
            .with_project_name(settings.project_name)
            .build()
        )
        logger.info("deploy_attempt", attempt=number, run_id=str(context.run_id), branch=branch)
        with _cancel_on_signals(context):
            return await executor.run(branch, context)

    return await run_with_attempts(attempt, max_attempts=attempts, delays=[retry_delay])


@contextlib.contextmanager
def _cancel_on_signals(context: PipelineContext):
    loop = asyncio.get_running_loop()
    installed = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        # Not supported on Windows event loops
        with contextlib.suppress(NotImplementedError, RuntimeError):
            loop.add_signal_handler(sig, context.cancel)
            installed.append(sig)
    try:
        yield
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)


@cli.command()
@click.option("--metrics-host", default=None, help="Metrics backend base URL")
@click.option("--timeout", type=float, default=None, help="Request timeout in seconds")
@click.pass_context
def health(ctx, metrics_host, timeout):
    """Run the health gate once and exit 0 only if HEALTHY."""
    settings = _load_settings(
        metrics_host=metrics_host,
        health_timeout_seconds=timeout,
        **ctx.obj["log_overrides"],
    )
    configure_logging(settings.log_level, settings.log_json)

    gate = HealthGate(query=settings.health_query)
    result = asyncio.run(gate.check(settings.metrics_host, timeout=settings.health_timeout_seconds))

    click.echo(result.summary())
    ctx.exit(0 if result.healthy else 1)


@cli.command()
@click.pass_context
def resolve(ctx):
    """Print the compose command available on this host."""
    settings = _load_settings(**ctx.obj["log_overrides"])
    configure_logging(settings.log_level, settings.log_json)

    resolver = CommandResolver(
        CommandRunner(),
        modern=settings.compose_modern,
        legacy=settings.compose_legacy,
        timeout=settings.probe_timeout_seconds,
    )
    try:
        variant = asyncio.run(resolver.resolve())
    except ToolUnavailableError as e:
        click.echo(f"ERROR: {e.message}", err=True)
        ctx.exit(1)

    click.echo(f"{variant.kind.value}: {variant}")


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
