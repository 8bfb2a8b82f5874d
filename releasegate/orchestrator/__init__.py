"""
Deployment Orchestrator Package.

Runs the deployment stage graph: compose command resolution, environment
materialization, build/start and the post-deploy health gate.

Example:
    >>> from releasegate.config import Settings
    >>> from releasegate.orchestrator import DeploymentExecutor, build_deployment_stages
    >>> executor = DeploymentExecutor(build_deployment_stages(Settings()))
    >>> run = await executor.run("main")
"""

from releasegate.orchestrator.exceptions import (
    BuildFailureError,
    CleanupFailure,
    CommandFailedError,
    DeploymentError,
    HealthCheckFailure,
    MissingConfigError,
    MissingTemplateError,
    RunFinalizedError,
    ToolUnavailableError,
)
from releasegate.orchestrator.health import HealthGate, HealthQueryResult, HealthVerdict
from releasegate.orchestrator.materializer import EnvironmentMaterializer
from releasegate.orchestrator.pipeline import (
    DeploymentExecutor,
    PipelineContext,
    PipelineContextBuilder,
    PipelineRun,
    StageOutcome,
    StageResult,
    Verdict,
    run_pipeline,
)
from releasegate.orchestrator.resolver import CommandResolver, CommandVariant
from releasegate.orchestrator.stages import PipelineStage, Stage, build_deployment_stages

__all__ = [
    "BuildFailureError",
    "CleanupFailure",
    "CommandFailedError",
    "CommandResolver",
    "CommandVariant",
    "DeploymentError",
    "DeploymentExecutor",
    "EnvironmentMaterializer",
    "HealthCheckFailure",
    "HealthGate",
    "HealthQueryResult",
    "HealthVerdict",
    "MissingConfigError",
    "MissingTemplateError",
    "PipelineContext",
    "PipelineContextBuilder",
    "PipelineRun",
    "PipelineStage",
    "RunFinalizedError",
    "Stage",
    "StageOutcome",
    "StageResult",
    "ToolUnavailableError",
    "Verdict",
    "build_deployment_stages",
    "run_pipeline",
]
