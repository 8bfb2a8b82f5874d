"""
Pipeline Infrastructure Package.

Provides context, results, the executor and run reporting.
"""

from releasegate.orchestrator.pipeline.context import PipelineContext, PipelineContextBuilder
from releasegate.orchestrator.pipeline.coordinator import DeploymentExecutor, run_pipeline
from releasegate.orchestrator.pipeline.result import (
    PipelineRun,
    SkipReason,
    StageOutcome,
    StageResult,
    Verdict,
)

__all__ = [
    "DeploymentExecutor",
    "PipelineContext",
    "PipelineContextBuilder",
    "PipelineRun",
    "SkipReason",
    "StageOutcome",
    "StageResult",
    "Verdict",
    "run_pipeline",
]
