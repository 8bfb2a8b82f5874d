"""
Pipeline Stages Package.

Base stage abstractions and the canonical deployment stages.
"""

from releasegate.orchestrator.stages.base import (
    PipelineStage,
    Stage,
    always,
    normalize_branch,
    on_branch,
)
from releasegate.orchestrator.stages.deployment import (
    STAGE_ORDER,
    BuildAndStartStage,
    CleanupStage,
    FetchSourceStage,
    HealthGateStage,
    MaterializeEnvStage,
    ResolveCommandStage,
    TestStage,
    build_deployment_stages,
)

__all__ = [
    "STAGE_ORDER",
    "BuildAndStartStage",
    "CleanupStage",
    "FetchSourceStage",
    "HealthGateStage",
    "MaterializeEnvStage",
    "PipelineStage",
    "ResolveCommandStage",
    "Stage",
    "TestStage",
    "always",
    "build_deployment_stages",
    "normalize_branch",
    "on_branch",
]
