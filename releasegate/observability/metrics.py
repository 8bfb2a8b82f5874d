"""
Prometheus Metrics for Deployment Runs.

Defines Prometheus metrics for tracking pipeline runs:
- Run verdicts
- Stage outcomes and durations
- Health gate verdicts

A CI job is short-lived, so the CLI writes the registry to a node-exporter
textfile instead of serving it.
"""

from pathlib import Path

from prometheus_client import REGISTRY, Counter, Histogram, write_to_textfile

pipeline_runs_total = Counter(
    "releasegate_pipeline_runs_total",
    "Total number of finished pipeline runs",
    labelnames=["verdict"],
)

stage_results_total = Counter(
    "releasegate_stage_results_total",
    "Total number of recorded stage results",
    labelnames=["stage", "outcome"],
)

stage_duration_seconds = Histogram(
    "releasegate_stage_duration_seconds",
    "Stage execution duration in seconds",
    labelnames=["stage"],
    buckets=[0.1, 1, 5, 30, 60, 300, 900, 1800],  # probes to full image builds
)

health_checks_total = Counter(
    "releasegate_health_checks_total",
    "Total number of health gate checks",
    labelnames=["verdict"],
)


def record_stage_result(stage: str, outcome: str, duration_ms: float) -> None:
    """Count a stage result and observe its duration (skips have none)."""
    stage_results_total.labels(stage=stage, outcome=outcome).inc()
    if outcome != "SKIPPED":
        stage_duration_seconds.labels(stage=stage).observe(duration_ms / 1000)


def record_pipeline_run(verdict: str) -> None:
    pipeline_runs_total.labels(verdict=verdict).inc()


def record_health_check(verdict: str) -> None:
    health_checks_total.labels(verdict=verdict).inc()


def write_textfile(path: Path) -> None:
    """Write the default registry for the node-exporter textfile collector."""
    write_to_textfile(str(path), REGISTRY)
