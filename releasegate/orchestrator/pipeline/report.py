"""
Run Reporting.

Terminal "always" hooks: a human-readable summary for the CI console and a
JSON report for external log sinks. Reporting never affects the verdict.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import Path

from releasegate.orchestrator.pipeline.result import PipelineRun, StageOutcome, StageResult

_SKIP_LABELS = {
    "branch": "not applicable to branch",
    "aborted": "earlier stage failed",
    "cancelled": "run cancelled",
}


def _describe(result: StageResult) -> str:
    if result.outcome is StageOutcome.SKIPPED and result.skip_reason is not None:
        return f"SKIPPED ({_SKIP_LABELS[result.skip_reason.value]})"
    if result.outcome is StageOutcome.FAILED:
        return f"FAILED [{result.error_type}]" if result.error_type else "FAILED"
    return f"{result.outcome.value} ({result.execution_time_ms:.0f}ms)"


def format_run_summary(run: PipelineRun) -> str:
    """
    Render a run for the console.

    Lists every stage with its outcome, then the error and captured output of
    the first failure.
    """
    width = max((len(r.stage_name) for r in run.results), default=10)
    lines = [
        "=" * 60,
        f"Pipeline run {run.run_id}",
        f"Branch: {run.branch}",
        "=" * 60,
    ]
    lines.extend(f"  {r.stage_name.ljust(width)}  {_describe(r)}" for r in run.results)
    lines.append("-" * 60)
    lines.append(f"Verdict: {run.verdict.value} (exit code {run.exit_code})")

    failure = run.first_failure
    if failure is not None:
        lines.append("")
        lines.append(f"First failure: {failure.stage_name}")
        lines.append(f"Error: {failure.error}")
        if failure.output:
            lines.append("Output:")
            lines.extend(f"  {line}" for line in failure.output.splitlines())

    return "\n".join(lines)


def echo_summary(echo: Callable[[str], None]) -> Callable[[PipelineRun], None]:
    """Hook that prints the run summary with the given echo function."""

    def hook(run: PipelineRun) -> None:
        echo(format_run_summary(run))

    hook.__name__ = "echo_summary"
    return hook


def write_json_report(path: Path) -> Callable[[PipelineRun], None]:
    """Hook that writes the run as JSON to path."""

    def hook(run: PipelineRun) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(run.to_dict(), indent=2), encoding="utf-8")

    hook.__name__ = "write_json_report"
    return hook
