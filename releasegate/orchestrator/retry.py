"""
Whole-run retry for callers.

Stages never retry. A caller that wants resilience against transient
failures (for example a health gate racing the metrics scrape interval)
re-runs the entire pipeline with a fresh context through this helper.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

import structlog

from releasegate.orchestrator.pipeline.result import PipelineRun, Verdict

logger = structlog.get_logger(__name__)


async def run_with_attempts(
    run_once: Callable[[int], Awaitable[PipelineRun]],
    max_attempts: int = 1,
    delays: list[float] | None = None,
) -> PipelineRun:
    """
    Run a pipeline up to max_attempts times until it succeeds.

    ABORTED runs are never retried: cancellation means the run was
    superseded.

    Args:
        run_once: Coroutine factory taking the 1-based attempt number; must
            build a new context on every call
        max_attempts: Maximum number of runs (default: 1, no retry)
        delays: Seconds to wait before attempt 2, 3, ...; the last value
            repeats (default: no wait)

    Returns:
        The last PipelineRun

    Example:
        ```python
        run = await run_with_attempts(
            lambda attempt: executor.run("main"),
            max_attempts=3,
            delays=[15.0, 30.0],
        )
        ```
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    delays = delays or [0.0]
    run: PipelineRun | None = None

    for attempt in range(1, max_attempts + 1):
        run = await run_once(attempt)

        if run.verdict is not Verdict.FAILED:
            return run

        if attempt == max_attempts:
            logger.error(
                "pipeline_attempts_exhausted",
                attempt=attempt,
                max_attempts=max_attempts,
                run_id=str(run.run_id),
            )
            break

        delay = delays[min(attempt - 1, len(delays) - 1)]
        logger.warning(
            "pipeline_attempt_failed",
            attempt=attempt,
            max_attempts=max_attempts,
            run_id=str(run.run_id),
            failed_stage=run.first_failure.stage_name if run.first_failure else None,
            retry_in_seconds=delay,
        )
        if delay > 0:
            await asyncio.sleep(delay)

    assert run is not None
    return run
