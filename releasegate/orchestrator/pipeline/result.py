"""
Pipeline Result Models.

Per-stage results and the run record the executor builds from them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import UUID

from releasegate.orchestrator.exceptions import RunFinalizedError


class StageOutcome(str, Enum):
    """Outcome of one stage in one run."""

    SKIPPED = "SKIPPED"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class SkipReason(str, Enum):
    """Why a stage was skipped."""

    BRANCH = "branch"  # predicate false for this branch
    ABORTED = "aborted"  # an earlier stage failed
    CANCELLED = "cancelled"  # run cancelled externally


class Verdict(str, Enum):
    """Overall verdict of a pipeline run."""

    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    ABORTED = "ABORTED"


EXIT_CODES: dict[Verdict, int] = {
    Verdict.SUCCESS: 0,
    Verdict.FAILED: 1,
    Verdict.PENDING: 1,
    Verdict.ABORTED: 2,
}


@dataclass
class StageResult:
    """
    Result from a pipeline stage.

    Attributes:
        stage_name: Name of the stage that produced this result
        outcome: SKIPPED, SUCCESS or FAILED
        skip_reason: Set only for SKIPPED results
        output: Captured stdout/stderr or stage log
        error: Error message if the stage failed
        error_type: Exception class name if the stage failed
        execution_time_ms: Stage execution time in milliseconds
        timestamp: When the result was recorded (UTC)
    """

    stage_name: str
    outcome: StageOutcome
    skip_reason: SkipReason | None = None
    output: str = ""
    error: str | None = None
    error_type: str | None = None
    execution_time_ms: float = 0.0
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def succeeded(self) -> bool:
        return self.outcome is StageOutcome.SUCCESS

    @property
    def failed(self) -> bool:
        return self.outcome is StageOutcome.FAILED

    @property
    def skipped(self) -> bool:
        return self.outcome is StageOutcome.SKIPPED

    @classmethod
    def ok(cls, stage_name: str, output: str = "", execution_time_ms: float = 0.0) -> StageResult:
        """Create a successful result."""
        return cls(
            stage_name=stage_name,
            outcome=StageOutcome.SUCCESS,
            output=output,
            execution_time_ms=execution_time_ms,
        )

    @classmethod
    def fail(
        cls,
        stage_name: str,
        error: str,
        error_type: str | None = None,
        output: str = "",
        execution_time_ms: float = 0.0,
    ) -> StageResult:
        """Create a failed result."""
        return cls(
            stage_name=stage_name,
            outcome=StageOutcome.FAILED,
            output=output,
            error=error,
            error_type=error_type,
            execution_time_ms=execution_time_ms,
        )

    @classmethod
    def skip(cls, stage_name: str, reason: SkipReason) -> StageResult:
        """Create a skipped result."""
        return cls(stage_name=stage_name, outcome=StageOutcome.SKIPPED, skip_reason=reason)

    def to_dict(self) -> dict[str, Any]:
        return {
            "stage": self.stage_name,
            "outcome": self.outcome.value,
            "skip_reason": self.skip_reason.value if self.skip_reason else None,
            "output": self.output,
            "error": self.error,
            "error_type": self.error_type,
            "execution_time_ms": round(self.execution_time_ms, 2),
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class PipelineRun:
    """
    One execution of the stage graph.

    Only the executor mutates a run. Once the verdict leaves PENDING the run
    is frozen: further record() or finalize() calls raise RunFinalizedError.
    """

    run_id: UUID
    branch: str
    results: list[StageResult] = field(default_factory=list)
    verdict: Verdict = Verdict.PENDING
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    finished_at: datetime | None = None

    @property
    def is_final(self) -> bool:
        return self.verdict is not Verdict.PENDING

    def record(self, result: StageResult) -> None:
        """Append a stage result."""
        if self.is_final:
            raise RunFinalizedError(f"Run {self.run_id} is final ({self.verdict.value})")
        self.results.append(result)

    def finalize(self, verdict: Verdict) -> None:
        """Set the verdict. Can only happen once."""
        if self.is_final:
            raise RunFinalizedError(f"Run {self.run_id} is final ({self.verdict.value})")
        if verdict is Verdict.PENDING:
            raise ValueError("Cannot finalize a run as PENDING")
        self.verdict = verdict
        self.finished_at = datetime.now(UTC)

    @property
    def exit_code(self) -> int:
        """Process exit code for the CI host."""
        return EXIT_CODES[self.verdict]

    @property
    def first_failure(self) -> StageResult | None:
        """First FAILED stage result, if any."""
        for result in self.results:
            if result.failed:
                return result
        return None

    def get_result(self, stage_name: str) -> StageResult | None:
        for result in self.results:
            if result.stage_name == stage_name:
                return result
        return None

    def outcomes(self) -> dict[str, StageOutcome]:
        """Stage name to outcome, in declaration order."""
        return {r.stage_name: r.outcome for r in self.results}

    @property
    def duration_ms(self) -> float:
        if self.finished_at is None:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds() * 1000

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": str(self.run_id),
            "branch": self.branch,
            "verdict": self.verdict.value,
            "exit_code": self.exit_code,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "stages": [r.to_dict() for r in self.results],
        }
