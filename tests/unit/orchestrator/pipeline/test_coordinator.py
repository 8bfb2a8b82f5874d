"""
Unit tests for DeploymentExecutor.
"""

import asyncio
from uuid import uuid4

import pytest

from releasegate.orchestrator.exceptions import BuildFailureError
from releasegate.orchestrator.pipeline.context import PipelineContext, PipelineContextBuilder
from releasegate.orchestrator.pipeline.coordinator import DeploymentExecutor, run_pipeline
from releasegate.orchestrator.pipeline.result import (
    PipelineRun,
    SkipReason,
    StageOutcome,
    Verdict,
)
from releasegate.orchestrator.stages.base import PipelineStage, Stage, on_branch


class RecordingStage(PipelineStage):
    """Stage that records its execution in the context."""

    def __init__(self, name: str, fail: bool = False, predicate=None, continue_on_failure=False):
        self._name = name
        self._fail = fail
        if predicate is not None:
            self.predicate = predicate
        self.continue_on_failure = continue_on_failure

    @property
    def name(self) -> str:
        return self._name

    async def execute(self, context: PipelineContext) -> str:
        context.data.setdefault("executed", []).append(self._name)
        if self._fail:
            raise BuildFailureError(["docker", "compose", "up"], returncode=1, output="boom")
        return f"{self._name} done"


def executed(context: PipelineContext) -> list[str]:
    return context.get("executed", [])


class TestDeploymentExecutor:
    """Tests for DeploymentExecutor."""

    @pytest.fixture
    def context(self) -> PipelineContext:
        return PipelineContextBuilder().with_run_id(uuid4()).with_branch("main").build()

    def test_init_empty_stages(self):
        assert DeploymentExecutor().get_stages() == []

    def test_duplicate_stage_names_rejected(self):
        with pytest.raises(ValueError, match="Duplicate"):
            DeploymentExecutor([RecordingStage("a"), RecordingStage("a")])

    def test_add_stage_rejects_duplicate(self):
        executor = DeploymentExecutor([RecordingStage("a")])

        with pytest.raises(ValueError):
            executor.add_stage(RecordingStage("a"))

    def test_get_stages_returns_copy(self):
        executor = DeploymentExecutor([RecordingStage("a")])

        executor.get_stages().append(RecordingStage("b"))

        assert len(executor.get_stages()) == 1

    @pytest.mark.asyncio
    async def test_all_stages_succeed(self, context):
        executor = DeploymentExecutor([RecordingStage("a"), RecordingStage("b")])

        run = await executor.run("main", context)

        assert run.verdict is Verdict.SUCCESS
        assert run.exit_code == 0
        assert executed(context) == ["a", "b"]
        assert [r.output for r in run.results] == ["a done", "b done"]

    @pytest.mark.asyncio
    async def test_empty_pipeline_succeeds(self, context):
        run = await DeploymentExecutor().run("main", context)

        assert run.verdict is Verdict.SUCCESS
        assert run.results == []

    @pytest.mark.asyncio
    async def test_builds_context_when_missing(self):
        run = await DeploymentExecutor([RecordingStage("a")]).run("feature/x")

        assert run.branch == "feature/x"
        assert run.verdict is Verdict.SUCCESS

    @pytest.mark.asyncio
    async def test_one_result_per_stage_in_declaration_order(self, context):
        stages = [
            RecordingStage("a"),
            RecordingStage("b", predicate=on_branch("release")),
            RecordingStage("c", fail=True),
            RecordingStage("d"),
            RecordingStage("e", predicate=on_branch("release")),
        ]

        run = await DeploymentExecutor(stages).run("main", context)

        assert [r.stage_name for r in run.results] == ["a", "b", "c", "d", "e"]

    @pytest.mark.asyncio
    async def test_non_applicable_stage_is_skipped_not_run(self):
        gated = RecordingStage("deploy", fail=True, predicate=on_branch("main"))
        context = PipelineContextBuilder().with_branch("feature/x").build()

        run = await DeploymentExecutor([RecordingStage("a"), gated]).run("feature/x", context)

        result = run.get_result("deploy")
        assert result.outcome is StageOutcome.SKIPPED
        assert result.skip_reason is SkipReason.BRANCH
        assert "deploy" not in executed(context)
        assert run.verdict is Verdict.SUCCESS

    @pytest.mark.asyncio
    async def test_context_for_other_branch_rejected(self, context):
        stage = RecordingStage("deploy", predicate=on_branch("main"))

        with pytest.raises(ValueError, match="does not match"):
            await DeploymentExecutor([stage]).run("feature/x", context)

        assert executed(context) == []

    @pytest.mark.asyncio
    async def test_skipped_stage_does_not_block_later_stages(self, context):
        stages = [
            RecordingStage("gated", predicate=on_branch("release")),
            RecordingStage("after"),
        ]

        run = await DeploymentExecutor(stages).run("main", context)

        assert executed(context) == ["after"]
        assert run.get_result("after").outcome is StageOutcome.SUCCESS

    @pytest.mark.asyncio
    async def test_failure_aborts_remaining_stages(self, context):
        stages = [RecordingStage("a"), RecordingStage("b", fail=True), RecordingStage("c")]

        run = await DeploymentExecutor(stages).run("main", context)

        assert run.verdict is Verdict.FAILED
        assert run.exit_code == 1
        assert executed(context) == ["a", "b"]
        assert run.get_result("b").outcome is StageOutcome.FAILED
        assert run.get_result("b").error_type == "BuildFailureError"
        assert run.get_result("b").output == "boom"
        assert run.get_result("c").outcome is StageOutcome.SKIPPED
        assert run.get_result("c").skip_reason is SkipReason.ABORTED

    @pytest.mark.asyncio
    async def test_abort_skip_distinguished_from_branch_skip(self, context):
        stages = [
            RecordingStage("a", fail=True),
            RecordingStage("ungated"),
            RecordingStage("gated", predicate=on_branch("release")),
        ]

        run = await DeploymentExecutor(stages).run("main", context)

        # After an abort every remaining stage reports the abort, gated or not
        assert run.get_result("ungated").skip_reason is SkipReason.ABORTED
        assert run.get_result("gated").skip_reason is SkipReason.ABORTED

    @pytest.mark.asyncio
    async def test_continue_on_failure(self, context):
        stages = [
            RecordingStage("flaky", fail=True, continue_on_failure=True),
            RecordingStage("after"),
        ]

        run = await DeploymentExecutor(stages).run("main", context)

        assert executed(context) == ["flaky", "after"]
        assert run.get_result("flaky").outcome is StageOutcome.FAILED
        assert run.get_result("after").outcome is StageOutcome.SUCCESS
        assert run.verdict is Verdict.SUCCESS

    @pytest.mark.asyncio
    async def test_cancel_before_next_stage(self, context):
        def cancel(ctx: PipelineContext) -> str:
            ctx.cancel()
            return "cancel requested"

        stages = [Stage("first", cancel), RecordingStage("second"), RecordingStage("third")]

        run = await DeploymentExecutor(stages).run("main", context)

        assert run.verdict is Verdict.ABORTED
        assert run.exit_code == 2
        # The running stage finishes; nothing after it starts
        assert run.get_result("first").outcome is StageOutcome.SUCCESS
        assert executed(context) == []
        assert run.get_result("second").skip_reason is SkipReason.CANCELLED
        assert run.get_result("third").skip_reason is SkipReason.CANCELLED

    @pytest.mark.asyncio
    async def test_cancelled_before_start(self, context):
        context.cancel()

        run = await DeploymentExecutor([RecordingStage("a")]).run("main", context)

        assert run.verdict is Verdict.ABORTED
        assert run.get_result("a").skip_reason is SkipReason.CANCELLED

    @pytest.mark.asyncio
    async def test_hooks_run_after_verdict(self, context):
        seen: list[tuple[Verdict, int]] = []

        def hook(run: PipelineRun) -> None:
            seen.append((run.verdict, len(run.results)))

        executor = DeploymentExecutor([RecordingStage("a", fail=True)], hooks=[hook])

        await executor.run("main", context)

        assert seen == [(Verdict.FAILED, 1)]

    @pytest.mark.asyncio
    async def test_async_hook(self, context):
        seen = []

        async def hook(run: PipelineRun) -> None:
            await asyncio.sleep(0)
            seen.append(run.verdict)

        executor = DeploymentExecutor([RecordingStage("a")])
        executor.add_hook(hook)

        await executor.run("main", context)

        assert seen == [Verdict.SUCCESS]

    @pytest.mark.asyncio
    async def test_failing_hook_does_not_change_verdict(self, context):
        calls = []

        def broken(run: PipelineRun) -> None:
            raise RuntimeError("log sink down")

        def after(run: PipelineRun) -> None:
            calls.append(run.verdict)

        executor = DeploymentExecutor([RecordingStage("a")], hooks=[broken, after])

        run = await executor.run("main", context)

        assert run.verdict is Verdict.SUCCESS
        assert calls == [Verdict.SUCCESS]

    @pytest.mark.asyncio
    async def test_run_is_final_after_run(self, context):
        run = await DeploymentExecutor([RecordingStage("a")]).run("main", context)

        assert run.is_final is True
        assert run.finished_at is not None

    @pytest.mark.asyncio
    async def test_concurrent_runs_are_independent(self):
        executor = DeploymentExecutor(
            [RecordingStage("a"), RecordingStage("deploy", predicate=on_branch("main"))]
        )
        main_ctx = PipelineContextBuilder().with_branch("main").build()
        feature_ctx = PipelineContextBuilder().with_branch("feature/x").build()

        main_run, feature_run = await asyncio.gather(
            executor.run("main", main_ctx),
            executor.run("feature/x", feature_ctx),
        )

        assert executed(main_ctx) == ["a", "deploy"]
        assert executed(feature_ctx) == ["a"]
        assert main_run.run_id != feature_run.run_id
        assert feature_run.get_result("deploy").skip_reason is SkipReason.BRANCH


class TestRunPipeline:
    """Tests for the run_pipeline convenience function."""

    @pytest.mark.asyncio
    async def test_run_pipeline(self):
        run = await run_pipeline([Stage("noop", lambda ctx: None)], "main")

        assert run.verdict is Verdict.SUCCESS
        assert run.results[0].output == ""
